"""OpenEventPublisher protocol. The recorder depends on this, not on Redis."""

from typing import Protocol

from schemas.models.tracking import TrackingRecord


class OpenEventPublisher(Protocol):
    async def publish_open(self, record: TrackingRecord) -> bool: ...

    async def publish_spike(self, record: TrackingRecord, open_count: int) -> bool: ...

    async def publish_revival(self, record: TrackingRecord, days: int) -> bool: ...
