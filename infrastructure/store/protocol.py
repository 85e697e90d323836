"""TrackingStore protocol. The recorder depends on this, not on a backend.

Contract for ``upsert``: apply *mutation* to the record for *pixel_id* as one
indivisible increment-or-create. Two concurrent upserts for the same id must
both be counted. Upserts for different ids must not block each other.
"""

from typing import Optional, Protocol, runtime_checkable

from schemas.models.tracking import OpenMutation, TrackingRecord


@runtime_checkable
class TrackingStore(Protocol):
    async def upsert(self, pixel_id: str, mutation: OpenMutation) -> TrackingRecord: ...

    async def get(self, pixel_id: str) -> Optional[TrackingRecord]: ...

    async def query(self, campaign_id: str) -> list[TrackingRecord]: ...

    async def ping(self) -> bool: ...
