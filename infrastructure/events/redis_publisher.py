"""Publishes tracking events on a Redis pub/sub channel.

Subscribers (dashboards, notification workers) get:

- ``email_opened``  — one per recorded open
- ``open_spike``    — a pixel was opened repeatedly within a short window
- ``email_revival`` — a message was reopened days after its first open

Delivery is fire-and-forget: a failed publish is logged and reported as
``False``, never raised.
"""

import json
from typing import Optional

import redis.asyncio as aioredis

from schemas.models.tracking import TrackingRecord
from shared.logging import get_logger

log = get_logger(__name__)


def _identity(record: TrackingRecord) -> dict:
    return {
        "pixel_id": record.pixel_id,
        "email_id": record.email_id,
        "campaign_id": record.campaign_id,
    }


def build_open_event(record: TrackingRecord) -> dict:
    return {
        "type": "email_opened",
        "data": {
            **_identity(record),
            "opens": record.opens,
            "first_open": record.opens == 1,
            "device": record.device.value if record.device else None,
            "opened_at": record.last_open.isoformat(),
        },
    }


def build_spike_event(record: TrackingRecord, open_count: int) -> dict:
    return {
        "type": "open_spike",
        "data": {**_identity(record), "open_count": open_count},
    }


def build_revival_event(record: TrackingRecord, days: int) -> dict:
    return {
        "type": "email_revival",
        "data": {
            **_identity(record),
            "days": days,
            "first_opened_at": record.first_open.isoformat(),
        },
    }


class RedisOpenEventPublisher:
    def __init__(
        self, redis_client: Optional[aioredis.Redis], channel: str = "tracking_events"
    ) -> None:
        self._redis = redis_client
        self.channel = channel

    async def publish_open(self, record: TrackingRecord) -> bool:
        return await self._publish(build_open_event(record))

    async def publish_spike(self, record: TrackingRecord, open_count: int) -> bool:
        return await self._publish(build_spike_event(record, open_count))

    async def publish_revival(self, record: TrackingRecord, days: int) -> bool:
        return await self._publish(build_revival_event(record, days))

    async def _publish(self, event: dict) -> bool:
        if self._redis is None:
            return False
        try:
            await self._redis.publish(self.channel, json.dumps(event))
            return True
        except Exception as e:
            log.warning(
                "tracking_event_publish_failed",
                event_type=event["type"],
                pixel_id=event["data"]["pixel_id"],
                channel=self.channel,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False
