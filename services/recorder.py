"""
Open-event recording.

``OpenRecorder.record_open`` is called once per pixel fetch. It classifies the
client, builds an :class:`OpenMutation` and hands it to the store, which
applies it atomically. Every fetch is counted: prefetching proxies and
repeated previews inflate ``opens`` and nothing here collapses them.

Recording is best-effort. A failing store is logged (and reaches Sentry via
the logging integration) but never raised, because the caller still has to
serve the pixel image. Reads are not: a failing store surfaces as
:class:`StoreError` (503) on the stats API.

With a publisher attached, every open is announced, followed by
``open_spike`` and ``email_revival`` events when
:mod:`services.engagement` flags the open.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional

from errors import StoreError
from infrastructure.events.protocol import OpenEventPublisher
from infrastructure.store.protocol import TrackingStore
from schemas.models.tracking import OpenContext, OpenMutation, TrackingRecord
from services.engagement import (
    SPIKE_THRESHOLD,
    RecentOpens,
    days_since_first_open,
    is_revival,
)
from shared.datetime_utils import utcnow
from shared.device import DeviceType, classify_device
from shared.logging import get_logger, hash_ip

log = get_logger(__name__)


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


class OpenRecorder:
    def __init__(
        self,
        store: TrackingStore,
        publisher: Optional[OpenEventPublisher] = None,
        classifier: Callable[[str], DeviceType] = classify_device,
        clock: Callable[[], datetime] = utcnow,
        recent_opens: Optional[RecentOpens] = None,
    ) -> None:
        self.store = store
        self.publisher = publisher
        self.classifier = classifier
        self.clock = clock
        self.recent_opens = recent_opens if recent_opens is not None else RecentOpens()

    def build_mutation(self, context: OpenContext) -> OpenMutation:
        user_agent = _blank_to_none(context.user_agent)
        return OpenMutation(
            observed_at=self.clock(),
            email_id=_blank_to_none(context.email_id),
            campaign_id=_blank_to_none(context.campaign_id),
            ip_address=_blank_to_none(context.ip_address),
            user_agent=user_agent,
            location=_blank_to_none(context.location),
            device=self.classifier(user_agent) if user_agent else None,
        )

    async def record_open(
        self, pixel_id: str, context: Optional[OpenContext] = None
    ) -> Optional[TrackingRecord]:
        """Count one open of *pixel_id*.

        Returns the updated record, or ``None`` if the store failed.
        """
        context = context or OpenContext()
        try:
            mutation = self.build_mutation(context)
            record = await self.store.upsert(pixel_id, mutation)
        except Exception as e:
            log.error(
                "record_open_failed",
                pixel_id=pixel_id,
                campaign_id=context.campaign_id,
                ip_hash=hash_ip(context.ip_address),
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

        log.info(
            "email_opened",
            pixel_id=pixel_id,
            campaign_id=record.campaign_id,
            opens=record.opens,
            device=record.device.value if record.device else None,
        )

        if self.publisher is not None:
            await self._publish_events(record, mutation.observed_at)

        return record

    async def _publish_events(self, record: TrackingRecord, observed_at: datetime) -> None:
        try:
            await self.publisher.publish_open(record)

            recent = self.recent_opens.add(record.pixel_id, observed_at)
            if recent >= SPIKE_THRESHOLD:
                log.info("open_spike_detected", pixel_id=record.pixel_id, open_count=recent)
                await self.publisher.publish_spike(record, recent)

            if is_revival(record, observed_at):
                days = days_since_first_open(record, observed_at)
                log.info("email_revival_detected", pixel_id=record.pixel_id, days=days)
                await self.publisher.publish_revival(record, days)
        except Exception as e:
            log.warning(
                "open_event_publish_failed",
                pixel_id=record.pixel_id,
                error=str(e),
                error_type=type(e).__name__,
            )

    async def get(self, pixel_id: str) -> Optional[TrackingRecord]:
        try:
            return await self.store.get(pixel_id)
        except Exception as e:
            log.error("tracking_store_read_failed", pixel_id=pixel_id, error=str(e))
            raise StoreError("Tracking store is unavailable") from e

    async def list_by_campaign(self, campaign_id: str) -> list[TrackingRecord]:
        """Records of one campaign. Unlike recording, read failures propagate."""
        try:
            return await self.store.query(campaign_id)
        except Exception as e:
            log.error(
                "tracking_store_read_failed", campaign_id=campaign_id, error=str(e)
            )
            raise StoreError("Tracking store is unavailable") from e
