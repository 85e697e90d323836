"""
Campaign open-rate analytics.

The tracker only knows about opens, never about sends, so every rate takes
``sent_count`` from the caller. Aggregates are computed over whatever the
store returns at query time; an open recorded mid-aggregation may or may not
be included.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import asdict, dataclass
from typing import Iterable

from schemas.models.tracking import TrackingRecord
from services.recorder import OpenRecorder

UNKNOWN_DEVICE = "unknown"
UNKNOWN_LOCATION = "unknown"


@dataclass(frozen=True)
class OpenRate:
    sent: int
    opened: int
    rate: float

    def to_dict(self) -> dict:
        return asdict(self)


def count_unique_opens(records: Iterable[TrackingRecord]) -> int:
    """Distinct recipients who opened at least once.

    Recipients are identified by ``email_id``. Records without one all belong
    to a single unknown recipient.
    """
    return len({r.email_id for r in records})


def compute_open_rate(records: list[TrackingRecord], sent_count: int) -> OpenRate:
    opened = count_unique_opens(records)
    rate = opened / sent_count * 100 if sent_count > 0 else 0.0
    return OpenRate(sent=sent_count, opened=opened, rate=rate)


def device_breakdown(records: Iterable[TrackingRecord]) -> dict[str, int]:
    """Record counts per device, unclassified records under ``unknown``."""
    counts = Counter(
        r.device.value if r.device is not None else UNKNOWN_DEVICE for r in records
    )
    return dict(sorted(counts.items()))


def location_breakdown(records: Iterable[TrackingRecord]) -> dict[str, int]:
    """Record counts per last-seen location, unresolved ones under ``unknown``."""
    counts = Counter(r.location or UNKNOWN_LOCATION for r in records)
    return dict(sorted(counts.items()))


def format_report(
    campaign_id: str, rate: OpenRate, total_opens: int, devices: dict[str, int]
) -> str:
    lines = [
        f"Campaign: {campaign_id}",
        f"Sent: {rate.sent}",
        f"Opens: {rate.opened}",
        f"Total Opens: {total_opens}",
        f"Open Rate: {rate.rate:.2f}%",
        "",
        "Opens by Device:",
    ]
    if devices:
        lines.extend(f"  {device}: {count}" for device, count in devices.items())
    else:
        lines.append("  (none)")
    return "\n".join(lines) + "\n"


class CampaignAnalytics:
    def __init__(self, recorder: OpenRecorder) -> None:
        self.recorder = recorder

    async def open_rate(self, campaign_id: str, sent_count: int) -> OpenRate:
        records = await self.recorder.list_by_campaign(campaign_id)
        return compute_open_rate(records, sent_count)

    async def location_breakdown(self, campaign_id: str) -> dict[str, int]:
        return location_breakdown(await self.recorder.list_by_campaign(campaign_id))

    async def generate_report(self, campaign_id: str, sent_count: int) -> str:
        records = await self.recorder.list_by_campaign(campaign_id)
        return format_report(
            campaign_id,
            compute_open_rate(records, sent_count),
            total_opens=sum(r.opens for r in records),
            devices=device_breakdown(records),
        )
