"""
Engagement signals derived from individual opens.

- spike   — ``SPIKE_THRESHOLD`` or more opens of one pixel within
            ``SPIKE_WINDOW`` (forwarded or repeatedly re-read messages)
- revival — a repeat open arriving ``REVIVAL_AFTER_DAYS`` or more whole days
            after the first one

Stores keep only counters and first/last timestamps, so recent open times for
the spike window are held here, per process.
"""

from __future__ import annotations

import threading
from collections import OrderedDict, deque
from datetime import datetime, timedelta

from schemas.models.tracking import TrackingRecord

SPIKE_WINDOW = timedelta(minutes=30)
SPIKE_THRESHOLD = 3
REVIVAL_AFTER_DAYS = 7


def days_since_first_open(record: TrackingRecord, observed_at: datetime) -> int:
    return max((observed_at - record.first_open).days, 0)


def is_revival(record: TrackingRecord, observed_at: datetime) -> bool:
    return (
        record.opens > 1
        and days_since_first_open(record, observed_at) >= REVIVAL_AFTER_DAYS
    )


class RecentOpens:
    """Sliding window of open times per pixel.

    At most *max_pixels* pixels are tracked; the least recently opened one is
    forgotten first.
    """

    def __init__(
        self, window: timedelta = SPIKE_WINDOW, max_pixels: int = 10_000
    ) -> None:
        if max_pixels < 1:
            raise ValueError("max_pixels must be >= 1")
        self.window = window
        self.max_pixels = max_pixels
        self._opens: OrderedDict[str, deque[datetime]] = OrderedDict()
        self._lock = threading.Lock()

    def add(self, pixel_id: str, observed_at: datetime) -> int:
        """Register one open and return how many fall inside the window."""
        cutoff = observed_at - self.window
        with self._lock:
            times = self._opens.pop(pixel_id, None) or deque()
            times.append(observed_at)
            recent = deque(t for t in times if t > cutoff)
            self._opens[pixel_id] = recent
            while len(self._opens) > self.max_pixels:
                self._opens.popitem(last=False)
            return sum(1 for t in recent if t <= observed_at)

    def __len__(self) -> int:
        with self._lock:
            return len(self._opens)
