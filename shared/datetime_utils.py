"""
Date/time helpers, framework-agnostic.

Every timestamp the tracker stores is a timezone-aware UTC datetime. Redis
keeps them as integer epoch microseconds so the upsert script can compare
them numerically; MongoDB keeps native datetimes.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (pymongo returns naive ones by default)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_epoch_micros(value: datetime) -> int:
    """Convert *value* to integer microseconds since the Unix epoch."""
    return (ensure_utc(value) - _EPOCH) // timedelta(microseconds=1)


def from_epoch_micros(value: Any) -> Optional[datetime]:
    """Inverse of :func:`to_epoch_micros`.

    Accepts ``int`` or numeric ``str`` (Redis hash values are strings).
    Returns ``None`` for ``None``/empty input or values that cannot be parsed.
    """
    if value is None or value == "":
        return None
    try:
        return _EPOCH + timedelta(microseconds=int(value))
    except (TypeError, ValueError, OverflowError):
        return None
