"""
Tracking record model and the open-event transition rule.

One TrackingRecord exists per pixel identifier, created lazily on the first
recorded open. Records are frozen: every open produces a new snapshot via
``apply_open`` so readers never observe a half-applied update.

Stored as:
  memory  — the model itself
  mongo   — one document with ``_id = pixel_id``, written by the
            update operators in infrastructure/store/mongo_store.py
  redis   — a flat hash (see infrastructure/store/redis_store.py)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from shared.datetime_utils import ensure_utc
from shared.device import DeviceType


@dataclass(frozen=True)
class OpenContext:
    """What the serving endpoint knows about one pixel fetch."""

    email_id: Optional[str] = None
    campaign_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    location: Optional[str] = None


@dataclass(frozen=True)
class OpenMutation:
    """A single increment-or-create step, applied atomically by a store."""

    observed_at: datetime
    email_id: Optional[str] = None
    campaign_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    location: Optional[str] = None
    # Only used when the record is created
    device: Optional[DeviceType] = None


class TrackingRecord(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    pixel_id: str
    email_id: Optional[str] = None
    campaign_id: Optional[str] = None

    opens: int = Field(ge=1)
    first_open: datetime
    last_open: datetime

    device: Optional[DeviceType] = None

    # Last-observed snapshot, informational only
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    location: Optional[str] = None

    @field_validator("first_open", "last_open", mode="after")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @classmethod
    def from_mutation(cls, pixel_id: str, mutation: OpenMutation) -> "TrackingRecord":
        """First open for *pixel_id*."""
        return cls(
            pixel_id=pixel_id,
            email_id=mutation.email_id,
            campaign_id=mutation.campaign_id,
            opens=1,
            first_open=mutation.observed_at,
            last_open=mutation.observed_at,
            device=mutation.device,
            ip_address=mutation.ip_address,
            user_agent=mutation.user_agent,
            location=mutation.location,
        )

    def apply_open(self, mutation: OpenMutation) -> "TrackingRecord":
        """Subsequent open: count it, advance last_open, refresh the snapshot.

        ``first_open``, ``device`` and the correlation ids never change.
        """
        observed_at = ensure_utc(mutation.observed_at)
        return self.model_copy(
            update={
                "opens": self.opens + 1,
                "last_open": max(self.last_open, observed_at),
                "ip_address": mutation.ip_address,
                "user_agent": mutation.user_agent,
                "location": mutation.location,
            }
        )

    @classmethod
    def from_mongo(cls, data: Optional[dict]) -> Optional["TrackingRecord"]:
        """Build a record from a raw MongoDB document; ``None`` passes through."""
        if data is None:
            return None
        doc = dict(data)
        doc["pixel_id"] = doc.pop("_id")
        return cls.model_validate(doc)
