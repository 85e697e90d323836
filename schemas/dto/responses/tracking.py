"""
Response DTOs for the tracking endpoints.

InjectResponse          — POST /api/v1/inject/*           (200)
OpenBeaconResponse      — POST /open/{pixel_id}           (200)
TrackingRecordResponse  — GET  /api/v1/pixels/{pixel_id}  (200)
OpenRateResponse        — GET  /api/v1/campaigns/{id}/open-rate (200)
LocationBreakdownResponse — GET /api/v1/campaigns/{id}/locations (200)
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from schemas.models.tracking import TrackingRecord


class InjectResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    content: str
    pixel_id: str


class OpenBeaconResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    opens: Optional[int] = None


class TrackingRecordResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    pixel_id: str
    email_id: Optional[str] = None
    campaign_id: Optional[str] = None
    opens: int
    first_open: datetime
    last_open: datetime
    device: Optional[str] = None
    location: Optional[str] = None

    @classmethod
    def from_record(cls, record: TrackingRecord) -> "TrackingRecordResponse":
        # ip_address and user_agent stay internal
        return cls(
            pixel_id=record.pixel_id,
            email_id=record.email_id,
            campaign_id=record.campaign_id,
            opens=record.opens,
            first_open=record.first_open,
            last_open=record.last_open,
            device=record.device.value if record.device else None,
            location=record.location,
        )


class OpenRateResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    campaign_id: str
    sent: int
    opened: int
    rate: float


class LocationBreakdownResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    campaign_id: str
    locations: dict[str, int]
