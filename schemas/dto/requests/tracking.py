"""
Request DTOs for the tracking endpoints.

InjectRequest      — POST /api/v1/inject/html, POST /api/v1/inject/plain
OpenBeaconRequest  — POST /open/{pixel_id}  (JSON body, all fields optional)
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from services.injector import PixelOptions


class InjectRequest(BaseModel):
    """Message content plus per-call pixel options.

    Option fields left unset fall back to the server defaults
    (PIXEL_URL / PIXEL_SIZE / PIXEL_POSITION).
    """

    model_config = ConfigDict(populate_by_name=True)

    content: str
    pixel_url: Optional[str] = None
    pixel_size: Optional[Literal["1x1", "hidden"]] = None
    position: Optional[Literal["top", "bottom"]] = None
    campaign_id: Optional[str] = Field(default=None, max_length=256)
    email_id: Optional[str] = Field(default=None, max_length=256)
    recipient: Optional[str] = Field(default=None, max_length=1024)

    def to_options(self) -> PixelOptions:
        return PixelOptions(**self.model_dump(exclude={"content"}))


class OpenBeaconRequest(BaseModel):
    """Explicit open report, e.g. from a client that cannot load images."""

    model_config = ConfigDict(populate_by_name=True)

    email_id: Optional[str] = None
    campaign_id: Optional[str] = None
    location: Optional[str] = None
