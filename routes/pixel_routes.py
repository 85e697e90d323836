"""
Pixel endpoints hit by recipients' mail clients.

GET  /pixel            — the image embedded by the injector. Always answers
                         200 with a 1x1 transparent GIF, whether or not the
                         open could be recorded.
POST /open/{pixel_id}  — explicit JSON open beacon.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Body, Depends, Query, Request
from fastapi.responses import Response

from dependencies import get_geoip, get_recorder
from errors import ValidationError
from infrastructure.geoip import GeoIPService
from schemas.dto.requests.tracking import OpenBeaconRequest
from schemas.dto.responses.tracking import OpenBeaconResponse
from schemas.models.tracking import OpenContext
from services.recorder import OpenRecorder
from shared.ip_utils import get_client_ip
from shared.logging import get_logger

log = get_logger(__name__)

router = APIRouter(tags=["pixel"])

# Transparent 1x1 GIF
PIXEL_GIF = (
    b"GIF89a\x01\x00\x01\x00\x80\x00\x00\x00\x00\x00\xff\xff\xff!\xf9\x04\x01"
    b"\x00\x00\x00\x00,\x00\x00\x00\x00\x01\x00\x01\x00\x00\x02\x02L\x01\x00;"
)

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
    "X-Robots-Tag": "noindex, nofollow",
}

MAX_PIXEL_ID_LENGTH = 128


def pixel_response() -> Response:
    return Response(content=PIXEL_GIF, media_type="image/gif", headers=NO_CACHE_HEADERS)


async def _locate(geoip: GeoIPService, ip_address: Optional[str]) -> Optional[str]:
    try:
        return await geoip.locate(ip_address)
    except Exception as e:
        log.warning("geoip_lookup_failed", error=str(e), error_type=type(e).__name__)
        return None


async def _context_from_request(
    request: Request,
    geoip: GeoIPService,
    email_id: Optional[str],
    campaign_id: Optional[str],
    location: Optional[str] = None,
) -> OpenContext:
    ip_address = get_client_ip(request)
    return OpenContext(
        email_id=email_id,
        campaign_id=campaign_id,
        ip_address=ip_address,
        user_agent=request.headers.get("User-Agent"),
        location=location or await _locate(geoip, ip_address),
    )


@router.get("/pixel", include_in_schema=False)
async def serve_pixel(
    request: Request,
    pixel_id: Optional[str] = Query(default=None, alias="pixelId"),
    campaign_id: Optional[str] = Query(default=None, alias="campaignId"),
    email_id: Optional[str] = Query(default=None, alias="emailId"),
    recorder: OpenRecorder = Depends(get_recorder),
    geoip: GeoIPService = Depends(get_geoip),
) -> Response:
    if not pixel_id or len(pixel_id) > MAX_PIXEL_ID_LENGTH:
        log.warning("pixel_fetch_without_valid_id", pixel_id_length=len(pixel_id or ""))
        return pixel_response()

    context = await _context_from_request(request, geoip, email_id, campaign_id)
    await recorder.record_open(pixel_id, context)
    return pixel_response()


@router.post("/open/{pixel_id}", response_model=OpenBeaconResponse)
async def open_beacon(
    request: Request,
    pixel_id: str,
    body: Optional[OpenBeaconRequest] = Body(default=None),
    recorder: OpenRecorder = Depends(get_recorder),
    geoip: GeoIPService = Depends(get_geoip),
) -> OpenBeaconResponse:
    if len(pixel_id) > MAX_PIXEL_ID_LENGTH:
        raise ValidationError("pixel_id is too long", field="pixel_id")
    body = body or OpenBeaconRequest()
    context = await _context_from_request(
        request, geoip, body.email_id, body.campaign_id, body.location
    )
    record = await recorder.record_open(pixel_id, context)
    if record is None:
        return OpenBeaconResponse(success=False)
    return OpenBeaconResponse(success=True, opens=record.opens)
