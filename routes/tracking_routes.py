"""
Tracking API used by senders and dashboards.

POST /api/v1/inject/html                      — embed a pixel into HTML
POST /api/v1/inject/plain                     — embed a pixel into plain content
GET  /api/v1/pixels/{pixel_id}                — open statistics for one pixel
GET  /api/v1/campaigns/{campaign_id}/open-rate?sent=N
GET  /api/v1/campaigns/{campaign_id}/report?sent=N     (text/plain)
GET  /api/v1/campaigns/{campaign_id}/locations

``sent`` is required for campaign analytics because the tracker never sees
how many messages were actually delivered.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from fastapi.responses import PlainTextResponse

from dependencies import get_analytics, get_injector, get_recorder
from errors import NotFoundError
from schemas.dto.requests.tracking import InjectRequest
from schemas.dto.responses.common import ErrorResponse
from schemas.dto.responses.tracking import (
    InjectResponse,
    LocationBreakdownResponse,
    OpenRateResponse,
    TrackingRecordResponse,
)
from services.analytics import CampaignAnalytics
from services.injector import PixelInjector
from services.recorder import OpenRecorder

router = APIRouter(
    prefix="/api/v1",
    tags=["tracking"],
    responses={503: {"model": ErrorResponse, "description": "Tracking store unavailable"}},
)


@router.post(
    "/inject/html",
    response_model=InjectResponse,
    responses={422: {"model": ErrorResponse}},
)
async def inject_html(
    body: InjectRequest, injector: PixelInjector = Depends(get_injector)
) -> InjectResponse:
    content, pixel_id = injector.inject_into_document(body.content, body.to_options())
    return InjectResponse(content=content, pixel_id=pixel_id)


@router.post(
    "/inject/plain",
    response_model=InjectResponse,
    responses={422: {"model": ErrorResponse}},
)
async def inject_plain(
    body: InjectRequest, injector: PixelInjector = Depends(get_injector)
) -> InjectResponse:
    content, pixel_id = injector.inject_into_plain_content(
        body.content, body.to_options()
    )
    return InjectResponse(content=content, pixel_id=pixel_id)


@router.get(
    "/pixels/{pixel_id}",
    response_model=TrackingRecordResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_pixel(
    pixel_id: str, recorder: OpenRecorder = Depends(get_recorder)
) -> TrackingRecordResponse:
    record = await recorder.get(pixel_id)
    if record is None:
        raise NotFoundError("No opens recorded for this pixel", field="pixel_id")
    return TrackingRecordResponse.from_record(record)


@router.get("/campaigns/{campaign_id}/open-rate", response_model=OpenRateResponse)
async def campaign_open_rate(
    campaign_id: str,
    sent: int = Query(ge=0),
    analytics: CampaignAnalytics = Depends(get_analytics),
) -> OpenRateResponse:
    rate = await analytics.open_rate(campaign_id, sent)
    return OpenRateResponse(campaign_id=campaign_id, **rate.to_dict())


@router.get("/campaigns/{campaign_id}/report", response_class=PlainTextResponse)
async def campaign_report(
    campaign_id: str,
    sent: int = Query(ge=0),
    analytics: CampaignAnalytics = Depends(get_analytics),
) -> PlainTextResponse:
    return PlainTextResponse(await analytics.generate_report(campaign_id, sent))


@router.get(
    "/campaigns/{campaign_id}/locations", response_model=LocationBreakdownResponse
)
async def campaign_locations(
    campaign_id: str, analytics: CampaignAnalytics = Depends(get_analytics)
) -> LocationBreakdownResponse:
    locations = await analytics.location_breakdown(campaign_id)
    return LocationBreakdownResponse(campaign_id=campaign_id, locations=locations)
