"""
FastAPI application factory.
create_app() is the single entry point for building the app.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import sentry_sdk
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sentry_sdk.integrations.logging import LoggingIntegration

from config import AppSettings
from errors import register_error_handlers
from infrastructure.events.redis_publisher import RedisOpenEventPublisher
from infrastructure.geoip import GeoIPService
from infrastructure.redis_client import create_redis_client
from infrastructure.store.factory import create_tracking_store
from infrastructure.store.protocol import TrackingStore
from routes.health_routes import router as health_router
from routes.pixel_routes import router as pixel_router
from routes.tracking_routes import router as tracking_router
from services.analytics import CampaignAnalytics
from services.injector import PixelInjector
from services.recorder import OpenRecorder
from shared.generators import IdentifierGenerator
from shared.log_context import register_request_logging
from shared.logging import get_logger, setup_logging
from shared.validators import validate_pixel_endpoint

log = get_logger(__name__)


def create_app(
    settings: Optional[AppSettings] = None,
    store: Optional[TrackingStore] = None,
) -> FastAPI:
    """Create and return a fully configured FastAPI application.

    Args:
        settings: Defaults to ``AppSettings()`` loaded from the environment.
        store: Overrides the configured STORE_BACKEND (used by tests).
    """
    if settings is None:
        settings = AppSettings()

    setup_logging(
        settings.logging.log_level,
        settings.logging.log_format,
        hash_ips=settings.is_production,
    )

    # Initialise Sentry before anything else so it captures startup errors.
    # ERROR logs (e.g. record_open_failed) become Sentry events.
    if settings.sentry.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry.sentry_dsn,
            send_default_pii=settings.sentry.sentry_send_pii,
            traces_sample_rate=settings.sentry.sentry_traces_sample_rate,
            profiles_sample_rate=settings.sentry.sentry_profile_sample_rate,
            integrations=[
                LoggingIntegration(level=logging.INFO, event_level=logging.ERROR)
            ],
        )

    if not validate_pixel_endpoint(settings.pixel_endpoint):
        log.error("pixel_endpoint_invalid", pixel_endpoint=settings.pixel_endpoint)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # ── Startup ──────────────────────────────────────────────────────────
        redis_client = None
        if settings.redis.redis_uri:
            redis_client = await create_redis_client(settings.redis.redis_uri)

        mongo_client = None
        tracking_store = store
        if tracking_store is None:
            tracking_store, mongo_client = await create_tracking_store(
                settings, redis_client
            )

        publisher = None
        if redis_client is not None:
            publisher = RedisOpenEventPublisher(
                redis_client, channel=settings.redis.open_events_channel
            )

        recorder = OpenRecorder(tracking_store, publisher=publisher)

        app.state.settings = settings
        app.state.redis = redis_client
        app.state.store = tracking_store
        app.state.recorder = recorder
        app.state.analytics = CampaignAnalytics(recorder)
        app.state.injector = PixelInjector(
            IdentifierGenerator(prefix=settings.pixel.pixel_id_prefix),
            pixel_url=settings.pixel_endpoint,
            pixel_size=settings.pixel.pixel_size,
            position=settings.pixel.pixel_position,
        )
        app.state.geoip = GeoIPService(
            settings.geoip_country_db, settings.geoip_city_db
        )

        yield

        # ── Shutdown ─────────────────────────────────────────────────────────
        if mongo_client is not None:
            await mongo_client.close()
        if redis_client is not None:
            await redis_client.aclose()

    app = FastAPI(
        title=settings.app_name,
        version="1.0.0",
        docs_url=settings.docs_url,
        redoc_url=None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_request_logging(app)

    register_error_handlers(app)
    app.include_router(health_router)
    app.include_router(pixel_router)
    app.include_router(tracking_router)

    return app
