"""
FastAPI dependency providers.

All injectable dependencies are plain functions reading the objects that
``create_app``'s lifespan placed on ``app.state``. Tests override them with
``app.dependency_overrides`` or by building the state themselves.
"""

from __future__ import annotations

from fastapi import Request

from config import AppSettings
from infrastructure.geoip import GeoIPService
from services.analytics import CampaignAnalytics
from services.injector import PixelInjector
from services.recorder import OpenRecorder


def get_settings(request: Request) -> AppSettings:
    return request.app.state.settings


def get_recorder(request: Request) -> OpenRecorder:
    return request.app.state.recorder


def get_injector(request: Request) -> PixelInjector:
    return request.app.state.injector


def get_analytics(request: Request) -> CampaignAnalytics:
    return request.app.state.analytics


def get_geoip(request: Request) -> GeoIPService:
    return request.app.state.geoip
