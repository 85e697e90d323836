"""Fixtures building the real application around an in-memory store."""

import pytest
from fastapi.testclient import TestClient

from app import create_app
from config import AppSettings, RedisSettings, StoreSettings
from infrastructure.store.memory import InMemoryTrackingStore

APP_URL = "https://track.example.com"


@pytest.fixture
def make_app(monkeypatch):
    """Return a factory: ``make_app(store=..., **settings_overrides)``."""
    monkeypatch.delenv("PIXEL_URL", raising=False)

    def _make(store=None, **overrides):
        base = dict(
            app_url=APP_URL,
            geoip_country_db="nonexistent.mmdb",
            geoip_city_db="nonexistent.mmdb",
            store=StoreSettings(store_backend="memory"),
            redis=RedisSettings(redis_uri=None),
        )
        base.update(overrides)
        return create_app(AppSettings(**base), store=store)

    return _make


@pytest.fixture
def store():
    return InMemoryTrackingStore(shards=8)


@pytest.fixture
def client(make_app, store):
    with TestClient(make_app(store=store)) as test_client:
        yield test_client
