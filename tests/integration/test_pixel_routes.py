"""Integration tests for GET /pixel and POST /open/{pixel_id}."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

from fastapi.testclient import TestClient

from routes.pixel_routes import PIXEL_GIF

IPHONE_UA = "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) Mobile/15E148"
DESKTOP_UA = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) Chrome/124.0"


def _stored(store, pixel_id):
    return asyncio.run(store.get(pixel_id))


def _assert_pixel(resp):
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "image/gif"
    assert resp.content == PIXEL_GIF
    assert resp.headers["cache-control"] == "no-cache, no-store, must-revalidate"
    assert resp.headers["pragma"] == "no-cache"
    assert resp.headers["expires"] == "0"


class TestServePixel:
    def test_records_open(self, client, store):
        resp = client.get(
            "/pixel",
            params={"pixelId": "px_abc", "campaignId": "c1", "emailId": "e1"},
            headers={"User-Agent": IPHONE_UA},
        )
        _assert_pixel(resp)

        record = _stored(store, "px_abc")
        assert record.opens == 1
        assert record.campaign_id == "c1"
        assert record.email_id == "e1"
        assert record.device.value == "mobile"
        assert record.user_agent == IPHONE_UA
        assert record.location == "Local"

    def test_repeat_fetches_increment(self, client, store):
        for _ in range(3):
            _assert_pixel(client.get("/pixel", params={"pixelId": "px_abc"}))
        assert _stored(store, "px_abc").opens == 3

    def test_forwarded_ip_is_stored(self, client, store):
        client.get(
            "/pixel",
            params={"pixelId": "px_abc"},
            headers={"X-Forwarded-For": "8.8.8.8, 10.0.0.1"},
        )
        record = _stored(store, "px_abc")
        assert record.ip_address == "8.8.8.8"
        assert record.location is None

    def test_missing_pixel_id_still_serves_image(self, client, store):
        _assert_pixel(client.get("/pixel"))
        assert len(store) == 0

    def test_overlong_pixel_id_not_recorded(self, client, store):
        _assert_pixel(client.get("/pixel", params={"pixelId": "p" * 500}))
        assert len(store) == 0

    def test_store_failure_still_serves_image(self, make_app):
        failing = MagicMock()
        failing.upsert = AsyncMock(side_effect=ConnectionError("store down"))
        with TestClient(make_app(store=failing)) as client:
            resp = client.get("/pixel", params={"pixelId": "px_abc"})
        _assert_pixel(resp)
        failing.upsert.assert_awaited_once()

    def test_request_id_header(self, client):
        resp = client.get("/pixel", params={"pixelId": "px_abc"})
        assert resp.headers["x-request-id"].startswith("req_")


class TestOpenBeacon:
    def test_counts_opens(self, client):
        first = client.post("/open/px_b1", json={"campaign_id": "c9"})
        second = client.post("/open/px_b1", json={"campaign_id": "c9"})
        assert first.status_code == 200
        assert first.json() == {"success": True, "opens": 1}
        assert second.json() == {"success": True, "opens": 2}

    def test_body_optional(self, client, store):
        resp = client.post("/open/px_b2", headers={"User-Agent": DESKTOP_UA})
        assert resp.json()["success"] is True
        assert _stored(store, "px_b2").device.value == "desktop"

    def test_explicit_location_wins(self, client, store):
        client.post("/open/px_b3", json={"location": "Lisbon, Portugal"})
        assert _stored(store, "px_b3").location == "Lisbon, Portugal"

    def test_store_failure_reports_unsuccessful(self, make_app):
        failing = MagicMock()
        failing.upsert = AsyncMock(side_effect=ConnectionError("store down"))
        with TestClient(make_app(store=failing)) as client:
            resp = client.post("/open/px_b4")
        assert resp.status_code == 200
        assert resp.json() == {"success": False, "opens": None}

    def test_overlong_pixel_id_is_400(self, client):
        resp = client.post(f"/open/{'p' * 500}")
        assert resp.status_code == 400
        assert resp.json()["code"] == "validation_error"
