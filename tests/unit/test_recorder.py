"""Unit tests for services/recorder.py over the in-memory store."""

import asyncio
import threading
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from errors import StoreError
from infrastructure.store.memory import InMemoryTrackingStore
from schemas.models.tracking import OpenContext
from services.recorder import OpenRecorder
from shared.device import DeviceType

IPHONE_UA = "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) Mobile/15E148"
DESKTOP_UA = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) Chrome/124.0"


@pytest.fixture
def store():
    return InMemoryTrackingStore(shards=8)


@pytest.fixture
def recorder(store, clock):
    return OpenRecorder(store, clock=clock)


class TestRecordOpen:
    async def test_first_open_creates_record(self, recorder, clock):
        started = clock.now
        record = await recorder.record_open(
            "px_1",
            OpenContext(
                email_id="e1",
                campaign_id="c1",
                ip_address="203.0.113.9",
                user_agent=DESKTOP_UA,
                location="Berlin, Germany",
            ),
        )
        assert record.opens == 1
        assert record.first_open == record.last_open == started
        assert record.email_id == "e1"
        assert record.campaign_id == "c1"
        assert record.device is DeviceType.DESKTOP
        assert record.ip_address == "203.0.113.9"
        assert record.location == "Berlin, Germany"

    async def test_second_open_increments_and_keeps_first_open(self, recorder):
        first = await recorder.record_open("px_1", OpenContext(campaign_id="c1"))
        second = await recorder.record_open("px_1", OpenContext(campaign_id="c1"))

        assert second.opens == 2
        assert second.first_open == first.first_open
        assert second.last_open > first.last_open

    async def test_device_classified_once(self, recorder):
        await recorder.record_open("px_1", OpenContext(user_agent=IPHONE_UA))
        record = await recorder.record_open("px_1", OpenContext(user_agent=DESKTOP_UA))

        assert record.device is DeviceType.MOBILE
        assert record.user_agent == DESKTOP_UA

    async def test_correlation_ids_fixed_at_creation(self, recorder):
        await recorder.record_open("px_1", OpenContext(email_id="e1", campaign_id="c1"))
        record = await recorder.record_open(
            "px_1", OpenContext(email_id="e2", campaign_id="c2")
        )
        assert (record.email_id, record.campaign_id) == ("e1", "c1")

    async def test_snapshot_overwritten_and_cleared(self, recorder):
        await recorder.record_open(
            "px_1", OpenContext(ip_address="203.0.113.9", location="Paris, France")
        )
        record = await recorder.record_open("px_1", OpenContext(ip_address="198.51.100.7"))
        assert record.ip_address == "198.51.100.7"
        assert record.location is None

    async def test_no_user_agent_leaves_device_unset(self, recorder):
        record = await recorder.record_open("px_1")
        assert record.device is None

    async def test_blank_values_become_none(self, recorder):
        record = await recorder.record_open(
            "px_1", OpenContext(email_id="  ", campaign_id="", user_agent=" ")
        )
        assert record.email_id is None
        assert record.campaign_id is None
        assert record.device is None

    async def test_last_open_never_moves_backwards(self, store, clock):
        recorder = OpenRecorder(store, clock=clock)
        first = await recorder.record_open("px_1")
        clock.now = first.last_open - timedelta(hours=1)

        record = await recorder.record_open("px_1")

        assert record.opens == 2
        assert record.last_open == first.last_open

    async def test_store_failure_is_logged_not_raised(self, mocker):
        log = mocker.patch("services.recorder.log")
        store = MagicMock()
        store.upsert = AsyncMock(side_effect=ConnectionError("store down"))
        recorder = OpenRecorder(store)

        result = await recorder.record_open("px_1", OpenContext(campaign_id="c1"))

        assert result is None
        log.error.assert_called_once()
        assert log.error.call_args.args[0] == "record_open_failed"
        assert log.error.call_args.kwargs["error_type"] == "ConnectionError"

    async def test_publisher_receives_record(self, store):
        publisher = MagicMock()
        publisher.publish_open = AsyncMock(return_value=True)
        recorder = OpenRecorder(store, publisher=publisher)

        record = await recorder.record_open("px_1")

        publisher.publish_open.assert_awaited_once_with(record)

    async def test_publisher_failure_does_not_lose_open(self, store, mocker):
        mocker.patch("services.recorder.log")
        publisher = MagicMock()
        publisher.publish_open = AsyncMock(side_effect=RuntimeError("broker gone"))
        recorder = OpenRecorder(store, publisher=publisher)

        record = await recorder.record_open("px_1")

        assert record.opens == 1
        assert (await store.get("px_1")).opens == 1


class TestConcurrentOpens:
    async def test_gathered_opens_are_all_counted(self, store):
        recorder = OpenRecorder(store)
        await asyncio.gather(
            *(recorder.record_open("px_same", OpenContext(campaign_id="c1")) for _ in range(200))
        )
        record = await store.get("px_same")
        assert record.opens == 200
        assert record.first_open <= record.last_open

    def test_opens_from_many_threads_are_all_counted(self, store):
        recorder = OpenRecorder(store)

        async def burst():
            for _ in range(100):
                await recorder.record_open("px_same", OpenContext(campaign_id="c1"))

        threads = [threading.Thread(target=asyncio.run, args=(burst(),)) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert asyncio.run(store.get("px_same")).opens == 800
        assert len(store) == 1


class TestQueries:
    async def test_get_unknown_pixel(self, recorder):
        assert await recorder.get("px_missing") is None

    async def test_list_by_campaign(self, recorder):
        await recorder.record_open("px_1", OpenContext(campaign_id="c1"))
        await recorder.record_open("px_2", OpenContext(campaign_id="c1"))
        await recorder.record_open("px_3", OpenContext(campaign_id="c2"))
        await recorder.record_open("px_4")

        records = await recorder.list_by_campaign("c1")

        assert sorted(r.pixel_id for r in records) == ["px_1", "px_2"]

    async def test_read_failure_raises_store_error(self, mocker):
        mocker.patch("services.recorder.log")
        store = MagicMock()
        store.get = AsyncMock(side_effect=ConnectionError("store down"))
        store.query = AsyncMock(side_effect=ConnectionError("store down"))
        recorder = OpenRecorder(store)

        with pytest.raises(StoreError):
            await recorder.get("px_1")
        with pytest.raises(StoreError):
            await recorder.list_by_campaign("c1")


def _publisher():
    publisher = MagicMock()
    publisher.publish_open = AsyncMock(return_value=True)
    publisher.publish_spike = AsyncMock(return_value=True)
    publisher.publish_revival = AsyncMock(return_value=True)
    return publisher


class TestEngagementEvents:
    async def test_third_open_in_window_is_a_spike(self, store, clock):
        publisher = _publisher()
        recorder = OpenRecorder(store, publisher=publisher, clock=clock)

        await recorder.record_open("px_1")
        await recorder.record_open("px_1")
        publisher.publish_spike.assert_not_awaited()

        third = await recorder.record_open("px_1")

        publisher.publish_spike.assert_awaited_once_with(third, 3)
        assert publisher.publish_open.await_count == 3

    async def test_spread_out_opens_are_not_a_spike(self, store, clock):
        publisher = _publisher()
        clock.step = timedelta(minutes=20)
        recorder = OpenRecorder(store, publisher=publisher, clock=clock)

        for _ in range(4):
            await recorder.record_open("px_1")

        publisher.publish_spike.assert_not_awaited()

    async def test_spike_counts_per_pixel(self, store, clock):
        publisher = _publisher()
        recorder = OpenRecorder(store, publisher=publisher, clock=clock)

        for pixel_id in ("px_1", "px_2", "px_1", "px_2"):
            await recorder.record_open(pixel_id)

        publisher.publish_spike.assert_not_awaited()

    async def test_reopen_after_a_week_is_a_revival(self, store, clock):
        publisher = _publisher()
        recorder = OpenRecorder(store, publisher=publisher, clock=clock)
        first = await recorder.record_open("px_1", OpenContext(email_id="e1"))
        clock.now = first.first_open + timedelta(days=8, hours=3)

        record = await recorder.record_open("px_1")

        publisher.publish_revival.assert_awaited_once_with(record, 8)

    async def test_reopen_within_a_week_is_not_a_revival(self, store, clock):
        publisher = _publisher()
        recorder = OpenRecorder(store, publisher=publisher, clock=clock)
        first = await recorder.record_open("px_1")
        clock.now = first.first_open + timedelta(days=6, hours=23)

        await recorder.record_open("px_1")

        publisher.publish_revival.assert_not_awaited()

    async def test_engagement_publish_failure_is_logged(self, store, clock, mocker):
        log = mocker.patch("services.recorder.log")
        publisher = _publisher()
        publisher.publish_spike = AsyncMock(side_effect=RuntimeError("broker gone"))
        recorder = OpenRecorder(store, publisher=publisher, clock=clock)

        for _ in range(3):
            record = await recorder.record_open("px_1")

        assert record.opens == 3
        log.warning.assert_called_once()
        assert log.warning.call_args.args[0] == "open_event_publish_failed"

    async def test_no_publisher_tracks_nothing(self, recorder):
        for _ in range(3):
            await recorder.record_open("px_1")
        assert len(recorder.recent_opens) == 0
