"""Unit tests for schemas/models/tracking.py."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError as PydanticValidationError

from schemas.models.tracking import OpenMutation, TrackingRecord
from shared.device import DeviceType

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _mutation(**overrides) -> OpenMutation:
    base = dict(
        observed_at=T0,
        email_id="e1",
        campaign_id="c1",
        ip_address="203.0.113.9",
        user_agent="Mozilla/5.0 (iPad)",
        location="Madrid, Spain",
        device=DeviceType.TABLET,
    )
    base.update(overrides)
    return OpenMutation(**base)


class TestTrackingRecord:
    def test_from_mutation(self):
        record = TrackingRecord.from_mutation("px_1", _mutation())
        assert record.opens == 1
        assert record.first_open == record.last_open == T0
        assert record.device is DeviceType.TABLET
        assert record.location == "Madrid, Spain"

    def test_apply_open(self):
        record = TrackingRecord.from_mutation("px_1", _mutation())
        later = record.apply_open(
            _mutation(
                observed_at=T0 + timedelta(hours=1),
                email_id="other",
                campaign_id="other",
                device=DeviceType.DESKTOP,
                location=None,
            )
        )
        assert later.opens == 2
        assert later.first_open == T0
        assert later.last_open == T0 + timedelta(hours=1)
        assert (later.email_id, later.campaign_id) == ("e1", "c1")
        assert later.device is DeviceType.TABLET
        assert later.location is None

    def test_apply_open_out_of_order(self):
        record = TrackingRecord.from_mutation("px_1", _mutation())
        earlier = record.apply_open(_mutation(observed_at=T0 - timedelta(minutes=1)))
        assert earlier.last_open == T0

    def test_apply_open_leaves_original_untouched(self):
        record = TrackingRecord.from_mutation("px_1", _mutation())
        record.apply_open(_mutation())
        assert record.opens == 1

    def test_frozen(self):
        record = TrackingRecord.from_mutation("px_1", _mutation())
        with pytest.raises(PydanticValidationError):
            record.opens = 5

    def test_opens_must_be_positive(self):
        with pytest.raises(PydanticValidationError):
            TrackingRecord(pixel_id="px_1", opens=0, first_open=T0, last_open=T0)

    def test_naive_datetimes_become_utc(self):
        naive = datetime(2026, 3, 1, 12, 0)
        record = TrackingRecord(
            pixel_id="px_1", opens=1, first_open=naive, last_open=naive
        )
        assert record.first_open == T0
        assert record.last_open.tzinfo is not None


class TestMongoMapping:
    def test_from_mongo_naive_dates(self):
        doc = {
            "_id": "px_9",
            "opens": 2,
            "first_open": datetime(2026, 3, 1, 12, 0),
            "last_open": datetime(2026, 3, 1, 13, 0),
            "device": "mobile",
            "campaign_id": "c1",
        }
        record = TrackingRecord.from_mongo(doc)
        assert record.pixel_id == "px_9"
        assert record.device is DeviceType.MOBILE
        assert record.first_open == T0
        assert "_id" in doc

    def test_from_mongo_none(self):
        assert TrackingRecord.from_mongo(None) is None
