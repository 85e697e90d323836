"""MongoDB-backed tracking store.

One document per pixel, ``_id = pixel_id``. The upsert is a single
``find_one_and_update`` with ``upsert=True``; MongoDB applies all operators to
one document atomically, so concurrent opens are never lost:

  $inc          opens
  $setOnInsert  first_open, correlation ids, device
  $max          last_open (monotonic even if clocks disagree across replicas)
  $set          last-observed snapshot
"""

from __future__ import annotations

from typing import Any, Optional

from pymongo import ASCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from schemas.models.tracking import OpenMutation, TrackingRecord
from shared.logging import get_logger

log = get_logger(__name__)


def build_open_update(mutation: OpenMutation) -> dict[str, Any]:
    return {
        "$inc": {"opens": 1},
        "$setOnInsert": {
            "first_open": mutation.observed_at,
            "email_id": mutation.email_id,
            "campaign_id": mutation.campaign_id,
            "device": mutation.device.value if mutation.device else None,
        },
        "$max": {"last_open": mutation.observed_at},
        "$set": {
            "ip_address": mutation.ip_address,
            "user_agent": mutation.user_agent,
            "location": mutation.location,
        },
    }


class MongoTrackingStore:
    def __init__(self, db: Any, collection_name: str = "tracking_records") -> None:
        self._db = db
        self._collection = db[collection_name]

    async def ensure_indexes(self) -> None:
        await self._collection.create_index(
            [("campaign_id", ASCENDING)], name="campaign_id_idx"
        )

    async def upsert(self, pixel_id: str, mutation: OpenMutation) -> TrackingRecord:
        update = build_open_update(mutation)
        try:
            doc = await self._find_and_upsert(pixel_id, update)
        except DuplicateKeyError:
            # Two first opens raced on insert; the loser becomes an update
            log.debug("tracking_upsert_retry", pixel_id=pixel_id)
            doc = await self._find_and_upsert(pixel_id, update)
        return TrackingRecord.from_mongo(doc)

    async def _find_and_upsert(self, pixel_id: str, update: dict[str, Any]) -> dict:
        return await self._collection.find_one_and_update(
            {"_id": pixel_id},
            update,
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )

    async def get(self, pixel_id: str) -> Optional[TrackingRecord]:
        return TrackingRecord.from_mongo(
            await self._collection.find_one({"_id": pixel_id})
        )

    async def query(self, campaign_id: str) -> list[TrackingRecord]:
        cursor = self._collection.find({"campaign_id": campaign_id})
        docs = await cursor.to_list(length=None)
        return [TrackingRecord.from_mongo(doc) for doc in docs]

    async def ping(self) -> bool:
        result = await self._db.command("ping")
        return bool(result.get("ok"))
