"""In-process tracking store for single-instance deployments and tests.

Records live in a dict guarded by striped locks: a pixel id hashes to one of
``shards`` locks, so opens for different pixels rarely share a lock and never
wait on each other beyond that. Plain ``threading.Lock`` is used because the
critical sections never await; the store is safe both on the event loop and
from FastAPI's sync thread pool.
"""

from __future__ import annotations

import threading
import zlib
from typing import Optional

from schemas.models.tracking import OpenMutation, TrackingRecord


class InMemoryTrackingStore:
    def __init__(self, shards: int = 64) -> None:
        if shards < 1:
            raise ValueError("shards must be >= 1")
        self._locks = [threading.Lock() for _ in range(shards)]
        self._records: list[dict[str, TrackingRecord]] = [{} for _ in range(shards)]

    def _shard(self, pixel_id: str) -> int:
        # Shard index must not depend on PYTHONHASHSEED
        return zlib.crc32(pixel_id.encode("utf-8")) % len(self._locks)

    async def upsert(self, pixel_id: str, mutation: OpenMutation) -> TrackingRecord:
        shard = self._shard(pixel_id)
        with self._locks[shard]:
            records = self._records[shard]
            existing = records.get(pixel_id)
            if existing is None:
                record = TrackingRecord.from_mutation(pixel_id, mutation)
            else:
                record = existing.apply_open(mutation)
            records[pixel_id] = record
            return record

    async def get(self, pixel_id: str) -> Optional[TrackingRecord]:
        shard = self._shard(pixel_id)
        with self._locks[shard]:
            return self._records[shard].get(pixel_id)

    async def query(self, campaign_id: str) -> list[TrackingRecord]:
        # One shard at a time: a snapshot per shard, not a global one
        matches: list[TrackingRecord] = []
        for lock, records in zip(self._locks, self._records):
            with lock:
                matches.extend(
                    r for r in records.values() if r.campaign_id == campaign_id
                )
        return matches

    async def ping(self) -> bool:
        return True

    def __len__(self) -> int:
        return sum(len(records) for records in self._records)
