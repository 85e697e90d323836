"""Builds the configured TrackingStore backend.

STORE_BACKEND:
  memory — InMemoryTrackingStore (single process only)
  redis  — RedisTrackingStore; requires a connected Redis client
  mongo  — MongoTrackingStore; requires MONGODB_URI, creates indexes
"""

from __future__ import annotations

from typing import Any, Optional

import redis.asyncio as aioredis
from pymongo.asynchronous.mongo_client import AsyncMongoClient

from config import AppSettings
from infrastructure.store.memory import InMemoryTrackingStore
from infrastructure.store.mongo_store import MongoTrackingStore
from infrastructure.store.protocol import TrackingStore
from infrastructure.store.redis_store import RedisTrackingStore
from shared.logging import get_logger

log = get_logger(__name__)


async def create_tracking_store(
    settings: AppSettings, redis_client: Optional[aioredis.Redis]
) -> tuple[TrackingStore, Optional[Any]]:
    """Return ``(store, mongo_client)``; the client is None unless backend is mongo.

    Raises:
        RuntimeError: the selected backend's connection is not configured.
    """
    backend = settings.store.store_backend

    if backend == "redis":
        if redis_client is None:
            raise RuntimeError("STORE_BACKEND=redis requires a reachable REDIS_URI")
        store: TrackingStore = RedisTrackingStore(
            redis_client, key_prefix=settings.redis.redis_key_prefix
        )
        mongo_client = None
    elif backend == "mongo":
        if not settings.store.mongodb_uri:
            raise RuntimeError("STORE_BACKEND=mongo requires MONGODB_URI")
        mongo_client = AsyncMongoClient(settings.store.mongodb_uri, tz_aware=True)
        mongo_store = MongoTrackingStore(
            mongo_client[settings.store.db_name],
            collection_name=settings.store.tracking_collection,
        )
        await mongo_store.ensure_indexes()
        store = mongo_store
    else:
        store = InMemoryTrackingStore(shards=settings.store.store_lock_shards)
        mongo_client = None

    log.info("tracking_store_ready", backend=backend)
    return store, mongo_client
