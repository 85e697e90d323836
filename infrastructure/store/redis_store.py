"""Redis-backed tracking store for multi-instance deployments.

Layout:
  {prefix}:pixel:{pixel_id}        hash   — one record
  {prefix}:campaign:{campaign_id}  set    — pixel ids seen for the campaign

The upsert runs as a single Lua script, so the increment, the create-only
fields and the campaign index update are applied atomically on the server.
Timestamps are stored as epoch microseconds so ``last_open`` can be advanced
with a numeric comparison inside the script.
"""

from __future__ import annotations

from typing import Any, Optional

import redis.asyncio as aioredis

from schemas.models.tracking import OpenMutation, TrackingRecord
from shared.datetime_utils import from_epoch_micros, to_epoch_micros
from shared.device import DeviceType

# KEYS[1] record hash, KEYS[2] campaign index
# ARGV: pixel_id, observed_at, email_id, campaign_id, ip, ua, location, device
# Empty string means "not supplied".
UPSERT_SCRIPT = """
local key = KEYS[1]
local opens = redis.call('HINCRBY', key, 'opens', 1)
if opens == 1 then
  redis.call('HSET', key, 'pixel_id', ARGV[1], 'first_open', ARGV[2], 'last_open', ARGV[2])
  if ARGV[3] ~= '' then redis.call('HSET', key, 'email_id', ARGV[3]) end
  if ARGV[4] ~= '' then
    redis.call('HSET', key, 'campaign_id', ARGV[4])
    redis.call('SADD', KEYS[2], ARGV[1])
  end
  if ARGV[8] ~= '' then redis.call('HSET', key, 'device', ARGV[8]) end
else
  local last = tonumber(redis.call('HGET', key, 'last_open'))
  if last == nil or tonumber(ARGV[2]) > last then
    redis.call('HSET', key, 'last_open', ARGV[2])
  end
end
local snapshot = {'ip_address', 'user_agent', 'location'}
for i, field in ipairs(snapshot) do
  local value = ARGV[4 + i]
  if value == '' then
    redis.call('HDEL', key, field)
  else
    redis.call('HSET', key, field, value)
  end
end
return redis.call('HGETALL', key)
"""


def _pairs_to_dict(flat: list[Any]) -> dict[str, Any]:
    return {flat[i]: flat[i + 1] for i in range(0, len(flat), 2)}


def record_from_hash(data: dict[str, Any]) -> Optional[TrackingRecord]:
    """Decode a record hash; an empty hash (missing key) decodes to None."""
    if not data:
        return None
    device = data.get("device")
    return TrackingRecord(
        pixel_id=data["pixel_id"],
        email_id=data.get("email_id"),
        campaign_id=data.get("campaign_id"),
        opens=int(data["opens"]),
        first_open=from_epoch_micros(data["first_open"]),
        last_open=from_epoch_micros(data["last_open"]),
        device=DeviceType(device) if device else None,
        ip_address=data.get("ip_address"),
        user_agent=data.get("user_agent"),
        location=data.get("location"),
    )


class RedisTrackingStore:
    def __init__(self, redis_client: aioredis.Redis, key_prefix: str = "pixel") -> None:
        self._redis = redis_client
        self._prefix = key_prefix
        self._upsert = redis_client.register_script(UPSERT_SCRIPT)

    def _record_key(self, pixel_id: str) -> str:
        return f"{self._prefix}:pixel:{pixel_id}"

    def _campaign_key(self, campaign_id: str) -> str:
        return f"{self._prefix}:campaign:{campaign_id}"

    async def upsert(self, pixel_id: str, mutation: OpenMutation) -> TrackingRecord:
        args = [
            pixel_id,
            to_epoch_micros(mutation.observed_at),
            mutation.email_id or "",
            mutation.campaign_id or "",
            mutation.ip_address or "",
            mutation.user_agent or "",
            mutation.location or "",
            mutation.device.value if mutation.device else "",
        ]
        flat = await self._upsert(
            keys=[
                self._record_key(pixel_id),
                self._campaign_key(mutation.campaign_id or ""),
            ],
            args=args,
        )
        return record_from_hash(_pairs_to_dict(flat))

    async def get(self, pixel_id: str) -> Optional[TrackingRecord]:
        return record_from_hash(await self._redis.hgetall(self._record_key(pixel_id)))

    async def query(self, campaign_id: str) -> list[TrackingRecord]:
        pixel_ids = await self._redis.smembers(self._campaign_key(campaign_id))
        if not pixel_ids:
            return []
        async with self._redis.pipeline(transaction=False) as pipe:
            for pixel_id in pixel_ids:
                pipe.hgetall(self._record_key(pixel_id))
            rows = await pipe.execute()
        return [record for record in map(record_from_hash, rows) if record is not None]

    async def ping(self) -> bool:
        return bool(await self._redis.ping())
