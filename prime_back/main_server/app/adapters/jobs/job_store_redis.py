# adapters/jobs/job_store_redis.py
from __future__ import annotations

import json
from typing import Any, Dict, Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from prime_back.main_server.app.application.ports.key_value_store_port import KeyValueStore
from prime_back.main_server.app.domain.errors_domain import StoreUnavailableError


class RedisKeyValueStore(KeyValueStore):
    """
    Redis-backed KeyValueStore.

    Every record is a JSON string under a plain STRING key:
      SET {key} '{"status": "running", ...}' [EX ttl]

    Connection/protocol errors are turned into StoreUnavailableError so the
    application layer never sees redis types.
    """

    def __init__(self, redis: Redis):
        self._r = redis

    # Redis only ever holds str here, but a client built without
    # decode_responses hands back bytes
    @staticmethod
    def _decode(raw: Any) -> str:
        if isinstance(raw, (bytes, bytearray)):
            return raw.decode()
        return str(raw)

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            raw = await self._r.get(key)
        except RedisError as e:
            raise StoreUnavailableError(f"GET {key} failed: {e}") from e

        if raw is None:
            return None

        value = json.loads(self._decode(raw))
        if not isinstance(value, dict):
            raise ValueError(f"expected a JSON object under {key}")
        return value

    async def set(self, key: str, value: Dict[str, Any], *, ttl_seconds: Optional[int] = None) -> None:
        payload = json.dumps(value, separators=(",", ":"))
        try:
            if ttl_seconds is not None:
                await self._r.set(key, payload, ex=ttl_seconds)
            else:
                await self._r.set(key, payload)
        except RedisError as e:
            raise StoreUnavailableError(f"SET {key} failed: {e}") from e

    async def ttl(self, key: str) -> int:
        """Seconds left on key, -1 without expiry, -2 when missing."""
        try:
            return int(await self._r.ttl(key))
        except RedisError as e:
            raise StoreUnavailableError(f"TTL {key} failed: {e}") from e
