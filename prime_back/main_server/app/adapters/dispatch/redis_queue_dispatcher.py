# adapters/dispatch/redis_queue_dispatcher.py
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from prime_back.main_server.app.application.ports.dispatcher_port import JobDelivery
from prime_back.main_server.app.domain.errors_domain import DispatchError, StoreUnavailableError
from prime_back.main_server.app.domain.job_keys import DEFAULT_KEY_PREFIX, processing_key, queue_key

logger = logging.getLogger(__name__)


# a delivery taken off the queue but not acknowledged yet
@dataclass(frozen=True)
class ClaimedDelivery:
    delivery: JobDelivery
    raw: str


class RedisQueueDispatcher:
    """
    Reliable queue on top of two Redis lists.

      - dispatch: LPUSH  {prefix}:queue '{"jobId": ..., "limit": ..., "attempt": n}'
      - claim:    BLMOVE {prefix}:queue -> {prefix}:processing (worker side)
      - ack:      LREM   {prefix}:processing once the delivery has been handled
      - recover:  move whatever is left in {prefix}:processing back onto the queue

    A worker that dies mid-job leaves its delivery in the processing list, and
    the next worker start puts it back on the queue. Failed runs are pushed back
    with attempt+1 by the worker. Together that is at-least-once with a bounded
    number of attempts. Needs Redis >= 6.2.
    """

    def __init__(self, redis: Redis, *, key_prefix: str = DEFAULT_KEY_PREFIX):
        prefix = key_prefix or DEFAULT_KEY_PREFIX
        self._r = redis
        self._qk = queue_key(prefix)
        self._pk = processing_key(prefix)

    @property
    def queue_key(self) -> str:
        return self._qk

    @property
    def processing_key(self) -> str:
        return self._pk

    @staticmethod
    def _decode(raw) -> str:
        return raw.decode() if isinstance(raw, (bytes, bytearray)) else str(raw)

    async def dispatch(self, delivery: JobDelivery) -> None:
        payload = json.dumps(delivery.to_payload(), separators=(",", ":"))
        try:
            await self._r.lpush(self._qk, payload)
        except RedisError as e:
            raise DispatchError(delivery.job_id, str(e)) from e
        logger.debug("pushed %s attempt=%d onto %s", delivery.job_id, delivery.attempt, self._qk)

    async def claim(self, *, timeout_seconds: int = 5) -> Optional[ClaimedDelivery]:
        """
        Block up to timeout_seconds. None on timeout or on a payload that cannot be read
        (such a payload is dropped from the processing list right away).
        """
        try:
            raw = await self._r.blmove(self._qk, self._pk, timeout_seconds, "RIGHT", "LEFT")
        except RedisError as e:
            raise StoreUnavailableError(f"BLMOVE {self._qk} failed: {e}") from e
        if raw is None:
            return None

        raw = self._decode(raw)
        try:
            return ClaimedDelivery(delivery=JobDelivery.from_payload(json.loads(raw)), raw=raw)
        except (KeyError, TypeError, ValueError):
            logger.warning("dropping malformed delivery: %r", raw)
            await self._remove(raw)
            return None

    async def ack(self, claimed: ClaimedDelivery) -> None:
        await self._remove(claimed.raw)

    async def _remove(self, raw: str) -> None:
        try:
            await self._r.lrem(self._pk, 1, raw)
        except RedisError as e:
            raise StoreUnavailableError(f"LREM {self._pk} failed: {e}") from e

    async def recover(self) -> int:
        """
        Put every unacknowledged delivery back on the queue, oldest first in line.
        Called once at worker start.
        """
        moved = 0
        try:
            while await self._r.lmove(self._pk, self._qk, "RIGHT", "RIGHT") is not None:
                moved += 1
        except RedisError as e:
            raise StoreUnavailableError(f"LMOVE {self._pk} failed: {e}") from e
        if moved:
            logger.warning("recovered %d unacknowledged deliveries from %s", moved, self._pk)
        return moved
