# main_server/app/adapters/jobs/memory_repo.py
from __future__ import annotations

import copy
import time
from typing import Any, Callable, Dict, Optional, Tuple

from prime_back.main_server.app.application.ports.key_value_store_port import KeyValueStore


class InMemoryKeyValueStore(KeyValueStore):
    """
    Process-local KeyValueStore with per-key expiry.
    Used for JOB_BACKEND=memory and in tests. Expired keys are dropped lazily on read.
    """

    def __init__(self, *, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        # key -> (value, expires_at or None)
        self._store: Dict[str, Tuple[Dict[str, Any], Optional[float]]] = {}

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        item = self._store.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at is not None and self._clock() >= expires_at:
            del self._store[key]
            return None
        return copy.deepcopy(value)

    async def set(self, key: str, value: Dict[str, Any], *, ttl_seconds: Optional[int] = None) -> None:
        expires_at = self._clock() + ttl_seconds if ttl_seconds is not None else None
        self._store[key] = (copy.deepcopy(value), expires_at)

    def ttl(self, key: str) -> Optional[float]:
        """Seconds left on key, None when it has no expiry or is missing."""
        item = self._store.get(key)
        if item is None or item[1] is None:
            return None
        return max(0.0, item[1] - self._clock())
