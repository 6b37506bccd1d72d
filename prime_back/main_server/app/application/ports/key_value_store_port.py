# app/application/ports/key_value_store_port.py
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional


class KeyValueStore(ABC):
    """
        shared status/result store
        values are JSON objects, ttl is a retention window in seconds
        expired keys read back as None
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        """None when the key is absent or expired. StoreUnavailableError when the store is down."""

    @abstractmethod
    async def set(self, key: str, value: Dict[str, Any], *, ttl_seconds: Optional[int] = None) -> None:
        """Overwrite the key. ttl_seconds=None keeps it until overwritten."""

    async def aclose(self) -> None:
        return None
