"""
In-Memory Key/Value Store

Used for tests, and as the browser-style store when the host app bridges
its own local storage in through set/get.
"""

import copy
from typing import Any, Optional

from ledgersafe.services.storage.interface import KeyValueStoreInterface


class InMemoryKeyValueStore(KeyValueStoreInterface):
    """Dict-backed store. Values are deep-copied in and out."""

    def __init__(self, initial: Optional[dict[str, Any]] = None):
        self._data: dict[str, Any] = copy.deepcopy(initial) if initial else {}

    async def get(self, key: str) -> Optional[Any]:
        if key not in self._data:
            return None
        return copy.deepcopy(self._data[key])

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    async def remove(self, key: str) -> bool:
        if key not in self._data:
            return False
        del self._data[key]
        return True

    async def keys(self, prefix: str = "") -> list[str]:
        return [key for key in self._data if key.startswith(prefix)]

    def snapshot(self) -> dict[str, Any]:
        """Copy of everything stored (test helper)."""
        return copy.deepcopy(self._data)
