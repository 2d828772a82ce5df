"""
Raw synchronous key-value stores.

Everything the persistence layer needs from a backend is the KeyValueStore
protocol: string keys, string values, enumerable keys. Backends signal a full
store with QuotaExceededError and a missing/disabled store with
StoreUnavailableError; they never serialize, parse, or retry.
"""

import logging
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY_BYTES = 5 * 1024 * 1024


class QuotaExceededError(Exception):
    """Write rejected because the store has no room left."""


class StoreUnavailableError(Exception):
    """Store is missing, disabled by policy, or unreachable."""


@runtime_checkable
class KeyValueStore(Protocol):
    """Minimal surface of a synchronous string key-value store."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> bool: ...

    def keys(self) -> list[str]: ...


class MemoryStore:
    """
    Dict-backed store with a byte budget.

    Size accounting mirrors browser localStorage: the length of every key
    plus the length of its value. A write that would push the total past
    `capacity_bytes` raises QuotaExceededError and leaves the store untouched.

    Usage:
        store = MemoryStore(capacity_bytes=1024)
        store.set("key", "value")
        store.get("key")       # "value"
        store.available = False
        store.get("key")       # raises StoreUnavailableError
    """

    def __init__(self, capacity_bytes: int | None = DEFAULT_CAPACITY_BYTES):
        self.capacity_bytes = capacity_bytes
        self.available = True
        self._data: dict[str, str] = {}

    def _check_available(self) -> None:
        if not self.available:
            raise StoreUnavailableError("Storage is disabled")

    def used_bytes(self) -> int:
        """Current footprint in characters (keys plus values)."""
        return sum(len(k) + len(v) for k, v in self._data.items())

    def get(self, key: str) -> str | None:
        """Return None if key doesn't exist (not an error)."""
        self._check_available()
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        """
        Store value under key.

        Raises:
            QuotaExceededError: If the write would exceed capacity
        """
        self._check_available()
        if self.capacity_bytes is not None:
            current = self.used_bytes()
            if key in self._data:
                current -= len(key) + len(self._data[key])
            needed = current + len(key) + len(value)
            if needed > self.capacity_bytes:
                raise QuotaExceededError(
                    f"Writing '{key}' needs {needed} bytes, capacity is {self.capacity_bytes}"
                )
        self._data[key] = value

    def delete(self, key: str) -> bool:
        """Returns True if key existed and was deleted."""
        self._check_available()
        return self._data.pop(key, None) is not None

    def keys(self) -> list[str]:
        """All keys in insertion order."""
        self._check_available()
        return list(self._data.keys())
