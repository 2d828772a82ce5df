"""
Valkey (Redis-compatible) key-value store for invoice data.

Simple wrapper around redis-py. Connection URL from StoreConfig.
Fail-fast on construction: raises if the server can't be reached.
All keys live under a namespace so several stores can share one server.
"""

import logging

import redis
from redis.exceptions import OutOfMemoryError

from clients.kv_store import QuotaExceededError, StoreUnavailableError

logger = logging.getLogger(__name__)


class ValkeyClient:
    """
    Redis-compatible store for Valkey.

    Implements the KeyValueStore protocol. A server running with a
    maxmemory limit rejects writes with an OOM error; that surfaces here as
    QuotaExceededError so the persistence layer can recover the same way it
    does for a full in-memory store.

    Usage:
        client = ValkeyClient("redis://localhost:6379/0", namespace="invoices:")
        client.set("sales_invoices", "[]")
        value = client.get("sales_invoices")  # Returns None if missing
    """

    def __init__(self, url: str, namespace: str = "invoice-store:"):
        """
        Initialize Valkey connection.

        Args:
            url: Redis-compatible connection URL (e.g., redis://localhost:6379/0)
            namespace: Prefix applied to every key

        Raises:
            StoreUnavailableError: If connection fails
        """
        self.namespace = namespace
        self._client = redis.from_url(url, decode_responses=True)
        # Verify connectivity immediately (fail-fast)
        self.ping()
        logger.info("ValkeyClient connected")

    def _key(self, key: str) -> str:
        return f"{self.namespace}{key}"

    def ping(self) -> bool:
        """
        Health check.

        Returns True if Valkey responds.
        Raises StoreUnavailableError if unreachable.
        """
        try:
            self._client.ping()
        except redis.ConnectionError as e:
            raise StoreUnavailableError(f"Valkey unreachable: {e}") from e
        return True

    def get(self, key: str) -> str | None:
        """
        Get value by key.

        Returns None if key doesn't exist (not an error).
        """
        try:
            return self._client.get(self._key(key))
        except redis.ConnectionError as e:
            raise StoreUnavailableError(f"Valkey unreachable: {e}") from e

    def set(self, key: str, value: str) -> None:
        """
        Set key to value.

        Raises:
            QuotaExceededError: If the server is out of memory
            StoreUnavailableError: If the server is unreachable
        """
        try:
            self._client.set(self._key(key), value)
        except redis.ConnectionError as e:
            raise StoreUnavailableError(f"Valkey unreachable: {e}") from e
        except redis.ResponseError as e:
            if isinstance(e, OutOfMemoryError) or str(e).startswith("OOM"):
                raise QuotaExceededError(f"Valkey rejected write to '{key}': {e}") from e
            raise

    def delete(self, key: str) -> bool:
        """
        Delete key.

        Returns True if key existed and was deleted, False if key didn't exist.
        """
        try:
            return self._client.delete(self._key(key)) > 0
        except redis.ConnectionError as e:
            raise StoreUnavailableError(f"Valkey unreachable: {e}") from e

    def keys(self) -> list[str]:
        """All keys in this namespace, without the namespace prefix."""
        try:
            found = self._client.scan_iter(match=f"{self.namespace}*")
            return [k[len(self.namespace):] for k in found]
        except redis.ConnectionError as e:
            raise StoreUnavailableError(f"Valkey unreachable: {e}") from e

    def close(self) -> None:
        """Close the connection."""
        self._client.close()
        logger.info("ValkeyClient closed")
