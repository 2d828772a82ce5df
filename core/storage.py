"""
Key-value persistence adapter.

The only code allowed to touch a raw KeyValueStore. Adds JSON encoding with
datetime revival, corruption detection, and quota recovery:

- Datetimes are written as 2024-01-15T09:30:00.000Z. On read, only values
  under known date fields that have exactly that shape and name a real
  instant are turned back into datetimes; everything else stays a string.
- Unparseable stored text raises DataCorruptionError; the caller decides
  whether to reset or salvage.
- A full store triggers one eviction pass over temporary/stale entries and a
  single retry before StorageQuotaError.
- A missing or disabled store reads as empty; writing to it raises.
"""

import json
import logging
from datetime import date, datetime
from typing import Any, Callable

from pydantic import BaseModel

from clients.kv_store import KeyValueStore, MemoryStore, QuotaExceededError, StoreUnavailableError
from core.config import StoreBackend, StoreConfig
from core.exceptions import DataCorruptionError, StorageQuotaError, StorageUnavailableError
from utils.timezone import ISO_MILLIS_PATTERN, format_iso_millis, now_utc, older_than, parse_iso

logger = logging.getLogger(__name__)

_CHECK_KEY = "__storage_test__"
_TIMESTAMP_FIELDS = ("updated_at", "created_at", "updatedAt", "createdAt")

# Object keys whose string values are datetimes on the way back in.
DATE_FIELDS = frozenset(
    {"date", "created_at", "updated_at", "uploaded_at", "start", "end", "createdAt", "updatedAt"}
)


class _StoreEncoder(json.JSONEncoder):
    """JSON encoder for datetimes, dates, and pydantic models."""

    def default(self, o: Any) -> Any:
        if isinstance(o, datetime):
            return format_iso_millis(o)
        if isinstance(o, date):
            return o.isoformat()
        if isinstance(o, BaseModel):
            return o.model_dump(mode="python")
        return super().default(o)


def encode_value(value: Any) -> str:
    """Serialize a value the way it is stored."""
    return json.dumps(value, cls=_StoreEncoder, separators=(",", ":"), ensure_ascii=False)


def _revive(text: str) -> Any:
    if not ISO_MILLIS_PATTERN.match(text):
        return text
    try:
        return parse_iso(text)
    except ValueError:
        return text


def revive_dates(value: Any) -> Any:
    """Recursively turn ISO-millisecond strings under DATE_FIELDS back into UTC datetimes."""
    if isinstance(value, list):
        return [revive_dates(v) for v in value]
    if isinstance(value, dict):
        return {
            k: _revive(v) if k in DATE_FIELDS and isinstance(v, str) else revive_dates(v)
            for k, v in value.items()
        }
    return value


def decode_value(text: str) -> Any:
    """
    Parse stored text.

    Raises:
        json.JSONDecodeError: If text is not valid JSON
    """
    return revive_dates(json.loads(text))


def open_store(config: StoreConfig) -> KeyValueStore:
    """
    Create the raw store selected by config.

    Raises:
        ValueError: If the valkey backend is selected without a valkey_url
    """
    if config.backend == StoreBackend.VALKEY:
        if not config.valkey_url:
            raise ValueError("valkey_url is required for the valkey backend (set INVOICE_STORE_VALKEY_URL)")
        from clients.valkey_client import ValkeyClient

        return ValkeyClient(config.valkey_url, namespace=config.valkey_namespace)
    return MemoryStore(capacity_bytes=config.storage_budget_bytes)


class PersistenceAdapter:
    """
    JSON persistence over a raw key-value store.

    Usage:
        adapter = PersistenceAdapter(MemoryStore(), StoreConfig())
        adapter.write("sales_invoices", [invoice.model_dump()])
        invoices = adapter.read("sales_invoices", [])
    """

    def __init__(
        self,
        store: KeyValueStore | None,
        config: StoreConfig | None = None,
        clock: Callable[[], datetime] = now_utc,
    ):
        self._store = store
        self.config = config or StoreConfig()
        self._clock = clock

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def read_raw(self, key: str) -> str | None:
        """Stored text for key, or None if absent or storage is unavailable."""
        if self._store is None:
            return None
        try:
            return self._store.get(key)
        except StoreUnavailableError as e:
            logger.warning(f"Storage unavailable while reading '{key}': {e}")
            return None

    def read(self, key: str, default: Any = None) -> Any:
        """
        Read and decode a stored value.

        Returns default if the key is absent or storage is unavailable.

        Raises:
            DataCorruptionError: If stored text is present but not valid JSON
        """
        text = self.read_raw(key)
        if text is None:
            return default

        try:
            return decode_value(text)
        except json.JSONDecodeError as e:
            logger.error(f"Corrupted data in storage for key '{key}': {e}")
            raise DataCorruptionError(f'Corrupted data in storage for key "{key}"', key=key) from e

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def _set(self, key: str, text: str) -> None:
        if self._store is None:
            raise StorageUnavailableError("No key-value storage available", key=key)
        try:
            self._store.set(key, text)
        except StoreUnavailableError as e:
            raise StorageUnavailableError(f'Storage unavailable when writing key "{key}"', key=key) from e

    def write(self, key: str, value: Any) -> None:
        """
        Encode and store a value.

        On a full store, evicts temporary/stale entries and retries once.

        Raises:
            StorageQuotaError: If the write still doesn't fit after eviction
            StorageUnavailableError: If there is no usable store
        """
        text = encode_value(value)
        try:
            self._set(key, text)
            return
        except QuotaExceededError:
            logger.warning(f"Storage quota exceeded writing '{key}', evicting stale entries")

        evicted = self.evict_stale(exclude={key})
        logger.info(f"Evicted {len(evicted)} entries: {evicted}")

        try:
            self._set(key, text)
        except QuotaExceededError as e:
            raise StorageQuotaError(
                f'Storage quota exceeded when writing to key "{key}"', key=key
            ) from e

    def remove(self, key: str) -> None:
        """Remove key; missing keys are fine."""
        if self._store is None:
            raise StorageUnavailableError("No key-value storage available", key=key)
        try:
            self._store.delete(key)
        except StoreUnavailableError as e:
            raise StorageUnavailableError(f'Storage unavailable when removing key "{key}"', key=key) from e

    def clear(self) -> None:
        """Remove every key in the store. Use with caution."""
        for key in self._keys():
            self.remove(key)

    # -------------------------------------------------------------------------
    # Accounting
    # -------------------------------------------------------------------------

    def _keys(self) -> list[str]:
        if self._store is None:
            return []
        try:
            return self._store.keys()
        except StoreUnavailableError:
            return []

    def is_available(self) -> bool:
        """Check the store with a throwaway write and remove."""
        if self._store is None:
            return False
        try:
            self._store.set(_CHECK_KEY, "test")
            self._store.delete(_CHECK_KEY)
            return True
        except (StoreUnavailableError, QuotaExceededError):
            return False

    def size_estimate(self) -> int:
        """Sum of key and value lengths over everything currently stored."""
        total = 0
        for key in self._keys():
            value = self.read_raw(key)
            if value is not None:
                total += len(key) + len(value)
        return total

    # -------------------------------------------------------------------------
    # Quota recovery
    # -------------------------------------------------------------------------

    def _is_stale(self, key: str) -> bool:
        if key.startswith(tuple(self.config.temp_key_prefixes)):
            return True

        text = self.read_raw(key)
        if text is None:
            return False
        try:
            payload = json.loads(text)
        except json.JSONDecodeError:
            return False
        if not isinstance(payload, dict):
            return False

        stamps = []
        for field in _TIMESTAMP_FIELDS:
            raw = payload.get(field)
            if not isinstance(raw, str):
                continue
            try:
                stamps.append(parse_iso(raw))
            except ValueError:
                continue
        if not stamps:
            return False

        return older_than(max(stamps), self.config.stale_after_days, now=self._clock())

    def evict_stale(self, exclude: set[str] | None = None) -> list[str]:
        """
        Delete temporary and stale entries.

        Temporary: key starts with a configured temp/cache prefix.
        Stale: a JSON object whose newest created/updated timestamp is older
        than `stale_after_days`. Protected keys and `exclude` are never touched.

        Returns:
            Keys that were removed
        """
        skip = set(self.config.protected_keys) | (exclude or set()) | {_CHECK_KEY}
        evicted = []
        for key in self._keys():
            if key in skip or not self._is_stale(key):
                continue
            self.remove(key)
            evicted.append(key)
        return evicted
