"""Tests for core/storage.py - JSON persistence adapter over a raw store."""

from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from clients.kv_store import MemoryStore
from core.config import MB, StoreBackend, StoreConfig
from core.exceptions import DataCorruptionError, StorageQuotaError, StorageUnavailableError
from core.storage import PersistenceAdapter, decode_value, encode_value, open_store


class TestEncoding:
    """Datetime encoding and revival."""

    def test_datetime_encoded_with_milliseconds(self):
        dt = datetime(2024, 1, 15, 9, 30, 0, 123000, tzinfo=timezone.utc)
        assert encode_value({"at": dt}) == '{"at":"2024-01-15T09:30:00.123Z"}'

    def test_only_exact_pattern_is_revived(self):
        value = decode_value('{"date":"2024-01-15T09:30:00.000Z","start":"2024-01-15","end":"hello"}')
        assert value["date"] == datetime(2024, 1, 15, 9, 30, tzinfo=timezone.utc)
        assert value["start"] == "2024-01-15"
        assert value["end"] == "hello"

    def test_revives_nested_values(self):
        value = decode_value('[{"items":[{"uploaded_at":"2024-01-15T00:00:00.000Z"}]}]')
        assert isinstance(value[0]["items"][0]["uploaded_at"], datetime)

    def test_text_fields_are_not_revived(self):
        value = decode_value(
            '{"customer_name":"2024-01-15T09:30:00.000Z",'
            '"line_items":[{"description":"2024-01-15T09:30:00.000Z"}]}'
        )
        assert value["customer_name"] == "2024-01-15T09:30:00.000Z"
        assert value["line_items"][0]["description"] == "2024-01-15T09:30:00.000Z"

    def test_top_level_string_is_not_revived(self):
        assert decode_value('"2024-01-15T09:30:00.000Z"') == "2024-01-15T09:30:00.000Z"

    @pytest.mark.parametrize("text", [
        "2024-13-45T00:00:00.000Z",
        "2024-02-30T12:00:00.000Z",
        "2024-01-15T25:61:00.000Z",
    ])
    def test_impossible_date_stays_a_string(self, text):
        assert decode_value('{"date":"%s"}' % text) == {"date": text}

    def test_non_ascii_kept_verbatim(self):
        assert encode_value("Café") == '"Café"'


class TestRead:

    def test_round_trip(self, adapter):
        dt = datetime(2024, 1, 15, 9, 30, 0, 123000, tzinfo=timezone.utc)
        adapter.write("k", {"updated_at": dt, "label": "x", "n": 1})
        assert adapter.read("k") == {"updated_at": dt, "label": "x", "n": 1}

    def test_impossible_date_reads_as_text(self, adapter, store):
        store.set("k", '[{"date":"2024-13-45T00:00:00.000Z"}]')
        assert adapter.read("k") == [{"date": "2024-13-45T00:00:00.000Z"}]

    def test_missing_key_returns_default(self, adapter):
        assert adapter.read("missing", []) == []

    def test_corrupt_text_raises(self, adapter, store):
        store.set("k", "{not json")
        with pytest.raises(DataCorruptionError) as exc_info:
            adapter.read("k")
        assert exc_info.value.key == "k"

    def test_read_raw_returns_stored_text(self, adapter, store):
        store.set("k", "{not json")
        assert adapter.read_raw("k") == "{not json"


class TestUnavailableStorage:
    """Reads degrade to defaults, writes raise."""

    def test_disabled_store_reads_default(self, adapter, store):
        store.available = False
        assert adapter.read("k", "default") == "default"

    def test_disabled_store_write_raises(self, adapter, store):
        store.available = False
        with pytest.raises(StorageUnavailableError):
            adapter.write("k", 1)

    def test_missing_store(self):
        adapter = PersistenceAdapter(None)
        assert adapter.read("k", 5) == 5
        assert adapter.is_available() is False
        with pytest.raises(StorageUnavailableError):
            adapter.write("k", 1)

    def test_is_available_leaves_no_keys(self, adapter, store):
        assert adapter.is_available() is True
        assert store.keys() == []
        store.available = False
        assert adapter.is_available() is False


class TestQuotaRecovery:
    """Eviction of temporary and stale entries on a full store."""

    def _adapter(self, capacity, clock):
        store = MemoryStore(capacity_bytes=capacity)
        return store, PersistenceAdapter(store, StoreConfig(), clock=clock)

    def test_evicts_temp_keys_and_retries(self, clock):
        store, adapter = self._adapter(200, clock)
        store.set("temp_cache", "x" * 90)

        adapter.write("sales_invoices", "y" * 100)

        assert store.get("temp_cache") is None
        assert adapter.read("sales_invoices") == "y" * 100

    def test_evicts_entries_with_old_timestamps(self, clock):
        store, adapter = self._adapter(10_000, clock)
        store.set("old_snake", '{"updated_at":"2023-12-01T00:00:00.000Z"}')
        store.set("old_camel", '{"createdAt":"2023-11-01T00:00:00.000Z"}')
        store.set("fresh", '{"updated_at":"2024-02-01T00:00:00.000Z"}')
        store.set("no_stamp", '{"a":1}')

        evicted = adapter.evict_stale()

        assert sorted(evicted) == ["old_camel", "old_snake"]
        assert store.keys() == ["fresh", "no_stamp"]

    def test_newest_timestamp_decides(self, clock):
        store, adapter = self._adapter(10_000, clock)
        store.set("touched", '{"created_at":"2023-01-01T00:00:00.000Z","updated_at":"2024-02-09T00:00:00.000Z"}')
        assert adapter.evict_stale() == []

    def test_protected_keys_never_evicted(self, clock):
        store, adapter = self._adapter(100, clock)
        store.set("invoice_filters", '{"updated_at":"2020-01-01T00:00:00.000Z"}')

        with pytest.raises(StorageQuotaError) as exc_info:
            adapter.write("report", "z" * 50)

        assert exc_info.value.key == "report"
        assert store.get("invoice_filters") is not None

    def test_key_being_written_is_not_evicted(self, clock):
        store, adapter = self._adapter(10_000, clock)
        store.set("temp_draft", "old")
        assert adapter.evict_stale(exclude={"temp_draft"}) == []

    def test_still_full_after_eviction_raises(self, clock):
        store, adapter = self._adapter(50, clock)
        with pytest.raises(StorageQuotaError, match="quota exceeded"):
            adapter.write("sales_invoices", "y" * 100)


class TestAccounting:

    def test_size_estimate_sums_keys_and_values(self, adapter, store):
        store.set("ab", "cd")
        store.set("e", "fgh")
        assert adapter.size_estimate() == 8

    def test_clear_removes_everything(self, adapter, store):
        store.set("a", "1")
        store.set("b", "2")
        adapter.clear()
        assert store.keys() == []

    def test_remove_missing_key_is_fine(self, adapter):
        adapter.remove("never-set")


class TestOpenStore:

    def test_memory_backend_uses_budget(self):
        store = open_store(StoreConfig(storage_budget_bytes=2 * MB))
        assert isinstance(store, MemoryStore)
        assert store.capacity_bytes == 2 * MB

    def test_valkey_backend_with_url(self):
        config = StoreConfig(backend=StoreBackend.VALKEY, valkey_url="redis://v:6379/0")
        with patch("clients.valkey_client.ValkeyClient") as client_cls:
            open_store(config)
        client_cls.assert_called_once_with("redis://v:6379/0", namespace="invoice-store:")

    def test_valkey_backend_without_url(self):
        config = StoreConfig(backend=StoreBackend.VALKEY)
        with pytest.raises(ValueError, match="INVOICE_STORE_VALKEY_URL"):
            open_store(config)

    def test_valkey_client_imported_on_demand(self):
        import core.storage

        assert not hasattr(core.storage, "ValkeyClient")
