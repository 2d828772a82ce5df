"""Tests for ValkeyClient - Redis-compatible key-value store.

redis.from_url is patched so these run without a server.
"""

from unittest.mock import MagicMock, patch

import pytest
import redis
from redis.exceptions import OutOfMemoryError

from clients.kv_store import KeyValueStore, QuotaExceededError, StoreUnavailableError
from clients.valkey_client import ValkeyClient


@pytest.fixture
def redis_mock():
    with patch("clients.valkey_client.redis.from_url") as from_url:
        client = MagicMock()
        from_url.return_value = client
        yield client


@pytest.fixture
def valkey(redis_mock) -> ValkeyClient:
    return ValkeyClient("redis://localhost:6379/0", namespace="test:")


class TestValkeyClientInit:
    """Connection initialization."""

    def test_connects_with_valid_url(self, redis_mock):
        """Valid URL creates working connection and pings once."""
        client = ValkeyClient("redis://localhost:6379/0")
        assert client.ping() is True
        assert redis_mock.ping.call_count == 2

    def test_decodes_responses(self):
        with patch("clients.valkey_client.redis.from_url") as from_url:
            ValkeyClient("redis://localhost:6379/0")
        from_url.assert_called_once_with("redis://localhost:6379/0", decode_responses=True)

    def test_unreachable_server_fails_fast(self, redis_mock):
        redis_mock.ping.side_effect = redis.ConnectionError("refused")
        with pytest.raises(StoreUnavailableError, match="unreachable"):
            ValkeyClient("redis://localhost:6379/0")

    def test_satisfies_protocol(self, valkey):
        assert isinstance(valkey, KeyValueStore)


class TestBasicOperations:
    """Get/set/delete/keys under the namespace."""

    def test_get_uses_namespaced_key(self, valkey, redis_mock):
        redis_mock.get.return_value = "hello"
        assert valkey.get("greeting") == "hello"
        redis_mock.get.assert_called_once_with("test:greeting")

    def test_set_uses_namespaced_key(self, valkey, redis_mock):
        valkey.set("greeting", "hello")
        redis_mock.set.assert_called_once_with("test:greeting", "hello")

    def test_delete_returns_true_when_existed(self, valkey, redis_mock):
        redis_mock.delete.return_value = 1
        assert valkey.delete("greeting") is True

    def test_delete_returns_false_when_missing(self, valkey, redis_mock):
        redis_mock.delete.return_value = 0
        assert valkey.delete("greeting") is False

    def test_keys_strip_namespace(self, valkey, redis_mock):
        redis_mock.scan_iter.return_value = iter(["test:sales_invoices", "test:invoice_filters"])
        assert valkey.keys() == ["sales_invoices", "invoice_filters"]
        redis_mock.scan_iter.assert_called_once_with(match="test:*")


class TestErrorMapping:
    """Server errors become store-level errors."""

    def test_oom_error_becomes_quota_exceeded(self, valkey, redis_mock):
        redis_mock.set.side_effect = OutOfMemoryError("command not allowed when used memory > 'maxmemory'")
        with pytest.raises(QuotaExceededError):
            valkey.set("k", "v")

    def test_oom_response_text_becomes_quota_exceeded(self, valkey, redis_mock):
        redis_mock.set.side_effect = redis.ResponseError("OOM command not allowed")
        with pytest.raises(QuotaExceededError):
            valkey.set("k", "v")

    def test_other_response_errors_propagate(self, valkey, redis_mock):
        redis_mock.set.side_effect = redis.ResponseError("WRONGTYPE")
        with pytest.raises(redis.ResponseError):
            valkey.set("k", "v")

    def test_connection_error_on_read_becomes_unavailable(self, valkey, redis_mock):
        redis_mock.get.side_effect = redis.ConnectionError("gone")
        with pytest.raises(StoreUnavailableError):
            valkey.get("k")

    def test_connection_error_on_keys_becomes_unavailable(self, valkey, redis_mock):
        redis_mock.scan_iter.side_effect = redis.ConnectionError("gone")
        with pytest.raises(StoreUnavailableError):
            valkey.keys()


class TestClose:

    def test_close_closes_connection(self, valkey, redis_mock):
        valkey.close()
        redis_mock.close.assert_called_once()
