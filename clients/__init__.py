# Infrastructure clients
from clients.kv_store import (
    KeyValueStore,
    MemoryStore,
    QuotaExceededError,
    StoreUnavailableError,
)
