"""Invoice store configuration."""

import os
from enum import Enum

from pydantic import BaseModel, Field

MB = 1024 * 1024

DEFAULT_ALLOWED_TYPES: tuple[str, ...] = (
    "application/pdf",
    "image/jpeg",
    "image/png",
    "image/gif",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "text/plain",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
)

_ENV_PREFIX = "INVOICE_STORE_"


class StoreBackend(str, Enum):
    """Which raw key-value store backs the persistence layer."""

    MEMORY = "memory"
    VALKEY = "valkey"


class StoreConfig(BaseModel):
    """
    Invoice store configuration.

    Sizes are in bytes. The attachment limits are per invoice; the storage
    budget is the whole key-value store, the realistic ceiling of a browser
    origin.
    """

    # Storage layout
    invoices_key: str = Field(
        default="sales_invoices",
        description="Key holding the whole invoice collection",
        min_length=1,
    )
    filters_key: str = Field(
        default="invoice_filters",
        description="Key holding persisted filter-panel state",
        min_length=1,
    )

    # Backend
    backend: StoreBackend = Field(
        default=StoreBackend.MEMORY,
        description="Raw key-value store implementation",
    )
    valkey_url: str | None = Field(
        default=None,
        description="Valkey URL; required when backend is valkey",
    )
    valkey_namespace: str = Field(
        default="invoice-store:",
        description="Prefix for every Valkey key",
    )
    storage_budget_bytes: int = Field(
        default=5 * MB,
        description="Capacity of the in-memory store",
        ge=1024,
    )

    # Attachment limits
    max_file_size_bytes: int = Field(
        default=10 * MB,
        description="Largest single attachment",
        ge=1,
    )
    max_files_per_invoice: int = Field(
        default=1,
        description="Attachments allowed on one invoice",
        ge=1,
        le=20,
    )
    max_total_attachment_bytes: int = Field(
        default=50 * MB,
        description="Aggregate encoded attachment budget per invoice",
        ge=1,
    )
    allowed_mime_types: tuple[str, ...] = Field(
        default=DEFAULT_ALLOWED_TYPES,
        description="MIME types accepted for upload",
    )
    encode_chunk_size: int = Field(
        default=3 * 64 * 1024,
        description="Bytes encoded per progress step; rounded down to a multiple of 3",
        ge=3,
    )

    # Quota recovery
    stale_after_days: int = Field(
        default=30,
        description="Entries whose own timestamp is older than this may be evicted",
        ge=1,
    )
    temp_key_prefixes: tuple[str, ...] = Field(
        default=("temp_", "cache_", "tmp_"),
        description="Key prefixes marking evictable temporary data",
    )

    @property
    def protected_keys(self) -> frozenset[str]:
        """Keys that quota recovery must never evict."""
        return frozenset({self.invoices_key, self.filters_key})

    @classmethod
    def from_env(cls) -> "StoreConfig":
        """
        Build config from INVOICE_STORE_* environment variables.

        Unset variables keep their defaults. Tuple-valued settings are
        comma separated. Out-of-range values raise pydantic.ValidationError.
        """
        values: dict = {}
        for name, field in cls.model_fields.items():
            raw = os.getenv(f"{_ENV_PREFIX}{name.upper()}")
            if raw is None:
                continue
            if isinstance(field.default, tuple):
                values[name] = tuple(part.strip() for part in raw.split(",") if part.strip())
            else:
                values[name] = raw
        return cls.model_validate(values)
