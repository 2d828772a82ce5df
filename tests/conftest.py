"""Shared test fixtures for the invoice store test suite."""

import pytest
from datetime import datetime, timedelta, timezone
from pathlib import Path

from dotenv import load_dotenv

# Load .env file BEFORE any other imports that might use env vars
# override=True ensures .env takes precedence over shell env vars
load_dotenv(Path(__file__).parent.parent / ".env", override=True)

from clients.kv_store import MemoryStore
from core.config import StoreConfig
from core.storage import PersistenceAdapter
from core.services.attachment_repository import AttachmentRepository
from core.services.filter_state import FilterStateStore
from core.services.invoice_repository import InvoiceRepository


# =============================================================================
# CLOCK
# =============================================================================

# Invoice dates in tests are in early 2024; the one-year date window is
# measured from this instant.
FIXED_NOW = datetime(2024, 2, 10, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that tests can move forward or freeze."""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# =============================================================================
# STORAGE FIXTURES
# =============================================================================


@pytest.fixture
def config() -> StoreConfig:
    """Default limits: one attachment per invoice, 50 MB aggregate budget."""
    return StoreConfig()


@pytest.fixture
def store() -> MemoryStore:
    """Fresh in-memory store with a generous capacity."""
    return MemoryStore(capacity_bytes=None)


@pytest.fixture
def adapter(store, config, clock) -> PersistenceAdapter:
    return PersistenceAdapter(store, config, clock=clock)


@pytest.fixture
def invoices(adapter, config, clock) -> InvoiceRepository:
    return InvoiceRepository(adapter, config, clock=clock)


@pytest.fixture
def attachments(invoices, config, clock) -> AttachmentRepository:
    return AttachmentRepository(invoices, config, clock=clock)


@pytest.fixture
def filters(adapter, clock) -> FilterStateStore:
    return FilterStateStore(adapter, clock=clock)


# =============================================================================
# DATA BUILDERS
# =============================================================================


def make_invoice_data(**overrides) -> dict:
    """
    Valid invoice create payload.

    One line item: 2 × 50.00 = 100.00, tax 10.00, total 110.00.
    """
    data = {
        "invoice_number": "INV-001",
        "date": datetime(2024, 1, 15, tzinfo=timezone.utc),
        "customer_name": "Acme Corp",
        "customer_email": "billing@acme.test",
        "customer_address": "1 Main St",
        "line_items": [
            {"id": "li-1", "description": "Consulting", "quantity": 2, "unit_price": 50.0, "total": 100.0},
        ],
        "subtotal": 100.0,
        "tax": 10.0,
        "total": 110.0,
        "payment_status": "Unpaid",
    }
    data.update(overrides)
    return data


@pytest.fixture
def invoice_factory():
    """Builder for valid create payloads; keyword overrides replace fields."""
    return make_invoice_data


@pytest.fixture
def invoice_data() -> dict:
    return make_invoice_data()


@pytest.fixture
def created_invoice(invoices):
    """An invoice already stored in the repository."""
    return invoices.create(make_invoice_data())
