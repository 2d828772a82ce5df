"""API test fixtures: a dispatcher over the in-memory repositories."""

import pytest

from api.actions import ActionDispatcher


@pytest.fixture
def dispatcher(invoices, attachments, filters) -> ActionDispatcher:
    return ActionDispatcher(invoices, attachments, filters)


@pytest.fixture
def stored_invoice(dispatcher, invoice_data) -> dict:
    """An invoice created through the dispatcher, as returned in result data."""
    result = dispatcher.perform("invoice", "create", invoice_data)
    assert result.success, result.error
    return result.data
