"""Tests for core domain models - custom validators only."""

from datetime import date, datetime, timedelta, timezone

import pytest
from pydantic import ValidationError


class TestLineItemCreate:
    """Tests for LineItemCreate custom validators."""

    def test_total_computed_when_missing(self):
        """Fills total from quantity × unit_price, rounded half-up."""
        from core.models import LineItemCreate

        item = LineItemCreate(description="Hours", quantity=3, unit_price=0.125)
        assert item.total == 0.38

    def test_supplied_total_kept(self):
        """A supplied total is kept for the business pass to check."""
        from core.models import LineItemCreate

        item = LineItemCreate(description="Hours", quantity=1, unit_price=10, total=12)
        assert item.total == 12

    def test_id_generated(self):
        from core.models import LineItemCreate

        first = LineItemCreate(description="A", quantity=1, unit_price=1)
        second = LineItemCreate(description="A", quantity=1, unit_price=1)
        assert first.id and first.id != second.id

    def test_zero_quantity_rejected(self):
        from core.models import LineItemCreate

        with pytest.raises(ValidationError, match="quantity"):
            LineItemCreate(description="A", quantity=0, unit_price=1)


class TestUTCDateTime:
    """Tests for the UTCDateTime field type."""

    def test_plain_date_becomes_midnight_utc(self):
        from core.models import FileAttachment

        attachment = FileAttachment(
            id="a", filename="f.pdf", size=1, type="application/pdf", data="AA==",
            uploaded_at=date(2024, 1, 15),
        )
        assert attachment.uploaded_at == datetime(2024, 1, 15, tzinfo=timezone.utc)

    def test_offset_converted_to_utc(self):
        from core.models import FileAttachment

        attachment = FileAttachment(
            id="a", filename="f.pdf", size=1, type="application/pdf", data="AA==",
            uploaded_at=datetime(2024, 1, 15, 9, 0, tzinfo=timezone(timedelta(hours=2))),
        )
        assert attachment.uploaded_at == datetime(2024, 1, 15, 7, 0, tzinfo=timezone.utc)
        assert attachment.uploaded_at.tzinfo == timezone.utc

    def test_truncated_to_milliseconds(self):
        from core.models import FileAttachment

        attachment = FileAttachment(
            id="a", filename="f.pdf", size=1, type="application/pdf", data="AA==",
            uploaded_at=datetime(2024, 1, 15, 9, 30, 0, 123456, tzinfo=timezone.utc),
        )
        assert attachment.uploaded_at.microsecond == 123000


class TestInvoiceUpdate:
    """Tests for InvoiceUpdate supplied-field tracking."""

    def test_supplied_fields_excludes_defaults(self):
        from core.models import InvoiceUpdate

        update = InvoiceUpdate(tax=5.0)
        assert update.supplied_fields() == {"tax": 5.0}

    def test_explicit_none_not_supplied(self):
        from core.models import InvoiceUpdate

        assert InvoiceUpdate(customer_email=None).supplied_fields() == {}

    def test_attachments_keep_by_default(self):
        from core.models import InvoiceUpdate, AttachmentsPolicy

        assert InvoiceUpdate().attachments.policy == AttachmentsPolicy.KEEP

    def test_replace_instruction(self):
        from core.models import AttachmentsChange

        change = AttachmentsChange.replace([])
        assert change.replaces
        assert change.attachments == []


class TestInvoice:

    def test_is_paid(self):
        from core.models import Invoice, PaymentStatus

        now = datetime(2024, 1, 15, tzinfo=timezone.utc)
        invoice = Invoice(
            id="i", invoice_number="INV-1", date=now, customer_name="Acme",
            line_items=[{"id": "l", "description": "A", "quantity": 1, "unit_price": 1, "total": 1}],
            subtotal=1, tax=0, total=1, payment_status=PaymentStatus.PAID,
            created_at=now, updated_at=now,
        )
        assert invoice.is_paid
        assert invoice.attachments == []
