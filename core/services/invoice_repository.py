"""
Invoice repository.

The whole invoice collection lives as one JSON array under a single key.
Every operation re-reads that array through the persistence adapter, so the
store is always the source of truth and last write wins at collection level.

Mutations work on the raw stored records, so a record that no longer parses
is carried through untouched instead of being dropped on the next write.
Queries parse records into Invoice models and skip the ones that fail.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable

from json_repair import repair_json
from pydantic import ValidationError as PydanticValidationError

from core.config import StoreConfig
from core.exceptions import (
    DataCorruptionError,
    DuplicateInvoiceNumberError,
    InvoiceNotFoundError,
    InvoiceValidationError,
)
from core.models import (
    FilterCriteria,
    Invoice,
    InvoiceCreate,
    InvoiceStats,
    InvoiceUpdate,
    PaymentStatus,
    SortField,
    SortOrder,
    new_id,
)
from core.storage import PersistenceAdapter
from core.validation import (
    check_derived_fields,
    check_line_item_rules,
    validate_filter_criteria,
    validate_for_create,
    validate_for_update,
)
from utils.money import round_money
from utils.timezone import end_of_day, now_utc, start_of_day, truncate_to_millis

logger = logging.getLogger(__name__)

_ONE_MILLISECOND = timedelta(milliseconds=1)

RECOVERY_STRATEGIES = ("reset", "salvage")


def migrate_attachments(records: list[Any]) -> tuple[list[Any], int]:
    """
    Give every invoice record an attachments list.

    Records written before attachments existed lack the field. Pure and
    idempotent: a second pass changes nothing.

    Returns:
        (migrated records, number of records changed)
    """
    migrated = []
    changed = 0
    for record in records:
        if isinstance(record, dict) and not isinstance(record.get("attachments"), list):
            record = {**record, "attachments": []}
            changed += 1
        migrated.append(record)
    return migrated, changed


def _record_matches(record: Any, invoice_id: str) -> bool:
    return isinstance(record, dict) and record.get("id") == invoice_id


class InvoiceRepository:
    """
    CRUD and queries over the stored invoice collection.

    Usage:
        repo = InvoiceRepository(PersistenceAdapter(MemoryStore()))
        invoice = repo.create(InvoiceCreate(...))
        repo.update(invoice.id, InvoiceUpdate(payment_status=PaymentStatus.PAID))
    """

    def __init__(
        self,
        adapter: PersistenceAdapter,
        config: StoreConfig | None = None,
        clock: Callable[[], datetime] = now_utc,
    ):
        self.adapter = adapter
        self.config = config or adapter.config
        self._clock = clock

    @property
    def key(self) -> str:
        return self.config.invoices_key

    def _now(self) -> datetime:
        return truncate_to_millis(self._clock())

    # =========================================================================
    # RECORD ACCESS
    # =========================================================================

    def _load_records(self) -> list[Any]:
        """
        Raw stored records, migrated.

        Raises:
            DataCorruptionError: If the stored collection is not a JSON array
        """
        records = self.adapter.read(self.key, [])
        if not isinstance(records, list):
            logger.error(f"Invoice collection under '{self.key}' is not a list")
            raise DataCorruptionError(
                f'Invoice collection under "{self.key}" is not a list', key=self.key
            )

        records, changed = migrate_attachments(records)
        if changed:
            logger.info(f"Migrated {changed} invoices to include an attachments list")
            self.adapter.write(self.key, records)
        return records

    def _save_records(self, records: list[Any]) -> None:
        self.adapter.write(self.key, records)

    @staticmethod
    def _to_record(invoice: Invoice) -> dict:
        return invoice.model_dump()

    def _parse(self, record: Any) -> Invoice | None:
        try:
            return Invoice.model_validate(record)
        except PydanticValidationError as e:
            record_id = record.get("id") if isinstance(record, dict) else None
            logger.warning(f"Skipping unreadable invoice record {record_id!r}: {e.error_count()} errors")
            return None

    def _parse_all(self, records: Iterable[Any]) -> list[Invoice]:
        invoices = []
        for record in records:
            invoice = self._parse(record)
            if invoice is not None:
                invoices.append(invoice)
        return invoices

    def _index_of(self, records: list[Any], invoice_id: str) -> int:
        for index, record in enumerate(records):
            if _record_matches(record, invoice_id):
                return index
        raise InvoiceNotFoundError(invoice_id)

    def _number_taken(self, records: list[Any], invoice_number: str, exclude_id: str | None = None) -> bool:
        return any(
            isinstance(r, dict)
            and r.get("invoice_number") == invoice_number
            and r.get("id") != exclude_id
            for r in records
        )

    def _next_updated_at(self, previous: datetime) -> datetime:
        """Now, nudged past the previous stamp so updated_at strictly increases."""
        return max(self._now(), previous + _ONE_MILLISECOND)

    # =========================================================================
    # CRUD
    # =========================================================================

    def create(self, data: InvoiceCreate | dict) -> Invoice:
        """
        Validate and append a new invoice.

        Args:
            data: Invoice fields (no id or timestamps)

        Returns:
            Stored invoice with id, created_at and updated_at assigned

        Raises:
            InvoiceValidationError: If any structural or business rule fails
            DuplicateInvoiceNumberError: If the invoice number is taken
            StorageQuotaError: If the collection no longer fits the store
        """
        result = validate_for_create(data, now=self._now(), config=self.config)
        if not result.ok:
            raise InvoiceValidationError(result.errors)
        payload: InvoiceCreate = result.data

        records = self._load_records()
        if self._number_taken(records, payload.invoice_number):
            raise DuplicateInvoiceNumberError(payload.invoice_number)

        now = self._now()
        invoice = Invoice(
            **payload.model_dump(exclude={"attachments"}),
            id=new_id(),
            attachments=payload.attachments or [],
            created_at=now,
            updated_at=now,
        )

        records.append(self._to_record(invoice))
        self._save_records(records)

        logger.info(f"Created invoice {invoice.id} ({invoice.invoice_number})")
        return invoice

    def get(self, invoice_id: str) -> Invoice | None:
        """Invoice by id, read fresh from storage. None if missing or unreadable."""
        for record in self._load_records():
            if _record_matches(record, invoice_id):
                return self._parse(record)
        return None

    def list(self) -> list[Invoice]:
        """All readable invoices in insertion order."""
        return self._parse_all(self._load_records())

    def update(self, invoice_id: str, changes: InvoiceUpdate | dict) -> Invoice:
        """
        Apply a partial update.

        Only supplied fields change. id and created_at never change;
        updated_at always moves forward. Attachments follow the explicit
        AttachmentsChange instruction and are kept by default.

        Args:
            invoice_id: Invoice to update
            changes: Fields to change

        Returns:
            Updated invoice

        Raises:
            InvoiceNotFoundError: If no invoice has this id
            DuplicateInvoiceNumberError: If the new number belongs to another invoice
            InvoiceValidationError: If the changes or the merged invoice break a rule
        """
        records = self._load_records()
        index = self._index_of(records, invoice_id)

        result = validate_for_update(changes, now=self._now(), config=self.config)
        if not result.ok:
            raise InvoiceValidationError(result.errors)
        update: InvoiceUpdate = result.data
        supplied = update.supplied_fields()

        new_number = supplied.get("invoice_number")
        if new_number is not None and self._number_taken(records, new_number, exclude_id=invoice_id):
            raise DuplicateInvoiceNumberError(new_number)

        current = self._parse(records[index])
        if current is None:
            raise DataCorruptionError(f'Stored invoice "{invoice_id}" cannot be read', key=self.key)

        merged = current.model_dump()
        merged.update(update.model_dump(include=set(supplied)))
        if update.attachments.replaces:
            merged["attachments"] = update.attachments.attachments
        merged["id"] = current.id
        merged["created_at"] = current.created_at
        merged["updated_at"] = self._next_updated_at(current.updated_at)

        issues = check_line_item_rules(merged["line_items"])
        issues += check_derived_fields(
            merged["line_items"], merged["subtotal"], merged["tax"], merged["total"]
        )
        if issues:
            raise InvoiceValidationError(issues)

        invoice = Invoice.model_validate(merged)
        records[index] = self._to_record(invoice)
        self._save_records(records)

        logger.info(f"Updated invoice {invoice_id}: {sorted(supplied)}")
        return invoice

    def delete(self, invoice_id: str) -> bool:
        """
        Hard-delete an invoice and its attachments.

        Raises:
            InvoiceNotFoundError: If no invoice has this id
        """
        records = self._load_records()
        index = self._index_of(records, invoice_id)
        del records[index]
        self._save_records(records)

        logger.info(f"Deleted invoice {invoice_id}")
        return True

    def bulk_delete(self, invoice_ids: Iterable[str]) -> int:
        """Delete every listed invoice in one write. Unknown ids are ignored."""
        targets = set(invoice_ids)
        records = self._load_records()
        kept = [r for r in records if not (isinstance(r, dict) and r.get("id") in targets)]
        removed = len(records) - len(kept)
        if removed:
            self._save_records(kept)
            logger.info(f"Bulk deleted {removed} invoices")
        return removed

    def bulk_update_payment_status(self, invoice_ids: Iterable[str], status: PaymentStatus | str) -> int:
        """Set payment_status on every listed invoice in one write. Returns the count changed."""
        status = PaymentStatus(status)
        targets = set(invoice_ids)
        records = self._load_records()

        updated = 0
        for index, record in enumerate(records):
            if not (isinstance(record, dict) and record.get("id") in targets):
                continue
            invoice = self._parse(record)
            if invoice is None:
                continue
            invoice = invoice.model_copy(update={
                "payment_status": status,
                "updated_at": self._next_updated_at(invoice.updated_at),
            })
            records[index] = self._to_record(invoice)
            updated += 1

        if updated:
            self._save_records(records)
            logger.info(f"Set payment status {status.value} on {updated} invoices")
        return updated

    # =========================================================================
    # QUERIES
    # =========================================================================

    def filter(self, criteria: FilterCriteria | dict) -> list[Invoice]:
        """
        Invoices matching every given criterion.

        Date bounds are inclusive whole days in UTC. Statuses are OR-ed.
        If filtering itself fails the whole collection is returned.

        Raises:
            InvoiceValidationError: If the criteria are malformed
        """
        result = validate_filter_criteria(criteria)
        if not result.ok:
            raise InvoiceValidationError(result.errors)
        criteria = result.data

        invoices = self.list()
        try:
            return [invoice for invoice in invoices if self._matches(invoice, criteria)]
        except Exception:
            logger.exception("Error filtering invoices, returning unfiltered collection")
            return invoices

    def _matches(self, invoice: Invoice, criteria: FilterCriteria) -> bool:
        date_range = criteria.date_range
        if date_range is not None:
            if date_range.start is not None and invoice.date < start_of_day(date_range.start):
                return False
            if date_range.end is not None and invoice.date > end_of_day(date_range.end):
                return False

        if criteria.payment_statuses and invoice.payment_status not in criteria.payment_statuses:
            return False

        if criteria.search_term and criteria.search_term.strip():
            return self._matches_term(invoice, criteria.search_term.strip().casefold())
        return True

    @staticmethod
    def _matches_term(invoice: Invoice, needle: str) -> bool:
        haystacks = [invoice.invoice_number, invoice.customer_name, invoice.customer_email or ""]
        haystacks.extend(item.description for item in invoice.line_items)
        return any(needle in text.casefold() for text in haystacks)

    def sort(
        self,
        by: SortField | str = SortField.DATE,
        order: SortOrder | str = SortOrder.DESC,
        invoices: list[Invoice] | None = None,
    ) -> list[Invoice]:
        """
        Stable sort into a new list. Ties keep collection order in both directions.

        Args:
            by: Sort key
            order: asc or desc
            invoices: Sort these instead of the stored collection
        """
        by = SortField(by)
        order = SortOrder(order)
        if invoices is None:
            invoices = self.list()

        if by == SortField.DATE:
            key = lambda inv: inv.date
        elif by == SortField.INVOICE_NUMBER:
            key = lambda inv: inv.invoice_number.casefold()
        elif by == SortField.CUSTOMER_NAME:
            key = lambda inv: inv.customer_name.casefold()
        else:
            key = lambda inv: inv.total

        return sorted(invoices, key=key, reverse=order == SortOrder.DESC)

    def search(self, term: str) -> list[Invoice]:
        """Case-insensitive substring match on number, customer, email, and line descriptions."""
        invoices = self.list()
        if not term or not term.strip():
            return invoices
        needle = term.strip().casefold()
        return [invoice for invoice in invoices if self._matches_term(invoice, needle)]

    def stats(self) -> InvoiceStats:
        """Counts and amounts by payment status, computed fresh."""
        invoices = self.list()
        counts = {status: 0 for status in PaymentStatus}
        amounts = {status: 0.0 for status in PaymentStatus}
        for invoice in invoices:
            counts[invoice.payment_status] += 1
            amounts[invoice.payment_status] += invoice.total

        total_amount = sum(amounts.values())
        paid_amount = amounts[PaymentStatus.PAID]
        return InvoiceStats(
            total=len(invoices),
            paid=counts[PaymentStatus.PAID],
            unpaid=counts[PaymentStatus.UNPAID],
            partially_paid=counts[PaymentStatus.PARTIALLY_PAID],
            overdue=counts[PaymentStatus.OVERDUE],
            total_amount=round_money(total_amount),
            paid_amount=round_money(paid_amount),
            unpaid_amount=round_money(total_amount - paid_amount),
            amount_by_status={status: round_money(amount) for status, amount in amounts.items()},
        )

    # =========================================================================
    # RECOVERY
    # =========================================================================

    def recover(self, strategy: str = "reset") -> int:
        """
        Recover from a corrupted collection.

        reset: replace the collection with an empty one.
        salvage: repair the stored text and keep every object that has an id.

        Returns:
            Number of records kept

        Raises:
            ValueError: If strategy is unknown
        """
        if strategy not in RECOVERY_STRATEGIES:
            raise ValueError(f"Unknown recovery strategy: {strategy}")

        kept: list[Any] = []
        if strategy == "salvage":
            raw = self.adapter.read_raw(self.key)
            if raw is not None:
                kept = self._salvage(raw)

        kept, _ = migrate_attachments(kept)
        self._save_records(kept)
        logger.warning(f"Recovered invoice collection with '{strategy}': kept {len(kept)} records")
        return len(kept)

    @staticmethod
    def _salvage(raw: str) -> list[Any]:
        try:
            repaired = json.loads(repair_json(raw))
        except Exception as e:
            logger.warning(f"Could not repair invoice collection: {e}")
            return []
        if not isinstance(repaired, list):
            logger.warning(f"Repaired invoice collection is not a list: {type(repaired)}")
            return []
        return [r for r in repaired if isinstance(r, dict) and r.get("id")]
