"""
Invoice validation.

Pure functions: nothing here raises for bad input or touches storage. Every
entry point returns a ValidationResult listing one issue per violated rule,
each with a dot-separated field path such as "line_items.0.total".

Validation runs in two passes that can be exercised on their own:

1. Structure - the pydantic schema models (types, required fields, bounds).
2. Business rules - cross-field checks on a structurally valid value:
   derived amounts, the business-date window, id uniqueness, attachment limits.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from core.attachments import check_quota
from core.config import StoreConfig
from core.models import (
    FileAttachment,
    FilterCriteria,
    InvoiceCreate,
    InvoiceUpdate,
    LineItemCreate,
)
from utils.money import amounts_match, round_money
from utils.timezone import end_of_day, now_utc, shift_years, start_of_day


@dataclass(frozen=True)
class ValidationIssue:
    """One violated rule."""

    field: str
    message: str


@dataclass
class ValidationResult:
    """Outcome of a validation call. `data` holds the parsed value when ok."""

    ok: bool
    errors: list[ValidationIssue] = field(default_factory=list)
    data: Any = None

    def has_error(self, field_path: str) -> bool:
        return any(issue.field == field_path for issue in self.errors)


# =============================================================================
# AMOUNT CALCULATIONS
# =============================================================================


def calculate_line_item_total(quantity: float, unit_price: float) -> float:
    """quantity × unit_price rounded to 2 decimals."""
    if quantity < 0 or unit_price < 0:
        raise ValueError("Quantity and unit price must be non-negative")
    return round_money(quantity * unit_price)


def calculate_subtotal(line_items: Iterable[Any]) -> float:
    """Sum of line item totals rounded to 2 decimals."""
    return round_money(sum(_get(item, "total") or 0 for item in line_items))


def calculate_total(subtotal: float, tax: float) -> float:
    """subtotal + tax rounded to 2 decimals."""
    if subtotal < 0 or tax < 0:
        raise ValueError("Subtotal and tax must be non-negative")
    return round_money(subtotal + tax)


# =============================================================================
# HELPERS
# =============================================================================


def _get(obj: Any, name: str) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(name)
    return getattr(obj, name, None)


def _parse(model: type[BaseModel], candidate: Any) -> Any:
    """Structural pass. Raises pydantic.ValidationError."""
    if isinstance(candidate, model):
        return candidate
    if isinstance(candidate, BaseModel):
        candidate = candidate.model_dump(exclude_unset=True)
    return model.model_validate(candidate)


def _message(error: dict, path: str) -> str:
    if error["type"] == "value_error":
        return str(error["ctx"]["error"])
    if error["type"] == "string_pattern_mismatch" and path.endswith("customer_email"):
        return "Invalid email format"
    return error["msg"]


def issues_from_pydantic(exc: PydanticValidationError, prefix: str = "") -> list[ValidationIssue]:
    """Flatten a pydantic error into issues with dot-separated paths."""
    issues = []
    for error in exc.errors():
        parts = [str(p) for p in error["loc"]]
        if prefix:
            parts.insert(0, prefix)
        path = ".".join(parts) or "__root__"
        issues.append(ValidationIssue(field=path, message=_message(error, path)))
    return issues


def _result(data: Any, issues: list[ValidationIssue]) -> ValidationResult:
    if issues:
        return ValidationResult(ok=False, errors=issues)
    return ValidationResult(ok=True, errors=[], data=data)


# =============================================================================
# PASS 1: STRUCTURE
# =============================================================================


def check_structure(model: type[BaseModel], candidate: Any) -> tuple[Any, list[ValidationIssue]]:
    """Parse candidate with a schema model; returns (parsed or None, issues)."""
    try:
        return _parse(model, candidate), []
    except PydanticValidationError as e:
        return None, issues_from_pydantic(e)


def check_structure_for_create(candidate: Any) -> tuple[InvoiceCreate | None, list[ValidationIssue]]:
    return check_structure(InvoiceCreate, candidate)


def check_structure_for_update(candidate: Any) -> tuple[InvoiceUpdate | None, list[ValidationIssue]]:
    return check_structure(InvoiceUpdate, candidate)


# =============================================================================
# PASS 2: BUSINESS RULES
# =============================================================================


def check_date_window(value: datetime, now: datetime, path: str = "date") -> list[ValidationIssue]:
    """Invoice date must fall within one year before/after now (calendar days)."""
    earliest = shift_years(start_of_day(now), -1)
    latest = shift_years(end_of_day(now), 1)
    if earliest <= start_of_day(value) and start_of_day(value) <= latest:
        return []
    return [ValidationIssue(path, "Invoice date must be within one year of today")]


def check_line_item_rules(items: list[Any], prefix: str = "line_items") -> list[ValidationIssue]:
    """Per-item derived total plus id uniqueness within the invoice."""
    issues = []
    seen: set[str] = set()
    for index, item in enumerate(items):
        path = f"{prefix}.{index}" if prefix else ""
        expected = _get(item, "quantity") * _get(item, "unit_price")
        if not amounts_match(expected, _get(item, "total")):
            issues.append(ValidationIssue(
                f"{path}.total" if path else "total",
                "Total must equal quantity × unit price",
            ))
        item_id = _get(item, "id")
        if item_id in seen:
            issues.append(ValidationIssue(
                f"{path}.id" if path else "id",
                "Line item ID must be unique within the invoice",
            ))
        seen.add(item_id)
    return issues


def check_derived_fields(
    line_items: list[Any] | None,
    subtotal: float | None,
    tax: float | None,
    total: float | None,
) -> list[ValidationIssue]:
    """
    subtotal = Σ line totals and total = subtotal + tax.

    Each rule runs only when every value it needs is present. A missing
    subtotal is derived from the line items for the total check.
    """
    issues = []
    if line_items is not None and subtotal is not None:
        if not amounts_match(sum(_get(i, "total") for i in line_items), subtotal):
            issues.append(ValidationIssue(
                "subtotal", "Subtotal must equal the sum of all line item totals"
            ))

    effective_subtotal = subtotal
    if effective_subtotal is None and line_items is not None:
        effective_subtotal = sum(_get(i, "total") for i in line_items)

    if total is not None and effective_subtotal is not None and tax is not None:
        if not amounts_match(effective_subtotal + tax, total):
            issues.append(ValidationIssue("total", "Total must equal subtotal + tax"))
    return issues


def check_attachment_rules(
    attachments: list[FileAttachment],
    config: StoreConfig,
    prefix: str = "attachments",
) -> list[ValidationIssue]:
    """Deployment limits: count, per-file size and type, id uniqueness, aggregate budget."""
    issues = []
    if len(attachments) > config.max_files_per_invoice:
        issues.append(ValidationIssue(
            prefix, f"Cannot exceed {config.max_files_per_invoice} attachments per invoice"
        ))

    seen: set[str] = set()
    for index, attachment in enumerate(attachments):
        path = f"{prefix}.{index}"
        if attachment.size > config.max_file_size_bytes:
            issues.append(ValidationIssue(f"{path}.size", "File size exceeds the per-file limit"))
        if attachment.type not in config.allowed_mime_types:
            issues.append(ValidationIssue(
                f"{path}.type",
                "File type not supported. Allowed types: PDF, JPEG, PNG, GIF, DOC, DOCX, TXT, XLS, XLSX",
            ))
        if attachment.id in seen:
            issues.append(ValidationIssue(f"{path}.id", "Attachment ID must be unique within the invoice"))
        seen.add(attachment.id)

    quota = check_quota(attachments, [], config.max_total_attachment_bytes)
    if not quota.within_limit:
        issues.append(ValidationIssue(prefix, "Attachments exceed the storage limit"))
    return issues


def check_business_rules_for_create(
    invoice: InvoiceCreate,
    now: datetime,
    config: StoreConfig,
) -> list[ValidationIssue]:
    """Cross-field rules for a structurally valid create payload."""
    issues = check_date_window(invoice.date, now)
    issues += check_line_item_rules(invoice.line_items)
    issues += check_derived_fields(invoice.line_items, invoice.subtotal, invoice.tax, invoice.total)
    if invoice.attachments:
        issues += check_attachment_rules(invoice.attachments, config)
    return issues


def check_business_rules_for_update(
    changes: InvoiceUpdate,
    now: datetime,
    config: StoreConfig,
) -> list[ValidationIssue]:
    """Cross-field rules over only the supplied fields of an update."""
    supplied = changes.supplied_fields()
    issues = []
    if "date" in supplied:
        issues += check_date_window(changes.date, now)
    if "line_items" in supplied:
        issues += check_line_item_rules(changes.line_items)
    if "total" in supplied and supplied.keys() & {"line_items", "subtotal", "tax"}:
        issues += check_derived_fields(
            changes.line_items, changes.subtotal, changes.tax, changes.total
        )
    elif "line_items" in supplied and "subtotal" in supplied:
        issues += check_derived_fields(changes.line_items, changes.subtotal, None, None)
    if changes.attachments.replaces:
        issues += check_attachment_rules(changes.attachments.attachments, config)
    return issues


# =============================================================================
# ENTRY POINTS
# =============================================================================


def validate_for_create(
    candidate: Any,
    now: datetime | None = None,
    config: StoreConfig | None = None,
) -> ValidationResult:
    """
    Full validation of a to-be-created invoice.

    Args:
        candidate: InvoiceCreate or a mapping of its fields
        now: Reference time for the date window (defaults to current UTC time)
        config: Attachment limits (defaults to StoreConfig())

    Returns:
        ValidationResult with the parsed InvoiceCreate as `data` when ok
    """
    invoice, issues = check_structure_for_create(candidate)
    if issues:
        return _result(None, issues)

    issues = check_business_rules_for_create(invoice, now or now_utc(), config or StoreConfig())
    return _result(invoice, issues)


def validate_for_update(
    candidate: Any,
    now: datetime | None = None,
    config: StoreConfig | None = None,
) -> ValidationResult:
    """
    Validation of a partial field set; only supplied fields are checked.

    Derived amounts are re-checked when line items, subtotal, or tax arrive
    together with total.

    Returns:
        ValidationResult with the parsed InvoiceUpdate as `data` when ok
    """
    changes, issues = check_structure_for_update(candidate)
    if issues:
        return _result(None, issues)

    issues = check_business_rules_for_update(changes, now or now_utc(), config or StoreConfig())
    return _result(changes, issues)


def validate_line_item(item: Any) -> ValidationResult:
    """Structure and derived total of one line item."""
    parsed, issues = check_structure(LineItemCreate, item)
    if issues:
        return _result(None, issues)
    return _result(parsed, check_line_item_rules([parsed], prefix=""))


def validate_attachment(attachment: Any, config: StoreConfig | None = None) -> ValidationResult:
    """Structure plus size/type limits of one stored attachment record."""
    config = config or StoreConfig()
    parsed, issues = check_structure(FileAttachment, attachment)
    if issues:
        return _result(None, issues)

    issues = [
        ValidationIssue(issue.field.split(".", 2)[-1], issue.message)
        for issue in check_attachment_rules([parsed], config)
        if issue.field != "attachments"
    ]
    return _result(parsed, issues)


def validate_filter_criteria(criteria: Any) -> ValidationResult:
    """Filter criteria structure; a closed date range must not run backwards."""
    parsed, issues = check_structure(FilterCriteria, criteria)
    if issues:
        return _result(None, issues)

    issues = []
    date_range = parsed.date_range
    if date_range and date_range.start is not None and date_range.end is not None:
        if start_of_day(date_range.start) > start_of_day(date_range.end):
            issues.append(ValidationIssue(
                "date_range.end", "Start date must be before or equal to end date"
            ))
    return _result(parsed, issues)


def validate_invoice_number_uniqueness(
    invoice_number: str,
    existing: Iterable[Any],
    current_invoice_id: str | None = None,
) -> ValidationResult:
    """Invoice number must not belong to any other invoice."""
    for invoice in existing:
        if _get(invoice, "invoice_number") == invoice_number and _get(invoice, "id") != current_invoice_id:
            return _result(None, [ValidationIssue("invoice_number", "Invoice number already exists")])
    return _result(invoice_number, [])
