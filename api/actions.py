"""Unified action dispatch: domain + action + data in, ActionResult out."""

import base64
import logging

from pydantic import ValidationError as PydanticValidationError

from api.base import ActionResult, ErrorCodes, FieldError, error_result, success_result
from api.errors import result_for_error
from core.attachments import UploadFile
from core.exceptions import InvoiceStoreError
from core.models import AttachmentsChange, FilterCriteria
from core.services.attachment_repository import AttachmentRepository
from core.services.filter_state import FilterStateStore
from core.services.invoice_repository import InvoiceRepository
from core.validation import issues_from_pydantic

logger = logging.getLogger(__name__)


class ActionDispatcher:
    """
    Runs repository operations and turns routine failures into error results.

    Usage:
        dispatcher = ActionDispatcher(invoices, attachments, filters)
        result = dispatcher.perform("invoice", "create", {...})
        if not result.success:
            show(result.error.message, result.error.field_errors)
    """

    def __init__(
        self,
        invoices: InvoiceRepository,
        attachments: AttachmentRepository,
        filters: FilterStateStore,
    ):
        self.handlers = {
            "invoice": InvoiceHandler(invoices),
            "attachment": AttachmentHandler(attachments),
            "filters": FilterHandler(filters),
        }

    def perform(self, domain: str, action: str, data: dict | None = None) -> ActionResult:
        handler = self.handlers.get(domain)
        if handler is None:
            return error_result(
                ErrorCodes.INVALID_REQUEST,
                f"Unknown domain '{domain}'. Valid domains: {', '.join(sorted(self.handlers))}",
            )

        if action not in handler.ALLOWED_ACTIONS:
            return error_result(
                ErrorCodes.INVALID_REQUEST,
                f"Action '{action}' not allowed on '{domain}'. "
                f"Allowed: {', '.join(sorted(handler.ALLOWED_ACTIONS))}",
            )

        method = getattr(handler, f"_handle_{action}")
        try:
            return success_result(method(dict(data or {})))
        except InvoiceStoreError as e:
            logger.warning(f"{domain}.{action} failed: {e}")
            return result_for_error(e)
        except PydanticValidationError as e:
            field_errors = [FieldError(field=i.field, message=i.message) for i in issues_from_pydantic(e)]
            return error_result(ErrorCodes.VALIDATION_ERROR, "Validation failed", field_errors)
        except (KeyError, ValueError) as e:
            return error_result(ErrorCodes.INVALID_REQUEST, f"Invalid request: {e}")
        except Exception:
            logger.exception(f"Unexpected error in {domain}.{action}")
            return error_result(
                ErrorCodes.INTERNAL_ERROR,
                "An unexpected error occurred. Please try again or contact support if the problem persists.",
            )


# =============================================================================
# HANDLER CLASSES
# =============================================================================


class InvoiceHandler:
    ALLOWED_ACTIONS = {
        "create", "update", "delete", "get", "list",
        "bulk_delete", "bulk_update_payment_status",
        "filter", "sort", "search", "stats", "recover",
    }

    def __init__(self, repository: InvoiceRepository):
        self.repository = repository

    def _handle_create(self, data: dict):
        invoice = self.repository.create(data)
        return invoice.model_dump(mode="json")

    def _handle_update(self, data: dict):
        invoice_id = data.pop("id")
        if "attachments" in data:
            data["attachments"] = AttachmentsChange.replace(data["attachments"])
        invoice = self.repository.update(invoice_id, data)
        return invoice.model_dump(mode="json")

    def _handle_delete(self, data: dict):
        return {"deleted": self.repository.delete(data["id"])}

    def _handle_get(self, data: dict):
        invoice = self.repository.get(data["id"])
        return invoice.model_dump(mode="json") if invoice else None

    def _handle_list(self, data: dict):
        return [i.model_dump(mode="json") for i in self.repository.list()]

    def _handle_bulk_delete(self, data: dict):
        return {"deleted": self.repository.bulk_delete(data["ids"])}

    def _handle_bulk_update_payment_status(self, data: dict):
        return {"updated": self.repository.bulk_update_payment_status(data["ids"], data["payment_status"])}

    def _handle_filter(self, data: dict):
        return [i.model_dump(mode="json") for i in self.repository.filter(data)]

    def _handle_sort(self, data: dict):
        invoices = self.repository.sort(data.get("by", "date"), data.get("order", "desc"))
        return [i.model_dump(mode="json") for i in invoices]

    def _handle_search(self, data: dict):
        return [i.model_dump(mode="json") for i in self.repository.search(data.get("term", ""))]

    def _handle_stats(self, data: dict):
        return self.repository.stats().model_dump(mode="json")

    def _handle_recover(self, data: dict):
        return {"kept": self.repository.recover(data.get("strategy", "reset"))}


class AttachmentHandler:
    ALLOWED_ACTIONS = {"list", "upload", "delete", "bulk_delete", "stats", "constraints"}

    def __init__(self, repository: AttachmentRepository):
        self.repository = repository

    def _handle_list(self, data: dict):
        return [a.model_dump(mode="json") for a in self.repository.list(data["invoice_id"])]

    def _handle_upload(self, data: dict):
        content = data["content"]
        if isinstance(content, str):
            content = base64.b64decode(content, validate=True)
        file = UploadFile(filename=data["filename"], content=content, type=data["type"])
        attachment = self.repository.upload(data["invoice_id"], file)
        return attachment.model_dump(mode="json")

    def _handle_delete(self, data: dict):
        return {"deleted": self.repository.delete(data["invoice_id"], data["id"])}

    def _handle_bulk_delete(self, data: dict):
        return {"deleted": self.repository.bulk_delete(data["invoice_id"], data["ids"])}

    def _handle_stats(self, data: dict):
        return self.repository.stats(data["invoice_id"]).model_dump(mode="json")

    def _handle_constraints(self, data: dict):
        return self.repository.constraints(data["invoice_id"]).model_dump(mode="json")


class FilterHandler:
    ALLOWED_ACTIONS = {"load", "save", "clear", "update"}

    def __init__(self, store: FilterStateStore):
        self.store = store

    def _handle_load(self, data: dict):
        return self.store.load().model_dump(mode="json")

    def _handle_save(self, data: dict):
        return self.store.save(FilterCriteria.model_validate(data)).model_dump(mode="json")

    def _handle_clear(self, data: dict):
        return self.store.clear().model_dump(mode="json")

    def _handle_update(self, data: dict):
        return self.store.update(**data).model_dump(mode="json")
