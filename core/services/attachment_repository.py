"""
Attachment repository.

Attachments are stored inline on their invoice, so every change here is an
invoice update that replaces the attachment list. Limits (count, per-file
size and type, aggregate budget) are all checked before any encoding work.
"""

from __future__ import annotations

import logging
import threading
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterable, Sequence

from core.attachments import (
    ProgressCallback,
    UploadFile,
    UploadProgress,
    check_quota,
    decode,
    encode,
    encode_async,
    format_file_size,
    sanitize_filename,
    stored_size,
    validate_upload,
)
from core.config import StoreConfig
from core.exceptions import (
    AttachmentValidationError,
    FileAttachmentError,
    FileNotFoundError,
    InvoiceNotFoundError,
    StorageLimitError,
)
from core.models import (
    AttachmentsChange,
    AttachmentStats,
    FileAttachment,
    Invoice,
    InvoiceUpdate,
    UploadConstraints,
    new_id,
)
from core.services.invoice_repository import InvoiceRepository
from utils.timezone import now_utc, truncate_to_millis

logger = logging.getLogger(__name__)

# Receives (sanitized filename, file bytes, MIME type).
DownloadSink = Callable[[str, bytes, str], None]


@dataclass
class UploadFailure:
    filename: str
    error: str


@dataclass
class BatchUploadResult:
    """Per-file outcome of a batch upload. Successful files were persisted together."""

    successful: list[FileAttachment] = field(default_factory=list)
    failed: list[UploadFailure] = field(default_factory=list)


class AttachmentRepository:
    """Upload, download, and bookkeeping for the files attached to invoices."""

    def __init__(
        self,
        invoices: InvoiceRepository,
        config: StoreConfig | None = None,
        clock: Callable[[], datetime] = now_utc,
    ):
        self.invoices = invoices
        self.config = config or invoices.config
        self._clock = clock

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _require_invoice(self, invoice_id: str) -> Invoice:
        invoice = self.invoices.get(invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError(invoice_id)
        return invoice

    def _check_can_add(self, invoice: Invoice, files: Sequence[UploadFile | FileAttachment]) -> None:
        """
        Reject files that would break any attachment limit.

        Raises:
            FileAttachmentError: Too many files for the invoice
            StorageLimitError: Aggregate budget exceeded
            AttachmentValidationError: A file is too large or of a disallowed type
        """
        max_files = self.config.max_files_per_invoice
        if len(invoice.attachments) + len(files) > max_files:
            raise FileAttachmentError(
                f"Cannot upload {len(files)} file(s). Maximum {max_files} files allowed per invoice."
            )

        quota = check_quota(invoice.attachments, files, self.config.max_total_attachment_bytes)
        if not quota.within_limit:
            raise StorageLimitError(
                f"Storage limit exceeded. Current: {format_file_size(quota.current_size)}, "
                f"Adding: {format_file_size(quota.added_size)}, "
                f"Max: {format_file_size(quota.max_size)}"
            )

        for file in files:
            validate_upload(file, self.config.max_file_size_bytes, self.config.allowed_mime_types)

    def _build(self, file: UploadFile, data: str) -> FileAttachment:
        filename = file.filename
        if not 0 < len(filename) <= 255:
            filename = sanitize_filename(filename)
        return FileAttachment(
            id=new_id(),
            filename=filename,
            size=file.size,
            type=file.type,
            data=data,
            uploaded_at=truncate_to_millis(self._clock()),
        )

    def _replace(self, invoice_id: str, attachments: list[FileAttachment]) -> Invoice:
        return self.invoices.update(
            invoice_id, InvoiceUpdate(attachments=AttachmentsChange.replace(attachments))
        )

    def _commit(self, invoice_id: str, added: list[FileAttachment]) -> None:
        """Append freshly encoded attachments to the invoice as it is stored now."""
        current = self._require_invoice(invoice_id)
        # Limits again: the invoice may have gained attachments while encoding.
        self._check_can_add(current, added)
        self._replace(invoice_id, current.attachments + added)
        logger.info(f"Attached {len(added)} file(s) to invoice {invoice_id}")

    # =========================================================================
    # READS
    # =========================================================================

    def list(self, invoice_id: str) -> list[FileAttachment]:
        """
        Raises:
            InvoiceNotFoundError: If the invoice doesn't exist
        """
        return self._require_invoice(invoice_id).attachments

    def get(self, invoice_id: str, attachment_id: str) -> FileAttachment | None:
        for attachment in self.list(invoice_id):
            if attachment.id == attachment_id:
                return attachment
        return None

    # =========================================================================
    # UPLOADS
    # =========================================================================

    def upload(
        self,
        invoice_id: str,
        file: UploadFile,
        progress: ProgressCallback | None = None,
        cancel: threading.Event | None = None,
    ) -> FileAttachment:
        """
        Validate, encode, and attach one file.

        Args:
            invoice_id: Invoice to attach to
            file: Name, bytes, and MIME type
            progress: Encoding progress callback
            cancel: Set to abandon encoding; nothing is persisted

        Returns:
            Stored attachment record

        Raises:
            InvoiceNotFoundError: If the invoice doesn't exist
            FileAttachmentError: If the invoice already holds the maximum number of files
            StorageLimitError: If the file would exceed the aggregate budget
            AttachmentValidationError: If the file is too large or of a disallowed type
            EncodingCancelledError: If cancel was set during encoding
        """
        invoice = self._require_invoice(invoice_id)
        self._check_can_add(invoice, [file])

        data = encode(file.content, progress, cancel, self.config.encode_chunk_size)
        attachment = self._build(file, data)
        self._commit(invoice_id, [attachment])
        return attachment

    async def upload_async(
        self,
        invoice_id: str,
        file: UploadFile,
        progress: ProgressCallback | None = None,
        cancel: threading.Event | None = None,
    ) -> FileAttachment:
        """upload() with encoding on a worker thread; the write happens on the caller's loop."""
        invoice = self._require_invoice(invoice_id)
        self._check_can_add(invoice, [file])

        data = await encode_async(file.content, progress, cancel, self.config.encode_chunk_size)
        attachment = self._build(file, data)
        self._commit(invoice_id, [attachment])
        return attachment

    def upload_many(
        self,
        invoice_id: str,
        files: Iterable[UploadFile],
        cancel: threading.Event | None = None,
    ) -> BatchUploadResult:
        """
        Upload several files with a single persistence write.

        The batch as a whole is checked first and rejected outright if it
        breaks a limit. After that each file encodes independently and
        failures are reported per file.

        Raises:
            AttachmentValidationError: If no files are given, or any file fails validation
            FileAttachmentError: If the batch would exceed the file count limit
            StorageLimitError: If the batch would exceed the aggregate budget
        """
        files = list(files)
        if not files:
            raise AttachmentValidationError("No files selected", constraint="count")

        invoice = self._require_invoice(invoice_id)
        self._check_can_add(invoice, files)

        result = BatchUploadResult()
        for file in files:
            try:
                data = encode(file.content, None, cancel, self.config.encode_chunk_size)
            except FileAttachmentError as e:
                result.failed.append(UploadFailure(file.filename, str(e)))
                continue
            result.successful.append(self._build(file, data))

        if result.successful:
            self._commit(invoice_id, result.successful)
        if result.failed:
            logger.warning(f"{len(result.failed)} of {len(files)} uploads failed for invoice {invoice_id}")
        return result

    # =========================================================================
    # DELETES
    # =========================================================================

    def delete(self, invoice_id: str, attachment_id: str) -> bool:
        """
        Raises:
            InvoiceNotFoundError: If the invoice doesn't exist
            FileNotFoundError: If the invoice has no such attachment
        """
        invoice = self._require_invoice(invoice_id)
        remaining = [a for a in invoice.attachments if a.id != attachment_id]
        if len(remaining) == len(invoice.attachments):
            raise FileNotFoundError(attachment_id)

        self._replace(invoice_id, remaining)
        logger.info(f"Deleted attachment {attachment_id} from invoice {invoice_id}")
        return True

    def bulk_delete(self, invoice_id: str, attachment_ids: Iterable[str]) -> int:
        """Remove every listed attachment in one write. Unknown ids are ignored."""
        targets = set(attachment_ids)
        invoice = self._require_invoice(invoice_id)
        remaining = [a for a in invoice.attachments if a.id not in targets]
        removed = len(invoice.attachments) - len(remaining)
        if removed:
            self._replace(invoice_id, remaining)
            logger.info(f"Deleted {removed} attachments from invoice {invoice_id}")
        return removed

    # =========================================================================
    # DOWNLOADS
    # =========================================================================

    def download(
        self,
        attachment: FileAttachment,
        sink: DownloadSink,
        progress: ProgressCallback | None = None,
    ) -> None:
        """
        Decode an attachment and hand it to sink under a filesystem-safe name.

        Raises:
            AttachmentValidationError: If the stored data is not valid base64
            FileAttachmentError: If the sink fails
        """
        decoded = decode(attachment.data, attachment.type)
        filename = sanitize_filename(attachment.filename)
        try:
            sink(filename, decoded.content, decoded.type)
        except Exception as e:
            logger.error(f"Failed to download {filename}: {e}")
            raise FileAttachmentError(f"Failed to download {filename}") from e

        if progress:
            size = len(decoded.content)
            progress(UploadProgress(size, size, 100))

    def download_many(
        self,
        invoice_id: str,
        attachment_ids: Iterable[str],
        sink: DownloadSink,
    ) -> tuple[list[FileAttachment], list[UploadFailure]]:
        """Download several attachments, collecting per-file failures instead of stopping."""
        attachments = {a.id: a for a in self.list(invoice_id)}
        successful: list[FileAttachment] = []
        failed: list[UploadFailure] = []

        for attachment_id in attachment_ids:
            attachment = attachments.get(attachment_id)
            if attachment is None:
                failed.append(UploadFailure(attachment_id, str(FileNotFoundError(attachment_id))))
                continue
            try:
                self.download(attachment, sink)
            except (FileAttachmentError, AttachmentValidationError) as e:
                failed.append(UploadFailure(attachment.filename, str(e)))
                continue
            successful.append(attachment)

        return successful, failed

    # =========================================================================
    # STATS
    # =========================================================================

    def stats(self, invoice_id: str) -> AttachmentStats:
        """
        Figures for one invoice's attachments.

        total_size and average_size are raw bytes; storage_used_percent is the
        estimated stored size against the aggregate budget.
        """
        attachments = self.list(invoice_id)
        count = len(attachments)
        total_size = sum(a.size for a in attachments)
        used = stored_size(attachments)
        return AttachmentStats(
            count=count,
            total_size=total_size,
            average_size=total_size / count if count else 0.0,
            type_count=dict(Counter(a.type for a in attachments)),
            remaining_slots=max(0, self.config.max_files_per_invoice - count),
            storage_used_percent=round(used * 100 / self.config.max_total_attachment_bytes, 2),
        )

    def can_upload_more(self, invoice_id: str) -> bool:
        return len(self.list(invoice_id)) < self.config.max_files_per_invoice

    def constraints(self, invoice_id: str) -> UploadConstraints:
        attachments = self.list(invoice_id)
        return UploadConstraints(
            max_files=self.config.max_files_per_invoice,
            max_file_size=self.config.max_file_size_bytes,
            max_total_size=self.config.max_total_attachment_bytes,
            allowed_types=list(self.config.allowed_mime_types),
            remaining_files=max(0, self.config.max_files_per_invoice - len(attachments)),
            remaining_storage=max(0, self.config.max_total_attachment_bytes - stored_size(attachments)),
        )
