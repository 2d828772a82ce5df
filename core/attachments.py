"""
Attachment encoding and quota accounting.

Files are stored inline as base64 text. Base64 inflates content by roughly a
third, so every size check runs against the estimated stored size
ceil(bytes × 1.33), not the raw byte count.
"""

import asyncio
import base64
import binascii
import logging
import math
import re
import threading
from dataclasses import dataclass
from typing import Callable, Iterable, Sequence

from core.config import DEFAULT_ALLOWED_TYPES, MB
from core.exceptions import AttachmentValidationError, EncodingCancelledError
from core.models import FileAttachment

logger = logging.getLogger(__name__)

BASE64_OVERHEAD = 1.33

_FORBIDDEN_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f\x7f]')
_RESERVED_NAMES = frozenset(
    ["CON", "PRN", "AUX", "NUL"]
    + [f"COM{i}" for i in range(1, 10)]
    + [f"LPT{i}" for i in range(1, 10)]
)

_TYPE_DESCRIPTIONS = {
    "application/pdf": "PDF Document",
    "image/jpeg": "JPEG Image",
    "image/png": "PNG Image",
    "image/gif": "GIF Image",
    "application/msword": "Word Document",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "Word Document",
    "text/plain": "Text File",
    "application/vnd.ms-excel": "Excel Spreadsheet",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": "Excel Spreadsheet",
}

UNSUPPORTED_TYPE_MESSAGE = (
    "File type not supported. Allowed types: PDF, JPEG, PNG, GIF, DOC, DOCX, TXT, XLS, XLSX"
)


@dataclass(frozen=True)
class UploadFile:
    """A file offered for upload: raw bytes plus its declared name and MIME type."""

    filename: str
    content: bytes
    type: str

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass(frozen=True)
class UploadProgress:
    loaded: int
    total: int
    percentage: int


@dataclass(frozen=True)
class DecodedFile:
    content: bytes
    type: str


@dataclass(frozen=True)
class QuotaCheck:
    """Result of an aggregate size check. All sizes are estimated stored bytes."""

    within_limit: bool
    current_size: int
    added_size: int
    max_size: int


ProgressCallback = Callable[[UploadProgress], None]


# =============================================================================
# ENCODING
# =============================================================================


def encode(
    content: bytes,
    progress: ProgressCallback | None = None,
    cancel: threading.Event | None = None,
    chunk_size: int = 3 * 64 * 1024,
) -> str:
    """
    Base64-encode content in chunks, reporting progress after each one.

    Chunks are a multiple of 3 bytes so the joined pieces equal a single-pass
    encode.

    Args:
        content: Raw file bytes
        progress: Called with UploadProgress after every chunk
        cancel: Checked before every chunk
        chunk_size: Bytes per chunk, rounded down to a multiple of 3

    Raises:
        EncodingCancelledError: If cancel is set before encoding finishes
    """
    step = max(3, chunk_size - chunk_size % 3)
    total = len(content)
    pieces = []

    for offset in range(0, total, step):
        if cancel is not None and cancel.is_set():
            logger.info(f"Encoding cancelled after {offset} of {total} bytes")
            raise EncodingCancelledError("File encoding was cancelled")
        pieces.append(base64.b64encode(content[offset:offset + step]).decode("ascii"))
        if progress:
            loaded = min(offset + step, total)
            progress(UploadProgress(loaded, total, round(loaded * 100 / total)))

    if total == 0 and progress:
        progress(UploadProgress(0, 0, 100))
    return "".join(pieces)


async def encode_async(
    content: bytes,
    progress: ProgressCallback | None = None,
    cancel: threading.Event | None = None,
    chunk_size: int = 3 * 64 * 1024,
) -> str:
    """encode() in a worker thread. Progress callbacks fire on that thread."""
    return await asyncio.to_thread(encode, content, progress, cancel, chunk_size)


def decode(data: str, mime_type: str) -> DecodedFile:
    """
    Decode stored base64 text back to bytes.

    Raises:
        AttachmentValidationError: If data is not valid base64
    """
    try:
        content = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise AttachmentValidationError(
            "Attachment data is not valid base64", constraint="data"
        ) from e
    return DecodedFile(content=content, type=mime_type)


# =============================================================================
# QUOTA ACCOUNTING
# =============================================================================


def estimate_stored_size(size: int) -> int:
    """Estimated base64 footprint of `size` raw bytes."""
    return math.ceil(size * BASE64_OVERHEAD)


def stored_size(attachments: Iterable[FileAttachment]) -> int:
    return sum(estimate_stored_size(a.size) for a in attachments)


def check_quota(
    existing: Iterable[FileAttachment],
    candidates: Iterable[UploadFile],
    max_total_bytes: int = 50 * MB,
) -> QuotaCheck:
    """Whether existing attachments plus candidate files fit the budget. Equal is within."""
    current = stored_size(existing)
    added = sum(estimate_stored_size(f.size) for f in candidates)
    return QuotaCheck(
        within_limit=current + added <= max_total_bytes,
        current_size=current,
        added_size=added,
        max_size=max_total_bytes,
    )


def validate_upload(
    file: UploadFile,
    max_size: int = 10 * MB,
    allowed_types: Sequence[str] = DEFAULT_ALLOWED_TYPES,
) -> None:
    """
    Per-file checks, size first and then type.

    Raises:
        AttachmentValidationError: constraint "size" or "type"
    """
    if file.size == 0:
        raise AttachmentValidationError("File is empty", constraint="size", filename=file.filename)
    if file.size > max_size:
        raise AttachmentValidationError(
            f"File size exceeds {format_file_size(max_size)} limit",
            constraint="size",
            filename=file.filename,
        )
    if file.type not in allowed_types:
        raise AttachmentValidationError(
            UNSUPPORTED_TYPE_MESSAGE, constraint="type", filename=file.filename
        )


# =============================================================================
# FILENAMES AND DISPLAY
# =============================================================================


def sanitize_filename(name: str, max_length: int = 255) -> str:
    """Make a stored filename safe to hand to a filesystem."""
    if not name or not name.strip():
        return "untitled"

    sanitized = _FORBIDDEN_FILENAME_CHARS.sub("", name)

    stem, dot, rest = sanitized.partition(".")
    if stem.upper() in _RESERVED_NAMES:
        sanitized = f"{stem}_{dot}{rest}"

    sanitized = sanitized.rstrip(". \t\n\r")
    if sanitized.startswith(".") and len(sanitized) > 1:
        sanitized = sanitized[1:]

    if len(sanitized) > max_length:
        base, dot, ext = sanitized.rpartition(".")
        if base and len(ext) + 1 < max_length:
            sanitized = base[:max_length - len(ext) - 1] + dot + ext
        else:
            sanitized = sanitized[:max_length]

    return sanitized or "untitled"


def file_extension(filename: str) -> str:
    """Lowercase extension without the dot, or ''."""
    _, dot, ext = filename.rpartition(".")
    return ext.lower() if dot else ""


def is_image(mime_type: str) -> bool:
    return mime_type.startswith("image/")


def file_type_description(mime_type: str) -> str:
    return _TYPE_DESCRIPTIONS.get(mime_type, "Unknown File Type")


def preview_data_url(attachment: FileAttachment) -> str | None:
    """data: URL for image attachments, None for anything else."""
    if not is_image(attachment.type):
        return None
    return f"data:{attachment.type};base64,{attachment.data}"


def format_file_size(size: int) -> str:
    """Human-readable size: 512 B, 1.5 KB, 10.0 MB."""
    if size <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB", "TB"]
    value = float(size)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    if index == 0:
        return f"{size} B"
    return f"{value:.1f} {units[index]}"
