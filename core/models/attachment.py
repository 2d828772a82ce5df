"""File attachment domain models.

Attachments live inline inside their invoice record; `data` is the file's
bytes as base64 text.
"""

from pydantic import BaseModel, Field

from core.models.common import UTCDateTime


class FileAttachment(BaseModel):
    """Full attachment entity as stored."""

    id: str = Field(..., min_length=1)
    filename: str = Field(..., min_length=1, max_length=255)
    size: int = Field(..., gt=0)
    type: str = Field(..., min_length=1)
    data: str = Field(..., min_length=1)
    uploaded_at: UTCDateTime


class AttachmentStats(BaseModel):
    """Derived attachment figures for one invoice."""

    count: int
    total_size: int
    average_size: float
    type_count: dict[str, int]
    remaining_slots: int
    storage_used_percent: float


class UploadConstraints(BaseModel):
    """Limits a UI shows next to an upload control."""

    max_files: int
    max_file_size: int
    max_total_size: int
    allowed_types: list[str]
    remaining_files: int
    remaining_storage: int
