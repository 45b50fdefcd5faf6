"""Client-side document checks and in-memory file handles.

A picked file lives in the wizard's form data as a ``PendingFile`` until
submission, when it is uploaded and swapped for the backend's
``DocumentDescriptor``. Files that fail the MIME allow-list or the size
ceiling never reach the form data.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

from admissions.config import settings
from admissions.schemas.documents import UploadedDocument

logger = logging.getLogger(__name__)

NEEDS_RESELECT = "needs_reselect"


@dataclass
class PendingFile:
    field: str
    filename: str
    content_type: str
    content: bytes = field(repr=False)
    selected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def size(self) -> int:
        return len(self.content)

    def metadata(self, status: str = "selected") -> UploadedDocument:
        return UploadedDocument(
            type=self.field,
            file_name=self.filename,
            uploaded_at=self.selected_at,
            status=status,
            size=self.size,
            content_type=self.content_type,
        )


def validate_upload(
    content_type: str | None,
    size: int,
    max_size: int | None = None,
    allowed_types: set[str] | None = None,
) -> str | None:
    """Return a user-facing error for an unacceptable file, else None."""
    max_size = settings.max_upload_bytes if max_size is None else max_size
    allowed = settings.upload_mime_types if allowed_types is None else allowed_types

    if (content_type or "").lower() not in allowed:
        return "Only JPG, JPEG, and PDF files are accepted"
    if size > max_size:
        return f"File size must be less than {round(max_size / (1024 * 1024))}MB"
    return None


def select_document(
    controller,
    field_name: str,
    filename: str,
    content_type: str | None,
    content: bytes,
    on_validation_error: Callable[[str], Any] | None = None,
    max_size: int | None = None,
) -> PendingFile | None:
    """Validate a picked file and, if acceptable, store it in the wizard.

    A rejected file leaves the form data untouched; the error is handed
    to ``on_validation_error`` instead. Picking again replaces the
    previous selection.
    """
    error = validate_upload(content_type, len(content), max_size=max_size)
    if error:
        logger.info(
            f"Rejected {field_name} upload: {error}",
            extra={"field": field_name, "file_name": filename, "size": len(content)},
        )
        if on_validation_error is not None:
            on_validation_error(error)
        return None

    pending = PendingFile(
        field=field_name,
        filename=filename,
        content_type=(content_type or "").lower(),
        content=content,
    )
    controller.on_change(field_name, pending)
    return pending


def remove_document(controller, field_name: str) -> bool:
    """Explicit delete of a selected document."""
    return controller.on_change(field_name, None)


def has_file(value: Any) -> bool:
    return isinstance(value, PendingFile)


def is_file_metadata(value: Any) -> bool:
    """True for the metadata stand-in a draft keeps instead of file bytes."""
    return (
        isinstance(value, dict)
        and "fileName" in value
        and "type" in value
        and "status" in value
    )


def file_metadata(value: PendingFile, status: str = "selected") -> dict:
    return value.metadata(status).model_dump(mode="json", by_alias=True)
