"""Schemas for applicant documents.

``UploadedDocument`` describes a file the applicant picked but that has
not reached the records backend yet. ``DocumentDescriptor`` is what the
backend hands back once the upload is stored.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class UploadedDocument(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: str
    file_name: str = Field(alias="fileName")
    uploaded_at: datetime = Field(alias="uploadedAt")
    # selected       → bytes held in memory, ready to upload
    # needs_reselect → restored from a draft, bytes were never persisted
    status: str = "selected"
    size: int | None = None
    content_type: str | None = Field(default=None, alias="contentType")


class DocumentDescriptor(BaseModel):
    """Server-issued reference that replaces a raw file on submission."""
    model_config = ConfigDict(extra="allow")

    id: str
    url: str | None = None
    metadata: dict | None = None
