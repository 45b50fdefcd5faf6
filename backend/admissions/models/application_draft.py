"""Resumable wizard drafts.

One row per draft key (e.g. ``application_draft_girls-ashram``).
Saving the same key again overwrites the row: last write wins, there
is no version column.
"""

from datetime import datetime, timezone

from sqlalchemy import DateTime, Integer, JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from admissions.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ApplicationDraft(Base):
    __tablename__ = "application_drafts"

    draft_key: Mapped[str] = mapped_column(String(120), primary_key=True)
    # Form snapshot; file fields hold upload metadata only, never bytes.
    data: Mapped[dict] = mapped_column(JSON, default=dict)
    step_index: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )
