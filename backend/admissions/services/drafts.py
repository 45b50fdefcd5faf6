"""Draft persistence for in-progress wizards.

The wizard only sees the ``DraftStore`` interface (save / load / clear);
which backend sits behind it is a deployment choice:

  memory   → process-local dict, for development and tests
  redis    → one key per draft with a TTL
  database → ``application_drafts`` row per key (SQLAlchemy)

Every backend stores the same JSON document:

    {"data": {...}, "stepIndex": 2, "savedAt": "2026-01-05T10:00:00+00:00"}

Selected files are replaced by their metadata before encoding, so a
resumed draft knows which files to ask for again but never holds bytes.
Saves for the same key are last-write-wins.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping

import redis.asyncio as redis
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from admissions.config import settings
from admissions.middleware.exceptions import DraftSaveError
from admissions.models.application_draft import ApplicationDraft
from admissions.services.documents import NEEDS_RESELECT, PendingFile, file_metadata

logger = logging.getLogger(__name__)


@dataclass
class Draft:
    data: dict[str, Any]
    step_index: int
    saved_at: datetime | None = None
    # File fields that were selected before the save and must be picked again
    files_to_reselect: list[str] = field(default_factory=list)


def application_draft_key(vertical: str, applicant_id: str | None = None) -> str:
    key = f"application_draft_{vertical}"
    return f"{key}:{applicant_id}" if applicant_id else key


def renewal_draft_key(allocation_id: str) -> str:
    return f"renewal_draft_{allocation_id}"


def snapshot_form_data(data: Mapping[str, Any], file_status: str = NEEDS_RESELECT) -> dict[str, Any]:
    """Copy form data with every PendingFile swapped for its metadata."""
    snapshot: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, PendingFile):
            snapshot[key] = file_metadata(value, status=file_status)
        else:
            snapshot[key] = value
    return snapshot


def encode_draft(data: Mapping[str, Any], step_index: int) -> str:
    document = {
        "data": snapshot_form_data(data),
        "stepIndex": step_index,
        "savedAt": datetime.now(timezone.utc).isoformat(),
    }
    try:
        return json.dumps(document)
    except (TypeError, ValueError) as e:
        raise DraftSaveError(f"Draft contains a value that cannot be saved: {e}") from e


def _files_needing_reselect(data: Mapping[str, Any]) -> list[str]:
    return [
        key for key, value in data.items()
        if isinstance(value, dict) and value.get("status") == NEEDS_RESELECT
    ]


def decode_draft(raw: str | bytes | dict | None, key: str = "") -> Draft | None:
    """Parse a stored draft. Corrupt or foreign payloads count as a miss."""
    if raw is None:
        return None
    try:
        document = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
        data = document["data"]
        step_index = int(document.get("stepIndex", 0))
        if not isinstance(data, dict) or step_index < 0:
            raise ValueError("draft has an unexpected shape")
        saved_at = document.get("savedAt")
        saved_at = datetime.fromisoformat(saved_at) if saved_at else None
        if saved_at is not None and saved_at.tzinfo is None:
            # Stored as UTC; SQLite drops the offset
            saved_at = saved_at.replace(tzinfo=timezone.utc)
    except (ValueError, TypeError, KeyError, AttributeError) as e:
        logger.warning(f"Discarding unreadable draft {key}: {e}")
        return None

    return Draft(
        data=data,
        step_index=step_index,
        saved_at=saved_at,
        files_to_reselect=_files_needing_reselect(data),
    )


class DraftStore(ABC):
    """Key-value capability the wizard uses to resume across reloads."""

    @abstractmethod
    async def save(self, key: str, data: Mapping[str, Any], step_index: int) -> None:
        """Persist a snapshot. Raises DraftSaveError on failure."""

    @abstractmethod
    async def load(self, key: str) -> Draft | None:
        """Return the draft, or None on miss or unreadable data. Never raises."""

    @abstractmethod
    async def clear(self, key: str) -> None:
        """Forget the draft (after a successful submission)."""


class MemoryDraftStore(DraftStore):
    def __init__(self):
        self._drafts: dict[str, str] = {}

    async def save(self, key: str, data: Mapping[str, Any], step_index: int) -> None:
        self._drafts[key] = encode_draft(data, step_index)

    async def load(self, key: str) -> Draft | None:
        return decode_draft(self._drafts.get(key), key)

    async def clear(self, key: str) -> None:
        self._drafts.pop(key, None)


class RedisDraftStore(DraftStore):
    def __init__(self, client: redis.Redis, ttl_seconds: int | None = None):
        self._client = client
        self._ttl = ttl_seconds or settings.draft_ttl_seconds

    async def save(self, key: str, data: Mapping[str, Any], step_index: int) -> None:
        payload = encode_draft(data, step_index)
        try:
            await self._client.setex(key, self._ttl, payload)
        except redis.RedisError as e:
            logger.warning(f"Redis error saving draft {key}: {e}")
            raise DraftSaveError("Draft storage is unavailable") from e

    async def load(self, key: str) -> Draft | None:
        try:
            raw = await self._client.get(key)
        except redis.RedisError as e:
            logger.warning(f"Redis error loading draft {key}: {e}")
            return None
        return decode_draft(raw, key)

    async def clear(self, key: str) -> None:
        try:
            await self._client.delete(key)
        except redis.RedisError as e:
            logger.warning(f"Redis error clearing draft {key}: {e}")
            raise DraftSaveError("Draft storage is unavailable") from e


class DatabaseDraftStore(DraftStore):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def save(self, key: str, data: Mapping[str, Any], step_index: int) -> None:
        document = json.loads(encode_draft(data, step_index))
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(ApplicationDraft).where(ApplicationDraft.draft_key == key)
                )
                draft = result.scalar_one_or_none()
                if draft:
                    draft.data = document["data"]
                    draft.step_index = step_index
                    draft.updated_at = datetime.now(timezone.utc)
                else:
                    session.add(ApplicationDraft(
                        draft_key=key,
                        data=document["data"],
                        step_index=step_index,
                    ))
                await session.commit()
        except SQLAlchemyError as e:
            logger.warning(f"Database error saving draft {key}: {e}")
            raise DraftSaveError("Draft storage is unavailable") from e

    async def load(self, key: str) -> Draft | None:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(ApplicationDraft).where(ApplicationDraft.draft_key == key)
                )
                draft = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.warning(f"Database error loading draft {key}: {e}")
            return None

        if not draft:
            return None
        return decode_draft(
            {
                "data": draft.data,
                "stepIndex": draft.step_index,
                "savedAt": draft.updated_at.isoformat() if draft.updated_at else None,
            },
            key,
        )

    async def clear(self, key: str) -> None:
        try:
            async with self._session_factory() as session:
                await session.execute(
                    delete(ApplicationDraft).where(ApplicationDraft.draft_key == key)
                )
                await session.commit()
        except SQLAlchemyError as e:
            logger.warning(f"Database error clearing draft {key}: {e}")
            raise DraftSaveError("Draft storage is unavailable") from e


_draft_store: DraftStore | None = None


async def get_draft_store() -> DraftStore:
    """Return the configured draft backend (process-wide singleton)."""
    global _draft_store
    if _draft_store is None:
        backend = settings.draft_backend.lower()
        if backend == "redis":
            from admissions.utils.redis_pool import get_redis

            _draft_store = RedisDraftStore(await get_redis())
        elif backend == "database":
            from admissions.database import get_session_factory

            _draft_store = DatabaseDraftStore(get_session_factory())
        elif backend == "memory":
            _draft_store = MemoryDraftStore()
        else:
            raise ValueError(f"Unknown draft backend: {settings.draft_backend}")
        logger.info(f"Using {backend} draft store")
    return _draft_store
