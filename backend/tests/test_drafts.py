"""Tests for draft persistence backends."""

import json
from datetime import timedelta

import pytest
import pytest_asyncio
import redis.asyncio as redis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from admissions.database import Base
from admissions.middleware.exceptions import DraftSaveError
from admissions.services.documents import NEEDS_RESELECT
from admissions.services.drafts import (
    DatabaseDraftStore,
    MemoryDraftStore,
    RedisDraftStore,
    application_draft_key,
    decode_draft,
    encode_draft,
    renewal_draft_key,
)

from conftest import make_file


class FakeRedis:
    """Just enough of redis.asyncio.Redis for the draft store."""

    def __init__(self):
        self.values = {}
        self.ttls = {}

    async def setex(self, key, ttl, value):
        self.values[key] = value
        self.ttls[key] = ttl

    async def get(self, key):
        return self.values.get(key)

    async def delete(self, key):
        self.values.pop(key, None)


class BrokenRedis:
    async def setex(self, key, ttl, value):
        raise redis.ConnectionError("connection refused")

    async def get(self, key):
        raise redis.ConnectionError("connection refused")

    async def delete(self, key):
        raise redis.ConnectionError("connection refused")


@pytest.mark.unit
class TestDraftEncoding:
    """Test the stored JSON document."""

    def test_keys(self):
        assert application_draft_key("girls-ashram") == "application_draft_girls-ashram"
        assert application_draft_key("girls-ashram", "dev-42") == "application_draft_girls-ashram:dev-42"
        assert renewal_draft_key("alloc-1") == "renewal_draft_alloc-1"

    def test_files_become_metadata(self):
        raw = encode_draft({"name": "Asha", "marksheet": make_file("marksheet")}, 3)
        document = json.loads(raw)

        assert document["stepIndex"] == 3
        assert document["savedAt"]
        assert document["data"]["name"] == "Asha"
        assert document["data"]["marksheet"]["status"] == NEEDS_RESELECT
        assert document["data"]["marksheet"]["fileName"] == "marksheet.pdf"

    def test_unserializable_value(self):
        with pytest.raises(DraftSaveError):
            encode_draft({"bad": object()}, 0)

    @pytest.mark.parametrize("raw", ["not json", "[]", '{"stepIndex": 1}', '{"data": [], "stepIndex": 0}', '{"data": {}, "stepIndex": -1}'])
    def test_corrupt_drafts_are_a_miss(self, raw):
        assert decode_draft(raw, "k") is None

    def test_decode_lists_files_to_reselect(self):
        draft = decode_draft(encode_draft({"photo": make_file("photo"), "city": "Surat"}, 1))
        assert draft.files_to_reselect == ["photo"]
        assert draft.step_index == 1
        assert draft.saved_at is not None

    def test_naive_saved_at_read_as_utc(self):
        draft = decode_draft({"data": {}, "stepIndex": 0, "savedAt": "2026-10-19T08:30:00"})
        assert draft.saved_at.utcoffset() == timedelta(0)
        assert draft.saved_at.hour == 8


@pytest.mark.asyncio
class TestMemoryDraftStore:
    async def test_save_load_clear(self):
        store = MemoryDraftStore()
        assert await store.load("k") is None

        await store.save("k", {"a": 1}, 0)
        await store.save("k", {"a": 2}, 1)
        draft = await store.load("k")
        assert draft.data == {"a": 2}
        assert draft.step_index == 1

        await store.clear("k")
        assert await store.load("k") is None


@pytest.mark.asyncio
class TestRedisDraftStore:
    async def test_save_sets_ttl(self):
        client = FakeRedis()
        store = RedisDraftStore(client, ttl_seconds=120)
        await store.save("k", {"a": 1}, 2)

        assert client.ttls["k"] == 120
        draft = await store.load("k")
        assert draft.data == {"a": 1}
        assert draft.step_index == 2

        await store.clear("k")
        assert await store.load("k") is None

    async def test_unavailable_redis(self):
        store = RedisDraftStore(BrokenRedis(), ttl_seconds=60)
        with pytest.raises(DraftSaveError):
            await store.save("k", {"a": 1}, 0)
        assert await store.load("k") is None
        with pytest.raises(DraftSaveError):
            await store.clear("k")


@pytest.mark.integration
@pytest.mark.asyncio
class TestDatabaseDraftStore:
    """Test the SQL backend against an in-memory SQLite database."""

    @pytest_asyncio.fixture
    async def store(self):
        engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        yield DatabaseDraftStore(factory)
        await engine.dispose()

    async def test_last_write_wins(self, store):
        await store.save("application_draft_dharamshala", {"city": "Surat"}, 1)
        await store.save("application_draft_dharamshala", {"city": "Rajkot", "photo": make_file("photo")}, 4)

        draft = await store.load("application_draft_dharamshala")
        assert draft.step_index == 4
        assert draft.data["city"] == "Rajkot"
        assert draft.files_to_reselect == ["photo"]
        assert draft.saved_at is not None

    async def test_saved_at_is_utc_and_moves_on_update(self, store):
        await store.save("k", {"a": 1}, 0)
        first = (await store.load("k")).saved_at
        await store.save("k", {"a": 2}, 1)
        second = (await store.load("k")).saved_at

        assert first.tzinfo is not None
        assert second.utcoffset() == timedelta(0)
        assert second >= first

    async def test_clear(self, store):
        await store.save("k", {"a": 1}, 0)
        await store.clear("k")
        assert await store.load("k") is None
