import time

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

import src.core.database.session as session_module
from src.core.cache import (
    BalanceCache,
    InMemoryBalanceCache,
    discard_pending_invalidations,
    invalidate_on_commit,
    run_pending_invalidations,
)
from src.core.cache.service import PENDING_INVALIDATIONS
from src.core.config import settings


class TestInMemoryBalanceCache:
    """Tests for the per-student summary cache."""

    async def test_set_and_get(self):
        cache = InMemoryBalanceCache(ttl_seconds=60)
        await cache.set_summary("S1", {"total": "10.00"})

        assert await cache.get_summary("S1") == {"total": "10.00"}
        assert await cache.get_summary("S2") is None

    async def test_invalidate_student(self):
        cache = InMemoryBalanceCache(ttl_seconds=60)
        await cache.set_summary("S1", "one")
        await cache.set_summary("S2", "two")

        await cache.invalidate_student("S1")

        assert await cache.get_summary("S1") is None
        assert await cache.get_summary("S2") == "two"

    async def test_invalidate_students_tolerates_unknown_and_repeats(self):
        cache = InMemoryBalanceCache(ttl_seconds=60)
        await cache.set_summary("S1", "one")

        await cache.invalidate_students(["S1", "S1", "unknown"])

        assert await cache.get_summary("S1") is None

    async def test_entries_expire(self, monkeypatch):
        cache = InMemoryBalanceCache(ttl_seconds=10)
        now = time.monotonic()
        monkeypatch.setattr(time, "monotonic", lambda: now)
        await cache.set_summary("S1", "one")

        monkeypatch.setattr(time, "monotonic", lambda: now + 11)
        assert await cache.get_summary("S1") is None

    def test_default_ttl_from_settings(self):
        cache = InMemoryBalanceCache()
        assert cache.ttl_seconds == settings.balance_cache_ttl_minutes * 60

    async def test_clear(self):
        cache = InMemoryBalanceCache(ttl_seconds=60)
        await cache.set_summary("S1", "one")
        await cache.clear()
        assert await cache.get_summary("S1") is None


class TestNullBalanceCache:
    async def test_base_cache_stores_nothing(self):
        cache = BalanceCache()
        await cache.set_summary("S1", "one")
        assert await cache.get_summary("S1") is None


class TestInvalidateOnCommit:
    """Tests for dropping summaries again once the session commits."""

    async def test_drops_now_and_after_commit(self, db_session: AsyncSession, cache):
        await cache.set_summary("S1", "before")

        await invalidate_on_commit(db_session, cache, ["S1", "S1"])
        assert await cache.get_summary("S1") is None

        # Another request re-caches the pre-commit state
        await cache.set_summary("S1", "stale")
        await run_pending_invalidations(db_session)

        assert await cache.get_summary("S1") is None
        assert PENDING_INVALIDATIONS not in db_session.info

    async def test_discard_keeps_cached_state(self, db_session: AsyncSession, cache):
        await invalidate_on_commit(db_session, cache, ["S1"])
        await cache.set_summary("S1", "current")

        discard_pending_invalidations(db_session)
        await run_pending_invalidations(db_session)

        assert await cache.get_summary("S1") == "current"

    async def test_nothing_to_invalidate(self, db_session: AsyncSession, cache):
        await invalidate_on_commit(db_session, cache, [])
        assert PENDING_INVALIDATIONS not in db_session.info


class TestGetDbInvalidation:
    """get_db runs pending invalidations on commit and drops them on rollback."""

    @pytest.fixture
    def patched_session(self, test_engine, monkeypatch):
        factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)
        monkeypatch.setattr(session_module, "async_session", factory)

    async def test_commit_runs_pending(self, patched_session, cache):
        db_gen = session_module.get_db()
        db = await db_gen.__anext__()
        await invalidate_on_commit(db, cache, ["S1"])
        await cache.set_summary("S1", "stale")

        with pytest.raises(StopAsyncIteration):
            await db_gen.__anext__()

        assert await cache.get_summary("S1") is None

    async def test_rollback_discards_pending(self, patched_session, cache):
        db_gen = session_module.get_db()
        db = await db_gen.__anext__()
        await invalidate_on_commit(db, cache, ["S1"])
        await cache.set_summary("S1", "current")

        with pytest.raises(RuntimeError):
            await db_gen.athrow(RuntimeError("request failed"))

        assert await cache.get_summary("S1") == "current"
        assert PENDING_INVALIDATIONS not in db.info
