"""Per-student balance summary cache.

The summary of a student's fees is cheap to read and expensive to build, so it
is cached by student number with a short TTL. Every ledger mutation calls
``invalidate_on_commit`` for the affected students, which drops their entries
immediately and again once the session commits.
"""

import logging
import time
from typing import Any

from src.core.config import settings

logger = logging.getLogger(__name__)


class BalanceCache:
    """Interface of the balance summary cache. The base class caches nothing."""

    async def get_summary(self, student_number: str) -> Any | None:
        return None

    async def set_summary(self, student_number: str, summary: Any) -> None:
        return None

    async def invalidate_student(self, student_number: str) -> None:
        return None

    async def invalidate_students(self, student_numbers) -> None:
        for student_number in set(student_numbers):
            await self.invalidate_student(student_number)

    async def clear(self) -> None:
        return None


class InMemoryBalanceCache(BalanceCache):
    """Process-local TTL cache."""

    def __init__(self, ttl_seconds: float | None = None):
        self.ttl_seconds = (
            ttl_seconds if ttl_seconds is not None else settings.balance_cache_ttl_minutes * 60
        )
        self._entries: dict[str, tuple[float, Any]] = {}

    async def get_summary(self, student_number: str) -> Any | None:
        entry = self._entries.get(student_number)
        if entry is None:
            return None
        expires_at, summary = entry
        if expires_at <= time.monotonic():
            self._entries.pop(student_number, None)
            return None
        return summary

    async def set_summary(self, student_number: str, summary: Any) -> None:
        self._entries[student_number] = (time.monotonic() + self.ttl_seconds, summary)

    async def invalidate_student(self, student_number: str) -> None:
        if self._entries.pop(student_number, None) is not None:
            logger.debug("Invalidated cached balance summary for %s", student_number)

    async def clear(self) -> None:
        self._entries.clear()


# Session.info key collecting (cache, student numbers) to drop again after commit
PENDING_INVALIDATIONS = "stale_balance_summaries"

balance_cache: BalanceCache = InMemoryBalanceCache()


def get_balance_cache() -> BalanceCache:
    """Dependency returning the process-wide balance cache."""
    return balance_cache


async def invalidate_on_commit(db, cache: BalanceCache, student_numbers) -> None:
    """
    Drop cached summaries now and once more after ``db`` commits.

    A summary read by another request between this call and the commit would
    cache the pre-commit state; the second pass removes it.
    """
    student_numbers = set(student_numbers)
    if not student_numbers:
        return
    await cache.invalidate_students(student_numbers)
    db.info.setdefault(PENDING_INVALIDATIONS, []).append((cache, student_numbers))


async def run_pending_invalidations(db) -> None:
    """Called after a successful commit of ``db``."""
    for cache, student_numbers in db.info.pop(PENDING_INVALIDATIONS, []):
        await cache.invalidate_students(student_numbers)


def discard_pending_invalidations(db) -> None:
    """Called after a rollback of ``db``; the cached state is still correct."""
    db.info.pop(PENDING_INVALIDATIONS, None)
