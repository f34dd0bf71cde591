import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.exceptions import AppException
from src.shared.schemas import BatchFailure, BatchResult

logger = logging.getLogger(__name__)

ItemT = TypeVar("ItemT")
ResultT = TypeVar("ResultT")

# Returned by an operation to mark the item as skipped rather than processed
SKIPPED = object()


def _error_message(exc: Exception) -> str:
    if isinstance(exc, AppException):
        return exc.message
    if isinstance(exc, IntegrityError):
        return "Record already exists"
    return str(exc) or type(exc).__name__


async def run_batch(
    db: AsyncSession,
    items: Iterable[ItemT],
    operation: Callable[[ItemT], Awaitable[ResultT]],
    *,
    job: str,
    describe: Callable[[ItemT], str] = str,
    result: BatchResult | None = None,
) -> BatchResult:
    """
    Run ``operation`` for each item sequentially, each inside its own savepoint.

    Any error raised by one item rolls back only that item's writes and is
    recorded in the result; the remaining items still run. Cancellation is
    not an error and propagates.
    """
    result = result if result is not None else BatchResult()

    for item in items:
        label = describe(item)
        try:
            async with db.begin_nested():
                value = await operation(item)
        except (AppException, IntegrityError) as exc:
            message = _error_message(exc)
            logger.warning("%s: failed for %s: %s", job, label, message)
            result.failed.append(BatchFailure(item=label, error=message))
            continue
        except Exception as exc:
            message = _error_message(exc)
            logger.warning("%s: unexpected error for %s: %s", job, label, message, exc_info=True)
            result.failed.append(BatchFailure(item=label, error=message))
            continue

        if value is SKIPPED:
            result.skipped.append(label)
        else:
            result.succeeded.append(value)

    logger.info(
        "%s finished: %d succeeded, %d skipped, %d failed",
        job,
        result.succeeded_count,
        result.skipped_count,
        result.failed_count,
    )
    return result
