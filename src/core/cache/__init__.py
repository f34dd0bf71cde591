from src.core.cache.service import (
    BalanceCache,
    InMemoryBalanceCache,
    balance_cache,
    discard_pending_invalidations,
    get_balance_cache,
    invalidate_on_commit,
    run_pending_invalidations,
)

__all__ = [
    "BalanceCache",
    "InMemoryBalanceCache",
    "balance_cache",
    "discard_pending_invalidations",
    "get_balance_cache",
    "invalidate_on_commit",
    "run_pending_invalidations",
]
