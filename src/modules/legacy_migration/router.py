"""API endpoints for migrating legacy balances."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.cache import BalanceCache, get_balance_cache
from src.core.database.session import get_db
from src.core.dependencies import Actor
from src.modules.legacy_migration.schemas import MigrationResult
from src.modules.legacy_migration.service import LegacyMigrationService
from src.shared.schemas.base import ApiResponse

router = APIRouter(prefix="/fees", tags=["Legacy Migration"])


@router.post(
    "/migrate-legacy-balances",
    response_model=ApiResponse[MigrationResult],
)
async def migrate_legacy_balances(
    actor: Actor,
    db: AsyncSession = Depends(get_db),
    cache: BalanceCache = Depends(get_balance_cache),
):
    """Move legacy per-semester balances into the per-item ledger."""
    service = LegacyMigrationService(db, cache)
    result = await service.migrate_old_student_balances(actor)
    return ApiResponse(
        success=result.success,
        message=(
            f"Migrated {result.migrated} balances, "
            f"{result.skipped} skipped, {result.failed_count} failed"
        ),
        data=result,
    )
