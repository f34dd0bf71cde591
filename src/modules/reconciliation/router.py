"""API endpoints for balance reconciliation."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.cache import BalanceCache, get_balance_cache
from src.core.database.session import get_db
from src.core.dependencies import Actor
from src.modules.reconciliation.schemas import ReconciliationResult
from src.modules.reconciliation.service import ReconciliationService
from src.modules.reconciliation.strategy import FlatTotalPaidStrategy
from src.shared.schemas.base import ApiResponse

router = APIRouter(prefix="/fees", tags=["Reconciliation"])


@router.post(
    "/reconcile",
    response_model=ApiResponse[ReconciliationResult],
)
async def reconcile_fee_balances(
    actor: Actor,
    strict: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    cache: BalanceCache = Depends(get_balance_cache),
):
    """Reconcile every balance against the recorded payments."""
    service = ReconciliationService(db, FlatTotalPaidStrategy(strict=strict), cache)
    result = await service.reconcile_student_fee_balances(actor)
    return ApiResponse(
        success=True,
        message=f"{result.balances_updated} of {result.balances_examined} balances updated",
        data=result,
    )
