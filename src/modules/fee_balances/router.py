"""API endpoints for student fee balances."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.cache import BalanceCache, get_balance_cache
from src.core.database.session import get_db
from src.core.dependencies import Actor
from src.modules.fee_balances.models import FeeBalanceStatus
from src.modules.fee_balances.schemas import (
    AuditEntryResponse,
    FeeBalancePayment,
    FeeReport,
    StatusRefreshResult,
    StudentFeeBalanceResponse,
    StudentFeeSummary,
)
from src.modules.fee_balances.service import FeeBalanceService
from src.shared.schemas.base import ApiResponse

router = APIRouter(prefix="/fees", tags=["Fee Balances"])


@router.get(
    "/balances",
    response_model=ApiResponse[list[StudentFeeBalanceResponse]],
)
async def list_balances_by_status(
    status: FeeBalanceStatus = Query(...),
    db: AsyncSession = Depends(get_db),
    cache: BalanceCache = Depends(get_balance_cache),
):
    """List balances in a given status."""
    service = FeeBalanceService(db, cache)
    balances = await service.list_balances_by_status(status)
    return ApiResponse(
        success=True,
        data=[StudentFeeBalanceResponse.model_validate(b) for b in balances],
    )


@router.post(
    "/balances/refresh-statuses",
    response_model=ApiResponse[StatusRefreshResult],
)
async def refresh_balance_statuses(
    db: AsyncSession = Depends(get_db),
    cache: BalanceCache = Depends(get_balance_cache),
):
    """Recompute the status of every balance from its stored amounts and due date."""
    service = FeeBalanceService(db, cache)
    result = await service.update_fee_balance_statuses()
    return ApiResponse(
        success=True,
        message=f"{result.statuses_changed} of {result.balances_examined} statuses changed",
        data=result,
    )


@router.get(
    "/balances/{balance_id}",
    response_model=ApiResponse[StudentFeeBalanceResponse],
)
async def get_fee_balance(
    balance_id: int,
    db: AsyncSession = Depends(get_db),
    cache: BalanceCache = Depends(get_balance_cache),
):
    """Get fee balance by ID."""
    service = FeeBalanceService(db, cache)
    balance = await service.get_fee_balance(balance_id)
    return ApiResponse(success=True, data=StudentFeeBalanceResponse.model_validate(balance))


@router.post(
    "/balances/{balance_id}/payments",
    response_model=ApiResponse[StudentFeeBalanceResponse],
)
async def apply_payment(
    balance_id: int,
    data: FeeBalancePayment,
    actor: Actor,
    db: AsyncSession = Depends(get_db),
    cache: BalanceCache = Depends(get_balance_cache),
):
    """Apply a payment amount to one balance."""
    service = FeeBalanceService(db, cache)
    balance = await service.update_student_fee_balance(balance_id, data.amount_paid, actor)
    return ApiResponse(
        success=True,
        message="Payment applied",
        data=StudentFeeBalanceResponse.model_validate(balance),
    )


@router.get(
    "/balances/{balance_id}/history",
    response_model=ApiResponse[list[AuditEntryResponse]],
)
async def get_balance_history(
    balance_id: int,
    db: AsyncSession = Depends(get_db),
    cache: BalanceCache = Depends(get_balance_cache),
):
    """Audit trail of one balance, oldest first."""
    service = FeeBalanceService(db, cache)
    entries = await service.list_balance_history(balance_id)
    return ApiResponse(
        success=True,
        data=[AuditEntryResponse.model_validate(e) for e in entries],
    )


@router.get(
    "/students/outstanding",
    response_model=ApiResponse[list[StudentFeeSummary]],
)
async def list_students_with_outstanding_fees(
    db: AsyncSession = Depends(get_db),
    cache: BalanceCache = Depends(get_balance_cache),
):
    """Students with Outstanding or Overdue balances."""
    service = FeeBalanceService(db, cache)
    return ApiResponse(success=True, data=await service.list_students_with_outstanding_fees())


@router.get(
    "/students/overdue",
    response_model=ApiResponse[list[StudentFeeSummary]],
)
async def list_students_with_overdue_fees(
    db: AsyncSession = Depends(get_db),
    cache: BalanceCache = Depends(get_balance_cache),
):
    """Students with Overdue balances."""
    service = FeeBalanceService(db, cache)
    return ApiResponse(success=True, data=await service.list_students_with_overdue_fees())


@router.get(
    "/students/{student_number}/balances",
    response_model=ApiResponse[list[StudentFeeBalanceResponse]],
)
async def list_student_balances(
    student_number: str,
    db: AsyncSession = Depends(get_db),
    cache: BalanceCache = Depends(get_balance_cache),
):
    """All balances of a student, by due date."""
    service = FeeBalanceService(db, cache)
    balances = await service.list_student_balances(student_number)
    return ApiResponse(
        success=True,
        data=[StudentFeeBalanceResponse.model_validate(b) for b in balances],
    )


@router.post(
    "/students/{student_number}/balances/recalculate",
    response_model=ApiResponse[list[StudentFeeBalanceResponse]],
)
async def recalculate_student_balances(
    student_number: str,
    db: AsyncSession = Depends(get_db),
    cache: BalanceCache = Depends(get_balance_cache),
):
    """Re-derive outstanding amounts and statuses of a student's balances."""
    service = FeeBalanceService(db, cache)
    changed = await service.recalculate_student_balances(student_number)
    balances = await service.list_student_balances(student_number)
    return ApiResponse(
        success=True,
        message=f"{changed} balances updated",
        data=[StudentFeeBalanceResponse.model_validate(b) for b in balances],
    )


@router.get(
    "/students/{student_number}/summary",
    response_model=ApiResponse[StudentFeeSummary],
)
async def get_student_fee_summary(
    student_number: str,
    db: AsyncSession = Depends(get_db),
    cache: BalanceCache = Depends(get_balance_cache),
):
    """Everything a student owes."""
    service = FeeBalanceService(db, cache)
    return ApiResponse(success=True, data=await service.get_student_fee_summary(student_number))


@router.get(
    "/reports/outstanding",
    response_model=ApiResponse[FeeReport],
)
async def get_fee_report(
    academic_year: str | None = Query(None),
    semester: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
    cache: BalanceCache = Depends(get_balance_cache),
):
    """Outstanding fees report, optionally for one period."""
    service = FeeBalanceService(db, cache)
    report = await service.get_fee_report(academic_year=academic_year, semester=semester)
    return ApiResponse(success=True, data=report)
