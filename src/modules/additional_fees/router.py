"""API endpoints for additional fees."""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.cache import BalanceCache, get_balance_cache
from src.core.database.session import get_db
from src.core.dependencies import Actor
from src.modules.additional_fees.schemas import (
    AdditionalFeeCreate,
    AdditionalFeeResponse,
    AdditionalFeeUpdate,
    StudentAdditionalFeeCreate,
    StudentAdditionalFeeResponse,
)
from src.modules.additional_fees.service import AdditionalFeeService
from src.shared.schemas import BatchResult
from src.shared.schemas.base import ApiResponse

router = APIRouter(prefix="/fees", tags=["Additional Fees"])


@router.post(
    "/additional",
    response_model=ApiResponse[AdditionalFeeResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_additional_fee(
    data: AdditionalFeeCreate,
    actor: Actor,
    db: AsyncSession = Depends(get_db),
):
    """Create a new additional fee."""
    service = AdditionalFeeService(db)
    fee = await service.create_additional_fee(data, actor)
    return ApiResponse(
        success=True,
        message="Additional fee created successfully",
        data=AdditionalFeeResponse.model_validate(fee),
    )


@router.get(
    "/additional",
    response_model=ApiResponse[list[AdditionalFeeResponse]],
)
async def list_additional_fees(
    include_inactive: bool = Query(False),
    db: AsyncSession = Depends(get_db),
):
    """List additional fees."""
    service = AdditionalFeeService(db)
    fees = await service.list_additional_fees(include_inactive=include_inactive)
    return ApiResponse(
        success=True,
        data=[AdditionalFeeResponse.model_validate(f) for f in fees],
    )


@router.get(
    "/additional/{fee_id}",
    response_model=ApiResponse[AdditionalFeeResponse],
)
async def get_additional_fee(
    fee_id: int,
    db: AsyncSession = Depends(get_db),
):
    """Get additional fee by ID."""
    service = AdditionalFeeService(db)
    fee = await service.get_additional_fee(fee_id)
    return ApiResponse(success=True, data=AdditionalFeeResponse.model_validate(fee))


@router.patch(
    "/additional/{fee_id}",
    response_model=ApiResponse[AdditionalFeeResponse],
)
async def update_additional_fee(
    fee_id: int,
    data: AdditionalFeeUpdate,
    actor: Actor,
    db: AsyncSession = Depends(get_db),
):
    """Update an additional fee."""
    service = AdditionalFeeService(db)
    fee = await service.update_additional_fee(fee_id, data, actor)
    return ApiResponse(
        success=True,
        message="Additional fee updated successfully",
        data=AdditionalFeeResponse.model_validate(fee),
    )


@router.delete(
    "/additional/{fee_id}",
    response_model=ApiResponse[AdditionalFeeResponse],
)
async def delete_additional_fee(
    fee_id: int,
    actor: Actor,
    db: AsyncSession = Depends(get_db),
):
    """Deactivate an additional fee."""
    service = AdditionalFeeService(db)
    fee = await service.delete_additional_fee(fee_id, actor)
    return ApiResponse(
        success=True,
        message="Additional fee deactivated",
        data=AdditionalFeeResponse.model_validate(fee),
    )


@router.post(
    "/additional/{fee_id}/apply",
    response_model=ApiResponse[BatchResult[StudentAdditionalFeeResponse]],
)
async def apply_additional_fee(
    fee_id: int,
    actor: Actor,
    db: AsyncSession = Depends(get_db),
    cache: BalanceCache = Depends(get_balance_cache),
):
    """Apply an additional fee to every student it targets."""
    service = AdditionalFeeService(db, cache)
    result = await service.apply_additional_fee_to_students(fee_id, actor)
    return ApiResponse(
        success=True,
        message=(
            f"Applied to {result.succeeded_count} students, "
            f"{result.skipped_count} skipped, {result.failed_count} failed"
        ),
        data=result,
    )


@router.post(
    "/additional/{fee_id}/students",
    response_model=ApiResponse[StudentAdditionalFeeResponse],
    status_code=status.HTTP_201_CREATED,
)
async def assign_additional_fee_to_student(
    fee_id: int,
    data: StudentAdditionalFeeCreate,
    actor: Actor,
    db: AsyncSession = Depends(get_db),
    cache: BalanceCache = Depends(get_balance_cache),
):
    """Apply an additional fee to one student."""
    service = AdditionalFeeService(db, cache)
    student_fee = await service.assign_additional_fee_to_student(
        data.student_number, fee_id, actor
    )
    return ApiResponse(
        success=True,
        message="Additional fee applied",
        data=StudentAdditionalFeeResponse.model_validate(student_fee),
    )


@router.get(
    "/students/{student_number}/additional",
    response_model=ApiResponse[list[StudentAdditionalFeeResponse]],
)
async def list_student_additional_fees(
    student_number: str,
    db: AsyncSession = Depends(get_db),
):
    """Additional fees applied to a student."""
    service = AdditionalFeeService(db)
    fees = await service.list_student_additional_fees(student_number)
    return ApiResponse(
        success=True,
        data=[StudentAdditionalFeeResponse.model_validate(f) for f in fees],
    )


@router.delete(
    "/student-additional-fees/{student_fee_id}",
    response_model=ApiResponse[None],
)
async def remove_additional_fee_from_student(
    student_fee_id: int,
    actor: Actor,
    db: AsyncSession = Depends(get_db),
    cache: BalanceCache = Depends(get_balance_cache),
):
    """Remove an additional fee from a student."""
    service = AdditionalFeeService(db, cache)
    await service.remove_additional_fee_from_student(student_fee_id, actor)
    return ApiResponse(success=True, message="Additional fee removed", data=None)
