"""API endpoints for fee structure assignments."""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.cache import BalanceCache, get_balance_cache
from src.core.database.session import get_db
from src.core.dependencies import Actor
from src.modules.fee_assignments.schemas import (
    AssignToAllResult,
    BulkFeeAssignmentCreate,
    FeeAssignmentCreate,
    StudentFeeAssignmentResponse,
)
from src.modules.fee_assignments.service import FeeAssignmentService
from src.shared.schemas import BatchResult
from src.shared.schemas.base import ApiResponse

router = APIRouter(prefix="/fees", tags=["Fee Assignments"])


@router.post(
    "/assignments",
    response_model=ApiResponse[StudentFeeAssignmentResponse],
    status_code=status.HTTP_201_CREATED,
)
async def assign_fee_structure(
    data: FeeAssignmentCreate,
    actor: Actor,
    db: AsyncSession = Depends(get_db),
    cache: BalanceCache = Depends(get_balance_cache),
):
    """Assign a fee structure to one student and generate their balances."""
    service = FeeAssignmentService(db, cache)
    assignment, balances = await service.assign_fee_structure_to_student(
        data.student_number,
        data.fee_structure_id,
        academic_year=data.academic_year,
        semester=data.semester,
        assigned_by=actor,
    )
    response = StudentFeeAssignmentResponse.model_validate(assignment)
    response.balances_created = len(balances)
    return ApiResponse(
        success=True,
        message="Fee structure assigned successfully",
        data=response,
    )


@router.post(
    "/assignments/bulk",
    response_model=ApiResponse[BatchResult[StudentFeeAssignmentResponse]],
)
async def bulk_assign_fee_structure(
    data: BulkFeeAssignmentCreate,
    actor: Actor,
    db: AsyncSession = Depends(get_db),
    cache: BalanceCache = Depends(get_balance_cache),
):
    """Assign a fee structure to many students. Failures are reported per student."""
    service = FeeAssignmentService(db, cache)
    result = await service.bulk_assign_fee_structure(data, assigned_by=actor)
    return ApiResponse(
        success=True,
        message=f"Assigned to {result.succeeded_count} students, {result.failed_count} failed",
        data=result,
    )


@router.post(
    "/structures/{structure_id}/assign-all",
    response_model=ApiResponse[AssignToAllResult],
)
async def assign_fee_structure_to_all(
    structure_id: int,
    actor: Actor,
    db: AsyncSession = Depends(get_db),
    cache: BalanceCache = Depends(get_balance_cache),
):
    """Assign a fee structure to every student not yet assigned to it."""
    service = FeeAssignmentService(db, cache)
    result = await service.assign_fee_structure_to_all(structure_id, assigned_by=actor)
    return ApiResponse(
        success=True,
        message=f"Assigned fee structure to {result.total_assigned} students",
        data=result,
    )


@router.delete(
    "/assignments/{assignment_id}",
    response_model=ApiResponse[None],
)
async def remove_fee_assignment(
    assignment_id: int,
    actor: Actor,
    db: AsyncSession = Depends(get_db),
):
    """Remove an assignment. Its balances are kept."""
    service = FeeAssignmentService(db)
    await service.remove_fee_assignment(assignment_id, actor)
    return ApiResponse(success=True, message="Fee assignment removed", data=None)


@router.get(
    "/students/{student_number}/assignments",
    response_model=ApiResponse[list[StudentFeeAssignmentResponse]],
)
async def list_student_assignments(
    student_number: str,
    db: AsyncSession = Depends(get_db),
):
    """Fee structures assigned to a student, newest first."""
    service = FeeAssignmentService(db)
    assignments = await service.list_student_assignments(student_number)
    return ApiResponse(
        success=True,
        data=[StudentFeeAssignmentResponse.model_validate(a) for a in assignments],
    )
