"""API endpoints for the fee catalog."""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database.session import get_db
from src.core.dependencies import Actor
from src.modules.fee_catalog.schemas import (
    FeeCategoryCreate,
    FeeCategoryResponse,
    FeeCategoryUpdate,
    FeeStructureCreate,
    FeeStructureResponse,
    FeeStructureUpdate,
)
from src.modules.fee_catalog.service import FeeCatalogService
from src.shared.schemas.base import ApiResponse

router = APIRouter(prefix="/fees", tags=["Fee Catalog"])


# --- Fee Category Endpoints ---


@router.post(
    "/categories",
    response_model=ApiResponse[FeeCategoryResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_fee_category(
    data: FeeCategoryCreate,
    actor: Actor,
    db: AsyncSession = Depends(get_db),
):
    """Create a new fee category."""
    service = FeeCatalogService(db)
    category = await service.create_fee_category(data, actor)
    return ApiResponse(
        success=True,
        message="Fee category created successfully",
        data=FeeCategoryResponse.model_validate(category),
    )


@router.get(
    "/categories",
    response_model=ApiResponse[list[FeeCategoryResponse]],
)
async def list_fee_categories(
    include_inactive: bool = Query(False),
    db: AsyncSession = Depends(get_db),
):
    """List fee categories."""
    service = FeeCatalogService(db)
    categories = await service.list_fee_categories(include_inactive=include_inactive)
    return ApiResponse(
        success=True,
        data=[FeeCategoryResponse.model_validate(c) for c in categories],
    )


@router.get(
    "/categories/{category_id}",
    response_model=ApiResponse[FeeCategoryResponse],
)
async def get_fee_category(
    category_id: int,
    db: AsyncSession = Depends(get_db),
):
    """Get fee category by ID."""
    service = FeeCatalogService(db)
    category = await service.get_fee_category(category_id)
    return ApiResponse(success=True, data=FeeCategoryResponse.model_validate(category))


@router.patch(
    "/categories/{category_id}",
    response_model=ApiResponse[FeeCategoryResponse],
)
async def update_fee_category(
    category_id: int,
    data: FeeCategoryUpdate,
    actor: Actor,
    db: AsyncSession = Depends(get_db),
):
    """Update a fee category."""
    service = FeeCatalogService(db)
    category = await service.update_fee_category(category_id, data, actor)
    return ApiResponse(
        success=True,
        message="Fee category updated successfully",
        data=FeeCategoryResponse.model_validate(category),
    )


@router.delete(
    "/categories/{category_id}",
    response_model=ApiResponse[FeeCategoryResponse],
)
async def delete_fee_category(
    category_id: int,
    actor: Actor,
    db: AsyncSession = Depends(get_db),
):
    """Deactivate a fee category."""
    service = FeeCatalogService(db)
    category = await service.delete_fee_category(category_id, actor)
    return ApiResponse(
        success=True,
        message="Fee category deactivated",
        data=FeeCategoryResponse.model_validate(category),
    )


# --- Fee Structure Endpoints ---


@router.post(
    "/structures",
    response_model=ApiResponse[FeeStructureResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_fee_structure(
    data: FeeStructureCreate,
    actor: Actor,
    db: AsyncSession = Depends(get_db),
):
    """Create a fee structure with its items."""
    service = FeeCatalogService(db)
    structure = await service.create_fee_structure(data, actor)
    return ApiResponse(
        success=True,
        message="Fee structure created successfully",
        data=FeeStructureResponse.model_validate(structure),
    )


@router.get(
    "/structures",
    response_model=ApiResponse[list[FeeStructureResponse]],
)
async def list_fee_structures(
    include_inactive: bool = Query(False),
    academic_year: str | None = Query(None),
    semester: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """List fee structures, newest first."""
    service = FeeCatalogService(db)
    structures = await service.list_fee_structures(
        include_inactive=include_inactive,
        academic_year=academic_year,
        semester=semester,
    )
    return ApiResponse(
        success=True,
        data=[FeeStructureResponse.model_validate(s) for s in structures],
    )


@router.get(
    "/structures/{structure_id}",
    response_model=ApiResponse[FeeStructureResponse],
)
async def get_fee_structure(
    structure_id: int,
    db: AsyncSession = Depends(get_db),
):
    """Get fee structure with its items."""
    service = FeeCatalogService(db)
    structure = await service.get_fee_structure(structure_id)
    return ApiResponse(success=True, data=FeeStructureResponse.model_validate(structure))


@router.patch(
    "/structures/{structure_id}",
    response_model=ApiResponse[FeeStructureResponse],
)
async def update_fee_structure(
    structure_id: int,
    data: FeeStructureUpdate,
    actor: Actor,
    db: AsyncSession = Depends(get_db),
):
    """Update a fee structure. Passing ``items`` replaces the item list."""
    service = FeeCatalogService(db)
    structure = await service.update_fee_structure(structure_id, data, actor)
    return ApiResponse(
        success=True,
        message="Fee structure updated successfully",
        data=FeeStructureResponse.model_validate(structure),
    )


@router.delete(
    "/structures/{structure_id}",
    response_model=ApiResponse[FeeStructureResponse],
)
async def delete_fee_structure(
    structure_id: int,
    actor: Actor,
    db: AsyncSession = Depends(get_db),
):
    """Deactivate a fee structure. Issued balances are kept."""
    service = FeeCatalogService(db)
    structure = await service.delete_fee_structure(structure_id, actor)
    return ApiResponse(
        success=True,
        message="Fee structure deactivated",
        data=FeeStructureResponse.model_validate(structure),
    )


@router.post(
    "/structures/{structure_id}/reactivate",
    response_model=ApiResponse[FeeStructureResponse],
)
async def reactivate_fee_structure(
    structure_id: int,
    actor: Actor,
    db: AsyncSession = Depends(get_db),
):
    """Reactivate a deactivated fee structure."""
    service = FeeCatalogService(db)
    structure = await service.reactivate_fee_structure(structure_id, actor)
    return ApiResponse(
        success=True,
        message="Fee structure reactivated",
        data=FeeStructureResponse.model_validate(structure),
    )
