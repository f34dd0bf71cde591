from datetime import date, datetime
from decimal import Decimal

from pydantic import Field, field_validator

from src.modules.fee_catalog.models import FeeCategoryType, FeeFrequency
from src.shared.schemas import BaseSchema


def _non_negative(v: Decimal) -> Decimal:
    if v < 0:
        raise ValueError("Amount must be non-negative")
    return v


# --- Fee Category Schemas ---

class FeeCategoryCreate(BaseSchema):
    """Schema for creating a fee category."""

    name: str = Field(..., min_length=1, max_length=100)
    description: str = ""
    type: FeeCategoryType = FeeCategoryType.STANDARD
    frequency: FeeFrequency = FeeFrequency.ONE_TIME
    is_required: bool = True


class FeeCategoryUpdate(BaseSchema):
    """Schema for updating a fee category."""

    name: str | None = Field(None, min_length=1, max_length=100)
    description: str | None = None
    type: FeeCategoryType | None = None
    frequency: FeeFrequency | None = None
    is_required: bool | None = None
    is_active: bool | None = None


class FeeCategoryResponse(BaseSchema):
    """Schema for fee category response."""

    id: int
    name: str
    description: str
    type: str
    frequency: str
    is_required: bool
    is_active: bool


# --- Fee Structure Schemas ---

class FeeStructureItemCreate(BaseSchema):
    """One item of a fee structure being created."""

    fee_category_id: int
    amount: Decimal
    is_required: bool = True
    description: str = ""
    due_date: date | None = None

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: Decimal) -> Decimal:
        return _non_negative(v)


class FeeStructureCreate(BaseSchema):
    """Schema for creating a fee structure together with its items."""

    name: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    academic_year: str = Field(..., min_length=1, max_length=20)
    semester: str = Field(..., min_length=1, max_length=50)
    is_active: bool = True
    items: list[FeeStructureItemCreate] = Field(default_factory=list)


class FeeStructureUpdate(BaseSchema):
    """
    Schema for updating a fee structure.

    ``items`` replaces the whole item list when given; omit it to keep the
    current items.
    """

    name: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = None
    academic_year: str | None = Field(None, min_length=1, max_length=20)
    semester: str | None = Field(None, min_length=1, max_length=50)
    is_active: bool | None = None
    items: list[FeeStructureItemCreate] | None = None


class FeeStructureItemResponse(BaseSchema):
    """Schema for fee structure item response."""

    id: int
    fee_structure_id: int
    fee_category_id: int
    fee_category_name: str | None = None
    amount: Decimal
    is_required: bool
    description: str
    due_date: date | None


class FeeStructureResponse(BaseSchema):
    """Schema for fee structure response."""

    id: int
    name: str
    description: str
    academic_year: str
    semester: str
    is_active: bool
    total_amount: Decimal
    items: list[FeeStructureItemResponse]
    created_at: datetime
    updated_at: datetime
