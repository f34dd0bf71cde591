from datetime import date, datetime
from decimal import Decimal

from pydantic import Field, model_validator

from src.modules.additional_fees.targeting import AllStudents, FeeTarget
from src.modules.fee_catalog.models import FeeFrequency
from src.shared.schemas import BaseSchema


class AdditionalFeeCreate(BaseSchema):
    """Schema for creating an additional fee."""

    name: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    amount: Decimal = Field(..., gt=0)
    frequency: FeeFrequency = FeeFrequency.ONE_TIME
    target: FeeTarget = Field(default_factory=AllStudents)
    start_date: date | None = None
    end_date: date | None = None

    @model_validator(mode="after")
    def validate_dates(self) -> "AdditionalFeeCreate":
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        return self


class AdditionalFeeUpdate(BaseSchema):
    """Schema for updating an additional fee. Applied snapshots are not changed."""

    name: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = None
    amount: Decimal | None = Field(None, gt=0)
    frequency: FeeFrequency | None = None
    target: FeeTarget | None = None
    start_date: date | None = None
    end_date: date | None = None
    is_active: bool | None = None


class AdditionalFeeResponse(BaseSchema):
    """Schema for additional fee response."""

    id: int
    name: str
    description: str
    amount: Decimal
    frequency: str
    applicability: str
    applicable_programs: list[str]
    applicable_classes: list[str]
    applicable_students: list[str]
    start_date: date | None
    end_date: date | None
    is_active: bool
    created_by: str
    created_at: datetime


class StudentAdditionalFeeCreate(BaseSchema):
    """Schema for applying an additional fee to one student."""

    student_number: str = Field(..., min_length=1, max_length=50)


class StudentAdditionalFeeResponse(BaseSchema):
    """Schema for an additional fee applied to a student."""

    id: int
    student_number: str
    additional_fee_id: int
    amount: Decimal
    due_date: date
    status: str
    assigned_at: datetime
