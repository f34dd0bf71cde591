from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from src.shared.schemas import BaseSchema


class FeeAssignmentCreate(BaseSchema):
    """
    Schema for assigning a fee structure to one student.

    The period defaults to the structure's own academic year and semester.
    """

    student_number: str = Field(..., min_length=1, max_length=50)
    fee_structure_id: int
    academic_year: str | None = Field(None, min_length=1, max_length=20)
    semester: str | None = Field(None, min_length=1, max_length=50)


class BulkFeeAssignmentCreate(BaseSchema):
    """
    Schema for assigning a fee structure to many students.

    Name students directly, or whole programs; with neither, every student
    in the directory is targeted.
    """

    fee_structure_id: int
    student_numbers: list[str] = Field(default_factory=list)
    programs: list[str] = Field(default_factory=list)
    academic_year: str | None = Field(None, min_length=1, max_length=20)
    semester: str | None = Field(None, min_length=1, max_length=50)


class StudentFeeAssignmentResponse(BaseSchema):
    """Schema for fee assignment response."""

    id: int
    student_number: str
    fee_structure_id: int
    academic_year: str
    semester: str
    assigned_at: datetime
    assigned_by: str
    balances_created: int = 0


class AssignToAllResult(BaseModel):
    """Outcome of assigning one structure to every student."""

    fee_structure_id: int
    total_assigned: int
    outstanding_balances_added: int
    total_outstanding_amount: Decimal
