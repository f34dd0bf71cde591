from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field, computed_field

from src.shared.schemas import BaseSchema


class FeeBalancePayment(BaseModel):
    """Schema for applying a payment to a single balance."""

    amount_paid: Decimal = Field(..., gt=0)


class StudentFeeBalanceResponse(BaseSchema):
    """Schema for student fee balance response."""

    id: int
    student_number: str
    fee_structure_item_id: int
    total_amount: Decimal
    amount_paid: Decimal
    outstanding_balance: Decimal
    due_date: date
    status: str
    is_active: bool
    notes: str | None
    created_at: datetime
    updated_at: datetime


class AuditEntryResponse(BaseSchema):
    """One audit trail entry of a balance."""

    id: int
    actor: str | None
    action: str
    old_values: dict | None
    new_values: dict | None
    comment: str | None
    created_at: datetime


class StudentAdditionalFeeLine(BaseSchema):
    """Additional fee applied to a student, as shown in the summary."""

    id: int
    additional_fee_id: int
    amount: Decimal
    due_date: date
    status: str


class StudentFeeSummary(BaseModel):
    """Everything a student owes, across structures and additional fees."""

    student_number: str
    fee_balances: list[StudentFeeBalanceResponse]
    additional_fees: list[StudentAdditionalFeeLine]
    total_outstanding_balance: Decimal
    total_paid: Decimal
    next_payment_due: date


class StatusRefreshResult(BaseModel):
    """Result of the status-only sweep."""

    balances_examined: int
    statuses_changed: int

    @computed_field
    @property
    def updated(self) -> bool:
        return self.statuses_changed > 0


class FeeReport(BaseModel):
    """Outstanding fees overview."""

    academic_year: str | None = None
    semester: str | None = None
    active_fee_structures: int
    active_additional_fees: int
    students_with_outstanding_fees: int
    total_outstanding_amount: Decimal
    total_collected_amount: Decimal
