from datetime import date
from decimal import Decimal
from enum import StrEnum

from sqlalchemy import BigInteger, Boolean, Date, ForeignKey, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.core.database.base import BaseModel
from src.modules.fee_catalog.models import FeeStructureItem


class FeeBalanceStatus(StrEnum):
    """Balance status, derived from amounts and due date."""

    OUTSTANDING = "Outstanding"  # nothing paid yet
    PARTIAL = "Partial"
    PAID = "Paid"
    OVERDUE = "Overdue"  # nothing paid and past due date


class StudentFeeBalance(BaseModel):
    """
    Ledger row: what one student owes for one fee structure item.

    ``outstanding_balance`` is always ``max(0, total_amount - amount_paid)``
    and ``status`` is computed by ``fee_balances.status.resolve_status``.
    """

    __tablename__ = "student_fee_balances"

    student_number: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    fee_structure_item_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("fee_structure_items.id"), nullable=False, index=True
    )

    total_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    amount_paid: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), nullable=False, default=Decimal("0.00")
    )
    outstanding_balance: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=FeeBalanceStatus.OUTSTANDING.value, index=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Relationships
    fee_structure_item: Mapped["FeeStructureItem"] = relationship("FeeStructureItem")

    __table_args__ = (
        UniqueConstraint(
            "student_number", "fee_structure_item_id", name="uq_student_fee_balance_student_item"
        ),
    )
