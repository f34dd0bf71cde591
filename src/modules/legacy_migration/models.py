"""Tables of the old one-balance-per-semester fee model.

Read-only: kept only so their rows can be migrated into the per-item ledger.
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import BigInteger, Boolean, Date, ForeignKey, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.core.database.base import BaseModel


class FeeSchedule(BaseModel):
    """Fee breakdown of one program for one semester."""

    __tablename__ = "fee_schedules"

    semester: Mapped[str] = mapped_column(String(50), nullable=False)
    academic_year: Mapped[str] = mapped_column(String(20), nullable=False)
    program: Mapped[str] = mapped_column(String(200), nullable=False)
    tuition_fee: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=0)
    registration_fee: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=0)
    library_fee: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=0)
    laboratory_fee: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=0)
    other_fees: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=0)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)


class StudentBalance(BaseModel):
    """What a student owed on one fee schedule, as a single figure."""

    __tablename__ = "student_balances"

    student_number: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    fee_schedule_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("fee_schedules.id"), nullable=False
    )
    total_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    amount_paid: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=0)
    outstanding_balance: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)  # free text
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Relationships
    fee_schedule: Mapped["FeeSchedule"] = relationship("FeeSchedule")
