from datetime import date, datetime
from decimal import Decimal
from enum import StrEnum

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.core.database.base import BaseModel, utcnow
from src.modules.fee_balances.models import FeeBalanceStatus
from src.modules.fee_catalog.models import FeeFrequency


class FeeApplicability(StrEnum):
    """Who an additional fee reaches."""

    ALL = "All"
    PROGRAM = "Program"
    CLASS = "Class"
    INDIVIDUAL = "Individual"


class AdditionalFee(BaseModel):
    """
    Ad-hoc charge outside fee structures (trip, sports fee, penalty).

    Only the list matching ``applicability`` is meaningful; the others stay
    empty. Use ``targeting.target_from_fee`` to read the target.
    """

    __tablename__ = "additional_fees"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    frequency: Mapped[str] = mapped_column(
        String(20), nullable=False, default=FeeFrequency.ONE_TIME.value
    )
    applicability: Mapped[str] = mapped_column(
        String(20), nullable=False, default=FeeApplicability.ALL.value
    )
    applicable_programs: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    applicable_classes: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    applicable_students: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)
    created_by: Mapped[str] = mapped_column(String(100), nullable=False)

    # Relationships
    student_fees: Mapped[list["StudentAdditionalFee"]] = relationship(
        "StudentAdditionalFee", back_populates="additional_fee"
    )


class StudentAdditionalFee(BaseModel):
    """An additional fee applied to one student. Amount is a snapshot."""

    __tablename__ = "student_additional_fees"

    student_number: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    additional_fee_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("additional_fees.id"), nullable=False, index=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=FeeBalanceStatus.OUTSTANDING.value
    )
    assigned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    # Relationships
    additional_fee: Mapped["AdditionalFee"] = relationship(
        "AdditionalFee", back_populates="student_fees"
    )

    __table_args__ = (
        UniqueConstraint(
            "student_number", "additional_fee_id", name="uq_student_additional_fee_student_fee"
        ),
    )
