"""Payment record model.

Payment records are appended by the bank integration and are the single
source of truth for money actually received. The fee ledger never writes
them.
"""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Date, DateTime, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import Base, BigIntPK, utcnow


class PaymentRecord(Base):
    """One payment received for a student."""

    __tablename__ = "payment_records"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)

    student_number: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    payment_reference: Mapped[str] = mapped_column(
        String(100), nullable=False, unique=True
    )  # bank-provided reference
    amount_paid: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)

    date_received: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
