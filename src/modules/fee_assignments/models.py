from datetime import datetime

from sqlalchemy import BigInteger, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.core.database.base import BaseModel, utcnow
from src.modules.fee_catalog.models import FeeStructure


class StudentFeeAssignment(BaseModel):
    """
    A student bound to a fee structure for one academic period.

    Assignments are never edited; they are created (which generates the
    student's balances) and may be removed.
    """

    __tablename__ = "student_fee_assignments"

    student_number: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    fee_structure_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("fee_structures.id"), nullable=False, index=True
    )
    academic_year: Mapped[str] = mapped_column(String(20), nullable=False)
    semester: Mapped[str] = mapped_column(String(50), nullable=False)
    assigned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    assigned_by: Mapped[str] = mapped_column(String(100), nullable=False)

    # Relationships
    fee_structure: Mapped["FeeStructure"] = relationship("FeeStructure")

    __table_args__ = (
        UniqueConstraint(
            "student_number",
            "fee_structure_id",
            "academic_year",
            "semester",
            name="uq_student_fee_assignment_student_structure_period",
        ),
    )
