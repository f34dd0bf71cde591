"""Student directory model.

Students are owned by the registry; the fee ledger only reads them.
"""

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import BaseModel


class Student(BaseModel):
    """Student enrolled at the university."""

    __tablename__ = "students"

    student_number: Mapped[str] = mapped_column(
        String(50), nullable=False, unique=True, index=True
    )
    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    program: Mapped[str] = mapped_column(
        String(200), nullable=False, index=True
    )  # e.g. "Computer Science"
    class_name: Mapped[str | None] = mapped_column(
        String(100), nullable=True, index=True
    )  # cohort / class, e.g. "CS-2025A"
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)
