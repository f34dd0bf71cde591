from datetime import date
from decimal import Decimal
from enum import StrEnum

from sqlalchemy import BigInteger, Boolean, Date, ForeignKey, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.core.database.base import BaseModel


class FeeCategoryType(StrEnum):
    """Fee category type."""

    STANDARD = "Standard"  # tuition, library, laboratory
    ADDITIONAL = "Additional"  # trips, sports


class FeeFrequency(StrEnum):
    """How often a fee is charged."""

    ONE_TIME = "OneTime"
    RECURRING = "Recurring"


class FeeCategory(BaseModel):
    """
    Reusable kind of charge (e.g. Tuition, Library).

    Categories are never hard-deleted: once an item refers to one it stays
    for history, deletion only clears ``is_active``.
    """

    __tablename__ = "fee_categories"

    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=FeeCategoryType.STANDARD.value
    )
    frequency: Mapped[str] = mapped_column(
        String(20), nullable=False, default=FeeFrequency.ONE_TIME.value
    )
    is_required: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class FeeStructure(BaseModel):
    """
    Named bundle of charges for one academic period.

    A structure owns its items: replacing or clearing the item list deletes
    the removed items.
    """

    __tablename__ = "fee_structures"

    name: Mapped[str] = mapped_column(String(200), nullable=False)  # e.g. "Standard 2025"
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    academic_year: Mapped[str] = mapped_column(String(20), nullable=False, index=True)  # "2024-2025"
    semester: Mapped[str] = mapped_column(String(50), nullable=False)  # "Fall 2025"
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)

    # Relationships
    items: Mapped[list["FeeStructureItem"]] = relationship(
        "FeeStructureItem",
        back_populates="fee_structure",
        cascade="all, delete-orphan",
        order_by="FeeStructureItem.id",
    )

    __table_args__ = (
        UniqueConstraint("academic_year", "semester", "name", name="uq_fee_structure_period_name"),
    )

    @property
    def total_amount(self) -> Decimal:
        return sum((item.amount for item in self.items), Decimal("0.00"))


class FeeStructureItem(BaseModel):
    """One charge line of a fee structure."""

    __tablename__ = "fee_structure_items"

    fee_structure_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("fee_structures.id", ondelete="CASCADE"), nullable=False, index=True
    )
    fee_category_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("fee_categories.id"), nullable=False, index=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    is_required: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Relationships
    fee_structure: Mapped["FeeStructure"] = relationship("FeeStructure", back_populates="items")
    fee_category: Mapped["FeeCategory"] = relationship("FeeCategory")

    @property
    def fee_category_name(self) -> str | None:
        # Requires fee_category to be eager-loaded
        return self.fee_category.name if self.fee_category else None
