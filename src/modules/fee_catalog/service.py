from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from src.core.audit import AuditAction, AuditService
from src.core.database import utcnow
from src.core.exceptions import DuplicateError, NotFoundError, ValidationError
from src.modules.fee_balances.models import StudentFeeBalance
from src.modules.fee_catalog.models import FeeCategory, FeeStructure, FeeStructureItem
from src.modules.fee_catalog.schemas import (
    FeeCategoryCreate,
    FeeCategoryUpdate,
    FeeStructureCreate,
    FeeStructureItemCreate,
    FeeStructureUpdate,
)
from src.shared.utils.money import round_money


class FeeCatalogService:
    """Service for fee categories and fee structures."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditService(db)

    # --- Fee Category Methods ---

    async def get_fee_category(self, category_id: int) -> FeeCategory:
        result = await self.db.execute(select(FeeCategory).where(FeeCategory.id == category_id))
        category = result.scalar_one_or_none()
        if not category:
            raise NotFoundError("FeeCategory", category_id)
        return category

    async def find_fee_category_by_name(self, name: str) -> FeeCategory | None:
        result = await self.db.execute(select(FeeCategory).where(FeeCategory.name == name))
        return result.scalar_one_or_none()

    async def list_fee_categories(self, include_inactive: bool = False) -> list[FeeCategory]:
        stmt = select(FeeCategory).order_by(FeeCategory.name)
        if not include_inactive:
            stmt = stmt.where(FeeCategory.is_active == True)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def create_fee_category(self, data: FeeCategoryCreate, actor: str) -> FeeCategory:
        """Create a fee category. Names are unique."""
        if await self.find_fee_category_by_name(data.name):
            raise DuplicateError("FeeCategory", "name", data.name)

        category = FeeCategory(
            name=data.name,
            description=data.description,
            type=data.type.value,
            frequency=data.frequency.value,
            is_required=data.is_required,
            is_active=True,
        )
        self.db.add(category)
        await self.db.flush()

        await self.audit.log(
            action=AuditAction.CREATE,
            entity_type="FeeCategory",
            entity_id=category.id,
            actor=actor,
            entity_identifier=category.name,
            new_values={"type": category.type, "frequency": category.frequency},
        )
        return category

    async def update_fee_category(
        self, category_id: int, data: FeeCategoryUpdate, actor: str
    ) -> FeeCategory:
        category = await self.get_fee_category(category_id)
        old_values = {
            "name": category.name,
            "type": category.type,
            "frequency": category.frequency,
            "is_required": category.is_required,
            "is_active": category.is_active,
        }

        if data.name is not None and data.name != category.name:
            existing = await self.find_fee_category_by_name(data.name)
            if existing and existing.id != category.id:
                raise DuplicateError("FeeCategory", "name", data.name)
            category.name = data.name
        if data.description is not None:
            category.description = data.description
        if data.type is not None:
            category.type = data.type.value
        if data.frequency is not None:
            category.frequency = data.frequency.value
        if data.is_required is not None:
            category.is_required = data.is_required
        if data.is_active is not None:
            category.is_active = data.is_active

        await self.db.flush()

        await self.audit.log(
            action=AuditAction.UPDATE,
            entity_type="FeeCategory",
            entity_id=category.id,
            actor=actor,
            entity_identifier=category.name,
            old_values=old_values,
            new_values={
                "name": category.name,
                "type": category.type,
                "frequency": category.frequency,
                "is_required": category.is_required,
                "is_active": category.is_active,
            },
        )
        return category

    async def delete_fee_category(self, category_id: int, actor: str) -> FeeCategory:
        """Soft delete: items keep pointing at the category."""
        category = await self.get_fee_category(category_id)
        category.is_active = False
        category.updated_at = utcnow()
        await self.db.flush()

        await self.audit.log(
            action=AuditAction.DELETE,
            entity_type="FeeCategory",
            entity_id=category.id,
            actor=actor,
            entity_identifier=category.name,
        )
        return category

    # --- Fee Structure Methods ---

    async def get_fee_structure(self, structure_id: int) -> FeeStructure:
        """Get structure with items and their categories."""
        result = await self.db.execute(
            select(FeeStructure)
            .where(FeeStructure.id == structure_id)
            .options(selectinload(FeeStructure.items).selectinload(FeeStructureItem.fee_category))
            .execution_options(populate_existing=True)
        )
        structure = result.scalar_one_or_none()
        if not structure:
            raise NotFoundError("FeeStructure", structure_id)
        return structure

    async def find_fee_structure(
        self, academic_year: str, semester: str, name: str
    ) -> FeeStructure | None:
        """Find a structure by its natural key."""
        result = await self.db.execute(
            select(FeeStructure).where(
                FeeStructure.academic_year == academic_year,
                FeeStructure.semester == semester,
                FeeStructure.name == name,
            )
        )
        return result.scalar_one_or_none()

    async def list_fee_structures(
        self,
        include_inactive: bool = False,
        academic_year: str | None = None,
        semester: str | None = None,
    ) -> list[FeeStructure]:
        """List structures, newest first. Inactive ones only for the recovery view."""
        stmt = (
            select(FeeStructure)
            .options(selectinload(FeeStructure.items).selectinload(FeeStructureItem.fee_category))
            .order_by(FeeStructure.created_at.desc(), FeeStructure.id.desc())
        )
        if not include_inactive:
            stmt = stmt.where(FeeStructure.is_active == True)
        if academic_year:
            stmt = stmt.where(FeeStructure.academic_year == academic_year)
        if semester:
            stmt = stmt.where(FeeStructure.semester == semester)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def _build_items(self, item_data: list[FeeStructureItemCreate]) -> list[FeeStructureItem]:
        """Validate categories and build (unsaved) items."""
        category_ids = {data.fee_category_id for data in item_data}
        if category_ids:
            result = await self.db.execute(
                select(FeeCategory.id).where(FeeCategory.id.in_(category_ids))
            )
            missing = sorted(category_ids - set(result.scalars().all()))
            if missing:
                raise NotFoundError("FeeCategory", missing[0])

        return [
            FeeStructureItem(
                fee_category_id=data.fee_category_id,
                amount=round_money(data.amount),
                is_required=data.is_required,
                description=data.description,
                due_date=data.due_date,
            )
            for data in item_data
        ]

    async def create_fee_structure(self, data: FeeStructureCreate, actor: str) -> FeeStructure:
        """
        Create a structure together with its items.

        Items are validated before anything is added to the session, so a
        failing item leaves neither the structure nor any item behind.
        """
        if await self.find_fee_structure(data.academic_year, data.semester, data.name):
            raise DuplicateError(
                "FeeStructure",
                "academic_year/semester/name",
                f"{data.academic_year}/{data.semester}/{data.name}",
            )

        items = await self._build_items(data.items)

        structure = FeeStructure(
            name=data.name,
            description=data.description,
            academic_year=data.academic_year,
            semester=data.semester,
            is_active=data.is_active,
            items=items,
        )
        self.db.add(structure)
        await self.db.flush()

        await self.audit.log(
            action=AuditAction.CREATE,
            entity_type="FeeStructure",
            entity_id=structure.id,
            actor=actor,
            entity_identifier=structure.name,
            new_values={
                "academic_year": structure.academic_year,
                "semester": structure.semester,
                "items": len(items),
                "total_amount": str(structure.total_amount),
            },
        )

        return await self.get_fee_structure(structure.id)

    async def _items_have_balances(self, item_ids: list[int]) -> bool:
        if not item_ids:
            return False
        result = await self.db.execute(
            select(func.count())
            .select_from(StudentFeeBalance)
            .where(StudentFeeBalance.fee_structure_item_id.in_(item_ids))
        )
        return result.scalar_one() > 0

    async def update_fee_structure(
        self, structure_id: int, data: FeeStructureUpdate, actor: str
    ) -> FeeStructure:
        """Update structure fields; replace items when an item list is given."""
        structure = await self.get_fee_structure(structure_id)
        old_values = {
            "name": structure.name,
            "academic_year": structure.academic_year,
            "semester": structure.semester,
            "is_active": structure.is_active,
            "total_amount": str(structure.total_amount),
        }

        name = data.name if data.name is not None else structure.name
        academic_year = data.academic_year if data.academic_year is not None else structure.academic_year
        semester = data.semester if data.semester is not None else structure.semester
        if (name, academic_year, semester) != (structure.name, structure.academic_year, structure.semester):
            existing = await self.find_fee_structure(academic_year, semester, name)
            if existing and existing.id != structure.id:
                raise DuplicateError(
                    "FeeStructure", "academic_year/semester/name", f"{academic_year}/{semester}/{name}"
                )

        new_items = None
        if data.items is not None:
            if await self._items_have_balances([item.id for item in structure.items]):
                raise ValidationError(
                    "Fee structure has issued balances; its items cannot be replaced",
                    field="items",
                )
            new_items = await self._build_items(data.items)

        structure.name = name
        structure.academic_year = academic_year
        structure.semester = semester
        if data.description is not None:
            structure.description = data.description
        if data.is_active is not None:
            structure.is_active = data.is_active
        if new_items is not None:
            structure.items.clear()
            await self.db.flush()  # Delete orphans before inserting replacements
            structure.items.extend(new_items)
        structure.updated_at = utcnow()

        await self.db.flush()

        await self.audit.log(
            action=AuditAction.UPDATE,
            entity_type="FeeStructure",
            entity_id=structure.id,
            actor=actor,
            entity_identifier=structure.name,
            old_values=old_values,
            new_values={
                "name": structure.name,
                "academic_year": structure.academic_year,
                "semester": structure.semester,
                "is_active": structure.is_active,
                "total_amount": str(structure.total_amount),
            },
        )

        return await self.get_fee_structure(structure.id)

    async def delete_fee_structure(self, structure_id: int, actor: str) -> FeeStructure:
        """
        Soft delete a structure.

        It disappears from default listings; issued balances are untouched.
        """
        structure = await self.get_fee_structure(structure_id)
        structure.is_active = False
        structure.updated_at = utcnow()
        await self.db.flush()

        await self.audit.log(
            action=AuditAction.DELETE,
            entity_type="FeeStructure",
            entity_id=structure.id,
            actor=actor,
            entity_identifier=structure.name,
        )
        return structure

    async def reactivate_fee_structure(self, structure_id: int, actor: str) -> FeeStructure:
        """Flip the structure back to active. Balances are not regenerated."""
        structure = await self.get_fee_structure(structure_id)
        structure.is_active = True
        structure.updated_at = utcnow()
        await self.db.flush()

        await self.audit.log(
            action=AuditAction.REACTIVATE,
            entity_type="FeeStructure",
            entity_id=structure.id,
            actor=actor,
            entity_identifier=structure.name,
        )
        return structure
