import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from src.core.audit import AuditAction, AuditService
from src.core.cache import BalanceCache, balance_cache, invalidate_on_commit
from src.core.exceptions import ValidationError
from src.modules.fee_balances.models import FeeBalanceStatus, StudentFeeBalance
from src.modules.fee_balances.status import outstanding_amount
from src.modules.fee_catalog.models import (
    FeeCategory,
    FeeCategoryType,
    FeeFrequency,
    FeeStructure,
    FeeStructureItem,
)
from src.modules.legacy_migration.models import FeeSchedule, StudentBalance
from src.modules.legacy_migration.schemas import MigrationResult
from src.shared.utils.batch import SKIPPED, run_batch
from src.shared.utils.money import round_money

logger = logging.getLogger(__name__)

LEGACY_CATEGORY_NAME = "Legacy Balance"

# Free-text legacy statuses, matched case-insensitively
LEGACY_STATUS_MAP: dict[str, FeeBalanceStatus] = {
    "outstanding": FeeBalanceStatus.OUTSTANDING,
    "partial": FeeBalanceStatus.PARTIAL,
    "paid": FeeBalanceStatus.PAID,
    "overdue": FeeBalanceStatus.OVERDUE,
}


def map_legacy_status(value: str | None) -> FeeBalanceStatus:
    """Ledger status for a legacy status string. Anything unknown is Outstanding."""
    return LEGACY_STATUS_MAP.get((value or "").strip().lower(), FeeBalanceStatus.OUTSTANDING)


def legacy_structure_name(program: str) -> str:
    return f"Legacy - {program}"


def legacy_item_description(schedule: FeeSchedule) -> str:
    return f"Legacy fee schedule #{schedule.id}"


class LegacyMigrationService:
    """Moves ``student_balances`` rows into the per-item ledger."""

    def __init__(self, db: AsyncSession, cache: BalanceCache | None = None):
        self.db = db
        self.cache = cache if cache is not None else balance_cache
        self.audit = AuditService(db)

    async def _legacy_category(self) -> FeeCategory:
        result = await self.db.execute(
            select(FeeCategory).where(FeeCategory.name == LEGACY_CATEGORY_NAME)
        )
        category = result.scalar_one_or_none()
        if category:
            return category

        category = FeeCategory(
            name=LEGACY_CATEGORY_NAME,
            description="Balances carried over from the legacy fee schedules",
            type=FeeCategoryType.STANDARD.value,
            frequency=FeeFrequency.ONE_TIME.value,
            is_required=True,
            is_active=True,
        )
        self.db.add(category)
        await self.db.flush()
        return category

    async def _legacy_structure(self, schedule: FeeSchedule) -> FeeStructure:
        name = legacy_structure_name(schedule.program)
        result = await self.db.execute(
            select(FeeStructure)
            .where(
                FeeStructure.academic_year == schedule.academic_year,
                FeeStructure.semester == schedule.semester,
                FeeStructure.name == name,
            )
            .options(selectinload(FeeStructure.items))
        )
        structure = result.scalar_one_or_none()
        if structure:
            return structure

        structure = FeeStructure(
            name=name,
            description="Migrated from legacy fee schedules",
            academic_year=schedule.academic_year,
            semester=schedule.semester,
            is_active=True,
            items=[],
        )
        self.db.add(structure)
        await self.db.flush()
        return structure

    async def _legacy_item(self, schedule: FeeSchedule) -> FeeStructureItem:
        """The structure item standing for one legacy fee schedule."""
        category = await self._legacy_category()
        structure = await self._legacy_structure(schedule)

        description = legacy_item_description(schedule)
        for item in structure.items:
            if item.description == description:
                return item

        item = FeeStructureItem(
            fee_category_id=category.id,
            amount=round_money(schedule.total_amount),
            is_required=True,
            description=description,
            due_date=schedule.due_date,
        )
        structure.items.append(item)
        await self.db.flush()
        return item

    async def _migrate_one(self, legacy: StudentBalance):
        if legacy.fee_schedule is None:
            raise ValidationError(
                f"Legacy balance #{legacy.id} has no fee schedule #{legacy.fee_schedule_id}",
                field="fee_schedule_id",
            )
        item = await self._legacy_item(legacy.fee_schedule)

        result = await self.db.execute(
            select(StudentFeeBalance.id).where(
                StudentFeeBalance.student_number == legacy.student_number,
                StudentFeeBalance.fee_structure_item_id == item.id,
            )
        )
        if result.scalar_one_or_none() is not None:
            return SKIPPED

        total_amount = round_money(legacy.total_amount)
        amount_paid = round_money(legacy.amount_paid)
        balance = StudentFeeBalance(
            student_number=legacy.student_number,
            fee_structure_item_id=item.id,
            total_amount=total_amount,
            amount_paid=amount_paid,
            outstanding_balance=outstanding_amount(total_amount, amount_paid),
            due_date=legacy.due_date,
            status=map_legacy_status(legacy.status).value,
            is_active=legacy.is_active,
            notes=legacy.notes or f"Migrated from legacy balance #{legacy.id}",
        )
        self.db.add(balance)
        await self.db.flush()
        return legacy.student_number

    async def migrate_old_student_balances(self, actor: str = "system") -> MigrationResult:
        """
        Migrate every legacy balance, oldest first.

        Each row runs in its own savepoint; balances already present in the
        ledger are skipped, failing rows are recorded and the rest continue.
        Safe to run again.
        """
        result = await self.db.execute(
            select(StudentBalance)
            .options(selectinload(StudentBalance.fee_schedule))
            .order_by(StudentBalance.id)
        )
        legacy_balances = list(result.scalars().all())

        batch = await run_batch(
            self.db,
            legacy_balances,
            self._migrate_one,
            job="Legacy balance migration",
            describe=lambda legacy: f"{legacy.student_number} (legacy #{legacy.id})",
        )
        await invalidate_on_commit(self.db, self.cache, batch.succeeded)

        outcome = MigrationResult(
            migrated=batch.succeeded_count,
            skipped=batch.skipped_count,
            failed=batch.failed,
        )
        await self.audit.log(
            action=AuditAction.MIGRATE_LEGACY_BALANCES,
            entity_type="StudentBalance",
            entity_id=0,
            actor=actor,
            new_values={
                "migrated": outcome.migrated,
                "skipped": outcome.skipped,
                "failed": outcome.failed_count,
            },
        )
        return outcome
