import logging
from datetime import date, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.audit import AuditAction, AuditService
from src.core.cache import BalanceCache, balance_cache, invalidate_on_commit
from src.core.config import settings
from src.core.database import utcnow
from src.core.exceptions import DuplicateError, NotFoundError, ValidationError
from src.modules.additional_fees.models import AdditionalFee, StudentAdditionalFee
from src.modules.additional_fees.schemas import (
    AdditionalFeeCreate,
    AdditionalFeeUpdate,
    StudentAdditionalFeeResponse,
)
from src.modules.additional_fees.targeting import resolve_targets, target_columns, target_from_fee
from src.modules.fee_balances.models import FeeBalanceStatus
from src.modules.fee_balances.status import today_utc
from src.modules.students.service import StudentDirectory
from src.shared.schemas import BatchResult
from src.shared.utils.batch import SKIPPED, run_batch
from src.shared.utils.money import round_money

logger = logging.getLogger(__name__)


class AdditionalFeeService:
    """Service for additional fees and their application to students."""

    def __init__(self, db: AsyncSession, cache: BalanceCache | None = None):
        self.db = db
        self.cache = cache if cache is not None else balance_cache
        self.audit = AuditService(db)
        self.directory = StudentDirectory(db)

    # --- Additional Fee Methods ---

    async def get_additional_fee(self, fee_id: int) -> AdditionalFee:
        result = await self.db.execute(select(AdditionalFee).where(AdditionalFee.id == fee_id))
        fee = result.scalar_one_or_none()
        if not fee:
            raise NotFoundError("AdditionalFee", fee_id)
        return fee

    async def list_additional_fees(self, include_inactive: bool = False) -> list[AdditionalFee]:
        stmt = select(AdditionalFee).order_by(AdditionalFee.name, AdditionalFee.id)
        if not include_inactive:
            stmt = stmt.where(AdditionalFee.is_active == True)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def create_additional_fee(self, data: AdditionalFeeCreate, actor: str) -> AdditionalFee:
        fee = AdditionalFee(
            name=data.name,
            description=data.description,
            amount=round_money(data.amount),
            frequency=data.frequency.value,
            start_date=data.start_date,
            end_date=data.end_date,
            is_active=True,
            created_by=actor,
            **target_columns(data.target),
        )
        self.db.add(fee)
        await self.db.flush()

        await self.audit.log(
            action=AuditAction.CREATE,
            entity_type="AdditionalFee",
            entity_id=fee.id,
            actor=actor,
            entity_identifier=fee.name,
            new_values={"amount": str(fee.amount), "applicability": fee.applicability},
        )
        return fee

    async def update_additional_fee(
        self, fee_id: int, data: AdditionalFeeUpdate, actor: str
    ) -> AdditionalFee:
        """Partial update. Fees already applied to students keep their snapshot amount."""
        fee = await self.get_additional_fee(fee_id)
        old_values = {
            "name": fee.name,
            "amount": str(fee.amount),
            "applicability": fee.applicability,
            "is_active": fee.is_active,
        }

        start_date = data.start_date if data.start_date is not None else fee.start_date
        end_date = data.end_date if data.end_date is not None else fee.end_date
        if start_date and end_date and end_date < start_date:
            raise ValidationError("end_date must be on or after start_date", field="end_date")

        if data.name is not None:
            fee.name = data.name
        if data.description is not None:
            fee.description = data.description
        if data.amount is not None:
            fee.amount = round_money(data.amount)
        if data.frequency is not None:
            fee.frequency = data.frequency.value
        if data.target is not None:
            for column, value in target_columns(data.target).items():
                setattr(fee, column, value)
        if data.is_active is not None:
            fee.is_active = data.is_active
        fee.start_date = start_date
        fee.end_date = end_date

        await self.db.flush()

        await self.audit.log(
            action=AuditAction.UPDATE,
            entity_type="AdditionalFee",
            entity_id=fee.id,
            actor=actor,
            entity_identifier=fee.name,
            old_values=old_values,
            new_values={
                "name": fee.name,
                "amount": str(fee.amount),
                "applicability": fee.applicability,
                "is_active": fee.is_active,
            },
        )
        return fee

    async def delete_additional_fee(self, fee_id: int, actor: str) -> AdditionalFee:
        """Soft delete. Fees already applied to students are kept."""
        fee = await self.get_additional_fee(fee_id)
        fee.is_active = False
        fee.updated_at = utcnow()
        await self.db.flush()

        await self.audit.log(
            action=AuditAction.DELETE,
            entity_type="AdditionalFee",
            entity_id=fee.id,
            actor=actor,
            entity_identifier=fee.name,
        )
        return fee

    # --- Student Additional Fee Methods ---

    async def find_student_additional_fee(
        self, student_number: str, fee_id: int
    ) -> StudentAdditionalFee | None:
        result = await self.db.execute(
            select(StudentAdditionalFee).where(
                StudentAdditionalFee.student_number == student_number,
                StudentAdditionalFee.additional_fee_id == fee_id,
            )
        )
        return result.scalar_one_or_none()

    async def list_student_additional_fees(self, student_number: str) -> list[StudentAdditionalFee]:
        result = await self.db.execute(
            select(StudentAdditionalFee)
            .where(StudentAdditionalFee.student_number == student_number)
            .order_by(StudentAdditionalFee.due_date, StudentAdditionalFee.id)
        )
        return list(result.scalars().all())

    async def _create_student_fee(
        self, student_number: str, fee: AdditionalFee, today: date
    ) -> StudentAdditionalFee:
        student_fee = StudentAdditionalFee(
            student_number=student_number,
            additional_fee_id=fee.id,
            amount=fee.amount,
            due_date=fee.start_date or today + timedelta(days=settings.default_due_days),
            status=FeeBalanceStatus.OUTSTANDING.value,
        )
        self.db.add(student_fee)
        await self.db.flush()
        await invalidate_on_commit(self.db, self.cache, [student_number])
        return student_fee

    async def assign_additional_fee_to_student(
        self,
        student_number: str,
        fee_id: int,
        actor: str = "system",
        today: date | None = None,
    ) -> StudentAdditionalFee:
        """Apply one fee to one student. A fee reaches a student at most once."""
        fee = await self.get_additional_fee(fee_id)
        await self.directory.get_by_number(student_number)
        if await self.find_student_additional_fee(student_number, fee_id):
            raise DuplicateError("StudentAdditionalFee", "student_number", student_number)

        student_fee = await self._create_student_fee(student_number, fee, today or today_utc())

        await self.audit.log(
            action=AuditAction.APPLY_ADDITIONAL_FEE,
            entity_type="StudentAdditionalFee",
            entity_id=student_fee.id,
            actor=actor,
            entity_identifier=student_number,
            new_values={"additional_fee_id": fee.id, "amount": str(student_fee.amount)},
        )
        return student_fee

    async def apply_additional_fee_to_students(
        self,
        fee_id: int,
        actor: str = "system",
        today: date | None = None,
    ) -> BatchResult[StudentAdditionalFeeResponse]:
        """
        Apply a fee to every student its target reaches.

        The fee itself must exist, be active and not be past its end date;
        otherwise nothing is applied and an error is raised. After that the
        job is best-effort: students who already have the fee are skipped,
        failing students are recorded and the rest still get the fee.
        """
        today = today or today_utc()
        fee = await self.get_additional_fee(fee_id)
        if not fee.is_active:
            raise ValidationError(f"Additional fee '{fee.name}' is not active")
        if fee.end_date and fee.end_date < today:
            raise ValidationError(f"Additional fee '{fee.name}' expired on {fee.end_date}")

        student_numbers = await resolve_targets(target_from_fee(fee), self.directory)
        known = {s.student_number for s in await self.directory.list_by_numbers(student_numbers)}

        async def apply_one(student_number: str):
            if student_number not in known:
                raise NotFoundError("Student", student_number)
            if await self.find_student_additional_fee(student_number, fee.id):
                return SKIPPED
            student_fee = await self._create_student_fee(student_number, fee, today)
            return StudentAdditionalFeeResponse.model_validate(student_fee)

        result = await run_batch(
            self.db,
            student_numbers,
            apply_one,
            job=f"Apply additional fee {fee.id}",
        )

        await self.audit.log(
            action=AuditAction.APPLY_ADDITIONAL_FEE,
            entity_type="AdditionalFee",
            entity_id=fee.id,
            actor=actor,
            entity_identifier=fee.name,
            new_values={
                "targets": len(student_numbers),
                "applied": result.succeeded_count,
                "skipped": result.skipped_count,
                "failed": result.failed_count,
            },
        )
        return result

    async def remove_additional_fee_from_student(
        self, student_fee_id: int, actor: str = "system"
    ) -> None:
        result = await self.db.execute(
            select(StudentAdditionalFee).where(StudentAdditionalFee.id == student_fee_id)
        )
        student_fee = result.scalar_one_or_none()
        if not student_fee:
            raise NotFoundError("StudentAdditionalFee", student_fee_id)

        student_number = student_fee.student_number
        additional_fee_id = student_fee.additional_fee_id
        await self.db.delete(student_fee)
        await self.db.flush()

        await self.audit.log(
            action=AuditAction.DELETE,
            entity_type="StudentAdditionalFee",
            entity_id=student_fee_id,
            actor=actor,
            entity_identifier=student_number,
            old_values={"additional_fee_id": additional_fee_id},
        )
        await invalidate_on_commit(self.db, self.cache, [student_number])
