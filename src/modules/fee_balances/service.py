import logging
from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from src.core.audit import AuditAction, AuditLog, AuditService
from src.core.cache import BalanceCache, balance_cache, invalidate_on_commit
from src.core.config import settings
from src.core.exceptions import NotFoundError, ValidationError
from src.modules.additional_fees.models import AdditionalFee, StudentAdditionalFee
from src.modules.fee_balances.models import FeeBalanceStatus, StudentFeeBalance
from src.modules.fee_balances.schemas import (
    FeeReport,
    StatusRefreshResult,
    StudentAdditionalFeeLine,
    StudentFeeBalanceResponse,
    StudentFeeSummary,
)
from src.modules.fee_balances.status import ZERO, apply_amounts, resolve_status, today_utc
from src.modules.fee_catalog.models import FeeStructure, FeeStructureItem
from src.shared.utils.money import round_money, sum_money

logger = logging.getLogger(__name__)

OPEN_STATUSES = (FeeBalanceStatus.OUTSTANDING.value, FeeBalanceStatus.OVERDUE.value)


class FeeBalanceService:
    """Service for the per-item student fee ledger."""

    def __init__(self, db: AsyncSession, cache: BalanceCache | None = None):
        self.db = db
        self.cache = cache if cache is not None else balance_cache
        self.audit = AuditService(db)

    # --- Generation ---

    async def generate_fee_balances_for_student(
        self, student_number: str, fee_structure_id: int, today: date | None = None
    ) -> list[StudentFeeBalance]:
        """
        Create one balance per structure item the student has no balance for.

        Idempotent: existing (student, item) rows are never duplicated or
        overwritten. Returns only the rows created by this call.
        """
        result = await self.db.execute(
            select(FeeStructure)
            .where(FeeStructure.id == fee_structure_id)
            .options(selectinload(FeeStructure.items))
        )
        structure = result.scalar_one_or_none()
        if not structure:
            raise NotFoundError("FeeStructure", fee_structure_id)

        item_ids = [item.id for item in structure.items]
        existing_item_ids: set[int] = set()
        if item_ids:
            result = await self.db.execute(
                select(StudentFeeBalance.fee_structure_item_id).where(
                    StudentFeeBalance.student_number == student_number,
                    StudentFeeBalance.fee_structure_item_id.in_(item_ids),
                )
            )
            existing_item_ids = set(result.scalars().all())

        today = today or today_utc()
        created = []
        for item in structure.items:
            if item.id in existing_item_ids:
                continue
            balance = new_balance_for_item(student_number, item, today)
            self.db.add(balance)
            created.append(balance)

        if created:
            await self.db.flush()
            await invalidate_on_commit(self.db, self.cache, [student_number])
            logger.debug(
                "Generated %d balances for %s on structure %s",
                len(created),
                student_number,
                fee_structure_id,
            )
        return created

    # --- Queries ---

    async def get_fee_balance(self, balance_id: int) -> StudentFeeBalance:
        result = await self.db.execute(
            select(StudentFeeBalance).where(StudentFeeBalance.id == balance_id)
        )
        balance = result.scalar_one_or_none()
        if not balance:
            raise NotFoundError("StudentFeeBalance", balance_id)
        return balance

    async def list_balance_history(self, balance_id: int) -> list[AuditLog]:
        """Audit entries of one balance, oldest first."""
        balance = await self.get_fee_balance(balance_id)
        return await self.audit.list_for_entity("StudentFeeBalance", balance.id)

    async def list_student_balances(self, student_number: str) -> list[StudentFeeBalance]:
        result = await self.db.execute(
            select(StudentFeeBalance)
            .where(StudentFeeBalance.student_number == student_number)
            .order_by(StudentFeeBalance.due_date, StudentFeeBalance.id)
        )
        return list(result.scalars().all())

    async def list_balances_by_status(self, status: FeeBalanceStatus) -> list[StudentFeeBalance]:
        result = await self.db.execute(
            select(StudentFeeBalance)
            .where(StudentFeeBalance.status == status.value)
            .order_by(StudentFeeBalance.student_number, StudentFeeBalance.id)
        )
        return list(result.scalars().all())

    # --- Mutations ---

    async def update_student_fee_balance(
        self,
        balance_id: int,
        amount_paid: Decimal,
        actor: str = "system",
        today: date | None = None,
    ) -> StudentFeeBalance:
        """Apply a payment to one balance and recompute outstanding and status."""
        amount_paid = round_money(amount_paid)
        if amount_paid <= ZERO:
            raise ValidationError("Payment amount must be positive", field="amount_paid")

        balance = await self.get_fee_balance(balance_id)
        old_values = {
            "amount_paid": str(balance.amount_paid),
            "outstanding_balance": str(balance.outstanding_balance),
            "status": balance.status,
        }

        apply_amounts(balance, balance.total_amount, balance.amount_paid + amount_paid, today)
        await self.db.flush()

        await self.audit.log(
            action=AuditAction.APPLY_PAYMENT,
            entity_type="StudentFeeBalance",
            entity_id=balance.id,
            actor=actor,
            entity_identifier=balance.student_number,
            old_values=old_values,
            new_values={
                "amount_paid": str(balance.amount_paid),
                "outstanding_balance": str(balance.outstanding_balance),
                "status": balance.status,
            },
        )
        await invalidate_on_commit(self.db, self.cache, [balance.student_number])
        return balance

    async def recalculate_student_balances(
        self, student_number: str, today: date | None = None
    ) -> int:
        """
        Re-derive outstanding and status of every balance of a student from
        its own amounts (no payment lookup). Returns the number of rows changed.
        """
        balances = await self.list_student_balances(student_number)
        changed = 0
        for balance in balances:
            if apply_amounts(balance, balance.total_amount, balance.amount_paid, today):
                changed += 1

        if changed:
            await self.db.flush()
            await invalidate_on_commit(self.db, self.cache, [student_number])
        return changed

    async def update_fee_balance_statuses(self, today: date | None = None) -> StatusRefreshResult:
        """Status-only sweep over every balance; amounts are left as stored."""
        today = today or today_utc()
        result = await self.db.execute(select(StudentFeeBalance).order_by(StudentFeeBalance.id))
        balances = list(result.scalars().all())

        changed_students: set[str] = set()
        changed = 0
        for balance in balances:
            status = resolve_status(
                balance.amount_paid, balance.total_amount, balance.due_date, today
            ).value
            if status != balance.status:
                balance.status = status
                changed += 1
                changed_students.add(balance.student_number)

        if changed:
            await self.db.flush()
            await invalidate_on_commit(self.db, self.cache, changed_students)

        logger.info("Status refresh: %d of %d balances changed", changed, len(balances))
        return StatusRefreshResult(balances_examined=len(balances), statuses_changed=changed)

    # --- Summaries & Reports ---

    async def get_student_fee_summary(
        self, student_number: str, today: date | None = None
    ) -> StudentFeeSummary:
        """Balances plus additional fees of a student, cached per student."""
        cached = await self.cache.get_summary(student_number)
        if cached is not None:
            return cached

        balances = await self.list_student_balances(student_number)
        result = await self.db.execute(
            select(StudentAdditionalFee)
            .where(StudentAdditionalFee.student_number == student_number)
            .order_by(StudentAdditionalFee.due_date, StudentAdditionalFee.id)
        )
        additional_fees = list(result.scalars().all())

        summary = build_summary(student_number, balances, additional_fees, today or today_utc())
        await self.cache.set_summary(student_number, summary)
        return summary

    async def _open_balances(
        self, academic_year: str | None = None, semester: str | None = None
    ) -> list[StudentFeeBalance]:
        stmt = select(StudentFeeBalance).where(StudentFeeBalance.status.in_(OPEN_STATUSES))
        if academic_year or semester:
            stmt = stmt.join(
                FeeStructureItem, FeeStructureItem.id == StudentFeeBalance.fee_structure_item_id
            ).join(FeeStructure, FeeStructure.id == FeeStructureItem.fee_structure_id)
            if academic_year:
                stmt = stmt.where(FeeStructure.academic_year == academic_year)
            if semester:
                stmt = stmt.where(FeeStructure.semester == semester)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_fee_report(
        self, academic_year: str | None = None, semester: str | None = None
    ) -> FeeReport:
        """Outstanding/overdue totals, optionally scoped to one period."""
        stmt = select(FeeStructure.id).where(FeeStructure.is_active == True)
        if academic_year:
            stmt = stmt.where(FeeStructure.academic_year == academic_year)
        if semester:
            stmt = stmt.where(FeeStructure.semester == semester)
        structures = (await self.db.execute(stmt)).scalars().all()

        fees = (
            await self.db.execute(select(AdditionalFee.id).where(AdditionalFee.is_active == True))
        ).scalars().all()

        open_balances = await self._open_balances(academic_year, semester)

        return FeeReport(
            academic_year=academic_year,
            semester=semester,
            active_fee_structures=len(structures),
            active_additional_fees=len(fees),
            students_with_outstanding_fees=len({b.student_number for b in open_balances}),
            total_outstanding_amount=sum_money(b.outstanding_balance for b in open_balances),
            total_collected_amount=sum_money(b.amount_paid for b in open_balances),
        )

    async def list_students_with_outstanding_fees(self) -> list[StudentFeeSummary]:
        """Summaries of students with Outstanding or Overdue balances, smallest debt first."""
        balances = await self._open_balances()
        student_numbers = sorted({b.student_number for b in balances})
        summaries = [await self.get_student_fee_summary(number) for number in student_numbers]
        return sorted(summaries, key=lambda s: s.total_outstanding_balance)

    async def list_students_with_overdue_fees(self) -> list[StudentFeeSummary]:
        """Summaries of students with Overdue balances, earliest next due date first."""
        balances = await self.list_balances_by_status(FeeBalanceStatus.OVERDUE)
        student_numbers = sorted({b.student_number for b in balances})
        summaries = [await self.get_student_fee_summary(number) for number in student_numbers]
        return sorted(summaries, key=lambda s: s.next_payment_due)


def new_balance_for_item(
    student_number: str,
    item: FeeStructureItem,
    today: date,
    carried_forward: Decimal = ZERO,
) -> StudentFeeBalance:
    """Fresh, unpaid balance row for a structure item."""
    total = round_money(item.amount + carried_forward)
    balance = StudentFeeBalance(
        student_number=student_number,
        fee_structure_item_id=item.id,
        total_amount=total,
        amount_paid=ZERO,
        outstanding_balance=total,
        due_date=item.due_date or today + timedelta(days=settings.default_due_days),
        status=FeeBalanceStatus.OUTSTANDING.value,
        is_active=True,
    )
    if carried_forward > ZERO:
        balance.notes = f"Includes carried-forward balance of {round_money(carried_forward)}"
    return balance


def build_summary(
    student_number: str,
    balances: list[StudentFeeBalance],
    additional_fees: list[StudentAdditionalFee],
    today: date,
) -> StudentFeeSummary:
    unpaid_additional = [
        fee for fee in additional_fees if fee.status != FeeBalanceStatus.PAID.value
    ]
    total_outstanding = sum_money(b.outstanding_balance for b in balances) + sum_money(
        fee.amount for fee in unpaid_additional
    )
    upcoming = [b.due_date for b in balances if b.outstanding_balance > ZERO and b.due_date > today]

    return StudentFeeSummary(
        student_number=student_number,
        fee_balances=[StudentFeeBalanceResponse.model_validate(b) for b in balances],
        additional_fees=[StudentAdditionalFeeLine.model_validate(f) for f in additional_fees],
        total_outstanding_balance=round_money(total_outstanding),
        total_paid=sum_money(b.amount_paid for b in balances),
        next_payment_due=min(upcoming) if upcoming else today,
    )
