import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.audit import AuditAction, AuditService
from src.core.cache import BalanceCache, balance_cache, invalidate_on_commit
from src.modules.fee_balances.models import StudentFeeBalance
from src.modules.fee_catalog.models import FeeStructureItem
from src.modules.payments.models import PaymentRecord
from src.modules.payments.service import PaymentRecordReader
from src.modules.reconciliation.schemas import ReconciliationResult
from src.modules.reconciliation.strategy import (
    FlatTotalPaidStrategy,
    LedgerEntry,
    PaymentEntry,
    ReconciliationStrategy,
)

logger = logging.getLogger(__name__)


def to_ledger_entry(balance: StudentFeeBalance) -> LedgerEntry:
    return LedgerEntry(
        balance_id=balance.id,
        student_number=balance.student_number,
        total_amount=balance.total_amount,
        amount_paid=balance.amount_paid,
        outstanding_balance=balance.outstanding_balance,
        status=balance.status,
    )


def to_payment_entry(payment: PaymentRecord) -> PaymentEntry:
    return PaymentEntry(student_number=payment.student_number, amount_paid=payment.amount_paid)


class ReconciliationService:
    """Brings stored balances in line with the payment records."""

    def __init__(
        self,
        db: AsyncSession,
        strategy: ReconciliationStrategy | None = None,
        cache: BalanceCache | None = None,
    ):
        self.db = db
        self.strategy = strategy or FlatTotalPaidStrategy()
        self.cache = cache if cache is not None else balance_cache
        self.audit = AuditService(db)
        self.payments = PaymentRecordReader(db)

    async def _apply(
        self, balances: list[StudentFeeBalance], payments: list[PaymentRecord]
    ) -> ReconciliationResult:
        """Run the strategy and write back the entries it changed."""
        entries = [to_ledger_entry(b) for b in balances]
        reconciled = self.strategy.reconcile(entries, [to_payment_entry(p) for p in payments])

        affected: list[str] = []
        updated = 0
        for balance, before, after in zip(balances, entries, reconciled):
            if after == before:
                continue
            balance.amount_paid = after.amount_paid
            balance.outstanding_balance = after.outstanding_balance
            balance.status = after.status
            updated += 1
            if balance.student_number not in affected:
                affected.append(balance.student_number)

        if updated:
            await self.db.flush()
            await invalidate_on_commit(self.db, self.cache, affected)

        return ReconciliationResult(
            balances_examined=len(balances),
            balances_updated=updated,
            students_affected=affected,
        )

    async def reconcile_student_fee_balances(self, actor: str = "system") -> ReconciliationResult:
        """
        Reconcile every balance against every recorded payment.

        Both tables are read fully into memory. Running it again without new
        payments changes nothing.
        """
        result = await self.db.execute(select(StudentFeeBalance).order_by(StudentFeeBalance.id))
        balances = list(result.scalars().all())
        payments = await self.payments.list_all()

        outcome = await self._apply(balances, payments)
        logger.info(
            "Reconciled %d balances against %d payments: %d updated for %d students",
            outcome.balances_examined,
            len(payments),
            outcome.balances_updated,
            len(outcome.students_affected),
        )

        if outcome.updated:
            await self.audit.log(
                action=AuditAction.RECONCILE_BALANCES,
                entity_type="StudentFeeBalance",
                entity_id=0,
                actor=actor,
                new_values={
                    "balances_examined": outcome.balances_examined,
                    "balances_updated": outcome.balances_updated,
                    "students_affected": len(outcome.students_affected),
                },
            )
        return outcome

    async def reconcile_structure_balances(
        self,
        student_number: str,
        fee_structure_id: int,
        balance_ids: list[int] | None = None,
    ) -> ReconciliationResult:
        """
        Reconcile one student's balances on one structure against their payments.

        With ``balance_ids`` only those balances are touched, e.g. the ones an
        assignment has just created.
        """
        stmt = (
            select(StudentFeeBalance)
            .join(FeeStructureItem, FeeStructureItem.id == StudentFeeBalance.fee_structure_item_id)
            .where(
                StudentFeeBalance.student_number == student_number,
                FeeStructureItem.fee_structure_id == fee_structure_id,
            )
            .order_by(StudentFeeBalance.id)
        )
        if balance_ids is not None:
            stmt = stmt.where(StudentFeeBalance.id.in_(balance_ids))
        result = await self.db.execute(stmt)
        balances = list(result.scalars().all())
        payments = await self.payments.list_for_student(student_number)
        return await self._apply(balances, payments)
