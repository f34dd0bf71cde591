"""Pure reconciliation of ledger entries against payments.

Strategies work on immutable snapshots and never touch the database, so they
can be swapped (and tested) independently of the service that loads and
stores balances.
"""

from abc import ABC, abstractmethod
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, replace
from decimal import Decimal

from src.core.exceptions import InconsistentStateError
from src.modules.fee_balances.status import ZERO, resolve_status
from src.shared.utils.money import round_money


@dataclass(frozen=True)
class LedgerEntry:
    """Snapshot of one balance row."""

    balance_id: int
    student_number: str
    total_amount: Decimal
    amount_paid: Decimal
    outstanding_balance: Decimal
    status: str


@dataclass(frozen=True)
class PaymentEntry:
    """Snapshot of one recorded payment."""

    student_number: str
    amount_paid: Decimal


def total_paid_by_student(payments: Iterable[PaymentEntry]) -> dict[str, Decimal]:
    totals: dict[str, Decimal] = defaultdict(lambda: ZERO)
    for payment in payments:
        totals[payment.student_number] += payment.amount_paid
    return {number: round_money(total) for number, total in totals.items()}


class ReconciliationStrategy(ABC):
    """Decides the paid amount, outstanding amount and status of each entry."""

    @abstractmethod
    def reconcile(
        self, entries: list[LedgerEntry], payments: list[PaymentEntry]
    ) -> list[LedgerEntry]:
        """Return one entry per input entry, in the same order."""


class FlatTotalPaidStrategy(ReconciliationStrategy):
    """
    Every balance of a student is credited with the student's total payments.

    A student with several balances therefore has the same payments counted
    against each of them. Status is Paid, Partial or Outstanding; Overdue is
    never produced here and is left to the status sweep.

    Entries whose paid and outstanding amounts already match are returned
    unchanged (status included). With ``strict=True`` a payment total above
    an entry's total raises ``InconsistentStateError`` instead of clamping
    outstanding to zero.
    """

    def __init__(self, strict: bool = False):
        self.strict = strict

    def reconcile(
        self, entries: list[LedgerEntry], payments: list[PaymentEntry]
    ) -> list[LedgerEntry]:
        totals = total_paid_by_student(payments)
        return [
            self._reconcile_entry(entry, totals.get(entry.student_number, ZERO))
            for entry in entries
        ]

    def _reconcile_entry(self, entry: LedgerEntry, total_paid: Decimal) -> LedgerEntry:
        outstanding = round_money(entry.total_amount - total_paid)
        if outstanding < ZERO:
            if self.strict:
                raise InconsistentStateError(
                    f"Payments of {entry.student_number} exceed balance {entry.balance_id}",
                    details={
                        "balance_id": entry.balance_id,
                        "total_amount": str(entry.total_amount),
                        "total_paid": str(total_paid),
                    },
                )
            outstanding = ZERO

        if entry.amount_paid == total_paid and entry.outstanding_balance == outstanding:
            return entry

        status = resolve_status(total_paid, entry.total_amount, None, consider_overdue=False)
        return replace(
            entry,
            amount_paid=total_paid,
            outstanding_balance=outstanding,
            status=status.value,
        )
