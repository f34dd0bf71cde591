from decimal import Decimal

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.audit import AuditService
from src.core.cache import InMemoryBalanceCache
from src.core.exceptions import InconsistentStateError
from src.modules.fee_assignments.service import FeeAssignmentService
from src.modules.fee_balances.service import FeeBalanceService
from src.modules.reconciliation.service import ReconciliationService
from src.modules.reconciliation.strategy import (
    FlatTotalPaidStrategy,
    LedgerEntry,
    PaymentEntry,
    total_paid_by_student,
)
from tests.factories import create_student, create_structure, record_payment


def _entry(
    balance_id: int,
    total: str,
    paid: str = "0.00",
    status: str = "Outstanding",
    student_number: str = "S1",
) -> LedgerEntry:
    total_amount = Decimal(total)
    amount_paid = Decimal(paid)
    return LedgerEntry(
        balance_id=balance_id,
        student_number=student_number,
        total_amount=total_amount,
        amount_paid=amount_paid,
        outstanding_balance=max(Decimal("0.00"), total_amount - amount_paid),
        status=status,
    )


def _payment(amount: str, student_number: str = "S1") -> PaymentEntry:
    return PaymentEntry(student_number=student_number, amount_paid=Decimal(amount))


class TestFlatTotalPaidStrategy:
    """Tests for the pure reconciliation strategy."""

    def test_totals_by_student(self):
        totals = total_paid_by_student(
            [_payment("100.10"), _payment("0.20"), _payment("5", student_number="S2")]
        )

        assert totals == {"S1": Decimal("100.30"), "S2": Decimal("5.00")}

    def test_every_entry_is_credited_with_the_full_total(self):
        entries = [_entry(1, "3000.00"), _entry(2, "100.00")]

        tuition, library = FlatTotalPaidStrategy().reconcile(entries, [_payment("1500.00")])

        assert tuition.amount_paid == Decimal("1500.00")
        assert tuition.outstanding_balance == Decimal("1500.00")
        assert tuition.status == "Partial"
        assert library.amount_paid == Decimal("1500.00")
        assert library.outstanding_balance == Decimal("0.00")
        assert library.status == "Paid"

    def test_matching_entry_is_returned_unchanged(self):
        entry = _entry(1, "1000.00", status="Overdue")

        [result] = FlatTotalPaidStrategy().reconcile([entry], [])

        assert result is entry

    def test_stale_paid_amount_is_reset_without_payments(self):
        entry = _entry(1, "1000.00", paid="50.00", status="Partial")

        [result] = FlatTotalPaidStrategy().reconcile([entry], [])

        assert result.amount_paid == Decimal("0.00")
        assert result.outstanding_balance == Decimal("1000.00")
        assert result.status == "Outstanding"

    def test_overdue_is_never_produced(self):
        entry = _entry(1, "1000.00", paid="50.00", status="Overdue")

        [result] = FlatTotalPaidStrategy().reconcile([entry], [])

        assert result.status == "Outstanding"

    def test_payments_of_other_students_are_ignored(self):
        entries = [_entry(1, "1000.00"), _entry(2, "500.00", student_number="S2")]

        first, second = FlatTotalPaidStrategy().reconcile(entries, [_payment("200", "S2")])

        assert first is entries[0]
        assert second.amount_paid == Decimal("200.00")

    def test_strict_mode_raises_on_overpayment(self):
        with pytest.raises(InconsistentStateError):
            FlatTotalPaidStrategy(strict=True).reconcile(
                [_entry(1, "100.00")], [_payment("150.00")]
            )

    def test_order_is_preserved(self):
        entries = [_entry(3, "10.00"), _entry(1, "20.00"), _entry(2, "30.00")]

        result = FlatTotalPaidStrategy().reconcile(entries, [_payment("5")])

        assert [e.balance_id for e in result] == [3, 1, 2]


async def _fall_2025(db: AsyncSession):
    """S1 assigned Tuition 3000 and Library 100."""
    await create_student(db, "S1")
    structure = await create_structure(db, ["3000.00", "100.00"], name="Fall-2025")
    _, balances = await FeeAssignmentService(db).assign_fee_structure_to_student("S1", structure.id)
    return structure, balances


class TestReconciliationService:
    """Tests for reconciling stored balances against payment records."""

    async def test_full_reconciliation(self, db_session: AsyncSession):
        _, [tuition, library] = await _fall_2025(db_session)
        await record_payment(db_session, "S1", "1000.00", "BANK-1")
        await record_payment(db_session, "S1", "500.00", "BANK-2")

        result = await ReconciliationService(db_session).reconcile_student_fee_balances(
            actor="bursar"
        )

        assert result.balances_examined == 2
        assert result.balances_updated == 2
        assert result.students_affected == ["S1"]
        assert (tuition.amount_paid, tuition.outstanding_balance, tuition.status) == (
            Decimal("1500.00"), Decimal("1500.00"), "Partial"
        )
        assert (library.amount_paid, library.outstanding_balance, library.status) == (
            Decimal("1500.00"), Decimal("0.00"), "Paid"
        )

        entries = await AuditService(db_session).list_for_entity("StudentFeeBalance", 0)
        assert [e.action for e in entries] == ["RECONCILE_BALANCES"]
        assert entries[0].actor == "bursar"

    async def test_second_run_changes_nothing(self, db_session: AsyncSession):
        await _fall_2025(db_session)
        await record_payment(db_session, "S1", "1500.00", "BANK-1")
        service = ReconciliationService(db_session)
        await service.reconcile_student_fee_balances()

        again = await service.reconcile_student_fee_balances()

        assert again.balances_updated == 0
        assert again.updated is False
        assert len(await AuditService(db_session).list_for_entity("StudentFeeBalance", 0)) == 1

    async def test_strict_run_writes_nothing(self, db_session: AsyncSession):
        _, balances = await _fall_2025(db_session)
        await record_payment(db_session, "S1", "1500.00", "BANK-1")
        service = ReconciliationService(db_session, FlatTotalPaidStrategy(strict=True))

        with pytest.raises(InconsistentStateError):
            await service.reconcile_student_fee_balances()

        assert all(b.amount_paid == Decimal("0.00") for b in balances)

    async def test_structure_scope(self, db_session: AsyncSession):
        structure, _ = await _fall_2025(db_session)
        other = await create_structure(db_session, ["400.00"], name="Spring-2026")
        await FeeAssignmentService(db_session).assign_fee_structure_to_student("S1", other.id)
        await record_payment(db_session, "S1", "50.00", "BANK-1")

        result = await ReconciliationService(db_session).reconcile_structure_balances(
            "S1", structure.id
        )

        assert result.balances_examined == 2
        assert result.balances_updated == 2
        balances = await FeeBalanceService(db_session).list_student_balances("S1")
        paid = sorted(b.amount_paid for b in balances)
        assert paid == [Decimal("0.00"), Decimal("50.00"), Decimal("50.00")]

    async def test_structure_scope_limited_to_given_balances(self, db_session: AsyncSession):
        structure, [tuition, library] = await _fall_2025(db_session)
        await record_payment(db_session, "S1", "50.00", "BANK-1")

        result = await ReconciliationService(db_session).reconcile_structure_balances(
            "S1", structure.id, balance_ids=[library.id]
        )

        assert result.balances_examined == 1
        assert result.balances_updated == 1
        assert library.amount_paid == Decimal("50.00")
        assert tuition.amount_paid == Decimal("0.00")

    async def test_affected_students_lose_cached_summaries(
        self, db_session: AsyncSession, cache: InMemoryBalanceCache
    ):
        await _fall_2025(db_session)
        balances = FeeBalanceService(db_session, cache)
        before = await balances.get_student_fee_summary("S1")
        await record_payment(db_session, "S1", "100.00", "BANK-1")

        await ReconciliationService(db_session, cache=cache).reconcile_student_fee_balances()

        after = await balances.get_student_fee_summary("S1")
        assert after is not before
        assert after.total_outstanding_balance == Decimal("2900.00")


class TestReconciliationEndpoints:
    """API tests for reconciliation."""

    async def test_reconcile(self, client: AsyncClient, db_session: AsyncSession):
        await _fall_2025(db_session)
        await record_payment(db_session, "S1", "1500.00", "BANK-1")

        response = await client.post("/api/v1/fees/reconcile")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["balances_updated"] == 2
        assert data["updated"] is True

    async def test_strict_overpayment_is_409(self, client: AsyncClient, db_session: AsyncSession):
        await _fall_2025(db_session)
        await record_payment(db_session, "S1", "1500.00", "BANK-1")

        response = await client.post("/api/v1/fees/reconcile", params={"strict": "true"})

        assert response.status_code == 409
        assert response.json()["success"] is False
