from datetime import date, timedelta
from decimal import Decimal

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.audit import AuditService
from src.core.cache import InMemoryBalanceCache
from src.core.config import settings
from src.core.exceptions import NotFoundError, ValidationError
from src.modules.additional_fees.schemas import AdditionalFeeCreate
from src.modules.additional_fees.service import AdditionalFeeService
from src.modules.additional_fees.targeting import IndividualTarget
from src.modules.fee_assignments.service import FeeAssignmentService
from src.modules.fee_balances.models import FeeBalanceStatus
from src.modules.fee_balances.service import FeeBalanceService
from src.modules.fee_balances.status import outstanding_amount, resolve_status
from tests.factories import create_student, create_structure

SEP_1 = date(2025, 9, 1)
OCT_1 = date(2025, 10, 1)
NOV_1 = date(2025, 11, 1)


async def _assigned(
    db: AsyncSession,
    amounts: list[str],
    student_number: str = "S1",
    name: str = "Standard",
    academic_year: str = "2025-2026",
    due_date: date | None = OCT_1,
):
    """Student with a freshly assigned structure; returns (structure, balances)."""
    await create_student(db, student_number)
    structure = await create_structure(
        db, amounts, name=name, academic_year=academic_year, due_date=due_date
    )
    _, balances = await FeeAssignmentService(db).assign_fee_structure_to_student(
        student_number, structure.id, today=SEP_1
    )
    return structure, balances


class TestStatusRule:
    """Tests for the balance status rule."""

    def test_nothing_outstanding_is_paid(self):
        assert resolve_status(Decimal("100"), Decimal("100"), OCT_1, NOV_1) == FeeBalanceStatus.PAID
        assert resolve_status(Decimal("150"), Decimal("100"), OCT_1, NOV_1) == FeeBalanceStatus.PAID

    def test_something_paid_is_partial_even_when_past_due(self):
        status = resolve_status(Decimal("10"), Decimal("100"), OCT_1, NOV_1)
        assert status == FeeBalanceStatus.PARTIAL

    def test_past_due_and_unpaid_is_overdue(self):
        assert resolve_status(Decimal("0"), Decimal("100"), OCT_1, NOV_1) == FeeBalanceStatus.OVERDUE

    def test_due_today_is_not_overdue(self):
        status = resolve_status(Decimal("0"), Decimal("100"), OCT_1, OCT_1)
        assert status == FeeBalanceStatus.OUTSTANDING

    def test_overdue_can_be_ignored(self):
        status = resolve_status(
            Decimal("0"), Decimal("100"), OCT_1, NOV_1, consider_overdue=False
        )
        assert status == FeeBalanceStatus.OUTSTANDING

    def test_outstanding_never_negative(self):
        assert outstanding_amount(Decimal("100"), Decimal("250")) == Decimal("0.00")
        assert outstanding_amount(Decimal("100"), Decimal("40.50")) == Decimal("59.50")


class TestBalanceGeneration:
    """Tests for generating balances from structure items."""

    async def test_one_balance_per_item(self, db_session: AsyncSession):
        _, balances = await _assigned(db_session, ["1000.00", "500.00"])

        assert len(balances) == 2
        for balance in balances:
            assert balance.amount_paid == Decimal("0.00")
            assert balance.outstanding_balance == balance.total_amount
            assert balance.status == "Outstanding"
            assert balance.due_date == OCT_1

    async def test_generation_is_idempotent(self, db_session: AsyncSession):
        structure, _ = await _assigned(db_session, ["1000.00", "500.00"])
        service = FeeBalanceService(db_session)

        again = await service.generate_fee_balances_for_student("S1", structure.id, SEP_1)

        assert again == []
        assert len(await service.list_student_balances("S1")) == 2

    async def test_item_without_due_date_uses_default_offset(self, db_session: AsyncSession):
        _, balances = await _assigned(db_session, ["100.00"], due_date=None)

        assert balances[0].due_date == SEP_1 + timedelta(days=settings.default_due_days)

    async def test_unknown_structure(self, db_session: AsyncSession):
        with pytest.raises(NotFoundError):
            await FeeBalanceService(db_session).generate_fee_balances_for_student("S1", 999)


class TestPaymentApplication:
    """Tests for applying payments to a single balance."""

    async def test_partial_then_full_payment(self, db_session: AsyncSession):
        _, balances = await _assigned(db_session, ["1000.00"])
        service = FeeBalanceService(db_session)

        balance = await service.update_student_fee_balance(
            balances[0].id, Decimal("400"), actor="bursar", today=SEP_1
        )
        assert balance.amount_paid == Decimal("400.00")
        assert balance.outstanding_balance == Decimal("600.00")
        assert balance.status == "Partial"

        balance = await service.update_student_fee_balance(
            balances[0].id, Decimal("600"), actor="bursar", today=SEP_1
        )
        assert balance.outstanding_balance == Decimal("0.00")
        assert balance.status == "Paid"

    async def test_overpayment_clamps_outstanding(self, db_session: AsyncSession):
        _, balances = await _assigned(db_session, ["1000.00"])
        service = FeeBalanceService(db_session)

        balance = await service.update_student_fee_balance(balances[0].id, Decimal("1250.00"))

        assert balance.amount_paid == Decimal("1250.00")
        assert balance.outstanding_balance == Decimal("0.00")
        assert balance.status == "Paid"

    @pytest.mark.parametrize("amount", ["0", "-5.00"])
    async def test_non_positive_amount_rejected(self, db_session: AsyncSession, amount: str):
        _, balances = await _assigned(db_session, ["1000.00"])
        service = FeeBalanceService(db_session)

        with pytest.raises(ValidationError):
            await service.update_student_fee_balance(balances[0].id, Decimal(amount))

        balance = await service.get_fee_balance(balances[0].id)
        assert balance.amount_paid == Decimal("0.00")

    async def test_payment_is_audited(self, db_session: AsyncSession):
        _, balances = await _assigned(db_session, ["1000.00"])

        await FeeBalanceService(db_session).update_student_fee_balance(
            balances[0].id, Decimal("100"), actor="bursar"
        )

        entries = await AuditService(db_session).list_for_entity(
            "StudentFeeBalance", balances[0].id
        )
        assert [e.action for e in entries] == ["APPLY_PAYMENT"]
        assert entries[0].actor == "bursar"
        assert entries[0].old_values["amount_paid"] == "0.00"
        assert entries[0].new_values["status"] == "Partial"

    async def test_missing_balance(self, db_session: AsyncSession):
        with pytest.raises(NotFoundError):
            await FeeBalanceService(db_session).update_student_fee_balance(999, Decimal("10"))


class TestStatusMaintenance:
    """Tests for the status sweep and per-student recalculation."""

    async def test_sweep_marks_past_due_balances_overdue(self, db_session: AsyncSession):
        await _assigned(db_session, ["1000.00", "500.00"])
        service = FeeBalanceService(db_session)

        result = await service.update_fee_balance_statuses(today=NOV_1)

        assert result.balances_examined == 2
        assert result.statuses_changed == 2
        assert result.updated is True
        statuses = {b.status for b in await service.list_student_balances("S1")}
        assert statuses == {"Overdue"}

        again = await service.update_fee_balance_statuses(today=NOV_1)
        assert again.statuses_changed == 0
        assert again.updated is False

    async def test_sweep_leaves_amounts_alone(self, db_session: AsyncSession):
        _, balances = await _assigned(db_session, ["1000.00"])
        service = FeeBalanceService(db_session)
        await service.update_student_fee_balance(balances[0].id, Decimal("300"), today=SEP_1)

        result = await service.update_fee_balance_statuses(today=NOV_1)

        assert result.statuses_changed == 0
        balance = await service.get_fee_balance(balances[0].id)
        assert balance.status == "Partial"
        assert balance.outstanding_balance == Decimal("700.00")

    async def test_recalculate_repairs_drifted_rows(self, db_session: AsyncSession):
        _, balances = await _assigned(db_session, ["1000.00", "500.00"])
        balances[0].amount_paid = Decimal("250.00")
        await db_session.flush()
        service = FeeBalanceService(db_session)

        changed = await service.recalculate_student_balances("S1", today=SEP_1)

        assert changed == 1
        balance = await service.get_fee_balance(balances[0].id)
        assert balance.outstanding_balance == Decimal("750.00")
        assert balance.status == "Partial"
        assert await service.recalculate_student_balances("S1", today=SEP_1) == 0

    async def test_list_by_status(self, db_session: AsyncSession):
        _, balances = await _assigned(db_session, ["1000.00", "500.00"])
        service = FeeBalanceService(db_session)
        await service.update_student_fee_balance(balances[1].id, Decimal("500"), today=SEP_1)

        paid = await service.list_balances_by_status(FeeBalanceStatus.PAID)
        outstanding = await service.list_balances_by_status(FeeBalanceStatus.OUTSTANDING)

        assert [b.id for b in paid] == [balances[1].id]
        assert [b.id for b in outstanding] == [balances[0].id]


class TestStudentSummary:
    """Tests for the per-student summary."""

    async def test_summary_includes_unpaid_additional_fees(self, db_session: AsyncSession):
        await _assigned(db_session, ["1000.00", "500.00"])
        fees = AdditionalFeeService(db_session)
        fee = await fees.create_additional_fee(
            AdditionalFeeCreate(
                name="Field trip",
                amount=Decimal("75.00"),
                target=IndividualTarget(student_numbers=["S1"]),
            ),
            actor="admin",
        )
        await fees.apply_additional_fee_to_students(fee.id, today=SEP_1)

        summary = await FeeBalanceService(db_session).get_student_fee_summary("S1", today=SEP_1)

        assert len(summary.fee_balances) == 2
        assert len(summary.additional_fees) == 1
        assert summary.total_outstanding_balance == Decimal("1575.00")
        assert summary.total_paid == Decimal("0.00")
        assert summary.next_payment_due == OCT_1

    async def test_next_payment_due_defaults_to_today(self, db_session: AsyncSession):
        await _assigned(db_session, ["1000.00"])

        summary = await FeeBalanceService(db_session).get_student_fee_summary("S1", today=NOV_1)

        assert summary.next_payment_due == NOV_1

    async def test_unknown_student_has_empty_summary(self, db_session: AsyncSession):
        summary = await FeeBalanceService(db_session).get_student_fee_summary("NOPE", today=SEP_1)

        assert summary.fee_balances == []
        assert summary.total_outstanding_balance == Decimal("0.00")

    async def test_summary_is_cached_until_a_payment(
        self, db_session: AsyncSession, cache: InMemoryBalanceCache
    ):
        _, balances = await _assigned(db_session, ["1000.00"])
        service = FeeBalanceService(db_session, cache)

        first = await service.get_student_fee_summary("S1", today=SEP_1)
        assert await service.get_student_fee_summary("S1", today=SEP_1) is first

        await service.update_student_fee_balance(balances[0].id, Decimal("100"), today=SEP_1)
        refreshed = await service.get_student_fee_summary("S1", today=SEP_1)

        assert refreshed is not first
        assert refreshed.total_outstanding_balance == Decimal("900.00")
        assert refreshed.total_paid == Decimal("100.00")


class TestReports:
    """Tests for outstanding-fee listings and the fee report."""

    async def test_students_sorted_by_total_outstanding(self, db_session: AsyncSession):
        await _assigned(db_session, ["1000.00", "500.00"], student_number="S1", name="Large")
        await _assigned(db_session, ["200.00"], student_number="S2", name="Small")

        summaries = await FeeBalanceService(db_session).list_students_with_outstanding_fees()

        assert [s.student_number for s in summaries] == ["S2", "S1"]

    async def test_overdue_listing(self, db_session: AsyncSession):
        await _assigned(db_session, ["1000.00"], student_number="S1", name="Late")
        await _assigned(
            db_session, ["1000.00"], student_number="S2", name="Future", due_date=date(2026, 1, 1)
        )
        service = FeeBalanceService(db_session)
        await service.update_fee_balance_statuses(today=NOV_1)

        overdue = await service.list_students_with_overdue_fees()

        assert [s.student_number for s in overdue] == ["S1"]

    async def test_fee_report(self, db_session: AsyncSession):
        _, paid_balances = await _assigned(db_session, ["1000.00"], student_number="S1", name="A")
        await _assigned(db_session, ["1000.00", "250.00"], student_number="S2", name="B")
        await _assigned(
            db_session, ["300.00"], student_number="S3", name="C", academic_year="2024-2025"
        )
        service = FeeBalanceService(db_session)
        await service.update_student_fee_balance(paid_balances[0].id, Decimal("1000"))

        report = await service.get_fee_report(academic_year="2025-2026")

        assert report.active_fee_structures == 2
        assert report.students_with_outstanding_fees == 1
        assert report.total_outstanding_amount == Decimal("1250.00")
        assert report.total_collected_amount == Decimal("0.00")

        everything = await service.get_fee_report()
        assert everything.active_fee_structures == 3
        assert everything.students_with_outstanding_fees == 2
        assert everything.total_outstanding_amount == Decimal("1550.00")


class TestFeeBalanceEndpoints:
    """API tests for fee balances."""

    async def test_apply_payment(self, client: AsyncClient, db_session: AsyncSession):
        _, balances = await _assigned(db_session, ["1000.00"])

        response = await client.post(
            f"/api/v1/fees/balances/{balances[0].id}/payments", json={"amount_paid": "250.00"}
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert Decimal(data["outstanding_balance"]) == Decimal("750.00")
        assert data["status"] == "Partial"

        entries = await AuditService(db_session).list_for_entity(
            "StudentFeeBalance", balances[0].id
        )
        assert entries[-1].actor == "registrar"

    async def test_balance_history(self, client: AsyncClient, db_session: AsyncSession):
        _, balances = await _assigned(db_session, ["1000.00"])
        service = FeeBalanceService(db_session)
        await service.update_student_fee_balance(balances[0].id, Decimal("100"), actor="bursar")
        await service.update_student_fee_balance(balances[0].id, Decimal("900"), actor="bursar")

        response = await client.get(f"/api/v1/fees/balances/{balances[0].id}/history")

        assert response.status_code == 200
        entries = response.json()["data"]
        assert [e["action"] for e in entries] == ["APPLY_PAYMENT", "APPLY_PAYMENT"]
        assert entries[0]["new_values"]["status"] == "Partial"
        assert entries[1]["new_values"]["status"] == "Paid"
        assert entries[1]["actor"] == "bursar"

    async def test_history_of_missing_balance_is_404(self, client: AsyncClient):
        response = await client.get("/api/v1/fees/balances/999/history")

        assert response.status_code == 404

    async def test_zero_payment_is_422(self, client: AsyncClient, db_session: AsyncSession):
        _, balances = await _assigned(db_session, ["1000.00"])

        response = await client.post(
            f"/api/v1/fees/balances/{balances[0].id}/payments", json={"amount_paid": "0"}
        )

        assert response.status_code == 422

    async def test_student_balances_and_summary(
        self, client: AsyncClient, db_session: AsyncSession
    ):
        await _assigned(db_session, ["1000.00", "500.00"])

        response = await client.get("/api/v1/fees/students/S1/balances")
        assert response.status_code == 200
        assert len(response.json()["data"]) == 2

        response = await client.get("/api/v1/fees/students/S1/summary")
        assert response.status_code == 200
        assert Decimal(response.json()["data"]["total_outstanding_balance"]) == Decimal("1500.00")

    async def test_list_by_status_requires_valid_status(self, client: AsyncClient):
        response = await client.get("/api/v1/fees/balances", params={"status": "Lost"})

        assert response.status_code == 422

    async def test_refresh_statuses(self, client: AsyncClient, db_session: AsyncSession):
        # Due date long past relative to the real clock
        await _assigned(db_session, ["1000.00"], due_date=date(2020, 1, 1))

        response = await client.post("/api/v1/fees/balances/refresh-statuses")

        assert response.status_code == 200
        assert response.json()["data"]["statuses_changed"] == 1

        response = await client.get("/api/v1/fees/balances", params={"status": "Overdue"})
        assert [b["student_number"] for b in response.json()["data"]] == ["S1"]

    async def test_report(self, client: AsyncClient, db_session: AsyncSession):
        await _assigned(db_session, ["1000.00"])

        response = await client.get(
            "/api/v1/fees/reports/outstanding", params={"academic_year": "2025-2026"}
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["students_with_outstanding_fees"] == 1
        assert Decimal(data["total_outstanding_amount"]) == Decimal("1000.00")
