from datetime import date
from decimal import Decimal

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.audit import AuditService
from src.core.exceptions import DuplicateError, NotFoundError, ValidationError
from src.modules.fee_assignments.schemas import BulkFeeAssignmentCreate
from src.modules.fee_assignments.service import FeeAssignmentService
from src.modules.fee_balances.service import FeeBalanceService
from tests.factories import create_student, create_structure, record_payment

SEP_1 = date(2025, 9, 1)


class TestSingleAssignment:
    """Tests for assigning a structure to one student."""

    async def test_assign_creates_balances(self, db_session: AsyncSession):
        await create_student(db_session, "S1")
        structure = await create_structure(db_session, ["1000.00", "500.00"])
        service = FeeAssignmentService(db_session)

        assignment, balances = await service.assign_fee_structure_to_student(
            "S1", structure.id, assigned_by="registrar", today=SEP_1
        )

        assert assignment.academic_year == "2025-2026"
        assert assignment.semester == "Fall 2025"
        assert assignment.assigned_by == "registrar"
        assert sorted(b.total_amount for b in balances) == [Decimal("500.00"), Decimal("1000.00")]

        entries = await AuditService(db_session).list_for_entity(
            "StudentFeeAssignment", assignment.id
        )
        assert [e.action for e in entries] == ["ASSIGN_FEE_STRUCTURE"]
        assert entries[0].new_values["balances_created"] == 2

    async def test_explicit_period(self, db_session: AsyncSession):
        await create_student(db_session, "S1")
        structure = await create_structure(db_session, ["1000.00"])

        assignment, _ = await FeeAssignmentService(db_session).assign_fee_structure_to_student(
            "S1", structure.id, academic_year="2025-2026", semester="Spring 2026"
        )

        assert assignment.semester == "Spring 2026"

    async def test_duplicate_assignment_is_rejected(self, db_session: AsyncSession):
        await create_student(db_session, "S1")
        structure = await create_structure(db_session, ["1000.00", "500.00"])
        service = FeeAssignmentService(db_session)
        await service.assign_fee_structure_to_student("S1", structure.id, today=SEP_1)

        with pytest.raises(DuplicateError):
            await service.assign_fee_structure_to_student("S1", structure.id, today=SEP_1)

        assert len(await service.list_student_assignments("S1")) == 1
        assert len(await FeeBalanceService(db_session).list_student_balances("S1")) == 2

    async def test_unknown_student(self, db_session: AsyncSession):
        structure = await create_structure(db_session, ["1000.00"])

        with pytest.raises(NotFoundError):
            await FeeAssignmentService(db_session).assign_fee_structure_to_student(
                "GHOST", structure.id
            )

    async def test_inactive_structure(self, db_session: AsyncSession):
        await create_student(db_session, "S1")
        structure = await create_structure(db_session, ["1000.00"], is_active=False)

        with pytest.raises(ValidationError):
            await FeeAssignmentService(db_session).assign_fee_structure_to_student(
                "S1", structure.id
            )

    async def test_remove_keeps_balances(self, db_session: AsyncSession):
        await create_student(db_session, "S1")
        structure = await create_structure(db_session, ["1000.00"])
        service = FeeAssignmentService(db_session)
        assignment, _ = await service.assign_fee_structure_to_student("S1", structure.id)

        await service.remove_fee_assignment(assignment.id, actor="registrar")

        assert await service.list_student_assignments("S1") == []
        assert len(await FeeBalanceService(db_session).list_student_balances("S1")) == 1
        with pytest.raises(NotFoundError):
            await service.get_assignment(assignment.id)


class TestBulkAssignment:
    """Tests for best-effort bulk assignment."""

    async def test_failures_do_not_abort_the_batch(self, db_session: AsyncSession):
        await create_student(db_session, "S1")
        await create_student(db_session, "S2")
        structure = await create_structure(db_session, ["1000.00"])
        service = FeeAssignmentService(db_session)

        result = await service.bulk_assign_fee_structure(
            BulkFeeAssignmentCreate(
                fee_structure_id=structure.id, student_numbers=["S1", "GHOST", "S2", "S1"]
            ),
            today=SEP_1,
        )

        assert [r.student_number for r in result.succeeded] == ["S1", "S2"]
        assert all(r.balances_created == 1 for r in result.succeeded)
        assert result.failed_count == 1
        assert result.failed[0].item == "GHOST"
        assert "not found" in result.failed[0].error

    async def test_already_assigned_student_fails_alone(self, db_session: AsyncSession):
        await create_student(db_session, "S1")
        await create_student(db_session, "S2")
        structure = await create_structure(db_session, ["1000.00"])
        service = FeeAssignmentService(db_session)
        await service.assign_fee_structure_to_student("S1", structure.id)

        result = await service.bulk_assign_fee_structure(
            BulkFeeAssignmentCreate(fee_structure_id=structure.id, student_numbers=["S1", "S2"])
        )

        assert [r.student_number for r in result.succeeded] == ["S2"]
        assert [f.item for f in result.failed] == ["S1"]
        assert "already exists" in result.failed[0].error

    async def test_new_balances_are_reconciled_with_payments(self, db_session: AsyncSession):
        await create_student(db_session, "S1")
        await create_student(db_session, "S2")
        await record_payment(db_session, "S1", "300.00", "BANK-1")
        structure = await create_structure(db_session, ["1000.00"])

        await FeeAssignmentService(db_session).bulk_assign_fee_structure(
            BulkFeeAssignmentCreate(fee_structure_id=structure.id, student_numbers=["S1", "S2"]),
            today=SEP_1,
        )

        balances = FeeBalanceService(db_session)
        [s1] = await balances.list_student_balances("S1")
        [s2] = await balances.list_student_balances("S2")
        assert s1.amount_paid == Decimal("300.00")
        assert s1.outstanding_balance == Decimal("700.00")
        assert s1.status == "Partial"
        assert s2.amount_paid == Decimal("0.00")
        assert s2.status == "Outstanding"

    async def test_target_by_program(self, db_session: AsyncSession):
        await create_student(db_session, "S1", program="Law")
        await create_student(db_session, "S2", program="Medicine")
        await create_student(db_session, "S3", program="Law")
        structure = await create_structure(db_session, ["1000.00"])

        result = await FeeAssignmentService(db_session).bulk_assign_fee_structure(
            BulkFeeAssignmentCreate(fee_structure_id=structure.id, programs=["Law"])
        )

        assert sorted(r.student_number for r in result.succeeded) == ["S1", "S3"]

    async def test_inactive_structure_raises(self, db_session: AsyncSession):
        await create_student(db_session, "S1")
        structure = await create_structure(db_session, ["1000.00"], is_active=False)

        with pytest.raises(ValidationError):
            await FeeAssignmentService(db_session).bulk_assign_fee_structure(
                BulkFeeAssignmentCreate(fee_structure_id=structure.id, student_numbers=["S1"])
            )


class TestAssignToAll:
    """Tests for assigning a structure to every student."""

    async def test_carries_forward_outstanding_amounts(self, db_session: AsyncSession):
        for number in ("S1", "S2", "S3", "S4"):
            await create_student(db_session, number)
        old = await create_structure(db_session, ["400.00"], name="Old", semester="Spring 2025")
        new = await create_structure(db_session, ["1000.00", "200.00"], name="New")
        service = FeeAssignmentService(db_session)

        await service.assign_fee_structure_to_student("S1", old.id, today=SEP_1)
        _, [paid] = await service.assign_fee_structure_to_student("S2", old.id, today=SEP_1)
        await FeeBalanceService(db_session).update_student_fee_balance(paid.id, Decimal("400"))
        await service.assign_fee_structure_to_student("S4", new.id, today=SEP_1)

        result = await service.assign_fee_structure_to_all(new.id, today=SEP_1)

        assert result.fee_structure_id == new.id
        assert result.total_assigned == 3
        assert result.outstanding_balances_added == 1
        assert result.total_outstanding_amount == Decimal("400.00")

        balances = FeeBalanceService(db_session)
        s1_new = [
            b for b in await balances.list_student_balances("S1")
            if b.fee_structure_item_id in {item.id for item in new.items}
        ]
        totals = sorted(b.total_amount for b in s1_new)
        assert totals == [Decimal("200.00"), Decimal("1400.00")]
        carried = next(b for b in s1_new if b.total_amount == Decimal("1400.00"))
        assert carried.outstanding_balance == Decimal("1400.00")
        assert "400.00" in carried.notes

        s3 = await balances.list_student_balances("S3")
        assert sorted(b.total_amount for b in s3) == [Decimal("200.00"), Decimal("1000.00")]
        assert len(await balances.list_student_balances("S4")) == 2

    async def test_second_run_assigns_nobody(self, db_session: AsyncSession):
        await create_student(db_session, "S1")
        structure = await create_structure(db_session, ["1000.00"])
        service = FeeAssignmentService(db_session)
        await service.assign_fee_structure_to_all(structure.id, today=SEP_1)

        result = await service.assign_fee_structure_to_all(structure.id, today=SEP_1)

        assert result.total_assigned == 0
        assert result.total_outstanding_amount == Decimal("0.00")

    async def test_unknown_structure(self, db_session: AsyncSession):
        with pytest.raises(NotFoundError):
            await FeeAssignmentService(db_session).assign_fee_structure_to_all(999)


class TestFeeAssignmentEndpoints:
    """API tests for fee assignments."""

    async def test_assign_and_list(self, client: AsyncClient, db_session: AsyncSession):
        await create_student(db_session, "S1")
        structure = await create_structure(db_session, ["1000.00", "500.00"])

        response = await client.post(
            "/api/v1/fees/assignments",
            json={"student_number": "S1", "fee_structure_id": structure.id},
        )
        assert response.status_code == 201
        data = response.json()["data"]
        assert data["balances_created"] == 2
        assert data["assigned_by"] == "registrar"

        response = await client.get("/api/v1/fees/students/S1/assignments")
        assert [a["fee_structure_id"] for a in response.json()["data"]] == [structure.id]

    async def test_duplicate_is_409(self, client: AsyncClient, db_session: AsyncSession):
        await create_student(db_session, "S1")
        structure = await create_structure(db_session, ["1000.00"])
        payload = {"student_number": "S1", "fee_structure_id": structure.id}
        await client.post("/api/v1/fees/assignments", json=payload)

        response = await client.post("/api/v1/fees/assignments", json=payload)

        assert response.status_code == 409
        assert response.json()["success"] is False

    async def test_bulk_reports_counts(self, client: AsyncClient, db_session: AsyncSession):
        await create_student(db_session, "S1")
        structure = await create_structure(db_session, ["1000.00"])

        response = await client.post(
            "/api/v1/fees/assignments/bulk",
            json={"fee_structure_id": structure.id, "student_numbers": ["S1", "GHOST"]},
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["succeeded_count"] == 1
        assert data["failed_count"] == 1
        assert data["failed"][0]["item"] == "GHOST"

    async def test_assign_all_and_remove(self, client: AsyncClient, db_session: AsyncSession):
        await create_student(db_session, "S1")
        await create_student(db_session, "S2")
        structure = await create_structure(db_session, ["1000.00"])

        response = await client.post(f"/api/v1/fees/structures/{structure.id}/assign-all")
        assert response.status_code == 200
        assert response.json()["data"]["total_assigned"] == 2

        response = await client.get("/api/v1/fees/students/S1/assignments")
        assignment_id = response.json()["data"][0]["id"]
        response = await client.delete(f"/api/v1/fees/assignments/{assignment_id}")
        assert response.status_code == 200

        response = await client.get("/api/v1/fees/students/S1/balances")
        assert len(response.json()["data"]) == 1
