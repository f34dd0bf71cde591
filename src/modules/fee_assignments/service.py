import logging
from datetime import date
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.audit import AuditAction, AuditService
from src.core.cache import BalanceCache, balance_cache, invalidate_on_commit
from src.core.exceptions import DuplicateError, NotFoundError, ValidationError
from src.modules.fee_assignments.models import StudentFeeAssignment
from src.modules.fee_assignments.schemas import (
    AssignToAllResult,
    BulkFeeAssignmentCreate,
    StudentFeeAssignmentResponse,
)
from src.modules.fee_balances.models import StudentFeeBalance
from src.modules.fee_balances.service import FeeBalanceService, new_balance_for_item
from src.modules.fee_balances.status import ZERO, today_utc
from src.modules.fee_catalog.models import FeeStructure, FeeStructureItem
from src.modules.fee_catalog.service import FeeCatalogService
from src.modules.reconciliation.service import ReconciliationService
from src.modules.students.service import StudentDirectory
from src.shared.schemas import BatchResult
from src.shared.utils.batch import run_batch
from src.shared.utils.money import round_money

logger = logging.getLogger(__name__)


class FeeAssignmentService:
    """Service for binding students to fee structures."""

    def __init__(self, db: AsyncSession, cache: BalanceCache | None = None):
        self.db = db
        self.cache = cache if cache is not None else balance_cache
        self.audit = AuditService(db)
        self.catalog = FeeCatalogService(db)
        self.directory = StudentDirectory(db)
        self.balances = FeeBalanceService(db, self.cache)

    async def get_assignment(self, assignment_id: int) -> StudentFeeAssignment:
        result = await self.db.execute(
            select(StudentFeeAssignment).where(StudentFeeAssignment.id == assignment_id)
        )
        assignment = result.scalar_one_or_none()
        if not assignment:
            raise NotFoundError("StudentFeeAssignment", assignment_id)
        return assignment

    async def find_assignment(
        self, student_number: str, fee_structure_id: int, academic_year: str, semester: str
    ) -> StudentFeeAssignment | None:
        result = await self.db.execute(
            select(StudentFeeAssignment).where(
                StudentFeeAssignment.student_number == student_number,
                StudentFeeAssignment.fee_structure_id == fee_structure_id,
                StudentFeeAssignment.academic_year == academic_year,
                StudentFeeAssignment.semester == semester,
            )
        )
        return result.scalar_one_or_none()

    async def list_student_assignments(self, student_number: str) -> list[StudentFeeAssignment]:
        result = await self.db.execute(
            select(StudentFeeAssignment)
            .where(StudentFeeAssignment.student_number == student_number)
            .order_by(StudentFeeAssignment.assigned_at.desc(), StudentFeeAssignment.id.desc())
        )
        return list(result.scalars().all())

    async def _get_assignable_structure(self, fee_structure_id: int) -> FeeStructure:
        structure = await self.catalog.get_fee_structure(fee_structure_id)
        if not structure.is_active:
            raise ValidationError(
                f"Fee structure '{structure.name}' is not active", field="fee_structure_id"
            )
        return structure

    async def _assign(
        self,
        student_number: str,
        structure: FeeStructure,
        academic_year: str | None,
        semester: str | None,
        assigned_by: str,
        today: date | None,
    ) -> tuple[StudentFeeAssignment, list[StudentFeeBalance]]:
        await self.directory.get_by_number(student_number)

        academic_year = academic_year or structure.academic_year
        semester = semester or structure.semester
        if await self.find_assignment(student_number, structure.id, academic_year, semester):
            raise DuplicateError(
                "StudentFeeAssignment",
                "student_number/fee_structure_id/period",
                f"{student_number}/{structure.id}/{academic_year}/{semester}",
            )

        assignment = StudentFeeAssignment(
            student_number=student_number,
            fee_structure_id=structure.id,
            academic_year=academic_year,
            semester=semester,
            assigned_by=assigned_by,
        )
        self.db.add(assignment)
        await self.db.flush()

        balances = await self.balances.generate_fee_balances_for_student(
            student_number, structure.id, today
        )
        return assignment, balances

    async def assign_fee_structure_to_student(
        self,
        student_number: str,
        fee_structure_id: int,
        academic_year: str | None = None,
        semester: str | None = None,
        assigned_by: str = "system",
        today: date | None = None,
    ) -> tuple[StudentFeeAssignment, list[StudentFeeBalance]]:
        """
        Assign a structure to a student and generate one balance per item.

        Returns the assignment and the balances created for it.
        """
        structure = await self._get_assignable_structure(fee_structure_id)
        assignment, balances = await self._assign(
            student_number, structure, academic_year, semester, assigned_by, today
        )

        await self.audit.log(
            action=AuditAction.ASSIGN_FEE_STRUCTURE,
            entity_type="StudentFeeAssignment",
            entity_id=assignment.id,
            actor=assigned_by,
            entity_identifier=student_number,
            new_values={
                "fee_structure_id": structure.id,
                "academic_year": assignment.academic_year,
                "semester": assignment.semester,
                "balances_created": len(balances),
            },
        )
        return assignment, balances

    async def _bulk_targets(self, data: BulkFeeAssignmentCreate) -> list[str]:
        if data.student_numbers:
            return list(dict.fromkeys(data.student_numbers))
        if data.programs:
            numbers = []
            for program in data.programs:
                numbers.extend(s.student_number for s in await self.directory.list_by_program(program))
            return list(dict.fromkeys(numbers))
        return [s.student_number for s in await self.directory.list_all()]

    async def bulk_assign_fee_structure(
        self,
        data: BulkFeeAssignmentCreate,
        assigned_by: str = "system",
        today: date | None = None,
    ) -> BatchResult[StudentFeeAssignmentResponse]:
        """
        Assign a structure to many students, one savepoint per student.

        A failing student (unknown, already assigned) is recorded and the
        batch continues. Balances created for a student are immediately
        reconciled against that student's recorded payments.
        """
        structure = await self._get_assignable_structure(data.fee_structure_id)
        student_numbers = await self._bulk_targets(data)
        reconciliation = ReconciliationService(self.db, cache=self.cache)

        async def assign_one(student_number: str) -> StudentFeeAssignmentResponse:
            assignment, balances = await self._assign(
                student_number,
                structure,
                data.academic_year,
                data.semester,
                assigned_by,
                today,
            )
            if balances:
                await reconciliation.reconcile_structure_balances(
                    student_number, structure.id, balance_ids=[b.id for b in balances]
                )
            response = StudentFeeAssignmentResponse.model_validate(assignment)
            response.balances_created = len(balances)
            return response

        result = await run_batch(
            self.db,
            student_numbers,
            assign_one,
            job=f"Bulk assign fee structure {structure.id}",
        )

        await self.audit.log(
            action=AuditAction.BULK_ASSIGN_FEE_STRUCTURE,
            entity_type="FeeStructure",
            entity_id=structure.id,
            actor=assigned_by,
            entity_identifier=structure.name,
            new_values={
                "targets": len(student_numbers),
                "assigned": result.succeeded_count,
                "failed": result.failed_count,
            },
        )
        return result

    async def _outstanding_elsewhere(self, fee_structure_id: int) -> dict[str, Decimal]:
        """Positive outstanding per student on structures other than this one."""
        result = await self.db.execute(
            select(StudentFeeBalance.student_number, func.sum(StudentFeeBalance.outstanding_balance))
            .join(FeeStructureItem, FeeStructureItem.id == StudentFeeBalance.fee_structure_item_id)
            .where(
                FeeStructureItem.fee_structure_id != fee_structure_id,
                StudentFeeBalance.outstanding_balance > 0,
            )
            .group_by(StudentFeeBalance.student_number)
        )
        return {number: round_money(total or 0) for number, total in result.all()}

    async def assign_fee_structure_to_all(
        self,
        fee_structure_id: int,
        assigned_by: str = "system",
        today: date | None = None,
    ) -> AssignToAllResult:
        """
        Assign a structure to every student not yet assigned to it.

        Any outstanding amount a student still has on other structures is
        carried forward into the first new balance. Runs as one unit of work:
        all rows are flushed together at the end and any error leaves the
        caller's transaction to roll everything back.
        """
        today = today or today_utc()
        structure = await self.catalog.get_fee_structure(fee_structure_id)

        students = await self.directory.list_all()
        result = await self.db.execute(
            select(StudentFeeAssignment.student_number).where(
                StudentFeeAssignment.fee_structure_id == structure.id
            )
        )
        already_assigned = set(result.scalars().all())

        item_ids = [item.id for item in structure.items]
        existing_pairs: set[tuple[str, int]] = set()
        if item_ids:
            result = await self.db.execute(
                select(StudentFeeBalance.student_number, StudentFeeBalance.fee_structure_item_id)
                .where(StudentFeeBalance.fee_structure_item_id.in_(item_ids))
            )
            existing_pairs = {(number, item_id) for number, item_id in result.all()}

        carried = await self._outstanding_elsewhere(structure.id)

        total_assigned = 0
        balances_with_carry = 0
        carried_total = ZERO
        touched: list[str] = []
        for student in students:
            number = student.student_number
            if number in already_assigned:
                continue

            self.db.add(
                StudentFeeAssignment(
                    student_number=number,
                    fee_structure_id=structure.id,
                    academic_year=structure.academic_year,
                    semester=structure.semester,
                    assigned_by=assigned_by,
                )
            )
            total_assigned += 1
            touched.append(number)

            carry = carried.get(number, ZERO)
            for item in structure.items:
                if (number, item.id) in existing_pairs:
                    continue
                self.db.add(new_balance_for_item(number, item, today, carried_forward=carry))
                if carry > ZERO:
                    balances_with_carry += 1
                    carried_total += carry
                carry = ZERO

        await self.db.flush()
        await invalidate_on_commit(self.db, self.cache, touched)

        await self.audit.log(
            action=AuditAction.ASSIGN_FEE_STRUCTURE_TO_ALL,
            entity_type="FeeStructure",
            entity_id=structure.id,
            actor=assigned_by,
            entity_identifier=structure.name,
            new_values={
                "total_assigned": total_assigned,
                "outstanding_balances_added": balances_with_carry,
                "total_outstanding_amount": str(carried_total),
            },
        )
        logger.info(
            "Assigned fee structure %s to %d students, carried forward %s",
            structure.id,
            total_assigned,
            carried_total,
        )
        return AssignToAllResult(
            fee_structure_id=structure.id,
            total_assigned=total_assigned,
            outstanding_balances_added=balances_with_carry,
            total_outstanding_amount=round_money(carried_total),
        )

    async def remove_fee_assignment(self, assignment_id: int, actor: str = "system") -> None:
        """Delete an assignment. Balances generated from it are kept."""
        assignment = await self.get_assignment(assignment_id)
        old_values = {
            "student_number": assignment.student_number,
            "fee_structure_id": assignment.fee_structure_id,
            "academic_year": assignment.academic_year,
            "semester": assignment.semester,
        }
        await self.db.delete(assignment)
        await self.db.flush()

        await self.audit.log(
            action=AuditAction.REMOVE_FEE_ASSIGNMENT,
            entity_type="StudentFeeAssignment",
            entity_id=assignment_id,
            actor=actor,
            entity_identifier=old_values["student_number"],
            old_values=old_values,
        )
