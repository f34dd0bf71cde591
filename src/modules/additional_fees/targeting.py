"""Who an additional fee applies to.

A target is one of four shapes, each carrying only its own data. The stored
form (``applicability`` plus three JSON lists on ``AdditionalFee``) is
converted with ``target_from_fee`` / ``target_columns``; ``resolve_targets``
turns a target into student numbers.
"""

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

from src.modules.additional_fees.models import AdditionalFee, FeeApplicability
from src.modules.students.service import StudentDirectory


class AllStudents(BaseModel):
    kind: Literal["All"] = "All"


class ProgramTarget(BaseModel):
    kind: Literal["Program"] = "Program"
    programs: list[str] = Field(..., min_length=1)


class ClassTarget(BaseModel):
    kind: Literal["Class"] = "Class"
    classes: list[str] = Field(..., min_length=1)


class IndividualTarget(BaseModel):
    kind: Literal["Individual"] = "Individual"
    student_numbers: list[str] = Field(..., min_length=1)


FeeTarget = Annotated[
    Union[AllStudents, ProgramTarget, ClassTarget, IndividualTarget],
    Field(discriminator="kind"),
]


def _unique(values) -> list[str]:
    """De-duplicate, keeping first-seen order."""
    return list(dict.fromkeys(values))


def target_from_fee(fee: AdditionalFee) -> FeeTarget:
    """Read the target stored on a fee row."""
    applicability = FeeApplicability(fee.applicability)
    if applicability == FeeApplicability.PROGRAM:
        return ProgramTarget(programs=fee.applicable_programs or [])
    if applicability == FeeApplicability.CLASS:
        return ClassTarget(classes=fee.applicable_classes or [])
    if applicability == FeeApplicability.INDIVIDUAL:
        return IndividualTarget(student_numbers=fee.applicable_students or [])
    return AllStudents()


def target_columns(target: FeeTarget) -> dict:
    """Column values storing ``target`` on an ``AdditionalFee``."""
    columns = {
        "applicability": target.kind,
        "applicable_programs": [],
        "applicable_classes": [],
        "applicable_students": [],
    }
    if isinstance(target, ProgramTarget):
        columns["applicable_programs"] = _unique(target.programs)
    elif isinstance(target, ClassTarget):
        columns["applicable_classes"] = _unique(target.classes)
    elif isinstance(target, IndividualTarget):
        columns["applicable_students"] = _unique(target.student_numbers)
    return columns


async def resolve_targets(target: FeeTarget, directory: StudentDirectory) -> list[str]:
    """
    Student numbers reached by ``target``, de-duplicated in first-seen order.

    All reaches active students only. Individual returns the listed numbers
    as given, whether or not the directory knows them.
    """
    if isinstance(target, IndividualTarget):
        return _unique(target.student_numbers)

    if isinstance(target, ProgramTarget):
        numbers = []
        for program in target.programs:
            numbers.extend(s.student_number for s in await directory.list_by_program(program))
        return _unique(numbers)

    if isinstance(target, ClassTarget):
        numbers = []
        for class_name in target.classes:
            numbers.extend(s.student_number for s in await directory.list_by_class(class_name))
        return _unique(numbers)

    students = await directory.list_all(active_only=True)
    return _unique(s.student_number for s in students)
