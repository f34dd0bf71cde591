"""Read-only queries over the student directory."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.exceptions import NotFoundError
from src.modules.students.models import Student


class StudentDirectory:
    """Lookup of students by number, program, class or list."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_by_number(self, student_number: str) -> Student | None:
        result = await self.db.execute(
            select(Student).where(Student.student_number == student_number)
        )
        return result.scalar_one_or_none()

    async def get_by_number(self, student_number: str) -> Student:
        student = await self.find_by_number(student_number)
        if not student:
            raise NotFoundError("Student", student_number)
        return student

    async def list_all(self, active_only: bool = False) -> list[Student]:
        query = select(Student).order_by(Student.student_number)
        if active_only:
            query = query.where(Student.is_active == True)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def list_by_program(self, program: str) -> list[Student]:
        result = await self.db.execute(
            select(Student).where(Student.program == program).order_by(Student.full_name)
        )
        return list(result.scalars().all())

    async def list_by_class(self, class_name: str) -> list[Student]:
        result = await self.db.execute(
            select(Student).where(Student.class_name == class_name).order_by(Student.full_name)
        )
        return list(result.scalars().all())

    async def list_by_numbers(self, student_numbers: list[str]) -> list[Student]:
        if not student_numbers:
            return []
        result = await self.db.execute(
            select(Student)
            .where(Student.student_number.in_(student_numbers))
            .order_by(Student.student_number)
        )
        return list(result.scalars().all())
