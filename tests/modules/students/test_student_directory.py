import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.exceptions import NotFoundError
from src.modules.students.service import StudentDirectory
from tests.factories import create_student


class TestStudentDirectory:
    """Tests for student directory lookups."""

    async def test_get_by_number(self, db_session: AsyncSession):
        await create_student(db_session, "S1")
        directory = StudentDirectory(db_session)

        student = await directory.get_by_number("S1")

        assert student.full_name == "Student S1"
        with pytest.raises(NotFoundError):
            await directory.get_by_number("S2")

    async def test_list_all_and_active(self, db_session: AsyncSession):
        await create_student(db_session, "S2")
        await create_student(db_session, "S1", is_active=False)
        directory = StudentDirectory(db_session)

        assert [s.student_number for s in await directory.list_all()] == ["S1", "S2"]
        assert [s.student_number for s in await directory.list_all(active_only=True)] == ["S2"]

    async def test_by_program_class_and_numbers(self, db_session: AsyncSession):
        await create_student(db_session, "S1", program="Law", class_name="L-1")
        await create_student(db_session, "S2", program="Law", class_name="L-2")
        await create_student(db_session, "S3", program="Medicine", class_name="L-1")
        directory = StudentDirectory(db_session)

        law = await directory.list_by_program("Law")
        l1 = await directory.list_by_class("L-1")
        listed = await directory.list_by_numbers(["S3", "S1", "GHOST"])

        assert sorted(s.student_number for s in law) == ["S1", "S2"]
        assert sorted(s.student_number for s in l1) == ["S1", "S3"]
        assert [s.student_number for s in listed] == ["S1", "S3"]
        assert await directory.list_by_numbers([]) == []
