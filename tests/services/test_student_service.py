import pytest
from datetime import timedelta
from uuid import uuid4
from fastapi import HTTPException
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from src.tutor_crm_backend.database import models as db_models
from src.tutor_crm_backend.models import student as student_models
from src.tutor_crm_backend.services.student_service import StudentService

from tests.constants import TEST_NOW, LESSON_COST
from tests.database.factories import LessonFactory, PaymentFactory, StudentFactory


@pytest.mark.anyio
class TestStudentServiceCrud:

    async def test_create_and_get(self, student_service: StudentService):
        created = await student_service.create_student(student_models.StudentCreate(
            full_name="Anna Petrova", parent_name="Olga Petrova", phone="+10000000"
        ))
        assert created.balance == 0

        fetched = await student_service.get_student_by_id(created.id)
        assert fetched.full_name == "Anna Petrova"

    async def test_get_unknown(self, student_service: StudentService, db_session: AsyncSession):
        with pytest.raises(HTTPException) as e:
            await student_service.get_student_by_id(uuid4())
        assert e.value.status_code == 404

    async def test_update_only_given_fields(self, student_service: StudentService, student: db_models.Students):
        parent_name = student.parent_name
        updated = await student_service.update_student(
            student.id, student_models.StudentUpdate(notes="Prefers mornings")
        )
        assert updated.notes == "Prefers mornings"
        assert updated.parent_name == parent_name

    async def test_list_with_search(self, student_service: StudentService, db_session: AsyncSession):
        StudentFactory.create(full_name="Ivan Sokolov")
        StudentFactory.create(full_name="Maria Sokolova")
        StudentFactory.create(full_name="Pavel Orlov")
        await db_session.flush()

        assert len(await student_service.list_students()) == 3
        assert len(await student_service.list_students(search="sokol")) == 2

    async def test_delete_removes_lessons_and_payments(
        self, student_service: StudentService, db_session: AsyncSession, student: db_models.Students
    ):
        lesson = LessonFactory.create(student_id=student.id)
        payment = PaymentFactory.create(student_id=student.id)
        await db_session.flush()
        await db_session.execute(db_models.t_payment_lessons.insert().values(payment_id=payment.id, lesson_id=lesson.id))

        await student_service.delete_student(student.id)

        assert await db_session.scalar(select(func.count()).select_from(db_models.Lessons)) == 0
        assert await db_session.scalar(select(func.count()).select_from(db_models.Payments)) == 0
        assert await db_session.scalar(select(func.count()).select_from(db_models.t_payment_lessons)) == 0
        with pytest.raises(HTTPException):
            await student_service.get_student_by_id(student.id)


@pytest.mark.anyio
class TestStudentServiceBalance:

    async def test_stale_balance_is_corrected(
        self, student_service: StudentService, db_session: AsyncSession, student: db_models.Students
    ):
        LessonFactory.create(student_id=student.id, start_time=TEST_NOW + timedelta(days=1), is_paid=True)
        LessonFactory.create(student_id=student.id, start_time=TEST_NOW - timedelta(days=1), is_completed=True, cost=400)
        student.balance = 999_999
        await db_session.flush()

        summary = await student_service.recalculate_balance(student.id)

        assert summary.balance == LESSON_COST - 400
        assert student.balance == LESSON_COST - 400

    async def test_recalculation_is_repeatable(
        self, student_service: StudentService, db_session: AsyncSession, student: db_models.Students
    ):
        LessonFactory.create(student_id=student.id, is_paid=True)
        await db_session.flush()

        first = await student_service.recalculate_balance(student.id)
        second = await student_service.recalculate_balance(student.id)
        assert first == second

    async def test_sync_all_balances(
        self,
        student_service: StudentService,
        db_session: AsyncSession,
        student: db_models.Students,
        other_student: db_models.Students
    ):
        LessonFactory.create(student_id=student.id, start_time=TEST_NOW - timedelta(days=1), is_completed=True)
        LessonFactory.create(student_id=other_student.id, is_paid=True)
        await db_session.flush()

        result = await student_service.sync_all_balances()

        assert result.updated_students == 2
        assert student.balance == -LESSON_COST
        assert other_student.balance == LESSON_COST

    async def test_balance_summary(
        self, student_service: StudentService, db_session: AsyncSession, student: db_models.Students
    ):
        LessonFactory.create(student_id=student.id, start_time=TEST_NOW + timedelta(days=1), is_paid=True)
        LessonFactory.create(student_id=student.id, start_time=TEST_NOW + timedelta(days=2), is_paid=True)
        LessonFactory.create(student_id=student.id, start_time=TEST_NOW - timedelta(days=1), is_completed=True)
        PaymentFactory.create(student_id=student.id, amount=3000, payment_date=TEST_NOW - timedelta(days=2))
        await db_session.flush()

        summary = await student_service.get_balance_summary(student.id)

        assert summary.full_name == student.full_name
        assert summary.prepaid_lessons_count == 2
        assert summary.debt_lessons_count == 1
        assert summary.balance == LESSON_COST
        assert summary.total_paid == 3000
        assert summary.last_payment_date is not None
