import pytest
from datetime import timedelta
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from src.tutor_crm_backend.database import models as db_models
from scripts.maintenance import auto_advance, create_tables, sync_balances

from tests.constants import TEST_NOW, LESSON_COST


@pytest.fixture(scope="function")
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


async def seed_student(session_factory, **lesson_flags) -> db_models.Students:
    async with session_factory() as session:
        student = db_models.Students(full_name="Script Student", balance=12345)
        session.add(student)
        await session.flush()
        session.add(db_models.Lessons(
            student_id=student.id,
            start_time=TEST_NOW - timedelta(days=365),
            cost=LESSON_COST,
            **lesson_flags
        ))
        await session.commit()
        return student


@pytest.mark.anyio
class TestMaintenanceCommands:

    async def test_create_tables_is_repeatable(self, session_factory):
        await create_tables(session_factory)
        await create_tables(session_factory)

    async def test_sync_balances_fixes_stale_values(self, session_factory):
        student = await seed_student(session_factory, is_completed=True)

        assert await sync_balances(session_factory) == 1

        async with session_factory() as session:
            balance = await session.scalar(
                select(db_models.Students.balance).filter(db_models.Students.id == student.id)
            )
        assert balance == -LESSON_COST

    async def test_auto_advance_uses_wall_clock(self, session_factory):
        await seed_student(session_factory)

        assert await auto_advance(session_factory) == 1
        assert await auto_advance(session_factory) == 0
