'''
Pytest configuration for the FastAPI application.

This file sets up fixtures for:
1. Forcing the application into TEST_MODE before any code is imported.
2. Providing a fresh in-memory database and session for each test.
3. Providing a fixed, adjustable clock in place of the wall clock.
4. Providing instances of all service classes, pre-injected with the test session.
5. Providing an httpx AsyncClient wired to the same session and clock.
'''

import os

# Must happen before the application settings are imported.
os.environ["TEST_MODE"] = "True"
os.environ["AUTO_ADVANCE_ENABLED"] = "False"

import pytest
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker, AsyncEngine
from sqlalchemy.pool import StaticPool

# --- Application Imports ---
from src.tutor_crm_backend.main import app
from src.tutor_crm_backend.common.config import settings
from src.tutor_crm_backend.common.clock import get_clock
from src.tutor_crm_backend.database.engine import get_db_session
from src.tutor_crm_backend.database import models as db_models
from src.tutor_crm_backend.services.student_service import StudentService
from src.tutor_crm_backend.services.lesson_service import LessonService
from src.tutor_crm_backend.services.payment_service import PaymentService
from src.tutor_crm_backend.services.finance_service import FinancialSummaryService

from tests.constants import TEST_NOW
from tests.database import factories


@pytest.fixture(scope="session")
def anyio_backend():
    """
    Override the default 'anyio_backend' fixture.
    1. Forces the backend to 'asyncio'.
    2. Promotes the scope to 'session'.
    """
    return "asyncio"


class FixedClock:
    """A clock that only moves when a test moves it."""
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture(scope="function")
def clock() -> FixedClock:
    return FixedClock(TEST_NOW)


# --- 1. Database Fixtures ---

@pytest.fixture(scope="function")
async def db_engine() -> AsyncGenerator[AsyncEngine, None]:
    """A fresh in-memory SQLite database with all tables created."""
    assert settings.TEST_MODE is True, \
        "TEST_MODE was not set to True! Check your .env file or environment."

    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(db_models.Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture(scope="function")
async def db_session(db_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """
    Provides a single database session for service-level tests.
    The factories are bound to it as well.
    """
    session_factory = async_sessionmaker(
        bind=db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    session = session_factory()
    factories.test_db_session = session
    try:
        yield session
    finally:
        factories.test_db_session = None
        await session.rollback()
        await session.close()


# --- 2. Service Fixtures ---

@pytest.fixture(scope="function")
def student_service(db_session: AsyncSession) -> StudentService:
    return StudentService(db=db_session)

@pytest.fixture(scope="function")
def lesson_service(
    db_session: AsyncSession, student_service: StudentService, clock: FixedClock
) -> LessonService:
    return LessonService(db=db_session, student_service=student_service, clock=clock)

@pytest.fixture(scope="function")
def payment_service(
    db_session: AsyncSession, student_service: StudentService, clock: FixedClock
) -> PaymentService:
    return PaymentService(db=db_session, student_service=student_service, clock=clock)

@pytest.fixture(scope="function")
def financial_summary_service(
    db_session: AsyncSession, lesson_service: LessonService
) -> FinancialSummaryService:
    return FinancialSummaryService(db=db_session, lesson_service=lesson_service)


# --- 3. API Client ---

@pytest.fixture(scope="function")
async def client(db_session: AsyncSession, clock: FixedClock) -> AsyncGenerator[AsyncClient, None]:
    """
    An AsyncClient talking to the app in-process. Requests share the test
    session and the fixed clock.
    """
    async def override_get_db_session() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db_session] = override_get_db_session
    app.dependency_overrides[get_clock] = lambda: clock

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as test_client:
        yield test_client

    app.dependency_overrides.clear()


# --- 4. Data Fixtures ---

@pytest.fixture(scope="function")
async def student(db_session: AsyncSession) -> db_models.Students:
    student = factories.StudentFactory.create()
    await db_session.flush()
    return student

@pytest.fixture(scope="function")
async def other_student(db_session: AsyncSession) -> db_models.Students:
    student = factories.StudentFactory.create()
    await db_session.flush()
    return student
