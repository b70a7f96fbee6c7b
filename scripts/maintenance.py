"""
Standalone maintenance commands for the Tutor CRM database.

Usage:
    python scripts/maintenance.py create-tables
    python scripts/maintenance.py sync-balances
    python scripts/maintenance.py auto-advance

The database URL comes from the application settings (.env / environment).
"""

import sys
import asyncio
import argparse
from pathlib import Path

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# --- Path Setup ---
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from src.tutor_crm_backend.common.config import settings
from src.tutor_crm_backend.common.clock import utc_now
from src.tutor_crm_backend.common.logger import log
from src.tutor_crm_backend.database import models as db_models
from src.tutor_crm_backend.services.student_service import StudentService
from src.tutor_crm_backend.services.lesson_service import LessonService


async def create_tables(session_factory: async_sessionmaker[AsyncSession]) -> None:
    """Creates every table that does not exist yet."""
    async with session_factory() as session:
        connection = await session.connection()
        await connection.run_sync(db_models.Base.metadata.create_all)
        await session.commit()
    log.info("Tables created.")


async def sync_balances(session_factory: async_sessionmaker[AsyncSession]) -> int:
    """Recomputes the cached balance of every student. Returns the number of students."""
    async with session_factory() as session:
        async with session.begin():
            result = await StudentService(session).sync_all_balances()
    log.info(f"Synchronized balances of {result.updated_students} student(s).")
    return result.updated_students


async def auto_advance(session_factory: async_sessionmaker[AsyncSession]) -> int:
    """Runs the auto-advance sweep once. Returns the number of updated lessons."""
    async with session_factory() as session:
        async with session.begin():
            service = LessonService(session, StudentService(session), utc_now)
            changes = await service.auto_advance()
    for change in changes:
        log.info(f"Lesson {change.lesson_id}: {change.previous_state.value} -> {change.new_state.value}")
    return len(changes)


COMMANDS = {
    "create-tables": create_tables,
    "sync-balances": sync_balances,
    "auto-advance": auto_advance,
}


async def main(command: str) -> None:
    engine = create_async_engine(settings.database_url)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    try:
        await COMMANDS[command](session_factory)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Tutor CRM maintenance commands.")
    parser.add_argument("command", choices=sorted(COMMANDS))
    args = parser.parse_args()
    asyncio.run(main(args.command))
