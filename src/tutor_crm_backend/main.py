'''
Tutor CRM backend application.
'''
import asyncio
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .database import engine as db_engine
from .database.engine import create_db_engine_and_session_factory, dispose_db_engine
from .services.student_service import StudentService
from .services.lesson_service import LessonService
from .common.clock import utc_now
from .common.logger import log
from .common.config import settings
from .api import students, lessons, payments, finances


async def run_auto_advance_once() -> int:
    """Runs one sweep in its own transaction. Returns the number of updated lessons."""
    async with db_engine.AsyncSessionLocal() as session:
        async with session.begin():
            lesson_service = LessonService(session, StudentService(session), utc_now)
            changes = await lesson_service.auto_advance()
    return len(changes)


async def auto_advance_loop(interval_seconds: float) -> None:
    """Periodically advances past lessons until cancelled."""
    log.info(f"Auto-advance task started (every {interval_seconds:.0f}s).")
    while True:
        try:
            await run_auto_advance_once()
        except Exception as e:
            # The next run recomputes everything; keep the task alive.
            log.error(f"Auto-advance run failed: {e}", exc_info=True)
        await asyncio.sleep(interval_seconds)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Handles application startup and shutdown events.
    """
    # --- On App Startup ---
    log.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}...")
    create_db_engine_and_session_factory()

    sweep_task = None
    if settings.AUTO_ADVANCE_ENABLED and not settings.TEST_MODE:
        sweep_task = asyncio.create_task(
            auto_advance_loop(settings.AUTO_ADVANCE_INTERVAL_MINUTES * 60)
        )

    yield # --- Application is now running ---

    # --- On App Shutdown ---
    if sweep_task is not None:
        sweep_task.cancel()
        with suppress(asyncio.CancelledError):
            await sweep_task

    if not settings.TEST_MODE:
        log.info("Application lifespan shutdown...")
        await dispose_db_engine()
    else:
        log.info("Skipping database engine disposal in TEST_MODE.")


# ---- CREATING THE APP ----
app = FastAPI(
    title=settings.APP_NAME,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
    lifespan=lifespan
)

# --- Add CORS Middleware ---
origins = [
    # URL of local frontend
    "http://localhost",
    "http://localhost:3000",
]

# Extend with environment-specific origins
origins.extend(settings.BACKEND_CORS_ORIGINS)

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],)
# --- End of CORS Middleware ---

@app.get("/")
async def health_check():
    return {"status": "ok", "message": f"{settings.APP_NAME} is running"}

app.include_router(students.router)
app.include_router(lessons.router)
app.include_router(payments.router)
app.include_router(finances.router)
