'''
API endpoints for lessons.
'''
from datetime import datetime
from typing import Annotated, Any, Optional
from uuid import UUID
from fastapi import APIRouter, Depends, Query, status

from ..database.db_enums import LessonState
from ..models import lesson as lesson_models
from ..services.lesson_service import LessonService

class LessonsAPI:
    """
    A class to encapsulate endpoints for Lessons.
    """
    def __init__(self):
        self.router = APIRouter(
            prefix="/lessons",
            tags=["Lessons"]
        )
        self._register_routes()

    def _register_routes(self):
        """Registers all the API routes for this class."""
        self.router.add_api_route(
                "/",
                self.list_lessons,
                methods=["GET"],
                response_model=list[lesson_models.LessonRead])
        self.router.add_api_route(
                "/",
                self.create_lesson,
                methods=["POST"],
                status_code=status.HTTP_201_CREATED,
                response_model=lesson_models.LessonRead)
        self.router.add_api_route(
                "/bulk",
                self.create_bulk_lessons,
                methods=["POST"],
                status_code=status.HTTP_201_CREATED,
                response_model=lesson_models.BulkLessonResult)
        self.router.add_api_route(
                "/auto-update-status",
                self.auto_update_status,
                methods=["POST"],
                response_model=lesson_models.AutoUpdateResult)
        self.router.add_api_route(
                "/{lesson_id}",
                self.get_lesson,
                methods=["GET"],
                response_model=lesson_models.LessonRead)
        self.router.add_api_route(
                "/{lesson_id}",
                self.update_lesson,
                methods=["PATCH"],
                response_model=lesson_models.LessonRead)
        self.router.add_api_route(
                "/{lesson_id}",
                self.delete_lesson,
                methods=["DELETE"],
                status_code=status.HTTP_204_NO_CONTENT)
        self.router.add_api_route(
                "/{lesson_id}/cancellation",
                self.preview_cancellation,
                methods=["GET"],
                response_model=lesson_models.CancellationPreview)
        self.router.add_api_route(
                "/{lesson_id}/cancel",
                self.cancel_lesson,
                methods=["POST"],
                response_model=lesson_models.LessonCancelResult)

    async def list_lessons(
        self,
        lesson_service: Annotated[LessonService, Depends(LessonService)],
        student_id: Annotated[UUID | None, Query(description="Optional filter for Student ID")] = None,
        state: Annotated[LessonState | None, Query(description="Optional filter for the derived state")] = None,
        date_from: Annotated[Optional[datetime], Query()] = None,
        date_to: Annotated[Optional[datetime], Query()] = None
    ) -> list[Any]:
        return await lesson_service.list_lessons(
            student_id=student_id,
            state=state,
            date_from=date_from,
            date_to=date_to
        )

    async def create_lesson(
        self,
        lesson_data: lesson_models.LessonCreate,
        lesson_service: Annotated[LessonService, Depends(LessonService)]
    ) -> Any:
        return await lesson_service.create_lesson(lesson_data)

    async def create_bulk_lessons(
        self,
        bulk_data: lesson_models.BulkLessonCreate,
        lesson_service: Annotated[LessonService, Depends(LessonService)]
    ) -> Any:
        """
        Creates recurring lessons. Conflicting lessons are skipped and reported
        unless `abort_on_conflict` is set, in which case nothing is created.
        """
        return await lesson_service.create_bulk_lessons(bulk_data)

    async def auto_update_status(
        self,
        lesson_service: Annotated[LessonService, Depends(LessonService)]
    ) -> Any:
        """Runs the auto-advance sweep immediately."""
        changes = await lesson_service.auto_advance()
        return lesson_models.AutoUpdateResult(
            updated=[lesson_models.StatusChangeRead.model_validate(c) for c in changes]
        )

    async def get_lesson(
        self,
        lesson_id: UUID,
        lesson_service: Annotated[LessonService, Depends(LessonService)]
    ) -> Any:
        return await lesson_service.get_lesson(lesson_id)

    async def update_lesson(
        self,
        lesson_id: UUID,
        update_data: lesson_models.LessonUpdate,
        lesson_service: Annotated[LessonService, Depends(LessonService)]
    ) -> Any:
        return await lesson_service.update_lesson(lesson_id, update_data)

    async def delete_lesson(
        self,
        lesson_id: UUID,
        lesson_service: Annotated[LessonService, Depends(LessonService)]
    ) -> None:
        await lesson_service.delete_lesson(lesson_id)

    async def preview_cancellation(
        self,
        lesson_id: UUID,
        lesson_service: Annotated[LessonService, Depends(LessonService)]
    ) -> Any:
        return await lesson_service.preview_cancellation(lesson_id)

    async def cancel_lesson(
        self,
        lesson_id: UUID,
        lesson_service: Annotated[LessonService, Depends(LessonService)]
    ) -> Any:
        return await lesson_service.cancel_lesson(lesson_id)

# Instantiate the class and expose its router for main.py
lessons_api = LessonsAPI()
router = lessons_api.router
