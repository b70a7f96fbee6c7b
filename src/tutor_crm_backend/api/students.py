'''
API endpoints for students and their balances.
'''
from typing import Annotated, Any, Optional
from uuid import UUID
from fastapi import APIRouter, Depends, Query, status

from ..models import student as student_models
from ..models import finance as finance_models
from ..services.student_service import StudentService

class StudentsAPI:
    """
    A class to encapsulate endpoints for Students.
    """
    def __init__(self):
        self.router = APIRouter(
            prefix="/students",
            tags=["Students"]
        )
        self._register_routes()

    def _register_routes(self):
        """Registers all the API routes for this class."""
        self.router.add_api_route(
                "/",
                self.list_students,
                methods=["GET"],
                response_model=list[student_models.StudentRead])
        self.router.add_api_route(
                "/",
                self.create_student,
                methods=["POST"],
                status_code=status.HTTP_201_CREATED,
                response_model=student_models.StudentRead)
        # Registered before "/{student_id}" routes so the path is not parsed as an ID.
        self.router.add_api_route(
                "/sync-balances",
                self.sync_balances,
                methods=["POST"],
                response_model=finance_models.SyncBalancesResult)
        self.router.add_api_route(
                "/{student_id}",
                self.get_student,
                methods=["GET"],
                response_model=student_models.StudentRead)
        self.router.add_api_route(
                "/{student_id}",
                self.update_student,
                methods=["PATCH"],
                response_model=student_models.StudentRead)
        self.router.add_api_route(
                "/{student_id}",
                self.delete_student,
                methods=["DELETE"],
                status_code=status.HTTP_204_NO_CONTENT)
        self.router.add_api_route(
                "/{student_id}/balance",
                self.get_balance,
                methods=["GET"],
                response_model=finance_models.StudentBalanceRead)

    async def list_students(
        self,
        student_service: Annotated[StudentService, Depends(StudentService)],
        search: Annotated[Optional[str], Query(description="Filter by part of the name")] = None
    ) -> list[Any]:
        return await student_service.list_students(search=search)

    async def create_student(
        self,
        student_data: student_models.StudentCreate,
        student_service: Annotated[StudentService, Depends(StudentService)]
    ) -> Any:
        return await student_service.create_student(student_data)

    async def get_student(
        self,
        student_id: UUID,
        student_service: Annotated[StudentService, Depends(StudentService)]
    ) -> Any:
        return await student_service.get_student_by_id(student_id)

    async def update_student(
        self,
        student_id: UUID,
        update_data: student_models.StudentUpdate,
        student_service: Annotated[StudentService, Depends(StudentService)]
    ) -> Any:
        return await student_service.update_student(student_id, update_data)

    async def delete_student(
        self,
        student_id: UUID,
        student_service: Annotated[StudentService, Depends(StudentService)]
    ) -> None:
        await student_service.delete_student(student_id)

    async def get_balance(
        self,
        student_id: UUID,
        student_service: Annotated[StudentService, Depends(StudentService)]
    ) -> Any:
        """
        Recomputes the student's ledger, stores the new balance and returns the
        full breakdown with payment history.
        """
        return await student_service.get_balance_summary(student_id)

    async def sync_balances(
        self,
        student_service: Annotated[StudentService, Depends(StudentService)]
    ) -> Any:
        """Recomputes the cached balance of every student."""
        return await student_service.sync_all_balances()

# Instantiate the class and expose its router for main.py
students_api = StudentsAPI()
router = students_api.router
