import pytest
from datetime import timedelta
from uuid import uuid4
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from src.tutor_crm_backend.database import models as db_models

from tests.constants import TEST_NOW, LESSON_COST
from tests.database.factories import LessonFactory


@pytest.mark.anyio
class TestStudentsAPI:

    async def test_health_check(self, client: AsyncClient):
        response = await client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    async def test_create_and_list(self, client: AsyncClient):
        response = await client.post("/students/", json={"full_name": "Lena Smirnova", "phone": "+7000"})
        assert response.status_code == 201, response.text
        created = response.json()
        assert created["balance"] == 0

        response = await client.get("/students/")
        assert response.status_code == 200
        assert [s["id"] for s in response.json()] == [created["id"]]

    async def test_create_requires_name(self, client: AsyncClient):
        response = await client.post("/students/", json={"full_name": ""})
        assert response.status_code == 422

    async def test_get_unknown_student(self, client: AsyncClient):
        response = await client.get(f"/students/{uuid4()}")
        assert response.status_code == 404

    async def test_patch_and_delete(self, client: AsyncClient, student: db_models.Students):
        response = await client.patch(f"/students/{student.id}", json={"notes": "Exam in May"})
        assert response.status_code == 200
        assert response.json()["notes"] == "Exam in May"

        response = await client.delete(f"/students/{student.id}")
        assert response.status_code == 204

        response = await client.get(f"/students/{student.id}")
        assert response.status_code == 404

    async def test_balance_endpoint(
        self, client: AsyncClient, db_session: AsyncSession, student: db_models.Students
    ):
        LessonFactory.create(student_id=student.id, start_time=TEST_NOW + timedelta(days=1), is_paid=True)
        LessonFactory.create(student_id=student.id, start_time=TEST_NOW - timedelta(days=1), is_completed=True, cost=400)
        await db_session.flush()

        response = await client.get(f"/students/{student.id}/balance")
        assert response.status_code == 200
        body = response.json()
        assert body["balance"] == LESSON_COST - 400
        assert body["prepaid_amount"] == LESSON_COST
        assert body["debt_amount"] == 400
        assert body["payment_history"] == []

    async def test_sync_balances(
        self, client: AsyncClient, db_session: AsyncSession, student: db_models.Students
    ):
        LessonFactory.create(student_id=student.id, is_paid=True)
        await db_session.flush()

        response = await client.post("/students/sync-balances")
        assert response.status_code == 200
        assert response.json() == {"updated_students": 1}
        assert student.balance == LESSON_COST
