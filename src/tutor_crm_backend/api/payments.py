'''
API endpoints for payments.
'''
from typing import Annotated, Any
from uuid import UUID
from fastapi import APIRouter, Depends, Query, status

from ..models import payment as payment_models
from ..services.payment_service import PaymentService

class PaymentsAPI:
    """
    A class to encapsulate endpoints for Payments.
    """
    def __init__(self):
        self.router = APIRouter(
            prefix="/payments",
            tags=["Payments"]
        )
        self._register_routes()

    def _register_routes(self):
        """Registers all the API routes for this class."""
        self.router.add_api_route(
                "/",
                self.list_payments,
                methods=["GET"],
                response_model=list[payment_models.PaymentRead])
        self.router.add_api_route(
                "/",
                self.create_payment,
                methods=["POST"],
                status_code=status.HTTP_201_CREATED,
                response_model=payment_models.PaymentRead)
        self.router.add_api_route(
                "/prepayment",
                self.create_prepayment,
                methods=["POST"],
                status_code=status.HTTP_201_CREATED,
                response_model=payment_models.PaymentRead)
        self.router.add_api_route(
                "/unpaid-lessons",
                self.get_unpaid_lessons,
                methods=["GET"],
                response_model=payment_models.UnpaidLessonsRead)
        self.router.add_api_route(
                "/{payment_id}",
                self.get_payment,
                methods=["GET"],
                response_model=payment_models.PaymentRead)
        self.router.add_api_route(
                "/{payment_id}",
                self.delete_payment,
                methods=["DELETE"],
                status_code=status.HTTP_204_NO_CONTENT)

    async def list_payments(
        self,
        payment_service: Annotated[PaymentService, Depends(PaymentService)],
        student_id: Annotated[UUID | None, Query(description="Optional filter for Student ID")] = None
    ) -> list[Any]:
        return await payment_service.list_payments(student_id=student_id)

    async def create_payment(
        self,
        payment_data: payment_models.PaymentCreate,
        payment_service: Annotated[PaymentService, Depends(PaymentService)]
    ) -> Any:
        """
        Records a payment. Linked lessons are marked paid in the same transaction;
        their total cost must not exceed the amount.
        """
        return await payment_service.create_payment(payment_data)

    async def create_prepayment(
        self,
        prepayment_data: payment_models.PrepaymentCreate,
        payment_service: Annotated[PaymentService, Depends(PaymentService)]
    ) -> Any:
        return await payment_service.create_prepayment(prepayment_data)

    async def get_unpaid_lessons(
        self,
        student_id: Annotated[UUID, Query()],
        payment_service: Annotated[PaymentService, Depends(PaymentService)]
    ) -> Any:
        return await payment_service.get_unpaid_lessons(student_id)

    async def get_payment(
        self,
        payment_id: UUID,
        payment_service: Annotated[PaymentService, Depends(PaymentService)]
    ) -> Any:
        return await payment_service.get_payment(payment_id)

    async def delete_payment(
        self,
        payment_id: UUID,
        payment_service: Annotated[PaymentService, Depends(PaymentService)]
    ) -> None:
        """Deletes a payment and returns its linked lessons to unpaid."""
        await payment_service.delete_payment(payment_id)

# Instantiate the class and expose its router for main.py
payments_api = PaymentsAPI()
router = payments_api.router
