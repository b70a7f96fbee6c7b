'''
API endpoints for center-wide financial summaries.
'''
from typing import Annotated, Any
from fastapi import APIRouter, Depends

from ..models import finance as finance_models
from ..services.finance_service import FinancialSummaryService

class FinancesAPI:
    """
    A class to encapsulate endpoints for Financial Summaries.
    """
    def __init__(self):
        self.router = APIRouter(
            prefix="/finances",
            tags=["Finances"]
        )
        self._register_routes()

    def _register_routes(self):
        """Registers all the API routes for this class."""
        self.router.add_api_route(
                "/stats",
                self.get_stats,
                methods=["GET"],
                response_model=finance_models.FinancialStats)
        self.router.add_api_route(
                "/debts",
                self.get_debts,
                methods=["GET"],
                response_model=list[finance_models.StudentDebtRead])

    async def get_stats(
        self,
        finance_service: Annotated[FinancialSummaryService, Depends(FinancialSummaryService)]
    ) -> Any:
        """Lesson counts and amounts per state, cancellation outcomes and payment totals."""
        return await finance_service.get_stats()

    async def get_debts(
        self,
        finance_service: Annotated[FinancialSummaryService, Depends(FinancialSummaryService)]
    ) -> list[Any]:
        return await finance_service.get_debts()

# Instantiate the class and expose its router for main.py
finances_api = FinancesAPI()
router = finances_api.router
