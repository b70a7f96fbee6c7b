'''
API models for balances and financial summaries.
'''
from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from ..database.db_enums import PaymentTypeEnum

class PaymentHistoryItem(BaseModel):
    id: Optional[UUID] = None
    amount: int
    payment_date: datetime
    description: Optional[str] = None
    payment_type: PaymentTypeEnum

    model_config = ConfigDict(from_attributes=True)

class StudentBalanceRead(BaseModel):
    student_id: UUID
    full_name: str
    balance: int
    prepaid_amount: int
    debt_amount: int
    prepaid_lessons_count: int
    debt_lessons_count: int
    refunded_credit: int
    total_paid: int
    last_payment_date: Optional[datetime] = None
    payment_history: list[PaymentHistoryItem]

class StateTotals(BaseModel):
    count: int = 0
    amount: int = 0

class FinancialStats(BaseModel):
    scheduled: StateTotals
    prepaid: StateTotals
    completed: StateTotals
    debt: StateTotals
    cancelled: StateTotals
    refunded_amount: int
    cancellation_income: int
    total_payments: int
    total_debt: int
    total_prepaid: int

class StudentDebtRead(BaseModel):
    student_id: UUID
    full_name: str
    debt_amount: int
    debt_lessons_count: int
    balance: int

class SyncBalancesResult(BaseModel):
    updated_students: int
