"""Payment schemas for request/response validation."""

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from agenda.models.payment import PaymentStatus


class PaymentCreate(BaseModel):
    """Manual transaction. Negative amounts are expenses."""
    amount: float
    due_date: date
    client_id: Optional[int] = None
    appointment_id: Optional[int] = None
    status: PaymentStatus = PaymentStatus.PENDING
    payment_date: Optional[date] = None
    payment_method: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = None

    @model_validator(mode="after")
    def check_amount(self) -> "PaymentCreate":
        if self.amount == 0:
            raise ValueError("amount: must not be zero")
        return self


class PaymentUpdate(BaseModel):
    amount: Optional[float] = None
    due_date: Optional[date] = None
    status: Optional[PaymentStatus] = None
    payment_date: Optional[date] = None
    payment_method: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = None


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    appointment_id: Optional[int] = None
    client_id: Optional[int] = None
    amount: float
    status: str
    due_date: date
    payment_date: Optional[date] = None
    payment_method: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime


class PaymentListResponse(BaseModel):
    payments: List[PaymentResponse]
    total: int


class FinancialStats(BaseModel):
    total_revenue: float = 0.0
    pending_amount: float = 0.0
    overdue_amount: float = 0.0
    paid_this_month: float = 0.0
    total_expenses: float = 0.0


class OverdueSweepResponse(BaseModel):
    updated: int
