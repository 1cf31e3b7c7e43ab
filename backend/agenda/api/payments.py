"""Financial records API endpoints."""

from datetime import date, datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from agenda.database import get_db
from agenda.models.appointment import Appointment
from agenda.models.payment import Payment, PaymentStatus
from agenda.schemas.payment import (
    FinancialStats,
    OverdueSweepResponse,
    PaymentCreate,
    PaymentListResponse,
    PaymentResponse,
    PaymentUpdate,
)
from agenda.services.context import SchedulingContext, get_scheduling_context
from agenda.services.payment_service import apply_update, financial_stats, sweep_overdue
from agenda.utils.logging import get_logger
from agenda.utils.timeutils import local_date

logger = get_logger("api.payments")

router = APIRouter()


def _today(ctx: SchedulingContext) -> date:
    return local_date(datetime.now(timezone.utc), ctx.tz)


async def _get_payment(db: AsyncSession, payment_id: int, user_id: int) -> Payment:
    result = await db.execute(
        select(Payment).where(Payment.id == payment_id, Payment.user_id == user_id)
    )
    payment = result.scalar_one_or_none()
    if not payment:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Payment not found")
    return payment


@router.get("/", response_model=PaymentListResponse)
async def list_payments(
    status_filter: Optional[PaymentStatus] = Query(None, alias="status"),
    client_id: Optional[int] = None,
    due_from: Optional[date] = None,
    due_to: Optional[date] = None,
    db: AsyncSession = Depends(get_db),
    ctx: SchedulingContext = Depends(get_scheduling_context),
) -> PaymentListResponse:
    query = select(Payment).where(Payment.user_id == ctx.user_id)
    if status_filter:
        query = query.where(Payment.status == status_filter.value)
    if client_id is not None:
        query = query.where(Payment.client_id == client_id)
    if due_from:
        query = query.where(Payment.due_date >= due_from)
    if due_to:
        query = query.where(Payment.due_date <= due_to)

    result = await db.execute(query.order_by(Payment.due_date.desc(), Payment.id.desc()))
    payments = result.scalars().all()
    return PaymentListResponse(
        payments=[PaymentResponse.model_validate(p) for p in payments],
        total=len(payments),
    )


@router.post("/", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
async def create_payment(
    request: PaymentCreate,
    db: AsyncSession = Depends(get_db),
    ctx: SchedulingContext = Depends(get_scheduling_context),
) -> Payment:
    """Record a manual transaction (income or, with a negative amount, an expense)."""
    if request.client_id is not None and request.client_id not in ctx.clients:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Client not found")
    if request.appointment_id is not None:
        owned = await db.execute(
            select(Appointment.id).where(
                Appointment.id == request.appointment_id,
                Appointment.user_id == ctx.user_id,
            )
        )
        if owned.scalar_one_or_none() is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Appointment not found")

    data = request.model_dump()
    data["status"] = request.status.value
    if request.status is PaymentStatus.PAID and request.payment_date is None:
        data["payment_date"] = _today(ctx)

    payment = Payment(user_id=ctx.user_id, **data)
    db.add(payment)
    await db.flush()
    await db.refresh(payment)
    return payment


@router.get("/stats", response_model=FinancialStats)
async def get_financial_stats(
    db: AsyncSession = Depends(get_db),
    ctx: SchedulingContext = Depends(get_scheduling_context),
) -> FinancialStats:
    totals = await financial_stats(db, ctx.user_id, _today(ctx))
    return FinancialStats(**totals.as_dict())


@router.post("/overdue-sweep", response_model=OverdueSweepResponse)
async def mark_overdue(
    db: AsyncSession = Depends(get_db),
    ctx: SchedulingContext = Depends(get_scheduling_context),
) -> OverdueSweepResponse:
    """Flag pending payments whose due date has passed."""
    return OverdueSweepResponse(updated=await sweep_overdue(db, ctx.user_id, _today(ctx)))


@router.put("/{payment_id}", response_model=PaymentResponse)
async def update_payment(
    payment_id: int,
    request: PaymentUpdate,
    db: AsyncSession = Depends(get_db),
    ctx: SchedulingContext = Depends(get_scheduling_context),
) -> Payment:
    payment = await _get_payment(db, payment_id, ctx.user_id)
    apply_update(payment, request.model_dump(exclude_unset=True), _today(ctx))
    await db.flush()
    await db.refresh(payment)
    return payment


@router.delete("/{payment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_payment(
    payment_id: int,
    db: AsyncSession = Depends(get_db),
    ctx: SchedulingContext = Depends(get_scheduling_context),
) -> None:
    result = await db.execute(
        delete(Payment)
        .where(Payment.id == payment_id, Payment.user_id == ctx.user_id)
        .execution_options(synchronize_session=False)
    )
    if not result.rowcount:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Payment not found")
    logger.info("payment_deleted", user_id=ctx.user_id, payment_id=payment_id)
