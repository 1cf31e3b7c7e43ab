"""Financial records: totals, overdue sweep and status changes."""

from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Iterable

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from agenda.models.appointment import Appointment, AppointmentStatus
from agenda.models.payment import Payment, PaymentStatus
from agenda.utils.logging import get_logger

logger = get_logger("services.payments")


@dataclass
class Totals:
    total_revenue: float = 0.0
    pending_amount: float = 0.0
    overdue_amount: float = 0.0
    paid_this_month: float = 0.0
    total_expenses: float = 0.0

    def as_dict(self) -> Dict[str, float]:
        return {
            "total_revenue": round(self.total_revenue, 2),
            "pending_amount": round(self.pending_amount, 2),
            "overdue_amount": round(self.overdue_amount, 2),
            "paid_this_month": round(self.paid_this_month, 2),
            "total_expenses": round(self.total_expenses, 2),
        }


def summarize(payments: Iterable[Any], today: date) -> Totals:
    """Income totals by status; negative amounts count as expenses only."""
    totals = Totals()
    for p in payments:
        if p.amount < 0:
            totals.total_expenses += -p.amount
            continue
        if p.status == PaymentStatus.PAID.value:
            totals.total_revenue += p.amount
            paid_on = p.payment_date or p.due_date
            if paid_on.year == today.year and paid_on.month == today.month:
                totals.paid_this_month += p.amount
        elif p.status == PaymentStatus.OVERDUE.value:
            totals.overdue_amount += p.amount
        else:
            totals.pending_amount += p.amount
    return totals


def apply_update(payment: Payment, changes: Dict[str, Any], today: date) -> None:
    """Apply ``changes``; marking a payment paid stamps ``payment_date``."""
    if "status" in changes and changes["status"] is not None:
        changes["status"] = PaymentStatus(changes["status"]).value
        if changes["status"] == PaymentStatus.PAID.value and not changes.get("payment_date"):
            changes["payment_date"] = payment.payment_date or today
    for key, value in changes.items():
        setattr(payment, key, value)


async def financial_stats(db: AsyncSession, user_id: int, today: date) -> Totals:
    result = await db.execute(select(Payment).where(Payment.user_id == user_id))
    return summarize(result.scalars().all(), today)


async def sweep_overdue(db: AsyncSession, user_id: int, today: date) -> int:
    """Mark pending payments due before ``today`` as overdue."""
    result = await db.execute(
        update(Payment)
        .where(
            Payment.user_id == user_id,
            Payment.status == PaymentStatus.PENDING.value,
            Payment.due_date < today,
        )
        .values(status=PaymentStatus.OVERDUE.value)
        .execution_options(synchronize_session=False)
    )
    updated = result.rowcount or 0
    if updated:
        logger.info("payments_marked_overdue", user_id=user_id, count=updated)
    return updated


async def client_stats(db: AsyncSession, user_id: int, client_id: int) -> Dict[str, Any]:
    appointments = (
        await db.execute(
            select(Appointment.status).where(
                Appointment.user_id == user_id,
                Appointment.client_id == client_id,
            )
        )
    ).scalars().all()
    payments = (
        await db.execute(
            select(Payment).where(
                Payment.user_id == user_id,
                Payment.client_id == client_id,
            )
        )
    ).scalars().all()

    total_paid = sum(p.amount for p in payments if p.status == PaymentStatus.PAID.value)
    total_pending = sum(
        p.amount for p in payments
        if p.status in (PaymentStatus.PENDING.value, PaymentStatus.OVERDUE.value)
    )
    return {
        "total_sessions": len(appointments),
        "completed_sessions": sum(
            1 for s in appointments if s == AppointmentStatus.COMPLETED.value
        ),
        "cancelled_sessions": sum(
            1 for s in appointments if s == AppointmentStatus.CANCELLED.value
        ),
        "total_paid": round(total_paid, 2),
        "total_pending": round(total_pending, 2),
    }
