"""Turns a booking form into the appointment rows (and payments) to persist."""

import json
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Sequence
from zoneinfo import ZoneInfo

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from agenda.config import settings
from agenda.models.appointment import Appointment, AppointmentStatus, RecurrenceType
from agenda.models.audit_log import AuditAction, AuditLog
from agenda.models.payment import Payment, PaymentStatus
from agenda.schemas.appointment import AppointmentCreate
from agenda.services.conflict_service import (
    Interval,
    SeriesConflict,
    conflict_message,
    find_conflict,
    find_series_conflicts,
    load_appointments_between,
)
from agenda.services.context import SchedulingContext
from agenda.services.exceptions import ClientNotFoundError
from agenda.services.kinds import (
    AppointmentKind,
    Block,
    Personal,
    Recurring,
    Single,
    kind_columns,
    requires_client,
)
from agenda.services.recurrence import Frequency, nth_occurrence
from agenda.utils.logging import get_logger
from agenda.utils.timeutils import ensure_utc, local_date

logger = get_logger("services.series")

PAYMENT_WARNING = (
    "Appointments were created, but the financial records could not be saved."
)


@dataclass(frozen=True)
class ClientRef:
    id: int
    name: str


@dataclass
class SeriesForm:
    """Fields copied verbatim onto every generated occurrence."""
    description: Optional[str] = None
    price: Optional[float] = None
    color: Optional[str] = None
    is_online: bool = False
    online_url: Optional[str] = None


@dataclass
class AppointmentDraft:
    index: int
    kind: AppointmentKind
    start_time: datetime
    end_time: datetime
    client_id: Optional[int]
    title: Optional[str]
    description: Optional[str] = None
    price: Optional[float] = None
    color: Optional[str] = None
    is_online: bool = False
    online_url: Optional[str] = None
    recurrence_type: str = RecurrenceType.NONE.value
    recurrence_count: int = 1

    @property
    def recurrence_group_id(self) -> Optional[str]:
        return self.kind.group_id if isinstance(self.kind, Recurring) else None

    def to_model(self, user_id: int) -> Appointment:
        return Appointment(
            user_id=user_id,
            client_id=self.client_id,
            start_time=ensure_utc(self.start_time),
            end_time=ensure_utc(self.end_time),
            title=self.title,
            description=self.description,
            price=self.price,
            color=self.color,
            is_online=self.is_online,
            online_url=self.online_url if self.is_online else None,
            status=AppointmentStatus.SCHEDULED.value,
            recurrence_type=self.recurrence_type,
            recurrence_count=self.recurrence_count,
            **kind_columns(self.kind),
        )


@dataclass
class PaymentDraft:
    appointment_id: Optional[int]
    client_id: Optional[int]
    amount: float
    due_date: date
    notes: str
    status: str = PaymentStatus.PENDING.value

    def to_model(self, user_id: int) -> Payment:
        return Payment(
            user_id=user_id,
            appointment_id=self.appointment_id,
            client_id=self.client_id,
            amount=self.amount,
            due_date=self.due_date,
            status=self.status,
            notes=self.notes,
        )


@dataclass
class CreateResult:
    appointments: List[Appointment]
    recurrence_group_id: Optional[str] = None
    payments_created: int = 0
    conflict_warning: Optional[str] = None
    conflicts: List[SeriesConflict] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def new_group_id() -> str:
    return uuid.uuid4().hex


def expand_series(
    client: Optional[ClientRef],
    base_start: datetime,
    base_end: datetime,
    frequency: Frequency,
    count: int,
    form: Optional[SeriesForm] = None,
    tz: ZoneInfo = ZoneInfo("UTC"),
    group_id: Optional[str] = None,
    advance_biweekly_end: Optional[bool] = None,
) -> List[AppointmentDraft]:
    """Expand a recurring booking into ``count`` drafts sharing one group id.

    Every draft is titled with the client's display name (untitled when
    ``client`` is None, as for a preview).
    """
    if count < 1 or count > settings.max_recurrence_count:
        raise ValueError(f"count must be between 1 and {settings.max_recurrence_count}")
    if advance_biweekly_end is None:
        advance_biweekly_end = settings.biweekly_advance_end

    form = form or SeriesForm()
    kind = Recurring(group_id or new_group_id())
    frequency = Frequency(frequency)
    local_start = ensure_utc(base_start).astimezone(tz)
    local_end = ensure_utc(base_end).astimezone(tz)

    drafts: List[AppointmentDraft] = []
    for index in range(count):
        start, end = nth_occurrence(
            local_start, local_end, frequency, index, advance_biweekly_end
        )
        if end <= start:
            logger.warning(
                "non_positive_interval_generated",
                group_id=kind.group_id,
                index=index,
                frequency=frequency.value,
            )
        drafts.append(
            AppointmentDraft(
                index=index,
                kind=kind,
                start_time=start.astimezone(timezone.utc),
                end_time=end.astimezone(timezone.utc),
                client_id=client.id if client else None,
                title=client.name if client else None,
                description=form.description,
                price=form.price,
                color=form.color,
                is_online=form.is_online,
                online_url=form.online_url,
                recurrence_type=frequency.value,
                recurrence_count=count,
            )
        )
    return drafts


def single_draft(
    kind: AppointmentKind,
    start: datetime,
    end: datetime,
    client: Optional[ClientRef],
    title: Optional[str],
    form: Optional[SeriesForm] = None,
) -> AppointmentDraft:
    form = form or SeriesForm()
    billable = requires_client(kind)
    return AppointmentDraft(
        index=0,
        kind=kind,
        start_time=ensure_utc(start),
        end_time=ensure_utc(end),
        client_id=client.id if client and billable else None,
        title=title or (client.name if client else None),
        description=form.description,
        price=form.price if billable else None,
        color=form.color,
        is_online=form.is_online if billable else False,
        online_url=form.online_url if billable else None,
    )


def payment_drafts(
    drafts: Sequence[AppointmentDraft],
    appointment_ids: Sequence[Optional[int]],
    tz: ZoneInfo = ZoneInfo("UTC"),
) -> List[PaymentDraft]:
    """One pending payment per billable draft, due on the session's local date."""
    payments: List[PaymentDraft] = []
    for draft, appointment_id in zip(drafts, appointment_ids):
        if not requires_client(draft.kind) or not draft.price or draft.price <= 0:
            continue
        due = local_date(draft.start_time, tz)
        payments.append(
            PaymentDraft(
                appointment_id=appointment_id,
                client_id=draft.client_id,
                amount=draft.price,
                due_date=due,
                notes=f"Payment for the session on {due.strftime('%d/%m/%Y')}",
            )
        )
    return payments


def _kind_for_request(request: AppointmentCreate) -> AppointmentKind:
    if request.kind == "personal":
        return Personal()
    if request.kind == "block":
        return Block()
    if request.kind == "recurring":
        return Recurring(new_group_id())
    return Single()


def build_drafts(ctx: SchedulingContext, request: AppointmentCreate) -> List[AppointmentDraft]:
    kind = _kind_for_request(request)
    client: Optional[ClientRef] = None
    if requires_client(kind):
        row = ctx.clients.get(request.client_id)
        if row is None:
            raise ClientNotFoundError()
        client = ClientRef(id=row.id, name=row.name)

    form = SeriesForm(
        description=request.description,
        price=request.price,
        color=request.color,
        is_online=request.is_online,
        online_url=request.online_url,
    )

    if isinstance(kind, Recurring):
        return expand_series(
            client,
            request.start_time,
            request.end_time,
            request.recurrence_frequency,
            request.recurrence_count,
            form=form,
            tz=ctx.tz,
            group_id=kind.group_id,
        )
    return [single_draft(kind, request.start_time, request.end_time, client, request.title, form)]


async def create_appointments(
    db: AsyncSession,
    ctx: SchedulingContext,
    request: AppointmentCreate,
) -> CreateResult:
    """Persist a booking.

    Appointments are inserted in one batch inside the request transaction.
    Payments go in a savepoint: if they fail the appointments are kept and
    the result carries a warning instead.
    """
    drafts = build_drafts(ctx, request)
    tz = ctx.tz
    group_id = drafts[0].recurrence_group_id

    window_start = min(ensure_utc(d.start_time) for d in drafts)
    window_end = max(ensure_utc(d.end_time) for d in drafts)
    existing = await load_appointments_between(db, ctx.user_id, window_start, window_end)

    result = CreateResult(appointments=[], recurrence_group_id=group_id)
    first = find_conflict(Interval(drafts[0].start_time, drafts[0].end_time), existing)
    if first is not None:
        result.conflict_warning = conflict_message(first, tz, ctx.client_name(first.client_id))
    if len(drafts) > 1:
        result.conflicts = find_series_conflicts(
            [(None, Interval(d.start_time, d.end_time)) for d in drafts],
            existing,
            group_id,
            tz,
        )

    appointments = [draft.to_model(ctx.user_id) for draft in drafts]
    db.add_all(appointments)
    await db.flush()
    result.appointments = appointments

    logger.info(
        "appointments_created",
        user_id=ctx.user_id,
        count=len(appointments),
        recurrence_group_id=group_id,
        has_conflict=first is not None,
    )

    if group_id:
        db.add(
            AuditLog(
                user_id=ctx.user_id,
                action=AuditAction.SERIES_CREATED.value,
                entity_type="recurrence_group",
                entity_id=group_id,
                payload=json.dumps(
                    {
                        "count": len(appointments),
                        "frequency": drafts[0].recurrence_type,
                        "client_id": drafts[0].client_id,
                    }
                ),
            )
        )
        await db.flush()

    if request.create_financial_record:
        payments = payment_drafts(drafts, [a.id for a in appointments], tz)
        if payments:
            result.payments_created = await _insert_payments(db, ctx.user_id, payments, result)

    return result


async def _insert_payments(
    db: AsyncSession,
    user_id: int,
    payments: List[PaymentDraft],
    result: CreateResult,
) -> int:
    try:
        async with db.begin_nested():
            db.add_all([p.to_model(user_id) for p in payments])
            await db.flush()
    except SQLAlchemyError as exc:
        logger.warning(
            "series_payment_insert_failed",
            user_id=user_id,
            recurrence_group_id=result.recurrence_group_id,
            count=len(payments),
            error=str(exc),
        )
        result.warnings.append(PAYMENT_WARNING)
        return 0
    return len(payments)


def describe_drafts(drafts: Sequence[AppointmentDraft]) -> List[Dict[str, Any]]:
    return [
        {"start_time": d.start_time, "end_time": d.end_time}
        for d in drafts
    ]
