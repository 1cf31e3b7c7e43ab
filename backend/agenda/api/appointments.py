"""Appointment API endpoints: booking, recurring series, edits and deletes."""

from datetime import date, datetime, time, timedelta, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from agenda.database import get_db
from agenda.models.appointment import Appointment
from agenda.schemas.appointment import (
    AppointmentCreate,
    AppointmentCreateResponse,
    AppointmentDeleteResponse,
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentStatusUpdate,
    AppointmentUpdate,
    AppointmentUpdateResponse,
    AvailableSlotsResponse,
    ConflictCheckRequest,
    ConflictCheckResponse,
    OccurrenceItem,
    RecurrencePreviewRequest,
    RecurrencePreviewResponse,
    SeriesConflictItem,
)
from agenda.services.availability_service import available_slots
from agenda.services.conflict_service import (
    Interval,
    conflict_message,
    find_conflict,
    find_series_conflicts,
    load_appointments_between,
)
from agenda.services.context import SchedulingContext, get_scheduling_context
from agenda.services.exceptions import (
    ClientNotFoundError,
    ScopeChoiceRequired,
    SchedulingError,
)
from agenda.services.kinds import kind_name, kind_of
from agenda.services.reminder_webhook import notify_appointments_changed
from agenda.services.series_mutation_service import (
    DeleteScope,
    EditScope,
    FinancialDisposition,
    SeriesMutationCoordinator,
    mutation_guard,
)
from agenda.services.series_service import (
    ClientRef,
    create_appointments,
    describe_drafts,
    expand_series,
)
from agenda.utils.logging import get_logger
from agenda.utils.timeutils import combine_local, ensure_utc

logger = get_logger("api.appointments")

router = APIRouter()


def _http_error(exc: SchedulingError) -> HTTPException:
    if isinstance(exc, ScopeChoiceRequired):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=exc.to_detail())
    return HTTPException(
        status_code=exc.status_code or status.HTTP_400_BAD_REQUEST,
        detail=exc.message,
    )


def appointment_response(
    appointment: Appointment,
    ctx: SchedulingContext,
    has_note: bool = False,
) -> AppointmentResponse:
    return AppointmentResponse(
        id=appointment.id,
        kind=kind_name(kind_of(appointment)),
        client_id=appointment.client_id,
        client_name=ctx.client_name(appointment.client_id),
        title=appointment.title,
        description=appointment.description,
        start_time=ensure_utc(appointment.start_time),
        end_time=ensure_utc(appointment.end_time),
        appointment_type=appointment.appointment_type,
        session_type=appointment.session_type,
        recurrence_group_id=appointment.recurrence_group_id,
        recurrence_type=appointment.recurrence_type,
        recurrence_count=appointment.recurrence_count,
        price=appointment.price,
        color=appointment.color,
        is_online=appointment.is_online,
        online_url=appointment.online_url,
        status=appointment.status,
        has_note=has_note,
        created_at=appointment.created_at,
        updated_at=appointment.updated_at,
    )


async def _responses(
    db: AsyncSession,
    rows: List[Appointment],
    ctx: SchedulingContext,
) -> List[AppointmentResponse]:
    # Server-side timestamps are expired after a flush.
    for row in rows:
        await db.refresh(row)
    return [appointment_response(row, ctx) for row in rows]


async def _get_owned(db: AsyncSession, appointment_id: int, user_id: int) -> Appointment:
    result = await db.execute(
        select(Appointment).where(
            Appointment.id == appointment_id,
            Appointment.user_id == user_id,
        )
    )
    appointment = result.scalar_one_or_none()
    if not appointment:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Appointment not found")
    return appointment


@router.get("/", response_model=AppointmentListResponse)
async def list_appointments(
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    status_filter: Optional[str] = Query(None, alias="status"),
    client_id: Optional[int] = None,
    recurrence_group_id: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    ctx: SchedulingContext = Depends(get_scheduling_context),
) -> AppointmentListResponse:
    filters = [Appointment.user_id == ctx.user_id]
    if date_from:
        filters.append(Appointment.start_time >= ensure_utc(date_from))
    if date_to:
        filters.append(Appointment.start_time <= ensure_utc(date_to))
    if status_filter:
        filters.append(Appointment.status == status_filter)
    if client_id is not None:
        filters.append(Appointment.client_id == client_id)
    if recurrence_group_id:
        filters.append(Appointment.recurrence_group_id == recurrence_group_id)

    result = await db.execute(
        select(Appointment).where(and_(*filters)).order_by(Appointment.start_time.asc())
    )
    appointments = [appointment_response(a, ctx) for a in result.scalars().all()]
    return AppointmentListResponse(appointments=appointments, total=len(appointments))


@router.post(
    "/",
    response_model=AppointmentCreateResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_appointment(
    payload: AppointmentCreate,
    db: AsyncSession = Depends(get_db),
    ctx: SchedulingContext = Depends(get_scheduling_context),
) -> AppointmentCreateResponse:
    """Book a single session, a personal/block entry or a recurring series."""
    try:
        result = await create_appointments(db, ctx, payload)
        await db.commit()
    except SchedulingError as exc:
        raise _http_error(exc)

    notify_appointments_changed(
        "appointments_created", ctx.user_id, [a.id for a in result.appointments]
    )
    return AppointmentCreateResponse(
        appointments=await _responses(db, result.appointments, ctx),
        recurrence_group_id=result.recurrence_group_id,
        payments_created=result.payments_created,
        conflict_warning=result.conflict_warning,
        conflicts=[SeriesConflictItem(**c.to_dict()) for c in result.conflicts],
        warnings=result.warnings,
    )


@router.post("/conflicts/check", response_model=ConflictCheckResponse)
async def check_conflict(
    payload: ConflictCheckRequest,
    db: AsyncSession = Depends(get_db),
    ctx: SchedulingContext = Depends(get_scheduling_context),
) -> ConflictCheckResponse:
    candidate = Interval(ensure_utc(payload.start_time), ensure_utc(payload.end_time))
    existing = await load_appointments_between(db, ctx.user_id, candidate.start, candidate.end)
    clash = find_conflict(candidate, existing, exclude_id=payload.exclude_id)
    if clash is None:
        return ConflictCheckResponse(has_conflict=False)
    return ConflictCheckResponse(
        has_conflict=True,
        message=conflict_message(clash, ctx.tz, ctx.client_name(clash.client_id)),
        appointment=appointment_response(clash, ctx),
    )


@router.post("/recurrence/preview", response_model=RecurrencePreviewResponse)
async def preview_recurrence(
    payload: RecurrencePreviewRequest,
    db: AsyncSession = Depends(get_db),
    ctx: SchedulingContext = Depends(get_scheduling_context),
) -> RecurrencePreviewResponse:
    """Occurrences a series would get, and where they clash, before booking it."""
    client = None
    if payload.client_id is not None:
        row = ctx.clients.get(payload.client_id)
        if row is None:
            raise _http_error(ClientNotFoundError())
        client = ClientRef(id=row.id, name=row.name)

    drafts = expand_series(
        client,
        payload.start_time,
        payload.end_time,
        payload.frequency,
        payload.count,
        tz=ctx.tz,
    )
    window_start = min(d.start_time for d in drafts)
    window_end = max(d.end_time for d in drafts)
    existing = await load_appointments_between(db, ctx.user_id, window_start, window_end)
    conflicts = find_series_conflicts(
        [(None, Interval(d.start_time, d.end_time)) for d in drafts],
        existing,
        None,
        ctx.tz,
    )
    return RecurrencePreviewResponse(
        occurrences=[OccurrenceItem(**item) for item in describe_drafts(drafts)],
        conflicts=[SeriesConflictItem(**c.to_dict()) for c in conflicts],
    )


@router.get("/slots", response_model=AvailableSlotsResponse)
async def get_available_slots(
    day: date = Query(..., alias="date"),
    db: AsyncSession = Depends(get_db),
    ctx: SchedulingContext = Depends(get_scheduling_context),
) -> AvailableSlotsResponse:
    tz = ctx.tz
    day_start = combine_local(day, time(0, 0), tz)
    day_end = combine_local(day + timedelta(days=1), time(0, 0), tz)
    existing = await load_appointments_between(db, ctx.user_id, day_start, day_end)
    slots = available_slots(day, ctx.agenda, existing, datetime.now(timezone.utc), tz)
    return AvailableSlotsResponse(date=day, slots=slots)


@router.get("/{appointment_id}", response_model=AppointmentResponse)
async def get_appointment(
    appointment_id: int,
    db: AsyncSession = Depends(get_db),
    ctx: SchedulingContext = Depends(get_scheduling_context),
) -> AppointmentResponse:
    appointment = await _get_owned(db, appointment_id, ctx.user_id)
    return appointment_response(appointment, ctx)


@router.put("/{appointment_id}", response_model=AppointmentUpdateResponse)
async def update_appointment(
    appointment_id: int,
    payload: AppointmentUpdate,
    scope: Optional[EditScope] = None,
    db: AsyncSession = Depends(get_db),
    ctx: SchedulingContext = Depends(get_scheduling_context),
) -> AppointmentUpdateResponse:
    """Edit an appointment.

    Changing only the time of a recurring session answers 409 with the scope
    choices (and the clashes the series would have) until ``scope`` is given.
    """
    appointment = await _get_owned(db, appointment_id, ctx.user_id)
    changes = payload.model_dump(exclude_unset=True)
    if changes.get("status") is not None:
        changes["status"] = changes["status"].value

    coordinator = SeriesMutationCoordinator(db, ctx)
    try:
        async with mutation_guard(ctx.user_id, appointment_id):
            outcome = await coordinator.submit_edit(appointment, changes, scope)
            # Committed while the guard is held and before anyone is notified.
            await db.commit()
    except SchedulingError as exc:
        raise _http_error(exc)

    notify_appointments_changed(
        "appointments_updated", ctx.user_id, [a.id for a in outcome.appointments]
    )
    return AppointmentUpdateResponse(
        scope=outcome.scope.value,
        appointments=await _responses(db, outcome.appointments, ctx),
        conflict_warning=outcome.conflict_warning,
        conflicts=[SeriesConflictItem(**c.to_dict()) for c in outcome.conflicts],
    )


@router.post("/{appointment_id}/status", response_model=AppointmentResponse)
async def change_status(
    appointment_id: int,
    payload: AppointmentStatusUpdate,
    db: AsyncSession = Depends(get_db),
    ctx: SchedulingContext = Depends(get_scheduling_context),
) -> AppointmentResponse:
    appointment = await _get_owned(db, appointment_id, ctx.user_id)
    appointment.status = payload.status.value
    await db.flush()
    await db.refresh(appointment)
    logger.info(
        "appointment_status_changed",
        user_id=ctx.user_id,
        appointment_id=appointment_id,
        status=appointment.status,
    )
    return appointment_response(appointment, ctx)


@router.delete("/{appointment_id}", response_model=AppointmentDeleteResponse)
async def delete_appointment(
    appointment_id: int,
    scope: Optional[DeleteScope] = None,
    financial: Optional[FinancialDisposition] = None,
    db: AsyncSession = Depends(get_db),
    ctx: SchedulingContext = Depends(get_scheduling_context),
) -> AppointmentDeleteResponse:
    """Delete one occurrence or a whole series.

    ``financial`` decides whether linked payments are deleted or kept.
    """
    appointment = await _get_owned(db, appointment_id, ctx.user_id)
    coordinator = SeriesMutationCoordinator(db, ctx)
    try:
        async with mutation_guard(ctx.user_id, appointment_id):
            outcome = await coordinator.submit_delete(appointment, scope, financial)
            await db.commit()
    except SchedulingError as exc:
        raise _http_error(exc)

    notify_appointments_changed("appointments_deleted", ctx.user_id, outcome.appointment_ids)
    return AppointmentDeleteResponse(
        scope=outcome.scope.value,
        deleted_appointments=outcome.deleted_appointments,
        deleted_payments=outcome.deleted_payments,
    )
