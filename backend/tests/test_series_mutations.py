from datetime import date, datetime, time
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy import select

from agenda.models.appointment import Appointment
from agenda.models.audit_log import AuditLog
from agenda.models.client import Client
from agenda.models.payment import Payment
from agenda.schemas.appointment import AppointmentCreate
from agenda.services.exceptions import ClientNotFoundError, ScopeChoiceRequired, SchedulingError
from agenda.services.series_mutation_service import (
    EditScope,
    MutationState,
    SeriesMutationCoordinator,
    classify_time_change,
)
from agenda.services.series_service import create_appointments
from agenda.utils.timeutils import local_date, local_time

SP = ZoneInfo("America/Sao_Paulo")


async def _ana_series(db, ctx, client_ana, **extra):
    fields = {"recurrence_frequency": "weekly", "recurrence_count": 4}
    fields.update(extra)
    request = AppointmentCreate(
        kind="recurring",
        client_id=client_ana.id,
        start_time=datetime(2024, 1, 1, 9, tzinfo=SP),
        end_time=datetime(2024, 1, 1, 10, tzinfo=SP),
        **fields,
    )
    result = await create_appointments(db, ctx, request)
    await db.commit()
    return result


async def _group(db, group_id):
    db.expire_all()
    result = await db.execute(
        select(Appointment)
        .where(Appointment.recurrence_group_id == group_id)
        .order_by(Appointment.start_time)
    )
    return list(result.scalars().all())


@pytest.mark.asyncio
async def test_create_series_persists_group_and_audit(db, ctx, client_ana):
    result = await _ana_series(db, ctx, client_ana)
    rows = await _group(db, result.recurrence_group_id)
    assert len(rows) == 4
    assert {r.title for r in rows} == {"Ana"}
    assert {r.session_type for r in rows} == {"recurring"}

    audit = (await db.execute(select(AuditLog))).scalars().all()
    assert [a.action for a in audit] == ["series_created"]
    assert audit[0].entity_id == result.recurrence_group_id


@pytest.mark.asyncio
async def test_time_only_change_asks_for_scope(db, ctx, client_ana):
    result = await _ana_series(db, ctx, client_ana)
    target = result.appointments[1]
    coordinator = SeriesMutationCoordinator(db, ctx)

    with pytest.raises(ScopeChoiceRequired) as exc_info:
        await coordinator.submit_edit(
            target,
            {
                "start_time": datetime(2024, 1, 8, 14, tzinfo=SP),
                "end_time": datetime(2024, 1, 8, 15, tzinfo=SP),
            },
        )
    assert exc_info.value.prompt == "edit_scope"
    assert exc_info.value.choices == ["occurrence", "following", "series"]
    assert coordinator.state is MutationState.PENDING_SCOPE_CHOICE

    rows = await _group(db, result.recurrence_group_id)
    assert all(local_time(r.start_time, SP) == time(9) for r in rows)


@pytest.mark.asyncio
async def test_scope_prompt_lists_series_conflicts(db, ctx, user, client_ana):
    result = await _ana_series(db, ctx, client_ana)
    other = Appointment(
        user_id=user.id,
        client_id=client_ana.id,
        start_time=datetime(2024, 1, 15, 14, 30, tzinfo=SP),
        end_time=datetime(2024, 1, 15, 15, 30, tzinfo=SP),
        title="Bruno",
    )
    db.add(other)
    await db.commit()

    coordinator = SeriesMutationCoordinator(db, ctx)
    with pytest.raises(ScopeChoiceRequired) as exc_info:
        await coordinator.submit_edit(
            result.appointments[0],
            {
                "start_time": datetime(2024, 1, 1, 14, tzinfo=SP),
                "end_time": datetime(2024, 1, 1, 15, tzinfo=SP),
            },
        )
    conflicts = exc_info.value.conflicts
    assert len(conflicts) == 1
    assert conflicts[0]["date"] == "2024-01-15"
    assert conflicts[0]["title"] == "Bruno"
    assert conflicts[0]["appointment_id"] == other.id


@pytest.mark.asyncio
async def test_series_time_edit_keeps_dates(db, ctx, client_ana):
    result = await _ana_series(db, ctx, client_ana)
    original_dates = [local_date(a.start_time, SP) for a in result.appointments]
    coordinator = SeriesMutationCoordinator(db, ctx)

    outcome = await coordinator.submit_edit(
        result.appointments[2],
        {
            "start_time": datetime(2024, 1, 15, 14, tzinfo=SP),
            "end_time": datetime(2024, 1, 15, 15, tzinfo=SP),
        },
        EditScope.SERIES,
    )
    await db.commit()

    assert coordinator.state is MutationState.DONE
    assert len(outcome.appointments) == 4
    rows = await _group(db, result.recurrence_group_id)
    assert [local_date(r.start_time, SP) for r in rows] == original_dates
    assert all(local_time(r.start_time, SP) == time(14) for r in rows)
    assert all(local_time(r.end_time, SP) == time(15) for r in rows)


@pytest.mark.asyncio
async def test_occurrence_edit_leaves_siblings_alone(db, ctx, client_ana):
    result = await _ana_series(db, ctx, client_ana)
    coordinator = SeriesMutationCoordinator(db, ctx)

    outcome = await coordinator.submit_edit(
        result.appointments[1],
        {
            "start_time": datetime(2024, 1, 8, 16, tzinfo=SP),
            "end_time": datetime(2024, 1, 8, 17, tzinfo=SP),
            "status": "confirmed",
        },
        EditScope.OCCURRENCE,
    )
    await db.commit()

    assert outcome.scope is EditScope.OCCURRENCE
    rows = await _group(db, result.recurrence_group_id)
    assert [local_time(r.start_time, SP) for r in rows] == [time(9), time(16), time(9), time(9)]
    assert [r.status for r in rows] == ["scheduled", "confirmed", "scheduled", "scheduled"]


@pytest.mark.asyncio
async def test_moving_to_another_day_is_a_single_occurrence_move(db, ctx, client_ana):
    result = await _ana_series(db, ctx, client_ana)
    coordinator = SeriesMutationCoordinator(db, ctx)

    outcome = await coordinator.submit_edit(
        result.appointments[0],
        {
            "start_time": datetime(2024, 1, 3, 9, tzinfo=SP),
            "end_time": datetime(2024, 1, 3, 10, tzinfo=SP),
        },
    )
    await db.commit()

    assert outcome.scope is EditScope.OCCURRENCE
    rows = await _group(db, result.recurrence_group_id)
    assert [local_date(r.start_time, SP).day for r in rows] == [3, 8, 15, 22]


@pytest.mark.asyncio
async def test_following_scope_only_touches_later_sessions(db, ctx, client_ana):
    result = await _ana_series(db, ctx, client_ana)
    coordinator = SeriesMutationCoordinator(db, ctx)

    await coordinator.submit_edit(
        result.appointments[2],
        {
            "start_time": datetime(2024, 1, 15, 11, tzinfo=SP),
            "end_time": datetime(2024, 1, 15, 12, tzinfo=SP),
        },
        EditScope.FOLLOWING,
    )
    await db.commit()

    rows = await _group(db, result.recurrence_group_id)
    assert [local_time(r.start_time, SP) for r in rows] == [time(9), time(9), time(11), time(11)]


@pytest.mark.asyncio
async def test_series_fields_spread_but_title_stays_on_target(db, ctx, client_ana):
    result = await _ana_series(db, ctx, client_ana, price=100.0, create_financial_record=True)
    coordinator = SeriesMutationCoordinator(db, ctx)

    await coordinator.submit_edit(
        result.appointments[0],
        {"price": 180.0, "color": "#123456", "title": "Ana (couple)"},
        EditScope.SERIES,
    )
    await db.commit()

    rows = await _group(db, result.recurrence_group_id)
    assert [r.price for r in rows] == [180.0] * 4
    assert {r.color for r in rows} == {"#123456"}
    assert [r.title for r in rows] == ["Ana (couple)", "Ana", "Ana", "Ana"]

    payments = (await db.execute(select(Payment))).scalars().all()
    assert sorted(p.amount for p in payments) == [100.0] * 4


@pytest.mark.asyncio
async def test_edit_rejects_unknown_client(db, ctx, client_ana):
    result = await _ana_series(db, ctx, client_ana)
    coordinator = SeriesMutationCoordinator(db, ctx)
    with pytest.raises(ClientNotFoundError):
        await coordinator.submit_edit(result.appointments[0], {"client_id": 9999})


@pytest.mark.asyncio
async def test_edit_rejects_end_before_start(db, ctx, client_ana):
    result = await _ana_series(db, ctx, client_ana)
    coordinator = SeriesMutationCoordinator(db, ctx)
    with pytest.raises(SchedulingError) as exc_info:
        await coordinator.submit_edit(
            result.appointments[0],
            {"end_time": datetime(2024, 1, 1, 8, tzinfo=SP)},
        )
    assert exc_info.value.status_code == 422


@pytest.mark.asyncio
async def test_edit_reports_conflict_warning(db, ctx, user, client_ana):
    bruno = Client(user_id=user.id, name="Bruno")
    db.add(bruno)
    await db.commit()
    ctx.clients[bruno.id] = bruno

    first = await create_appointments(
        db,
        ctx,
        AppointmentCreate(
            client_id=bruno.id,
            start_time=datetime(2024, 2, 1, 9, tzinfo=SP),
            end_time=datetime(2024, 2, 1, 10, tzinfo=SP),
        ),
    )
    second = await create_appointments(
        db,
        ctx,
        AppointmentCreate(
            client_id=client_ana.id,
            start_time=datetime(2024, 2, 1, 10, tzinfo=SP),
            end_time=datetime(2024, 2, 1, 11, tzinfo=SP),
        ),
    )
    await db.commit()
    assert second.conflict_warning is None

    outcome = await SeriesMutationCoordinator(db, ctx).submit_edit(
        second.appointments[0],
        {
            "start_time": datetime(2024, 2, 1, 9, 30, tzinfo=SP),
            "end_time": datetime(2024, 2, 1, 10, 30, tzinfo=SP),
        },
    )
    assert outcome.conflict_warning == "There is already an appointment at 09:00 for Bruno."
    assert first.appointments[0].id != second.appointments[0].id


def test_classify_time_change():
    class Row:
        start_time = datetime(2024, 1, 1, 9, tzinfo=SP)
        end_time = datetime(2024, 1, 1, 10, tzinfo=SP)

    assert classify_time_change(Row, {}, SP) == "none"
    assert classify_time_change(
        Row, {"start_time": datetime(2024, 1, 1, 8, tzinfo=SP)}, SP
    ) == "time"
    assert classify_time_change(
        Row,
        {
            "start_time": datetime(2024, 1, 2, 9, tzinfo=SP),
            "end_time": datetime(2024, 1, 2, 10, tzinfo=SP),
        },
        SP,
    ) == "date"
    assert date(2024, 1, 1) == local_date(Row.start_time, SP)


@pytest.mark.asyncio
@pytest.mark.parametrize("scope", [EditScope.OCCURRENCE, EditScope.SERIES])
async def test_biweekly_sessions_accept_non_time_edits(db, ctx, client_ana, scope):
    result = await _ana_series(db, ctx, client_ana, recurrence_frequency="biweekly")
    target = result.appointments[1]
    assert target.end_time <= target.start_time

    outcome = await SeriesMutationCoordinator(db, ctx).submit_edit(
        target, {"color": "#000000"}, scope
    )
    await db.commit()

    assert outcome.scope is scope
    rows = await _group(db, result.recurrence_group_id)
    colored = [r.id for r in rows if r.color == "#000000"]
    if scope is EditScope.OCCURRENCE:
        assert colored == [target.id]
    else:
        assert len(colored) == 4
