from datetime import datetime
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy import select

from agenda.models.appointment import Appointment
from agenda.models.audit_log import AuditLog
from agenda.models.payment import Payment
from agenda.schemas.appointment import AppointmentCreate
from agenda.services.exceptions import (
    AppointmentNotFoundError,
    MutationInProgressError,
    ScopeChoiceRequired,
)
from agenda.services.series_mutation_service import (
    DeleteScope,
    FinancialDisposition,
    SeriesMutationCoordinator,
    mutation_guard,
)
from agenda.services.series_service import create_appointments

SP = ZoneInfo("America/Sao_Paulo")


async def _book(db, ctx, client_ana, **overrides):
    data = dict(
        kind="recurring",
        client_id=client_ana.id,
        start_time=datetime(2024, 1, 1, 9, tzinfo=SP),
        end_time=datetime(2024, 1, 1, 10, tzinfo=SP),
        recurrence_frequency="weekly",
        recurrence_count=4,
        price=150.0,
        create_financial_record=True,
    )
    data.update(overrides)
    result = await create_appointments(db, ctx, AppointmentCreate(**data))
    await db.commit()
    return result


async def _count(db, model):
    db.expire_all()
    return len((await db.execute(select(model))).scalars().all())


@pytest.mark.asyncio
async def test_recurring_delete_asks_scope_then_financial(db, ctx, client_ana):
    result = await _book(db, ctx, client_ana)
    target = result.appointments[0]
    coordinator = SeriesMutationCoordinator(db, ctx)

    with pytest.raises(ScopeChoiceRequired) as exc_info:
        await coordinator.submit_delete(target)
    assert exc_info.value.prompt == "delete_scope"
    assert exc_info.value.choices == ["occurrence", "series"]

    with pytest.raises(ScopeChoiceRequired) as exc_info:
        await coordinator.submit_delete(target, DeleteScope.SERIES)
    assert exc_info.value.prompt == "financial_disposition"
    assert exc_info.value.choices == ["keep", "delete"]

    assert await _count(db, Appointment) == 4


@pytest.mark.asyncio
async def test_single_delete_only_needs_financial_choice(db, ctx, client_ana):
    result = await _book(db, ctx, client_ana, kind="single", recurrence_frequency=None,
                         recurrence_count=None)
    coordinator = SeriesMutationCoordinator(db, ctx)

    with pytest.raises(ScopeChoiceRequired) as exc_info:
        await coordinator.submit_delete(result.appointments[0])
    assert exc_info.value.prompt == "financial_disposition"


@pytest.mark.asyncio
async def test_delete_series_removes_exactly_the_group(db, ctx, user, client_ana):
    series = await _book(db, ctx, client_ana)
    other = await _book(
        db, ctx, client_ana, kind="single", recurrence_frequency=None, recurrence_count=None,
        start_time=datetime(2024, 1, 2, 9, tzinfo=SP), end_time=datetime(2024, 1, 2, 10, tzinfo=SP),
    )

    outcome = await SeriesMutationCoordinator(db, ctx).submit_delete(
        series.appointments[1], DeleteScope.SERIES, FinancialDisposition.DELETE
    )
    await db.commit()

    assert outcome.deleted_appointments == 4
    assert outcome.deleted_payments == 4
    assert sorted(outcome.appointment_ids) == sorted(a.id for a in series.appointments)

    db.expire_all()
    remaining = (await db.execute(select(Appointment))).scalars().all()
    assert [a.id for a in remaining] == [other.appointments[0].id]
    payments = (await db.execute(select(Payment))).scalars().all()
    assert [p.appointment_id for p in payments] == [other.appointments[0].id]

    audit = (await db.execute(select(AuditLog).where(AuditLog.action == "series_deleted"))).scalars().all()
    assert len(audit) == 1
    assert audit[0].entity_id == series.recurrence_group_id


@pytest.mark.asyncio
async def test_delete_occurrence_keeping_payments(db, ctx, client_ana):
    series = await _book(db, ctx, client_ana)
    target = series.appointments[2]

    outcome = await SeriesMutationCoordinator(db, ctx).submit_delete(
        target, DeleteScope.OCCURRENCE, FinancialDisposition.KEEP
    )
    await db.commit()

    assert outcome.deleted_appointments == 1
    assert outcome.deleted_payments == 0
    assert await _count(db, Appointment) == 3

    payments = (await db.execute(select(Payment).order_by(Payment.id))).scalars().all()
    assert len(payments) == 4
    assert payments[2].appointment_id is None
    assert payments[2].amount == 150.0


@pytest.mark.asyncio
async def test_deleting_an_already_deleted_appointment_fails(db, ctx, client_ana):
    result = await _book(db, ctx, client_ana, kind="single", recurrence_frequency=None,
                         recurrence_count=None)
    target = result.appointments[0]

    await SeriesMutationCoordinator(db, ctx).submit_delete(
        target, financial=FinancialDisposition.DELETE
    )
    await db.commit()

    coordinator = SeriesMutationCoordinator(db, ctx)
    with pytest.raises(AppointmentNotFoundError) as exc_info:
        await coordinator.submit_delete(target, financial=FinancialDisposition.DELETE)
    assert exc_info.value.status_code == 404
    assert exc_info.value.message == "Appointment not found or already deleted"
    assert coordinator.state.value == "failed"


@pytest.mark.asyncio
async def test_second_mutation_of_same_appointment_is_rejected():
    async with mutation_guard(1, 42):
        with pytest.raises(MutationInProgressError):
            async with mutation_guard(1, 42):
                pass
        async with mutation_guard(1, 43):
            pass
    async with mutation_guard(1, 42):
        pass
