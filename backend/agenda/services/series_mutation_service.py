"""Edits and deletes on appointments that may belong to a recurring series.

A mutation moves through ``IDLE -> PENDING_SCOPE_CHOICE -> APPLYING ->
DONE | FAILED``. When the caller has not said whether a change is meant for
one occurrence or the whole series, the coordinator stops in
``PENDING_SCOPE_CHOICE`` and raises ``ScopeChoiceRequired``; the client
resubmits with the choice.
"""

import json
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple
from zoneinfo import ZoneInfo

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from agenda.models.appointment import Appointment
from agenda.models.audit_log import AuditAction, AuditLog
from agenda.models.payment import Payment
from agenda.services.conflict_service import (
    Interval,
    SeriesConflict,
    conflict_message,
    find_conflict,
    find_series_conflicts,
    load_appointments_between,
)
from agenda.services.context import SchedulingContext
from agenda.services.exceptions import (
    AppointmentNotFoundError,
    ClientNotFoundError,
    MutationInProgressError,
    ScopeChoiceRequired,
    SchedulingError,
)
from agenda.services.kinds import Recurring, kind_of, requires_client
from agenda.services.session_notes import detach_notes
from agenda.utils.logging import MutationLogger
from agenda.utils.timeutils import combine_local, ensure_utc, local_date, local_time


class MutationState(str, Enum):
    IDLE = "idle"
    PENDING_SCOPE_CHOICE = "pending_scope_choice"
    APPLYING = "applying"
    DONE = "done"
    FAILED = "failed"


class EditScope(str, Enum):
    OCCURRENCE = "occurrence"
    FOLLOWING = "following"
    SERIES = "series"


class DeleteScope(str, Enum):
    OCCURRENCE = "occurrence"
    SERIES = "series"


class FinancialDisposition(str, Enum):
    KEEP = "keep"
    DELETE = "delete"


# Copied to every sibling on a series-wide edit. Payment rows are never
# touched by an edit.
SERIES_FIELDS = ("status", "price", "color", "description", "is_online", "online_url")


@dataclass
class EditOutcome:
    scope: EditScope
    appointments: List[Appointment]
    conflict_warning: Optional[str] = None
    conflicts: List[SeriesConflict] = field(default_factory=list)


@dataclass
class DeleteOutcome:
    scope: DeleteScope
    appointment_ids: List[int]
    deleted_appointments: int
    deleted_payments: int


_in_flight: Set[Tuple[int, int]] = set()


@asynccontextmanager
async def mutation_guard(user_id: int, appointment_id: int):
    """Reject a second mutation of the same appointment while one is running."""
    key = (user_id, appointment_id)
    if key in _in_flight:
        raise MutationInProgressError()
    _in_flight.add(key)
    try:
        yield
    finally:
        _in_flight.discard(key)


def classify_time_change(
    appointment: Any,
    changes: Dict[str, Any],
    tz: ZoneInfo,
) -> str:
    """``"none"``, ``"date"`` (moved to another day) or ``"time"`` (same day, new hours)."""
    old_start = ensure_utc(appointment.start_time)
    old_end = ensure_utc(appointment.end_time)
    new_start = ensure_utc(changes.get("start_time") or old_start)
    new_end = ensure_utc(changes.get("end_time") or old_end)
    if new_start == old_start and new_end == old_end:
        return "none"
    if local_date(new_start, tz) != local_date(old_start, tz):
        return "date"
    return "time"


def _shift_to_day(day, start_tod, end_tod, tz: ZoneInfo) -> Tuple[datetime, datetime]:
    start = combine_local(day, start_tod, tz)
    end = combine_local(day, end_tod, tz)
    if end <= start:
        end = combine_local(day + timedelta(days=1), end_tod, tz)
    return start, end


def plan_series_update(
    target: Any,
    siblings: Sequence[Any],
    changes: Dict[str, Any],
    tz: ZoneInfo,
    scope: EditScope,
) -> Dict[int, Dict[str, Any]]:
    """Per-appointment update payloads for an edit.

    For ``SERIES``/``FOLLOWING`` each sibling keeps its own local date and
    takes the target's new time-of-day plus the changed ``SERIES_FIELDS``.
    Other fields (title, client) only apply to the target.
    """
    normalized = dict(changes)
    for key in ("start_time", "end_time"):
        if normalized.get(key) is not None:
            normalized[key] = ensure_utc(normalized[key])

    if scope is EditScope.OCCURRENCE:
        return {target.id: normalized}

    new_start = normalized.get("start_time") or ensure_utc(target.start_time)
    new_end = normalized.get("end_time") or ensure_utc(target.end_time)
    time_changed = (
        new_start != ensure_utc(target.start_time) or new_end != ensure_utc(target.end_time)
    )
    start_tod = local_time(new_start, tz)
    end_tod = local_time(new_end, tz)
    shared = {k: v for k, v in normalized.items() if k in SERIES_FIELDS}

    members = list(siblings)
    if scope is EditScope.FOLLOWING:
        pivot = ensure_utc(target.start_time)
        members = [s for s in members if ensure_utc(s.start_time) >= pivot]

    plan: Dict[int, Dict[str, Any]] = {}
    for sibling in members:
        payload = dict(shared)
        if time_changed:
            day = local_date(sibling.start_time, tz)
            payload["start_time"], payload["end_time"] = _shift_to_day(day, start_tod, end_tod, tz)
        plan[sibling.id] = payload

    target_only = {
        k: v for k, v in normalized.items()
        if k not in SERIES_FIELDS and k not in ("start_time", "end_time")
    }
    if target_only:
        plan.setdefault(target.id, {}).update(target_only)
    return plan


class SeriesMutationCoordinator:
    """Applies edit/delete requests to one appointment or its series."""

    def __init__(self, db: AsyncSession, ctx: SchedulingContext):
        self.db = db
        self.ctx = ctx
        self.state = MutationState.IDLE
        self._log: Optional[MutationLogger] = None

    def _transition(self, state: MutationState, **kwargs: Any) -> None:
        if self._log is not None:
            self._log.transition(self.state.value, state.value, **kwargs)
        self.state = state

    async def load_series(self, group_id: str) -> List[Appointment]:
        result = await self.db.execute(
            select(Appointment)
            .where(
                Appointment.user_id == self.ctx.user_id,
                Appointment.recurrence_group_id == group_id,
            )
            .order_by(Appointment.start_time.asc())
        )
        return list(result.scalars().all())

    async def _series_conflicts(
        self,
        plan: Dict[int, Dict[str, Any]],
        members: Sequence[Appointment],
        group_id: Optional[str],
    ) -> List[SeriesConflict]:
        by_id = {m.id: m for m in members}
        candidates = []
        for appointment_id, payload in plan.items():
            current = by_id.get(appointment_id)
            if current is None:
                continue
            start = payload.get("start_time") or current.start_time
            end = payload.get("end_time") or current.end_time
            candidates.append((appointment_id, Interval(ensure_utc(start), ensure_utc(end))))
        if not candidates:
            return []
        window_start = min(c[1].start for c in candidates) - timedelta(days=1)
        window_end = max(c[1].end for c in candidates) + timedelta(days=1)
        existing = await load_appointments_between(
            self.db, self.ctx.user_id, window_start, window_end
        )
        return find_series_conflicts(candidates, existing, group_id, self.ctx.tz)

    def _validate_changes(self, appointment: Appointment, changes: Dict[str, Any]) -> None:
        # Only a requested time change is checked: biweekly rows can be stored
        # with end <= start and must stay editable.
        if "start_time" in changes or "end_time" in changes:
            new_start = ensure_utc(changes.get("start_time") or appointment.start_time)
            new_end = ensure_utc(changes.get("end_time") or appointment.end_time)
            if new_end <= new_start:
                raise SchedulingError("end_time must be after start_time", status_code=422)

        if "client_id" in changes:
            client_id = changes["client_id"]
            if not requires_client(kind_of(appointment)):
                if client_id is not None:
                    raise SchedulingError(
                        "Personal and block entries cannot have a client", status_code=422
                    )
            elif client_id is None:
                raise SchedulingError("A client is required for client appointments", status_code=422)
            elif client_id not in self.ctx.clients:
                raise ClientNotFoundError()

    async def submit_edit(
        self,
        appointment: Appointment,
        changes: Dict[str, Any],
        scope: Optional[EditScope] = None,
    ) -> EditOutcome:
        self._log = MutationLogger(self.ctx.user_id, appointment.id)
        self._validate_changes(appointment, changes)
        tz = self.ctx.tz
        kind = kind_of(appointment)
        group_id = kind.group_id if isinstance(kind, Recurring) else None

        if group_id is None:
            scope = EditScope.OCCURRENCE
        elif scope is None:
            change = classify_time_change(appointment, changes, tz)
            if change == "time":
                siblings = await self.load_series(group_id)
                preview = plan_series_update(appointment, siblings, changes, tz, EditScope.SERIES)
                conflicts = await self._series_conflicts(preview, siblings, group_id)
                self._transition(MutationState.PENDING_SCOPE_CHOICE, conflicts=len(conflicts))
                raise ScopeChoiceRequired(
                    "edit_scope",
                    [s.value for s in EditScope],
                    conflicts=[c.to_dict() for c in conflicts],
                )
            # A move to another day, or no time change at all, stays on this occurrence.
            scope = EditScope.OCCURRENCE

        self._transition(MutationState.APPLYING, scope=scope.value)
        try:
            if scope is EditScope.OCCURRENCE:
                members = [appointment]
            else:
                members = await self.load_series(group_id)
            plan = plan_series_update(appointment, members, changes, tz, scope)
            by_id = {m.id: m for m in members}
            for appointment_id, payload in plan.items():
                row = by_id[appointment_id]
                for key, value in payload.items():
                    setattr(row, key, value)
            await self.db.flush()

            conflicts: List[SeriesConflict] = []
            if scope is not EditScope.OCCURRENCE:
                conflicts = await self._series_conflicts(plan, members, group_id)
                self.db.add(
                    AuditLog(
                        user_id=self.ctx.user_id,
                        action=AuditAction.SERIES_UPDATED.value,
                        entity_type="recurrence_group",
                        entity_id=group_id,
                        payload=json.dumps(
                            {
                                "scope": scope.value,
                                "appointment_ids": sorted(plan),
                                "fields": sorted({k for p in plan.values() for k in p}),
                            }
                        ),
                    )
                )
                await self.db.flush()

            warning = await self._conflict_warning(appointment)
            updated = [by_id[i] for i in plan]
        except Exception as exc:
            self._transition(MutationState.FAILED, error=str(exc))
            raise

        self._transition(MutationState.DONE, updated=len(updated))
        self._log.log("appointment_edited", scope=scope.value, updated=len(updated))
        return EditOutcome(
            scope=scope,
            appointments=sorted(updated, key=lambda a: ensure_utc(a.start_time)),
            conflict_warning=warning,
            conflicts=conflicts,
        )

    async def _conflict_warning(self, appointment: Appointment) -> Optional[str]:
        interval = Interval.of(appointment)
        existing = await load_appointments_between(
            self.db, self.ctx.user_id, interval.start, interval.end
        )
        clash = find_conflict(interval, existing, exclude_id=appointment.id)
        if clash is None:
            return None
        return conflict_message(clash, self.ctx.tz, self.ctx.client_name(clash.client_id))

    async def submit_delete(
        self,
        appointment: Appointment,
        scope: Optional[DeleteScope] = None,
        financial: Optional[FinancialDisposition] = None,
    ) -> DeleteOutcome:
        self._log = MutationLogger(self.ctx.user_id, appointment.id)
        kind = kind_of(appointment)
        group_id = kind.group_id if isinstance(kind, Recurring) else None

        if group_id is None:
            scope = DeleteScope.OCCURRENCE
        elif scope is None:
            self._transition(MutationState.PENDING_SCOPE_CHOICE, prompt="delete_scope")
            raise ScopeChoiceRequired("delete_scope", [s.value for s in DeleteScope])

        if financial is None:
            self._transition(MutationState.PENDING_SCOPE_CHOICE, prompt="financial_disposition")
            raise ScopeChoiceRequired(
                "financial_disposition", [f.value for f in FinancialDisposition]
            )

        self._transition(MutationState.APPLYING, scope=scope.value, financial=financial.value)
        try:
            outcome = await self._delete(appointment, group_id, scope, financial)
        except Exception as exc:
            self._transition(MutationState.FAILED, error=str(exc))
            raise
        self._transition(MutationState.DONE, deleted=outcome.deleted_appointments)
        return outcome

    async def _delete(
        self,
        appointment: Appointment,
        group_id: Optional[str],
        scope: DeleteScope,
        financial: FinancialDisposition,
    ) -> DeleteOutcome:
        user_id = self.ctx.user_id
        if scope is DeleteScope.SERIES:
            result = await self.db.execute(
                select(Appointment.id).where(
                    Appointment.user_id == user_id,
                    Appointment.recurrence_group_id == group_id,
                )
            )
            target_ids = list(result.scalars().all())
            appointment_filter = Appointment.recurrence_group_id == group_id
        else:
            target_ids = [appointment.id]
            appointment_filter = Appointment.id == appointment.id

        deleted_payments = 0
        detached_notes = 0
        if target_ids:
            detached_notes = await detach_notes(self.db, user_id, target_ids)
            payment_filter = (
                Payment.user_id == user_id,
                Payment.appointment_id.in_(target_ids),
            )
            if financial is FinancialDisposition.DELETE:
                # Financial rows go first so nothing is left pointing at a deleted appointment.
                payment_result = await self.db.execute(
                    delete(Payment).where(*payment_filter).execution_options(synchronize_session=False)
                )
                deleted_payments = payment_result.rowcount or 0
            else:
                await self.db.execute(
                    update(Payment)
                    .where(*payment_filter)
                    .values(appointment_id=None)
                    .execution_options(synchronize_session=False)
                )

        result = await self.db.execute(
            delete(Appointment)
            .where(Appointment.user_id == user_id, appointment_filter)
            .execution_options(synchronize_session=False)
        )
        deleted = result.rowcount or 0
        if deleted == 0:
            self._log.error("appointment_delete_no_rows", scope=scope.value)
            raise AppointmentNotFoundError()

        self.db.add(
            AuditLog(
                user_id=user_id,
                action=(
                    AuditAction.SERIES_DELETED.value
                    if scope is DeleteScope.SERIES
                    else AuditAction.APPOINTMENT_DELETED.value
                ),
                entity_type="recurrence_group" if scope is DeleteScope.SERIES else "appointment",
                entity_id=group_id if scope is DeleteScope.SERIES else str(appointment.id),
                payload=json.dumps(
                    {
                        "appointment_ids": target_ids,
                        "financial": financial.value,
                        "deleted_payments": deleted_payments,
                    }
                ),
            )
        )
        await self.db.flush()
        self._log.log(
            "appointment_deleted",
            scope=scope.value,
            deleted=deleted,
            deleted_payments=deleted_payments,
            detached_notes=detached_notes,
        )
        return DeleteOutcome(
            scope=scope,
            appointment_ids=target_ids,
            deleted_appointments=deleted,
            deleted_payments=deleted_payments,
        )
