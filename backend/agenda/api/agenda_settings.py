"""Agenda settings API endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from agenda.database import get_db
from agenda.models.agenda_settings import AgendaSettings
from agenda.models.user import User
from agenda.schemas.agenda_settings import AgendaSettingsResponse, AgendaSettingsUpdate
from agenda.services.context import AgendaConfig, load_agenda_settings
from agenda.utils.security import get_current_user

router = APIRouter()


def _response(config: AgendaConfig) -> AgendaSettingsResponse:
    return AgendaSettingsResponse(
        working_hours=config.working_hours,
        appointment_duration=config.appointment_duration,
        break_time=config.break_time,
        timezone=config.timezone,
    )


@router.get("/", response_model=AgendaSettingsResponse)
async def get_agenda_settings(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> AgendaSettingsResponse:
    row = await load_agenda_settings(db, current_user.id)
    return _response(AgendaConfig.from_row(row))


@router.put("/", response_model=AgendaSettingsResponse)
async def update_agenda_settings(
    request: AgendaSettingsUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> AgendaSettingsResponse:
    row = await load_agenda_settings(db, current_user.id)
    if row is None:
        defaults = AgendaConfig()
        row = AgendaSettings(
            user_id=current_user.id,
            working_hours=defaults.working_hours,
            appointment_duration=defaults.appointment_duration,
            break_time=defaults.break_time,
            timezone=defaults.timezone,
        )
        db.add(row)

    data = request.model_dump(exclude_unset=True)
    if "working_hours" in data:
        # Days left out of the request keep their current window.
        merged = dict(row.working_hours or {})
        merged.update(data.pop("working_hours") or {})
        row.working_hours = merged
    for field, value in data.items():
        if value is not None:
            setattr(row, field, value)

    await db.flush()
    return _response(AgendaConfig.from_row(row))
