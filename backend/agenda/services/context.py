"""Per-request scheduling context.

The services receive the owner, the owner's clients and agenda settings
explicitly instead of looking them up on their own.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo

from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from agenda.config import settings
from agenda.database import get_db
from agenda.models.agenda_settings import AgendaSettings, default_working_hours
from agenda.models.client import Client
from agenda.models.user import User
from agenda.utils.security import get_current_user
from agenda.utils.timeutils import get_zone


@dataclass
class AgendaConfig:
    working_hours: Dict[str, Dict[str, Any]] = field(default_factory=default_working_hours)
    appointment_duration: int = 60
    break_time: int = 15
    timezone: str = settings.default_timezone

    @classmethod
    def from_row(cls, row: Optional[AgendaSettings]) -> "AgendaConfig":
        if row is None:
            return cls()
        return cls(
            working_hours=row.working_hours or default_working_hours(),
            appointment_duration=row.appointment_duration,
            break_time=row.break_time,
            timezone=row.timezone,
        )


@dataclass
class SchedulingContext:
    user_id: int
    agenda: AgendaConfig
    clients: Dict[int, Client] = field(default_factory=dict)

    @property
    def tz(self) -> ZoneInfo:
        return get_zone(self.agenda.timezone)

    def client_name(self, client_id: Optional[int]) -> Optional[str]:
        if client_id is None:
            return None
        client = self.clients.get(client_id)
        return client.name if client else None


async def load_agenda_settings(db: AsyncSession, user_id: int) -> Optional[AgendaSettings]:
    result = await db.execute(select(AgendaSettings).where(AgendaSettings.user_id == user_id))
    return result.scalar_one_or_none()


async def build_context(db: AsyncSession, user_id: int) -> SchedulingContext:
    agenda_row = await load_agenda_settings(db, user_id)
    result = await db.execute(select(Client).where(Client.user_id == user_id))
    clients = {client.id: client for client in result.scalars().all()}
    return SchedulingContext(
        user_id=user_id,
        agenda=AgendaConfig.from_row(agenda_row),
        clients=clients,
    )


async def get_scheduling_context(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> SchedulingContext:
    return await build_context(db, current_user.id)
