import asyncio
from datetime import datetime, timedelta

from sqlalchemy import func, select

from agenda.config import settings
from agenda.database import async_session_maker, init_db
from agenda.models.agenda_settings import AgendaSettings, default_working_hours
from agenda.models.appointment import Appointment
from agenda.models.client import Client
from agenda.models.user import User, UserRole
from agenda.schemas.appointment import AppointmentCreate
from agenda.services.context import build_context
from agenda.services.series_service import create_appointments
from agenda.utils.security import get_password_hash
from agenda.utils.timeutils import get_zone

# Sample Data
CLIENTS = [
    {"name": "Ana Souza", "email": "ana@example.com", "phone": "+55 11 98888-1111"},
    {"name": "Bruno Lima", "email": "bruno@example.com", "phone": "+55 11 97777-2222"},
    {"name": "Carla Dias", "email": "carla@example.com", "phone": "+55 21 96666-3333"},
]


async def _ensure_user(session, email, password, full_name, role):
    result = await session.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if user:
        print(f"Found user: {user.email}")
        return user

    user = User(
        email=email,
        hashed_password=get_password_hash(password),
        full_name=full_name,
        role=role,
        is_active=True,
    )
    session.add(user)
    await session.flush()
    session.add(
        AgendaSettings(
            user_id=user.id,
            working_hours=default_working_hours(),
            timezone=settings.default_timezone,
        )
    )
    await session.commit()
    print(f"Created user: {user.email}")
    return user


async def seed_data():
    print("Initializing database...")
    await init_db()

    async with async_session_maker() as session:
        # 1. Ensure accounts exist
        await _ensure_user(session, "admin@example.com", "admin123", "Admin User", UserRole.ADMIN.value)
        pro = await _ensure_user(
            session, "pro@example.com", "pro12345", "Demo Professional", UserRole.PROFESSIONAL.value
        )

        # 2. Clients and a weekly series for the first one
        result = await session.execute(
            select(func.count()).select_from(Client).where(Client.user_id == pro.id)
        )
        if result.scalar():
            print("Demo professional already has clients. Skipping seed.")
            return

        print("Seeding clients...")
        session.add_all([Client(user_id=pro.id, **data) for data in CLIENTS])
        await session.commit()

        ctx = await build_context(session, pro.id)
        first = min(ctx.clients.values(), key=lambda c: c.id)
        tz = get_zone(ctx.agenda.timezone)
        start = (datetime.now(tz) + timedelta(days=1)).replace(hour=9, minute=0, second=0, microsecond=0)
        created = await create_appointments(
            session,
            ctx,
            AppointmentCreate(
                kind="recurring",
                client_id=first.id,
                start_time=start,
                end_time=start + timedelta(hours=1),
                recurrence_frequency="weekly",
                recurrence_count=8,
                price=150.0,
                create_financial_record=True,
            ),
        )
        await session.commit()
        total = (await session.execute(select(func.count()).select_from(Appointment))).scalar()
        print(f"Added {len(created.appointments)} sessions for {first.name} ({total} in total).")


if __name__ == "__main__":
    asyncio.run(seed_data())
