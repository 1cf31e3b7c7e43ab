import os
import tempfile

_DB_PATH = os.path.join(tempfile.gettempdir(), f"agenda_test_{os.getpid()}.db")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_PATH}"
os.environ["REMINDER_WEBHOOK_URL"] = ""
os.environ["DEFAULT_TIMEZONE"] = "America/Sao_Paulo"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from agenda.database import async_session_maker, drop_db, engine, init_db
from agenda.main import app
from agenda.models.agenda_settings import AgendaSettings, default_working_hours
from agenda.models.client import Client
from agenda.models.user import User, UserRole
from agenda.services.context import build_context
from agenda.utils.security import create_access_token, get_password_hash


@pytest_asyncio.fixture
async def database():
    await drop_db()
    await init_db()
    yield
    await engine.dispose()


@pytest_asyncio.fixture
async def db(database):
    async with async_session_maker() as session:
        yield session


@pytest_asyncio.fixture
async def user(db):
    user = User(
        email="pro@example.com",
        hashed_password=get_password_hash("secret123"),
        full_name="Dr. Pro",
        role=UserRole.PROFESSIONAL.value,
        is_active=True,
    )
    db.add(user)
    await db.flush()
    db.add(
        AgendaSettings(
            user_id=user.id,
            working_hours=default_working_hours(),
            timezone="America/Sao_Paulo",
        )
    )
    await db.commit()
    return user


@pytest_asyncio.fixture
async def client_ana(db, user):
    ana = Client(user_id=user.id, name="Ana", email="ana@example.com")
    db.add(ana)
    await db.commit()
    return ana


@pytest_asyncio.fixture
async def ctx(db, user, client_ana):
    return await build_context(db, user.id)


@pytest.fixture
def auth_headers(user):
    token = create_access_token(user)
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def api(database):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as http:
        yield http
