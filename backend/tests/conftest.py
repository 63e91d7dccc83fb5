"""
Pytest fixtures for test database, client, and authentication.

Each test gets its own SQLite database file, created from the model
metadata and thrown away afterwards. API requests get a fresh session per
request, the same way production does.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./regdesk_test.db")
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("DEBOUNCE_STRATEGY", "memory")
os.environ.setdefault("ENVIRONMENT", "test")

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from regdesk.main import app
from regdesk.db.base import Base
from regdesk.db.session import get_db
from regdesk.core.security import create_access_token
from regdesk.models import Event
from regdesk.schemas.event import EventCreate
from regdesk.schemas.registration import FieldValue, GroupCreate
from regdesk.services.event_service import create_event
from regdesk.services.interfaces.memory_debounce import InMemoryDebouncer
from regdesk.services.strategy_factory import get_debouncer


@pytest_asyncio.fixture(scope="function")
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'regdesk.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app with the DB dependency pointed at the test database."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    debouncer = InMemoryDebouncer(window_seconds=2.0)
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_debouncer] = lambda: debouncer

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def admin_token() -> str:
    return create_access_token(data={"sub": "admin-1", "is_admin": True})


@pytest.fixture
def admin_headers(admin_token: str) -> dict:
    return {"Authorization": f"Bearer {admin_token}"}


@pytest.fixture
def user_headers() -> dict:
    """A signed-in participant without admin rights."""
    token = create_access_token(data={"sub": "user-1"})
    return {"Authorization": f"Bearer {token}"}


async def make_event(db: AsyncSession, max_seats: int = 100, title: str = "Test Session") -> Event:
    event = await create_event(
        db,
        EventCreate(title=title, location="Main Hall", max_seats=max_seats, is_draft=False),
        organizer_id="admin-1",
    )
    await db.commit()
    return event


def participant(name: str = "Tan Ah Kow", phone: str = "+6591234567", postal: str = "123456") -> GroupCreate:
    return GroupCreate(
        fields=[
            FieldValue(id="name", label="Full Name", type="name", value=name),
            FieldValue(id="phone", label="Phone Number", type="phone", value=phone),
            FieldValue(id="postal", label="Postal Code", type="text", value=postal),
        ]
    )


def participant_json(name: str = "Tan Ah Kow", phone: str = "+6591234567", postal: str = "123456") -> dict:
    return participant(name, phone, postal).model_dump()


@pytest_asyncio.fixture
async def test_event(db_session: AsyncSession) -> Event:
    """An event with 100 seats."""
    return await make_event(db_session, max_seats=100, title="Morning Session")


@pytest_asyncio.fixture
async def small_event(db_session: AsyncSession) -> Event:
    """An event with 2 seats."""
    return await make_event(db_session, max_seats=2, title="Small Session")
