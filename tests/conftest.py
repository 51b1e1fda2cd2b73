"""Pytest configuration and shared fixtures for tests."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from collections.abc import AsyncGenerator  # noqa: E402
from datetime import date  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402

from src.api.deps import get_db  # noqa: E402
from src.core.auth import AuthContext, UserRole  # noqa: E402
from src.core.database import session_scope  # noqa: E402
from src.main import app  # noqa: E402
from src.models import Base, Client, Contract, Ticket, TicketStatus  # noqa: E402

ADMIN_HEADERS = {"X-User-Role": "ADMIN", "X-User-Id": "admin-1"}


def client_headers(client_id: int, user_id: str = "user-1") -> dict[str, str]:
    """Headers the gateway forwards for a client user."""
    return {
        "X-User-Role": "CLIENT_USER",
        "X-Client-Id": str(client_id),
        "X-User-Id": user_id,
    }


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Use asyncio backend for async tests.

    Returns:
        Backend name string.
    """
    return "asyncio"


@pytest.fixture
def admin() -> AuthContext:
    return AuthContext(role=UserRole.ADMIN, user_id="admin-1")


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Create a sqlite-backed session factory with the full schema."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False)
    app.state.async_session = factory
    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Plain session for seeding and direct query tests."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def api_client(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncClient, None]:
    """Create API client with DB dependency override."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_scope(session_factory) as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client
    app.dependency_overrides.clear()


async def seed_client(session: AsyncSession, name: str = "Acme Ltda") -> Client:
    client = Client(name=name)
    session.add(client)
    await session.flush()
    return client


async def seed_contract(
    session: AsyncSession,
    client_id: int,
    start_date: date,
    end_date: date,
    contracted_hours: int = 20,
    is_recurring: bool = False,
    recurrence_months: int = 1,
) -> Contract:
    contract = Contract(
        client_id=client_id,
        start_date=start_date,
        end_date=end_date,
        contracted_hours=contracted_hours,
        is_recurring=is_recurring,
        recurrence_months=recurrence_months,
    )
    session.add(contract)
    await session.flush()
    return contract


async def seed_ticket(
    session: AsyncSession,
    client_id: int,
    service_date: date,
    billed_hours: int,
    requester_name: str = "Maria",
    status: TicketStatus = TicketStatus.COMPLETED,
) -> Ticket:
    ticket = Ticket(
        client_id=client_id,
        requester_name=requester_name,
        description="Printer offline",
        service_date=service_date,
        billed_hours=billed_hours,
        status=status,
    )
    session.add(ticket)
    await session.flush()
    return ticket
