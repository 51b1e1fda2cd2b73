"""Engine and session factories shared by the API and the renewal job.

Sessions never expire attributes on commit, so billing rows loaded inside
one transaction stay readable after it closes (the renewal summary and the
API responses both rely on that).
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from src.core.config import settings

# Registers every table on Base.metadata before the engine is used.
from src.models import (  # noqa: F401
    Base,
    Client,
    Contract,
    ProductUsage,
    Ticket,
)

_POOL_OPTIONS: dict[str, Any] = {
    "pool_size": 20,
    "max_overflow": 0,
    "pool_pre_ping": True,
}


def create_engine(
    database_url: str | None = None,
    **engine_options: Any,
) -> AsyncEngine:
    """Create the async engine for the billing database.

    PostgreSQL gets a bounded connection pool with pre-ping. SQLite URLs
    (local runs and tests) keep SQLAlchemy's default pool, which rejects
    the sizing options.

    Args:
        database_url: Connection URL. Defaults to settings.database_url.
        **engine_options: Overrides passed to create_async_engine.
    """
    url = database_url or settings.database_url

    options: dict[str, Any] = {"echo": settings.debug}
    if make_url(url).get_backend_name() != "sqlite":
        options.update(_POOL_OPTIONS)
    options.update(engine_options)

    return create_async_engine(url, **options)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@asynccontextmanager
async def session_scope(
    factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """Yield a session that commits on success and rolls back on error."""
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
