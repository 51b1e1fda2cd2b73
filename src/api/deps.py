"""FastAPI dependency injection for database access and caller identity."""

from collections.abc import AsyncGenerator

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.auth import AuthContext, UserRole
from src.core.config import settings
from src.core.database import session_scope
from src.core.errors import ValidationFailed
from src.core.logging import client_id_ctx


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session; the handler's writes commit together."""
    async with session_scope(request.app.state.async_session) as session:
        yield session


def get_session_factory(request: Request) -> async_sessionmaker[AsyncSession]:
    """Expose the session factory for jobs that manage their own transactions."""
    return request.app.state.async_session


async def get_auth_context(
    x_user_role: str | None = Header(default=None, alias="X-User-Role"),
    x_client_id: int | None = Header(default=None, alias="X-Client-Id"),
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
) -> AuthContext:
    """Build the caller's AuthContext from gateway-forwarded headers.

    Raises:
        HTTPException: If the role header is missing or unknown, or a
            client user has no client association.
    """
    if not x_user_role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing caller identity",
        )
    try:
        role = UserRole(x_user_role.strip().upper())
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unknown user role",
        ) from exc

    try:
        auth = AuthContext(
            role=role,
            client_id=x_client_id if role == UserRole.CLIENT_USER else None,
            user_id=x_user_id,
        )
    except ValidationFailed as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=exc.message,
        ) from exc

    if auth.client_id is not None:
        client_id_ctx.set(str(auth.client_id))
    return auth


async def require_admin(
    auth: AuthContext = Depends(get_auth_context),
) -> AuthContext:
    """Allow only administrators through."""
    auth.ensure_admin()
    return auth


async def verify_scheduler_key(
    x_scheduler_key: str | None = Header(default=None, alias="X-Scheduler-Key"),
) -> None:
    """Verify the shared secret sent by the scheduled trigger.

    Raises:
        HTTPException: If the key is not configured, missing or invalid.
    """
    if not settings.scheduler_api_key:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Scheduler API key is not configured",
        )
    if x_scheduler_key != settings.scheduler_api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid scheduler API key",
        )
