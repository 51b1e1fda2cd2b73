"""Liveness probe with database and renewal backlog status."""

from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import exists, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from src.api.deps import get_db
from src.core.clock import today
from src.core.logging import get_logger
from src.models import Contract

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["health"])


class HealthResponse(BaseModel):
    status: str
    db: str
    renewals_due: int | None = None


async def count_renewals_due(db: AsyncSession) -> int:
    """Expired recurring contracts whose client has no later contract yet."""
    successor = aliased(Contract)
    stmt = (
        select(func.count())
        .select_from(Contract)
        .where(
            Contract.is_recurring.is_(True),
            Contract.end_date < today(),
            ~exists().where(
                successor.client_id == Contract.client_id,
                successor.start_date > Contract.end_date,
            ),
        )
    )
    result = await db.execute(stmt)
    return int(result.scalar() or 0)


@router.get("/health", response_model=HealthResponse)
async def health_check(
    db: Annotated[AsyncSession, Depends(get_db)],
) -> HealthResponse:
    """Report database connectivity.

    A non-zero ``renewals_due`` that persists across days means the renewal
    job is not running.
    """
    try:
        due = await count_renewals_due(db)
    except SQLAlchemyError as exc:
        logger.exception("database_health_check_failed", error=str(exc))
        await db.rollback()
        return HealthResponse(status="degraded", db="disconnected")

    return HealthResponse(status="ok", db="connected", renewals_due=due)
