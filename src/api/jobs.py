"""Scheduled job trigger endpoints."""

from datetime import date

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.api.deps import get_session_factory, verify_scheduler_key
from src.billing.renewal import RenewalAborted, renew_contracts
from src.core.clock import today
from src.core.logging import job_context

router = APIRouter(
    prefix="/api/jobs",
    tags=["jobs"],
    dependencies=[Depends(verify_scheduler_key)],
)


@router.post("/renew-contracts")
async def trigger_contract_renewal(
    as_of: date | None = Query(default=None),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> JSONResponse:
    """Renew expired recurring contracts; meant to be called once a day.

    ``as_of`` overrides "today" for backfills.
    """
    with job_context("renew_contracts"):
        try:
            summary = await renew_contracts(session_factory, as_of or today())
        except RenewalAborted as exc:
            return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    return JSONResponse(status_code=200, content=summary.to_dict())
