"""Admin and client dashboard API endpoints."""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.contracts import (
    ContractResponse,
    ExpiringContractItem,
    to_contract_response,
    to_expiring_items,
)
from src.api.deps import get_auth_context, get_db, require_admin
from src.api.products import ProductUsageResponse, to_product_response
from src.billing.consumption import (
    client_consumption_ranking,
    hours_by_day,
    summarize_consumption,
    ticket_stats,
    top_requesters,
)
from src.billing.contract_status import (
    get_active_contract,
    list_active_contracts,
    list_expiring_contracts,
)
from src.core.auth import AuthContext
from src.core.clock import competence_month, first_day_of_month, today
from src.core.config import settings
from src.core.errors import NotFound, ValidationFailed
from src.models.client import Client, ClientStatus
from src.models.product import ProductUsage
from src.models.ticket import Ticket, TicketStatus

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])

RECENT_TICKETS_LIMIT = 5


class ClientHoursItem(BaseModel):
    client_id: int
    client_name: str
    hours: int


class AdminDashboardResponse(BaseModel):
    """Portfolio-wide summary for administrators."""

    as_of: date
    total_clients: int
    active_clients: int
    active_contracts: int
    expiring_contracts: list[ExpiringContractItem]
    top_consumers: list[ClientHoursItem]


class ConsumptionSummary(BaseModel):
    contracted_hours: int
    consumed_hours: int
    remaining_hours: int
    usage_percentage: int


class DailyHoursItem(BaseModel):
    day: date
    hours: int


class RequesterHoursItem(BaseModel):
    name: str
    hours: int


class RecentTicketItem(BaseModel):
    id: int
    title: str | None
    requester_name: str
    service_date: date | None
    billed_hours: int
    status: str


class ClientDashboardResponse(BaseModel):
    """One client's view of its contract and support activity.

    Consumption and charts cover the active contract's period; without an
    active contract they cover the current month.
    """

    as_of: date
    client_id: int
    client_name: str
    active_contract: ContractResponse | None
    consumption: ConsumptionSummary | None
    period_start: date
    period_end: date
    total_tickets: int
    open_tickets: int
    hours_by_day: list[DailyHoursItem]
    top_requesters: list[RequesterHoursItem]
    recent_tickets: list[RecentTicketItem]
    products: list[ProductUsageResponse]


async def _count(db: AsyncSession, stmt) -> int:
    result = await db.execute(stmt)
    return int(result.scalar() or 0)


@router.get("/admin", response_model=AdminDashboardResponse)
async def admin_dashboard(
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(require_admin),
) -> AdminDashboardResponse:
    """Client totals, active and expiring contracts, month-to-date top consumers."""
    as_of = today()

    total_clients = await _count(db, select(func.count(Client.id)))
    active_clients = await _count(
        db,
        select(func.count(Client.id)).where(Client.status == ClientStatus.ACTIVE),
    )
    active_contracts = await list_active_contracts(db, auth, as_of)
    expiring = await list_expiring_contracts(
        db, auth, as_of, settings.expiring_horizon_days
    )
    ranking = await client_consumption_ranking(
        db, auth, first_day_of_month(as_of), as_of
    )

    return AdminDashboardResponse(
        as_of=as_of,
        total_clients=total_clients,
        active_clients=active_clients,
        active_contracts=len(active_contracts),
        expiring_contracts=await to_expiring_items(db, expiring),
        top_consumers=[
            ClientHoursItem(
                client_id=item.client_id,
                client_name=item.client_name,
                hours=item.hours,
            )
            for item in ranking
        ],
    )


@router.get("/client", response_model=ClientDashboardResponse)
async def client_dashboard(
    client_id: int | None = Query(default=None, gt=0),
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
) -> ClientDashboardResponse:
    """Dashboard for the caller's client (admins pass ``client_id``)."""
    scoped_client_id = auth.scoped_client_id(client_id)
    if scoped_client_id is None:
        raise ValidationFailed("client_id is required")

    client = await db.get(Client, scoped_client_id)
    if client is None:
        raise NotFound("Client not found")

    as_of = today()
    contract = await get_active_contract(db, auth, scoped_client_id, as_of)
    if contract is not None:
        period_start, period_end = contract.start_date, contract.end_date
    else:
        period_start, period_end = first_day_of_month(as_of), as_of

    # One aggregate query feeds the consumption figures and ticket total.
    stats = await ticket_stats(db, auth, scoped_client_id, period_start, period_end)
    consumption = None
    if contract is not None:
        snapshot = summarize_consumption(contract.contracted_hours, stats.total_hours)
        consumption = ConsumptionSummary(
            contracted_hours=snapshot.contracted_hours,
            consumed_hours=snapshot.consumed_hours,
            remaining_hours=snapshot.remaining_hours,
            usage_percentage=snapshot.usage_percentage,
        )

    daily = await hours_by_day(db, auth, scoped_client_id, period_start, period_end)
    requesters = await top_requesters(db, auth, scoped_client_id, period_start, period_end)

    open_tickets = await _count(
        db,
        select(func.count(Ticket.id)).where(
            Ticket.client_id == scoped_client_id,
            Ticket.status != TicketStatus.COMPLETED,
        ),
    )
    recent_result = await db.execute(
        select(Ticket)
        .where(Ticket.client_id == scoped_client_id)
        .order_by(Ticket.created_at.desc(), Ticket.id.desc())
        .limit(RECENT_TICKETS_LIMIT)
    )
    products_result = await db.execute(
        select(ProductUsage)
        .where(
            ProductUsage.client_id == scoped_client_id,
            ProductUsage.competence_month == competence_month(as_of),
        )
        .order_by(ProductUsage.product_name)
    )

    return ClientDashboardResponse(
        as_of=as_of,
        client_id=client.id,
        client_name=client.name,
        active_contract=to_contract_response(contract, as_of) if contract else None,
        consumption=consumption,
        period_start=period_start,
        period_end=period_end,
        total_tickets=stats.total_tickets,
        open_tickets=open_tickets,
        hours_by_day=[
            DailyHoursItem(day=item.service_date, hours=item.hours) for item in daily
        ],
        top_requesters=[
            RequesterHoursItem(name=item.requester_name, hours=item.hours)
            for item in requesters
        ],
        recent_tickets=[
            RecentTicketItem(
                id=ticket.id,
                title=ticket.title,
                requester_name=ticket.requester_name,
                service_date=ticket.service_date,
                billed_hours=ticket.billed_hours,
                status=ticket.status.value,
            )
            for ticket in recent_result.scalars().all()
        ],
        products=[to_product_response(usage) for usage in products_result.scalars().all()],
    )
