"""Consumption of contracted hours and related reporting queries.

Consumed hours are the billed hours of every ticket whose service date
falls in the period, whatever its status; open tickets carry zero billed
hours until completion so they do not move the totals.

The consumed, remaining and percentage values shown together on a
dashboard always come from one ConsumptionSnapshot built from a single
query result.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.auth import AuthContext
from src.core.errors import ValidationFailed
from src.models.client import Client
from src.models.contract import Contract
from src.models.ticket import Ticket


# =============================================================================
# Data Structures
# =============================================================================


@dataclass(frozen=True)
class ConsumptionSnapshot:
    """Hours used against an allotment.

    Attributes:
        contracted_hours: Hours granted by the contract.
        consumed_hours: Billed hours in the period.
        remaining_hours: Hours left, never negative.
        usage_percentage: Consumed share of the allotment, 0..100.
    """

    contracted_hours: int
    consumed_hours: int
    remaining_hours: int
    usage_percentage: int


@dataclass(frozen=True)
class TicketStats:
    total_tickets: int
    total_hours: int


@dataclass(frozen=True)
class DailyHours:
    service_date: date
    hours: int


@dataclass(frozen=True)
class RequesterHours:
    requester_name: str
    hours: int


@dataclass(frozen=True)
class ClientHours:
    client_id: int
    client_name: str
    hours: int


# =============================================================================
# Pure calculations
# =============================================================================


def calculate_percentage(consumed: int, total: int) -> int:
    """Rounded share of ``total`` used, clamped to 0..100.

    Halves round up. Returns 0 when there is no allotment.
    """
    if total <= 0:
        return 0
    ratio = Decimal(max(consumed, 0)) * 100 / Decimal(total)
    percentage = int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return min(max(percentage, 0), 100)


def summarize_consumption(contracted_hours: int, consumed_hours: int) -> ConsumptionSnapshot:
    """Derive remaining hours and usage percentage from one pair of totals."""
    contracted = max(contracted_hours, 0)
    consumed = max(consumed_hours, 0)
    return ConsumptionSnapshot(
        contracted_hours=contracted,
        consumed_hours=consumed,
        remaining_hours=max(0, contracted - consumed),
        usage_percentage=calculate_percentage(consumed, contracted),
    )


def _ensure_period(period_start: date, period_end: date) -> None:
    if period_end < period_start:
        raise ValidationFailed("period_end must be on or after period_start")


def _client_period_filters(client_id: int, period_start: date, period_end: date) -> list:
    return [
        Ticket.client_id == client_id,
        Ticket.service_date >= period_start,
        Ticket.service_date <= period_end,
    ]


# =============================================================================
# Queries
# =============================================================================


async def consumed_hours(
    session: AsyncSession,
    auth: AuthContext,
    client_id: int,
    period_start: date,
    period_end: date,
) -> int:
    """Sum billed hours for a client's tickets in a closed date period."""
    auth.ensure_client_access(client_id)
    _ensure_period(period_start, period_end)

    stmt = select(func.coalesce(func.sum(Ticket.billed_hours), 0)).where(
        *_client_period_filters(client_id, period_start, period_end)
    )
    result = await session.execute(stmt)
    return int(result.scalar() or 0)


async def contract_consumption(
    session: AsyncSession,
    auth: AuthContext,
    contract: Contract,
) -> ConsumptionSnapshot:
    """Consumption snapshot for a contract over its own period."""
    consumed = await consumed_hours(
        session,
        auth,
        contract.client_id,
        contract.start_date,
        contract.end_date,
    )
    return summarize_consumption(contract.contracted_hours, consumed)


async def ticket_stats(
    session: AsyncSession,
    auth: AuthContext,
    client_id: int,
    period_start: date,
    period_end: date,
) -> TicketStats:
    """Ticket count and billed-hour total for a client in a period."""
    auth.ensure_client_access(client_id)
    _ensure_period(period_start, period_end)

    stmt = select(
        func.count(Ticket.id),
        func.coalesce(func.sum(Ticket.billed_hours), 0),
    ).where(*_client_period_filters(client_id, period_start, period_end))
    result = await session.execute(stmt)
    total_tickets, total_hours = result.one()
    return TicketStats(total_tickets=int(total_tickets), total_hours=int(total_hours))


async def hours_by_day(
    session: AsyncSession,
    auth: AuthContext,
    client_id: int,
    period_start: date,
    period_end: date,
) -> list[DailyHours]:
    """Billed hours per service date, oldest first. Days without tickets are omitted."""
    auth.ensure_client_access(client_id)
    _ensure_period(period_start, period_end)

    stmt = (
        select(Ticket.service_date, func.sum(Ticket.billed_hours))
        .where(*_client_period_filters(client_id, period_start, period_end))
        .group_by(Ticket.service_date)
        .order_by(Ticket.service_date)
    )
    result = await session.execute(stmt)
    return [
        DailyHours(service_date=service_date, hours=int(hours or 0))
        for service_date, hours in result.all()
    ]


async def top_requesters(
    session: AsyncSession,
    auth: AuthContext,
    client_id: int,
    period_start: date,
    period_end: date,
    limit: int = 5,
) -> list[RequesterHours]:
    """Requesters ranked by billed hours, highest first."""
    auth.ensure_client_access(client_id)
    _ensure_period(period_start, period_end)

    hours = func.sum(Ticket.billed_hours).label("hours")
    stmt = (
        select(Ticket.requester_name, hours)
        .where(*_client_period_filters(client_id, period_start, period_end))
        .group_by(Ticket.requester_name)
        .order_by(hours.desc(), Ticket.requester_name)
        .limit(limit)
    )
    result = await session.execute(stmt)
    return [
        RequesterHours(requester_name=name, hours=int(total or 0))
        for name, total in result.all()
    ]


async def client_consumption_ranking(
    session: AsyncSession,
    auth: AuthContext,
    period_start: date,
    period_end: date,
    limit: int = 5,
) -> list[ClientHours]:
    """Clients ranked by billed hours in a period. Admin only."""
    auth.ensure_admin()
    _ensure_period(period_start, period_end)

    hours = func.sum(Ticket.billed_hours).label("hours")
    stmt = (
        select(Client.id, Client.name, hours)
        .join(Ticket, Ticket.client_id == Client.id)
        .where(
            Ticket.service_date >= period_start,
            Ticket.service_date <= period_end,
        )
        .group_by(Client.id, Client.name)
        .order_by(hours.desc(), Client.name)
        .limit(limit)
    )
    result = await session.execute(stmt)
    return [
        ClientHours(client_id=client_id, client_name=name, hours=int(total or 0))
        for client_id, name, total in result.all()
    ]
