"""Ticket management API endpoints."""

import enum
from datetime import date, datetime, time

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.deps import get_auth_context, get_db, require_admin
from src.billing.hours import (
    calculate_billed_hours,
    calculate_duration_minutes,
    ensure_time_window,
)
from src.core.auth import AuthContext
from src.core.clock import today
from src.core.config import settings
from src.core.errors import AccessDenied, Conflict, NotFound, ValidationFailed
from src.core.logging import get_logger
from src.models.client import Client
from src.models.ticket import Ticket, TicketStatus
from src.workflow.state_machine import TransitionNotAllowed, create_state_machine

logger = get_logger(__name__)

router = APIRouter(prefix="/api/tickets", tags=["tickets"])

MAX_TITLE = 200
MAX_DESCRIPTION = 5000
MAX_NAME = 255


class TicketAction(str, enum.Enum):
    """Status transitions exposed over the API."""

    START = "start"
    COMPLETE = "complete"


class TicketCreateRequest(BaseModel):
    """Payload for an administrator recording a ticket.

    Tickets created as completed must carry billing data; historical
    records are usually entered this way.
    """

    client_id: int = Field(gt=0)
    requester_name: str = Field(min_length=1, max_length=MAX_NAME)
    title: str | None = Field(default=None, max_length=MAX_TITLE)
    description: str = Field(min_length=1, max_length=MAX_DESCRIPTION)
    service_date: date
    start_time: time | None = None
    end_time: time | None = None
    duration_minutes: int | None = Field(default=None, ge=0)
    billed_hours: int | None = Field(default=None, ge=0)
    status: TicketStatus = TicketStatus.OPEN


class SelfServiceTicketRequest(BaseModel):
    """Payload for a client user raising a ticket."""

    title: str = Field(min_length=1, max_length=MAX_TITLE)
    description: str = Field(min_length=1, max_length=MAX_DESCRIPTION)
    requester_name: str = Field(min_length=1, max_length=MAX_NAME)


class TicketUpdateRequest(BaseModel):
    """Payload for editing descriptive and billing fields."""

    requester_name: str | None = Field(default=None, min_length=1, max_length=MAX_NAME)
    title: str | None = Field(default=None, max_length=MAX_TITLE)
    description: str | None = Field(default=None, min_length=1, max_length=MAX_DESCRIPTION)
    service_date: date | None = None
    start_time: time | None = None
    end_time: time | None = None
    duration_minutes: int | None = Field(default=None, ge=0)
    billed_hours: int | None = Field(default=None, ge=0)


class TicketTransitionRequest(BaseModel):
    """Payload for moving a ticket through its lifecycle."""

    action: TicketAction
    service_date: date | None = None
    start_time: time | None = None
    end_time: time | None = None
    duration_minutes: int | None = Field(default=None, ge=0)
    billed_hours: int | None = Field(default=None, ge=0)


class TicketResponse(BaseModel):
    """Ticket response model."""

    id: int
    client_id: int
    created_by_user_id: str | None
    title: str | None
    requester_name: str
    description: str
    service_date: date | None
    start_time: time | None
    end_time: time | None
    duration_minutes: int | None
    billed_hours: int
    status: str
    created_at: datetime
    updated_at: datetime | None


class TicketListResponse(BaseModel):
    """Paginated ticket list response."""

    items: list[TicketResponse]
    total: int
    limit: int
    offset: int


def _to_ticket_response(ticket: Ticket) -> TicketResponse:
    """Map SQLAlchemy ticket model to response model."""
    return TicketResponse(
        id=ticket.id,
        client_id=ticket.client_id,
        created_by_user_id=ticket.created_by_user_id,
        title=ticket.title,
        requester_name=ticket.requester_name,
        description=ticket.description,
        service_date=ticket.service_date,
        start_time=ticket.start_time,
        end_time=ticket.end_time,
        duration_minutes=ticket.duration_minutes,
        billed_hours=ticket.billed_hours,
        status=ticket.status.value,
        created_at=ticket.created_at,
        updated_at=ticket.updated_at,
    )


def _build_ticket_filters(
    client_id: int | None,
    date_from: date | None,
    date_to: date | None,
    ticket_status: TicketStatus | None,
    search: str | None,
) -> list[object]:
    """Build SQLAlchemy filter clauses for ticket listing."""
    filters: list[object] = []
    if client_id is not None:
        filters.append(Ticket.client_id == client_id)
    if date_from is not None:
        filters.append(Ticket.service_date >= date_from)
    if date_to is not None:
        filters.append(Ticket.service_date <= date_to)
    if ticket_status is not None:
        filters.append(Ticket.status == ticket_status)
    if search:
        pattern = f"%{search.strip().lower()}%"
        filters.append(
            or_(
                func.lower(Ticket.requester_name).like(pattern),
                func.lower(Ticket.description).like(pattern),
            )
        )
    return filters


async def _get_ticket_or_404(
    db: AsyncSession, ticket_id: int, auth: AuthContext
) -> Ticket:
    """Load a ticket the caller may see, or raise NotFound."""
    ticket = await db.get(Ticket, ticket_id)
    if ticket is None:
        raise NotFound("Ticket not found")
    auth.ensure_client_access(ticket.client_id)
    return ticket


@router.post("", response_model=TicketResponse, status_code=status.HTTP_201_CREATED)
async def create_ticket(
    payload: TicketCreateRequest,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(require_admin),
) -> TicketResponse:
    """Record a ticket in any status; completed tickets are billed immediately."""
    client = await db.get(Client, payload.client_id)
    if client is None:
        raise NotFound("Client not found")

    ensure_time_window(payload.start_time, payload.end_time)
    duration_minutes = payload.duration_minutes
    if payload.start_time is not None and payload.end_time is not None:
        duration_minutes = calculate_duration_minutes(payload.start_time, payload.end_time)

    ticket = Ticket(
        client_id=payload.client_id,
        created_by_user_id=auth.user_id,
        title=payload.title.strip() if payload.title else None,
        requester_name=payload.requester_name.strip(),
        description=payload.description.strip(),
        service_date=payload.service_date,
        start_time=payload.start_time,
        end_time=payload.end_time,
        duration_minutes=duration_minutes,
        billed_hours=0,
        status=TicketStatus.OPEN,
    )

    sm = create_state_machine(ticket=ticket, min_billed_hours=settings.min_billed_hours)
    if payload.status == TicketStatus.IN_PROGRESS:
        sm.start()
    elif payload.status == TicketStatus.COMPLETED:
        sm.complete(billed_hours=payload.billed_hours)

    if payload.status != TicketStatus.COMPLETED and payload.billed_hours is not None:
        ticket.billed_hours = payload.billed_hours

    db.add(ticket)
    await db.flush()
    logger.info(
        "ticket_created",
        ticket_id=ticket.id,
        client_id=ticket.client_id,
        status=ticket.status.value,
    )
    return _to_ticket_response(ticket)


@router.post(
    "/self-service",
    response_model=TicketResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_self_service_ticket(
    payload: SelfServiceTicketRequest,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
) -> TicketResponse:
    """Raise an open ticket for the caller's own client."""
    if auth.is_admin:
        raise AccessDenied("Self-service tickets are raised by client users")

    ticket = Ticket(
        client_id=auth.client_id,
        created_by_user_id=auth.user_id,
        title=payload.title.strip(),
        requester_name=payload.requester_name.strip(),
        description=payload.description.strip(),
        service_date=today(),
        billed_hours=0,
        status=TicketStatus.OPEN,
    )
    db.add(ticket)
    await db.flush()
    logger.info("ticket_raised", ticket_id=ticket.id, client_id=ticket.client_id)
    return _to_ticket_response(ticket)


@router.get("", response_model=TicketListResponse)
async def list_tickets(
    client_id: int | None = Query(default=None, gt=0),
    date_from: date | None = Query(default=None, alias="from"),
    date_to: date | None = Query(default=None, alias="to"),
    status_filter: TicketStatus | None = Query(default=None, alias="status"),
    search: str | None = Query(default=None, min_length=1),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
) -> TicketListResponse:
    """List tickets with optional filters, most recent service date first."""
    if date_from is not None and date_to is not None and date_to < date_from:
        raise ValidationFailed("'to' must be on or after 'from'")

    filters = _build_ticket_filters(
        client_id=auth.scoped_client_id(client_id),
        date_from=date_from,
        date_to=date_to,
        ticket_status=status_filter,
        search=search,
    )

    count_stmt = select(func.count(Ticket.id))
    list_stmt = select(Ticket).order_by(Ticket.service_date.desc(), Ticket.id.desc())
    if filters:
        count_stmt = count_stmt.where(*filters)
        list_stmt = list_stmt.where(*filters)

    total_result = await db.execute(count_stmt)
    total = int(total_result.scalar() or 0)

    tickets_result = await db.execute(list_stmt.limit(limit).offset(offset))
    tickets = tickets_result.scalars().all()

    return TicketListResponse(
        items=[_to_ticket_response(ticket) for ticket in tickets],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{ticket_id}", response_model=TicketResponse)
async def get_ticket(
    ticket_id: int,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
) -> TicketResponse:
    """Get ticket by ID."""
    ticket = await _get_ticket_or_404(db, ticket_id, auth)
    return _to_ticket_response(ticket)


@router.patch("/{ticket_id}", response_model=TicketResponse)
async def update_ticket(
    ticket_id: int,
    payload: TicketUpdateRequest,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(require_admin),
) -> TicketResponse:
    """Edit ticket fields.

    Changing either time re-derives the duration and, unless the request
    sets them, the billed hours.
    """
    ticket = await _get_ticket_or_404(db, ticket_id, auth)
    updates = payload.model_dump(exclude_unset=True)

    for field_name in ("requester_name", "description", "billed_hours"):
        if field_name in updates and updates[field_name] is None:
            raise ValidationFailed(f"{field_name} cannot be null")

    start_time = updates.get("start_time", ticket.start_time)
    end_time = updates.get("end_time", ticket.end_time)
    ensure_time_window(start_time, end_time)
    if start_time is not None and end_time is not None:
        updates["duration_minutes"] = calculate_duration_minutes(start_time, end_time)
        times_changed = "start_time" in updates or "end_time" in updates
        if times_changed and "billed_hours" not in updates:
            updates["billed_hours"] = calculate_billed_hours(
                updates["duration_minutes"], settings.min_billed_hours
            )

    if ticket.status == TicketStatus.COMPLETED:
        if updates.get("service_date", ticket.service_date) is None:
            raise ValidationFailed("Completed tickets must keep a service_date")
        billed_hours = updates.get("billed_hours", ticket.billed_hours)
        if billed_hours < settings.min_billed_hours:
            raise ValidationFailed(
                f"billed_hours must be at least {settings.min_billed_hours} "
                "for a completed ticket"
            )

    for field_name, value in updates.items():
        if isinstance(value, str):
            value = value.strip()
        setattr(ticket, field_name, value)

    await db.flush()
    logger.info("ticket_updated", ticket_id=ticket.id, fields=sorted(updates))
    return _to_ticket_response(ticket)


@router.post("/{ticket_id}/transitions", response_model=TicketResponse)
async def transition_ticket(
    ticket_id: int,
    payload: TicketTransitionRequest,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(require_admin),
) -> TicketResponse:
    """Move a ticket to its next status using state-machine constraints."""
    ticket = await _get_ticket_or_404(db, ticket_id, auth)
    sm = create_state_machine(ticket=ticket, min_billed_hours=settings.min_billed_hours)

    try:
        if payload.action == TicketAction.START:
            sm.start()
        else:
            sm.complete(
                service_date=payload.service_date,
                start_time=payload.start_time,
                end_time=payload.end_time,
                duration_minutes=payload.duration_minutes,
                billed_hours=payload.billed_hours,
            )
    except TransitionNotAllowed as exc:
        raise Conflict(
            f"Cannot {payload.action.value} a ticket that is {ticket.status.value}"
        ) from exc

    await db.flush()
    return _to_ticket_response(ticket)


@router.delete("/{ticket_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_ticket(
    ticket_id: int,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(require_admin),
) -> Response:
    """Delete a ticket in any status."""
    ticket = await _get_ticket_or_404(db, ticket_id, auth)
    await db.delete(ticket)
    await db.flush()
    logger.info("ticket_deleted", ticket_id=ticket_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
