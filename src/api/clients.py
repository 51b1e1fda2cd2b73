"""Clients API endpoints."""

from datetime import datetime

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.contracts import ContractResponse, to_contract_response
from src.api.deps import get_auth_context, get_db, require_admin
from src.billing.contract_status import get_active_contract
from src.core.auth import AuthContext
from src.core.clock import today
from src.core.errors import Conflict, NotFound
from src.core.logging import get_logger
from src.models.client import Client, ClientStatus
from src.models.contract import Contract
from src.models.product import ProductUsage
from src.models.ticket import Ticket

logger = get_logger(__name__)

router = APIRouter(prefix="/api/clients", tags=["clients"])


class ClientCreateRequest(BaseModel):
    """Payload for creating a client."""

    name: str = Field(min_length=1, max_length=255)
    status: ClientStatus = ClientStatus.ACTIVE


class ClientUpdateRequest(BaseModel):
    """Payload for updating a client."""

    name: str | None = Field(default=None, min_length=1, max_length=255)
    status: ClientStatus | None = None


class ClientResponse(BaseModel):
    """Client response model."""

    id: int
    name: str
    status: str
    created_at: datetime
    updated_at: datetime | None


class ClientListResponse(BaseModel):
    """Paginated client list response."""

    items: list[ClientResponse]
    total: int
    limit: int
    offset: int


def _to_client_response(client: Client) -> ClientResponse:
    """Map SQLAlchemy client model to response model."""
    return ClientResponse(
        id=client.id,
        name=client.name,
        status=client.status.value,
        created_at=client.created_at,
        updated_at=client.updated_at,
    )


async def get_client_or_404(db: AsyncSession, client_id: int) -> Client:
    """Load client or raise NotFound."""
    client = await db.get(Client, client_id)
    if client is None:
        raise NotFound("Client not found")
    return client


@router.post("", response_model=ClientResponse, status_code=status.HTTP_201_CREATED)
async def create_client(
    payload: ClientCreateRequest,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(require_admin),
) -> ClientResponse:
    """Create a new client."""
    client = Client(name=payload.name.strip(), status=payload.status)
    db.add(client)
    await db.flush()
    logger.info("client_created", client_id=client.id)
    return _to_client_response(client)


@router.get("", response_model=ClientListResponse)
async def list_clients(
    search: str | None = Query(default=None, min_length=1),
    status_filter: ClientStatus | None = Query(default=None, alias="status"),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
) -> ClientListResponse:
    """List clients with optional search and pagination.

    Client users only ever see their own client.
    """
    filters = []
    scoped_client_id = auth.scoped_client_id()
    if scoped_client_id is not None:
        filters.append(Client.id == scoped_client_id)
    if search:
        search_pattern = f"%{search.strip().lower()}%"
        filters.append(func.lower(Client.name).like(search_pattern))
    if status_filter is not None:
        filters.append(Client.status == status_filter)

    count_stmt = select(func.count(Client.id))
    list_stmt = select(Client).order_by(Client.name, Client.id)
    if filters:
        count_stmt = count_stmt.where(*filters)
        list_stmt = list_stmt.where(*filters)

    total_result = await db.execute(count_stmt)
    total = int(total_result.scalar() or 0)

    clients_result = await db.execute(list_stmt.limit(limit).offset(offset))
    clients = clients_result.scalars().all()

    return ClientListResponse(
        items=[_to_client_response(client) for client in clients],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{client_id}", response_model=ClientResponse)
async def get_client(
    client_id: int,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
) -> ClientResponse:
    """Get client by ID."""
    auth.ensure_client_access(client_id)
    client = await get_client_or_404(db, client_id)
    return _to_client_response(client)


@router.get("/{client_id}/active-contract", response_model=ContractResponse | None)
async def get_client_active_contract(
    client_id: int,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
) -> ContractResponse | None:
    """Contract in force today for the client, or null when there is none."""
    auth.ensure_client_access(client_id)
    await get_client_or_404(db, client_id)
    as_of = today()
    contract = await get_active_contract(db, auth, client_id, as_of)
    if contract is None:
        return None
    return to_contract_response(contract, as_of)


@router.patch("/{client_id}", response_model=ClientResponse)
async def update_client(
    client_id: int,
    payload: ClientUpdateRequest,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(require_admin),
) -> ClientResponse:
    """Partially update client fields."""
    client = await get_client_or_404(db, client_id)

    updates = payload.model_dump(exclude_unset=True)
    if updates.get("name") is not None:
        client.name = updates["name"].strip()
    if updates.get("status") is not None:
        client.status = updates["status"]

    await db.flush()
    return _to_client_response(client)


@router.delete("/{client_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_client(
    client_id: int,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(require_admin),
) -> Response:
    """Delete a client that has no contracts, tickets or product usage."""
    client = await get_client_or_404(db, client_id)

    for model in (Contract, Ticket, ProductUsage):
        result = await db.execute(
            select(func.count(model.id)).where(model.client_id == client_id)
        )
        if int(result.scalar() or 0) > 0:
            raise Conflict(
                "Client has related contracts, tickets or product usage and cannot be deleted"
            )

    await db.delete(client)
    await db.flush()
    logger.info("client_deleted", client_id=client_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
