"""Contract management and consumption API endpoints."""

from datetime import date, datetime

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field, model_validator
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.deps import get_auth_context, get_db, require_admin
from src.billing.consumption import contract_consumption
from src.billing.contract_status import (
    ContractStatus,
    ExpiringContract,
    days_until_expiry,
    list_expiring_contracts,
    resolve_status,
)
from src.core.auth import AuthContext
from src.core.clock import today
from src.core.config import settings
from src.core.errors import Conflict, NotFound, ValidationFailed
from src.core.logging import get_logger
from src.models.client import Client
from src.models.contract import Contract

logger = get_logger(__name__)

router = APIRouter(prefix="/api/contracts", tags=["contracts"])

MAX_CONTRACTED_HOURS = 99999
NON_NULLABLE_CONTRACT_FIELDS = (
    "start_date",
    "end_date",
    "contracted_hours",
    "is_recurring",
    "recurrence_months",
)


class ContractCreateRequest(BaseModel):
    """Payload for creating a contract."""

    client_id: int = Field(gt=0)
    start_date: date
    end_date: date
    contracted_hours: int = Field(ge=0, le=MAX_CONTRACTED_HOURS)
    notes: str | None = Field(default=None, max_length=2000)
    is_recurring: bool = False
    recurrence_months: int = Field(default=1, ge=1, le=12)

    @model_validator(mode="after")
    def check_date_range(self) -> "ContractCreateRequest":
        if self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        return self


class ContractUpdateRequest(BaseModel):
    """Payload for updating a contract."""

    start_date: date | None = None
    end_date: date | None = None
    contracted_hours: int | None = Field(default=None, ge=0, le=MAX_CONTRACTED_HOURS)
    notes: str | None = Field(default=None, max_length=2000)
    is_recurring: bool | None = None
    recurrence_months: int | None = Field(default=None, ge=1, le=12)


class ContractResponse(BaseModel):
    """Contract response model with its status as of today."""

    id: int
    client_id: int
    start_date: date
    end_date: date
    contracted_hours: int
    notes: str | None
    is_recurring: bool
    recurrence_months: int
    status: ContractStatus
    days_until_expiry: int
    created_at: datetime
    updated_at: datetime | None


class ContractListResponse(BaseModel):
    """Paginated contract list response."""

    items: list[ContractResponse]
    total: int
    limit: int
    offset: int


class ExpiringContractItem(BaseModel):
    """Contract ending within the expiry horizon."""

    id: int
    client_id: int
    client_name: str
    end_date: date
    contracted_hours: int
    days_left: int


class ConsumptionResponse(BaseModel):
    """Hours used against a contract's allotment."""

    contract_id: int
    client_id: int
    period_start: date
    period_end: date
    contracted_hours: int
    consumed_hours: int
    remaining_hours: int
    usage_percentage: int


def to_contract_response(contract: Contract, as_of: date) -> ContractResponse:
    """Map SQLAlchemy contract model to response model."""
    return ContractResponse(
        id=contract.id,
        client_id=contract.client_id,
        start_date=contract.start_date,
        end_date=contract.end_date,
        contracted_hours=contract.contracted_hours,
        notes=contract.notes,
        is_recurring=contract.is_recurring,
        recurrence_months=contract.recurrence_months,
        status=resolve_status(contract, as_of),
        days_until_expiry=days_until_expiry(contract, as_of),
        created_at=contract.created_at,
        updated_at=contract.updated_at,
    )


def _status_filter(contract_status: ContractStatus, as_of: date) -> list[object]:
    """SQL clauses matching contracts with a given status on ``as_of``."""
    if contract_status == ContractStatus.EXPIRED:
        return [Contract.end_date < as_of]
    if contract_status == ContractStatus.FUTURE:
        return [Contract.start_date > as_of]
    return [Contract.start_date <= as_of, Contract.end_date >= as_of]


async def to_expiring_items(
    db: AsyncSession, expiring: list[ExpiringContract]
) -> list[ExpiringContractItem]:
    """Attach client names to expiring contracts."""
    client_ids = {item.contract.client_id for item in expiring}
    names: dict[int, str] = {}
    if client_ids:
        result = await db.execute(
            select(Client.id, Client.name).where(Client.id.in_(client_ids))
        )
        names = dict(result.all())

    return [
        ExpiringContractItem(
            id=item.contract.id,
            client_id=item.contract.client_id,
            client_name=names.get(item.contract.client_id, "N/A"),
            end_date=item.contract.end_date,
            contracted_hours=item.contract.contracted_hours,
            days_left=item.days_left,
        )
        for item in expiring
    ]


async def _get_contract_or_404(
    db: AsyncSession, contract_id: int, auth: AuthContext
) -> Contract:
    """Load a contract the caller may see, or raise NotFound."""
    contract = await db.get(Contract, contract_id)
    if contract is None:
        raise NotFound("Contract not found")
    auth.ensure_client_access(contract.client_id)
    return contract


def _is_duplicate_start(exc: IntegrityError) -> bool:
    """True when the violation is the one-contract-per-start-date rule."""
    message = str(exc.orig)
    # PostgreSQL names the constraint; SQLite lists its columns.
    return (
        "uq_contracts_client_start" in message
        or "contracts.client_id, contracts.start_date" in message
    )


async def _flush_contract(db: AsyncSession) -> None:
    """Flush, turning constraint violations into a Conflict."""
    try:
        await db.flush()
    except IntegrityError as exc:
        if _is_duplicate_start(exc):
            raise Conflict(
                "Client already has a contract starting on this date"
            ) from exc
        raise Conflict("Contract conflicts with existing data") from exc


@router.post("", response_model=ContractResponse, status_code=status.HTTP_201_CREATED)
async def create_contract(
    payload: ContractCreateRequest,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(require_admin),
) -> ContractResponse:
    """Create a new contract."""
    client = await db.get(Client, payload.client_id)
    if client is None:
        raise NotFound("Client not found")

    contract = Contract(
        client_id=payload.client_id,
        start_date=payload.start_date,
        end_date=payload.end_date,
        contracted_hours=payload.contracted_hours,
        notes=payload.notes,
        is_recurring=payload.is_recurring,
        recurrence_months=payload.recurrence_months,
    )
    db.add(contract)
    await _flush_contract(db)
    logger.info(
        "contract_created",
        contract_id=contract.id,
        client_id=contract.client_id,
        is_recurring=contract.is_recurring,
    )
    return to_contract_response(contract, today())


@router.get("", response_model=ContractListResponse)
async def list_contracts(
    client_id: int | None = Query(default=None, gt=0),
    status_filter: ContractStatus | None = Query(default=None, alias="status"),
    as_of: date | None = Query(default=None),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
) -> ContractListResponse:
    """List contracts, newest period first, optionally filtered by status."""
    reference_date = as_of or today()
    filters: list[object] = []
    scoped_client_id = auth.scoped_client_id(client_id)
    if scoped_client_id is not None:
        filters.append(Contract.client_id == scoped_client_id)
    if status_filter is not None:
        filters.extend(_status_filter(status_filter, reference_date))

    count_stmt = select(func.count(Contract.id))
    list_stmt = select(Contract).order_by(Contract.start_date.desc(), Contract.id.desc())
    if filters:
        count_stmt = count_stmt.where(*filters)
        list_stmt = list_stmt.where(*filters)

    total_result = await db.execute(count_stmt)
    total = int(total_result.scalar() or 0)

    contracts_result = await db.execute(list_stmt.limit(limit).offset(offset))
    contracts = contracts_result.scalars().all()

    return ContractListResponse(
        items=[to_contract_response(contract, reference_date) for contract in contracts],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/expiring", response_model=list[ExpiringContractItem])
async def get_expiring_contracts(
    horizon: int | None = Query(default=None, ge=0, le=365),
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
) -> list[ExpiringContractItem]:
    """Contracts ending within the horizon, soonest first."""
    expiring = await list_expiring_contracts(
        db,
        auth,
        today(),
        settings.expiring_horizon_days if horizon is None else horizon,
    )
    return await to_expiring_items(db, expiring)


@router.get("/{contract_id}", response_model=ContractResponse)
async def get_contract(
    contract_id: int,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
) -> ContractResponse:
    """Get contract by ID."""
    contract = await _get_contract_or_404(db, contract_id, auth)
    return to_contract_response(contract, today())


@router.get("/{contract_id}/consumption", response_model=ConsumptionResponse)
async def get_contract_consumption(
    contract_id: int,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
) -> ConsumptionResponse:
    """Billed hours against the contract over its own period."""
    contract = await _get_contract_or_404(db, contract_id, auth)
    snapshot = await contract_consumption(db, auth, contract)
    return ConsumptionResponse(
        contract_id=contract.id,
        client_id=contract.client_id,
        period_start=contract.start_date,
        period_end=contract.end_date,
        contracted_hours=snapshot.contracted_hours,
        consumed_hours=snapshot.consumed_hours,
        remaining_hours=snapshot.remaining_hours,
        usage_percentage=snapshot.usage_percentage,
    )


@router.patch("/{contract_id}", response_model=ContractResponse)
async def update_contract(
    contract_id: int,
    payload: ContractUpdateRequest,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(require_admin),
) -> ContractResponse:
    """Partially update contract fields."""
    contract = await _get_contract_or_404(db, contract_id, auth)
    updates = payload.model_dump(exclude_unset=True)

    for field_name in NON_NULLABLE_CONTRACT_FIELDS:
        if field_name in updates and updates[field_name] is None:
            raise ValidationFailed(f"{field_name} cannot be null")

    start_date = updates.get("start_date", contract.start_date)
    end_date = updates.get("end_date", contract.end_date)
    if end_date < start_date:
        raise ValidationFailed("end_date must be on or after start_date")

    for field_name, value in updates.items():
        setattr(contract, field_name, value)

    await _flush_contract(db)
    logger.info("contract_updated", contract_id=contract.id, fields=sorted(updates))
    return to_contract_response(contract, today())


@router.delete("/{contract_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_contract(
    contract_id: int,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(require_admin),
) -> Response:
    """Delete a contract."""
    contract = await _get_contract_or_404(db, contract_id, auth)
    await db.delete(contract)
    await db.flush()
    logger.info("contract_deleted", contract_id=contract_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
