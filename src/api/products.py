"""Product usage API endpoints."""

from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.deps import get_auth_context, get_db, require_admin
from src.core.auth import AuthContext
from src.core.errors import NotFound, ValidationFailed
from src.models.client import Client
from src.models.product import ProductUsage

router = APIRouter(prefix="/api/products", tags=["products"])

COMPETENCE_PATTERN = r"^\d{4}-(0[1-9]|1[0-2])$"


class ProductUsageCreateRequest(BaseModel):
    """Payload for recording product usage."""

    client_id: int = Field(gt=0)
    competence_month: str = Field(pattern=COMPETENCE_PATTERN)
    product_name: str = Field(min_length=1, max_length=255)
    quantity: Decimal = Field(gt=0, le=999999, decimal_places=2)
    notes: str | None = Field(default=None, max_length=2000)


class ProductUsageUpdateRequest(BaseModel):
    """Payload for updating product usage."""

    competence_month: str | None = Field(default=None, pattern=COMPETENCE_PATTERN)
    product_name: str | None = Field(default=None, min_length=1, max_length=255)
    quantity: Decimal | None = Field(default=None, gt=0, le=999999, decimal_places=2)
    notes: str | None = Field(default=None, max_length=2000)


class ProductUsageResponse(BaseModel):
    """Product usage response model."""

    id: int
    client_id: int
    competence_month: str
    product_name: str
    quantity: Decimal
    notes: str | None
    created_at: datetime
    updated_at: datetime | None


class ProductUsageListResponse(BaseModel):
    """Paginated product usage list response."""

    items: list[ProductUsageResponse]
    total: int
    limit: int
    offset: int


def to_product_response(usage: ProductUsage) -> ProductUsageResponse:
    """Map SQLAlchemy product usage model to response model."""
    return ProductUsageResponse(
        id=usage.id,
        client_id=usage.client_id,
        competence_month=usage.competence_month,
        product_name=usage.product_name,
        quantity=usage.quantity,
        notes=usage.notes,
        created_at=usage.created_at,
        updated_at=usage.updated_at,
    )


async def _get_usage_or_404(
    db: AsyncSession, usage_id: int, auth: AuthContext
) -> ProductUsage:
    usage = await db.get(ProductUsage, usage_id)
    if usage is None:
        raise NotFound("Product usage not found")
    auth.ensure_client_access(usage.client_id)
    return usage


@router.post(
    "",
    response_model=ProductUsageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_product_usage(
    payload: ProductUsageCreateRequest,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(require_admin),
) -> ProductUsageResponse:
    """Record product usage for a client's competence month."""
    client = await db.get(Client, payload.client_id)
    if client is None:
        raise NotFound("Client not found")

    usage = ProductUsage(
        client_id=payload.client_id,
        competence_month=payload.competence_month,
        product_name=payload.product_name.strip(),
        quantity=payload.quantity,
        notes=payload.notes,
    )
    db.add(usage)
    await db.flush()
    return to_product_response(usage)


@router.get("", response_model=ProductUsageListResponse)
async def list_product_usage(
    client_id: int | None = Query(default=None, gt=0),
    competence_month: str | None = Query(default=None, pattern=COMPETENCE_PATTERN),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
) -> ProductUsageListResponse:
    """List product usage, most recent competence month first."""
    filters = []
    scoped_client_id = auth.scoped_client_id(client_id)
    if scoped_client_id is not None:
        filters.append(ProductUsage.client_id == scoped_client_id)
    if competence_month:
        filters.append(ProductUsage.competence_month == competence_month)

    count_stmt = select(func.count(ProductUsage.id))
    list_stmt = select(ProductUsage).order_by(
        ProductUsage.competence_month.desc(), ProductUsage.product_name
    )
    if filters:
        count_stmt = count_stmt.where(*filters)
        list_stmt = list_stmt.where(*filters)

    total_result = await db.execute(count_stmt)
    total = int(total_result.scalar() or 0)

    usage_result = await db.execute(list_stmt.limit(limit).offset(offset))
    return ProductUsageListResponse(
        items=[to_product_response(usage) for usage in usage_result.scalars().all()],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.patch("/{usage_id}", response_model=ProductUsageResponse)
async def update_product_usage(
    usage_id: int,
    payload: ProductUsageUpdateRequest,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(require_admin),
) -> ProductUsageResponse:
    """Partially update a product usage record."""
    usage = await _get_usage_or_404(db, usage_id, auth)
    updates = payload.model_dump(exclude_unset=True)

    for field_name in ("competence_month", "product_name", "quantity"):
        if field_name in updates and updates[field_name] is None:
            raise ValidationFailed(f"{field_name} cannot be null")

    for field_name, value in updates.items():
        if isinstance(value, str):
            value = value.strip()
        setattr(usage, field_name, value)

    await db.flush()
    return to_product_response(usage)


@router.delete("/{usage_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_product_usage(
    usage_id: int,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(require_admin),
) -> Response:
    """Delete a product usage record."""
    usage = await _get_usage_or_404(db, usage_id, auth)
    await db.delete(usage)
    await db.flush()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
