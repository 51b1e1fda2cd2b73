"""Contract status resolution and expiry lookups.

A contract's range is closed on both ends: on its end date it is still
active and has zero days left, so it shows up both as "the active
contract" and in the expiring-soon list.
"""

from __future__ import annotations

import enum
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.auth import AuthContext
from src.core.errors import ValidationFailed
from src.models.contract import Contract

DEFAULT_EXPIRING_HORIZON_DAYS = 7


class ContractStatus(str, enum.Enum):
    """Where a date falls relative to a contract's period."""

    ACTIVE = "active"
    FUTURE = "future"
    EXPIRED = "expired"


class ContractPeriod(Protocol):
    start_date: date
    end_date: date


def resolve_status(contract: ContractPeriod, as_of: date) -> ContractStatus:
    """Classify a contract on a given date. Exactly one status applies."""
    if as_of > contract.end_date:
        return ContractStatus.EXPIRED
    if as_of < contract.start_date:
        return ContractStatus.FUTURE
    return ContractStatus.ACTIVE


def days_until_expiry(contract: ContractPeriod, as_of: date) -> int:
    """Days from ``as_of`` to the contract's end date (negative once past)."""
    return (contract.end_date - as_of).days


def is_expiring_soon(
    contract: ContractPeriod,
    as_of: date,
    horizon: int = DEFAULT_EXPIRING_HORIZON_DAYS,
) -> bool:
    days_left = days_until_expiry(contract, as_of)
    return 0 <= days_left <= horizon


def select_active_contract(
    contracts: Iterable[Contract], as_of: date
) -> Contract | None:
    """Pick the authoritative contract for a date.

    When several contracts cover the date the most recently started one
    wins; ties on start date fall back to the highest id.
    """
    active = [
        contract
        for contract in contracts
        if resolve_status(contract, as_of) is ContractStatus.ACTIVE
    ]
    if not active:
        return None
    return max(active, key=lambda contract: (contract.start_date, contract.id or 0))


@dataclass
class ExpiringContract:
    """A contract ending within the expiry horizon.

    Attributes:
        contract: The contract row.
        days_left: Days until its end date (0 on the last day).
    """

    contract: Contract
    days_left: int


async def get_active_contract(
    session: AsyncSession,
    auth: AuthContext,
    client_id: int,
    as_of: date,
) -> Contract | None:
    """Load the contract in force for a client on ``as_of``."""
    auth.ensure_client_access(client_id)
    stmt = (
        select(Contract)
        .where(
            Contract.client_id == client_id,
            Contract.start_date <= as_of,
            Contract.end_date >= as_of,
        )
        .order_by(Contract.start_date.desc(), Contract.id.desc())
        .limit(1)
    )
    result = await session.execute(stmt)
    return result.scalars().first()


async def list_active_contracts(
    session: AsyncSession,
    auth: AuthContext,
    as_of: date,
) -> list[Contract]:
    """List every contract active on ``as_of`` visible to the caller."""
    stmt = select(Contract).where(
        Contract.start_date <= as_of,
        Contract.end_date >= as_of,
    )
    client_id = auth.scoped_client_id()
    if client_id is not None:
        stmt = stmt.where(Contract.client_id == client_id)
    result = await session.execute(
        stmt.order_by(Contract.client_id, Contract.start_date.desc())
    )
    return list(result.scalars().all())


async def list_expiring_contracts(
    session: AsyncSession,
    auth: AuthContext,
    as_of: date,
    horizon: int = DEFAULT_EXPIRING_HORIZON_DAYS,
) -> list[ExpiringContract]:
    """List contracts whose end date is within ``horizon`` days of ``as_of``.

    Ordered by end date, soonest first.
    """
    if horizon < 0:
        raise ValidationFailed("horizon must be zero or positive")

    stmt = select(Contract).where(
        Contract.end_date >= as_of,
        Contract.end_date <= as_of + timedelta(days=horizon),
    )
    client_id = auth.scoped_client_id()
    if client_id is not None:
        stmt = stmt.where(Contract.client_id == client_id)
    result = await session.execute(stmt.order_by(Contract.end_date, Contract.id))
    return [
        ExpiringContract(contract=contract, days_left=days_until_expiry(contract, as_of))
        for contract in result.scalars().all()
    ]
