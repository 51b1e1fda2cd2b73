"""Tests for contract status resolution and expiry queries."""

from dataclasses import dataclass
from datetime import date

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import seed_client, seed_contract
from src.billing.contract_status import (
    ContractStatus,
    days_until_expiry,
    get_active_contract,
    is_expiring_soon,
    list_active_contracts,
    list_expiring_contracts,
    resolve_status,
    select_active_contract,
)
from src.core.auth import AuthContext, UserRole
from src.core.errors import AccessDenied, ValidationFailed


@dataclass
class Period:
    start_date: date
    end_date: date
    id: int = 1


JANUARY = Period(date(2024, 1, 1), date(2024, 1, 31))


class TestResolveStatus:
    @pytest.mark.parametrize(
        ("as_of", "expected"),
        [
            (date(2023, 12, 31), ContractStatus.FUTURE),
            (date(2024, 1, 1), ContractStatus.ACTIVE),
            (date(2024, 1, 15), ContractStatus.ACTIVE),
            (date(2024, 1, 31), ContractStatus.ACTIVE),
            (date(2024, 2, 1), ContractStatus.EXPIRED),
        ],
    )
    def test_closed_range(self, as_of: date, expected: ContractStatus) -> None:
        assert resolve_status(JANUARY, as_of) is expected

    def test_last_day_is_active_and_expiring(self) -> None:
        as_of = date(2024, 1, 31)
        assert resolve_status(JANUARY, as_of) is ContractStatus.ACTIVE
        assert days_until_expiry(JANUARY, as_of) == 0
        assert is_expiring_soon(JANUARY, as_of)

    def test_expiring_soon_window(self) -> None:
        assert is_expiring_soon(JANUARY, date(2024, 1, 24))
        assert not is_expiring_soon(JANUARY, date(2024, 1, 23))
        assert not is_expiring_soon(JANUARY, date(2024, 2, 1))
        assert is_expiring_soon(JANUARY, date(2024, 1, 21), horizon=10)

    def test_days_until_expiry_negative_after_end(self) -> None:
        assert days_until_expiry(JANUARY, date(2024, 2, 3)) == -3


class TestSelectActiveContract:
    def test_most_recent_start_wins(self) -> None:
        older = Period(date(2024, 1, 1), date(2024, 12, 31), id=1)
        newer = Period(date(2024, 3, 1), date(2024, 3, 31), id=2)
        assert select_active_contract([older, newer], date(2024, 3, 10)) is newer

    def test_tie_on_start_uses_highest_id(self) -> None:
        first = Period(date(2024, 3, 1), date(2024, 3, 31), id=4)
        second = Period(date(2024, 3, 1), date(2024, 4, 30), id=9)
        assert select_active_contract([second, first], date(2024, 3, 10)) is second

    def test_none_when_nothing_covers_date(self) -> None:
        assert select_active_contract([JANUARY], date(2024, 5, 1)) is None


@pytest.mark.asyncio
async def test_get_active_contract_prefers_latest_start(
    db_session: AsyncSession, admin: AuthContext
) -> None:
    client = await seed_client(db_session)
    await seed_contract(db_session, client.id, date(2024, 1, 1), date(2024, 12, 31))
    newer = await seed_contract(
        db_session, client.id, date(2024, 6, 1), date(2024, 6, 30)
    )

    active = await get_active_contract(db_session, admin, client.id, date(2024, 6, 30))
    assert active is not None
    assert active.id == newer.id

    assert await get_active_contract(db_session, admin, client.id, date(2025, 1, 1)) is None


@pytest.mark.asyncio
async def test_client_user_cannot_read_other_client(db_session: AsyncSession) -> None:
    mine = await seed_client(db_session, "Mine")
    other = await seed_client(db_session, "Other")
    auth = AuthContext(role=UserRole.CLIENT_USER, client_id=mine.id)

    with pytest.raises(AccessDenied):
        await get_active_contract(db_session, auth, other.id, date(2024, 1, 1))


@pytest.mark.asyncio
async def test_list_expiring_contracts_is_scoped_and_ordered(
    db_session: AsyncSession, admin: AuthContext
) -> None:
    first = await seed_client(db_session, "First")
    second = await seed_client(db_session, "Second")
    as_of = date(2024, 3, 10)
    late = await seed_contract(db_session, first.id, date(2024, 3, 1), date(2024, 3, 17))
    today_end = await seed_contract(
        db_session, second.id, date(2024, 2, 10), date(2024, 3, 10)
    )
    # Beyond the horizon and already expired contracts are excluded.
    await seed_contract(db_session, first.id, date(2024, 3, 18), date(2024, 3, 18))
    await seed_contract(db_session, second.id, date(2024, 1, 1), date(2024, 3, 9))

    expiring = await list_expiring_contracts(db_session, admin, as_of)
    assert [(item.contract.id, item.days_left) for item in expiring] == [
        (today_end.id, 0),
        (late.id, 7),
    ]

    scoped = AuthContext(role=UserRole.CLIENT_USER, client_id=first.id)
    scoped_items = await list_expiring_contracts(db_session, scoped, as_of)
    assert [item.contract.id for item in scoped_items] == [late.id]

    with pytest.raises(ValidationFailed):
        await list_expiring_contracts(db_session, admin, as_of, horizon=-1)


@pytest.mark.asyncio
async def test_list_active_contracts(db_session: AsyncSession, admin: AuthContext) -> None:
    client = await seed_client(db_session)
    active = await seed_contract(db_session, client.id, date(2024, 3, 1), date(2024, 3, 31))
    await seed_contract(db_session, client.id, date(2024, 4, 1), date(2024, 4, 30))

    contracts = await list_active_contracts(db_session, admin, date(2024, 3, 31))
    assert [contract.id for contract in contracts] == [active.id]
