"""Tests for contracts API endpoints."""

from __future__ import annotations

from datetime import date

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import ADMIN_HEADERS, client_headers, seed_client
from src.api.contracts import _flush_contract
from src.core.errors import Conflict
from src.models import Contract

TODAY = date(2024, 6, 25)


@pytest.fixture(autouse=True)
def fixed_today(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("src.api.contracts.today", lambda: TODAY)


async def _client(api_client: AsyncClient, name: str = "Acme") -> int:
    response = await api_client.post(
        "/api/clients", json={"name": name}, headers=ADMIN_HEADERS
    )
    return response.json()["id"]


async def _contract(api_client: AsyncClient, client_id: int, start: str, end: str, **extra):
    return await api_client.post(
        "/api/contracts",
        json={
            "client_id": client_id,
            "start_date": start,
            "end_date": end,
            "contracted_hours": extra.pop("contracted_hours", 40),
            **extra,
        },
        headers=ADMIN_HEADERS,
    )


@pytest.mark.asyncio
async def test_create_contract_reports_status(api_client: AsyncClient) -> None:
    client_id = await _client(api_client)

    response = await _contract(
        api_client, client_id, "2024-06-01", "2024-06-30", is_recurring=True
    )
    assert response.status_code == 201
    payload = response.json()
    assert payload["status"] == "active"
    assert payload["days_until_expiry"] == 5
    assert payload["is_recurring"] is True
    assert payload["recurrence_months"] == 1


@pytest.mark.asyncio
async def test_create_contract_validation(api_client: AsyncClient) -> None:
    client_id = await _client(api_client)

    inverted = await _contract(api_client, client_id, "2024-06-30", "2024-06-01")
    assert inverted.status_code == 422

    bad_recurrence = await _contract(
        api_client, client_id, "2024-06-01", "2024-06-30", recurrence_months=13
    )
    assert bad_recurrence.status_code == 422

    unknown_client = await _contract(api_client, 999, "2024-06-01", "2024-06-30")
    assert unknown_client.status_code == 404


@pytest.mark.asyncio
async def test_duplicate_start_date_conflicts(api_client: AsyncClient) -> None:
    client_id = await _client(api_client)
    await _contract(api_client, client_id, "2024-06-01", "2024-06-30")

    duplicate = await _contract(api_client, client_id, "2024-06-01", "2024-07-31")
    assert duplicate.status_code == 409
    assert duplicate.json()["detail"] == (
        "Client already has a contract starting on this date"
    )


@pytest.mark.asyncio
async def test_list_contracts_by_status(api_client: AsyncClient) -> None:
    client_id = await _client(api_client)
    await _contract(api_client, client_id, "2024-05-01", "2024-05-31")
    await _contract(api_client, client_id, "2024-06-01", "2024-06-30")
    await _contract(api_client, client_id, "2024-07-01", "2024-07-31")

    statuses = {}
    for contract_status in ("active", "expired", "future"):
        response = await api_client.get(
            "/api/contracts", params={"status": contract_status}, headers=ADMIN_HEADERS
        )
        statuses[contract_status] = [
            item["start_date"] for item in response.json()["items"]
        ]

    assert statuses == {
        "active": ["2024-06-01"],
        "expired": ["2024-05-01"],
        "future": ["2024-07-01"],
    }

    as_of = await api_client.get(
        "/api/contracts",
        params={"status": "active", "as_of": "2024-05-31"},
        headers=ADMIN_HEADERS,
    )
    assert [item["start_date"] for item in as_of.json()["items"]] == ["2024-05-01"]


@pytest.mark.asyncio
async def test_client_user_lists_only_own_contracts(api_client: AsyncClient) -> None:
    mine = await _client(api_client, "Mine")
    other = await _client(api_client, "Other")
    await _contract(api_client, mine, "2024-06-01", "2024-06-30")
    other_contract = await _contract(api_client, other, "2024-06-01", "2024-06-30")

    response = await api_client.get("/api/contracts", headers=client_headers(mine))
    assert response.json()["total"] == 1

    denied = await api_client.get(
        f"/api/contracts/{other_contract.json()['id']}", headers=client_headers(mine)
    )
    assert denied.status_code == 403

    forbidden_filter = await api_client.get(
        "/api/contracts", params={"client_id": other}, headers=client_headers(mine)
    )
    assert forbidden_filter.status_code == 403


@pytest.mark.asyncio
async def test_expiring_contracts(api_client: AsyncClient) -> None:
    client_id = await _client(api_client, "Soon")
    await _contract(api_client, client_id, "2024-06-01", "2024-06-30")
    await _contract(api_client, client_id, "2024-07-01", "2024-08-31")
    await _contract(api_client, client_id, "2024-01-01", "2024-06-25")

    response = await api_client.get("/api/contracts/expiring", headers=ADMIN_HEADERS)
    assert response.status_code == 200
    items = response.json()
    assert [(item["end_date"], item["days_left"]) for item in items] == [
        ("2024-06-25", 0),
        ("2024-06-30", 5),
    ]
    assert items[0]["client_name"] == "Soon"

    narrow = await api_client.get(
        "/api/contracts/expiring", params={"horizon": 2}, headers=ADMIN_HEADERS
    )
    assert len(narrow.json()) == 1


@pytest.mark.asyncio
async def test_contract_consumption(api_client: AsyncClient) -> None:
    client_id = await _client(api_client, "Client X")
    contract = await _contract(api_client, client_id, "2024-06-01", "2024-06-30")
    contract_id = contract.json()["id"]

    for service_date, hours in (("2024-06-05", 3), ("2024-06-20", 5)):
        created = await api_client.post(
            "/api/tickets",
            json={
                "client_id": client_id,
                "requester_name": "Ana",
                "description": "Support",
                "service_date": service_date,
                "billed_hours": hours,
                "status": "completed",
            },
            headers=ADMIN_HEADERS,
        )
        assert created.status_code == 201

    response = await api_client.get(
        f"/api/contracts/{contract_id}/consumption", headers=client_headers(client_id)
    )
    assert response.status_code == 200
    assert response.json() == {
        "contract_id": contract_id,
        "client_id": client_id,
        "period_start": "2024-06-01",
        "period_end": "2024-06-30",
        "contracted_hours": 40,
        "consumed_hours": 8,
        "remaining_hours": 32,
        "usage_percentage": 20,
    }


@pytest.mark.asyncio
async def test_update_contract(api_client: AsyncClient) -> None:
    client_id = await _client(api_client)
    contract = await _contract(api_client, client_id, "2024-06-01", "2024-06-30")
    contract_id = contract.json()["id"]

    response = await api_client.patch(
        f"/api/contracts/{contract_id}",
        json={"contracted_hours": 60, "notes": "Upgraded"},
        headers=ADMIN_HEADERS,
    )
    assert response.status_code == 200
    assert response.json()["contracted_hours"] == 60
    assert response.json()["notes"] == "Upgraded"

    inverted = await api_client.patch(
        f"/api/contracts/{contract_id}",
        json={"end_date": "2024-05-01"},
        headers=ADMIN_HEADERS,
    )
    assert inverted.status_code == 422

    nulled = await api_client.patch(
        f"/api/contracts/{contract_id}",
        json={"contracted_hours": None},
        headers=ADMIN_HEADERS,
    )
    assert nulled.status_code == 422


@pytest.mark.asyncio
async def test_delete_contract(api_client: AsyncClient) -> None:
    client_id = await _client(api_client)
    contract = await _contract(api_client, client_id, "2024-06-01", "2024-06-30")
    contract_id = contract.json()["id"]

    denied = await api_client.delete(
        f"/api/contracts/{contract_id}", headers=client_headers(client_id)
    )
    assert denied.status_code == 403

    response = await api_client.delete(
        f"/api/contracts/{contract_id}", headers=ADMIN_HEADERS
    )
    assert response.status_code == 204

    missing = await api_client.get(f"/api/contracts/{contract_id}", headers=ADMIN_HEADERS)
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_other_constraint_violations_get_generic_conflict(
    db_session: AsyncSession,
) -> None:
    client = await seed_client(db_session)
    db_session.add(
        Contract(
            client_id=client.id,
            start_date=date(2024, 6, 30),
            end_date=date(2024, 6, 1),
            contracted_hours=10,
        )
    )

    with pytest.raises(Conflict) as exc_info:
        await _flush_contract(db_session)

    assert exc_info.value.message == "Contract conflicts with existing data"
