"""Tests for clients API endpoints."""

from __future__ import annotations

from datetime import date

import pytest
from httpx import AsyncClient

from conftest import ADMIN_HEADERS, client_headers


async def _create_client(api_client: AsyncClient, name: str, **extra) -> dict:
    response = await api_client.post(
        "/api/clients", json={"name": name, **extra}, headers=ADMIN_HEADERS
    )
    assert response.status_code == 201
    return response.json()


@pytest.mark.asyncio
async def test_create_and_get_client(api_client: AsyncClient) -> None:
    """Create client and fetch it by ID."""
    created = await _create_client(api_client, "  Padaria Central ")
    assert created["name"] == "Padaria Central"
    assert created["status"] == "active"

    get_response = await api_client.get(
        f"/api/clients/{created['id']}", headers=ADMIN_HEADERS
    )
    assert get_response.status_code == 200
    fetched = get_response.json()
    assert fetched["id"] == created["id"]
    assert fetched["name"] == "Padaria Central"


@pytest.mark.asyncio
async def test_missing_identity_is_unauthorized(api_client: AsyncClient) -> None:
    response = await api_client.get("/api/clients")
    assert response.status_code == 401

    response = await api_client.get("/api/clients", headers={"X-User-Role": "CLIENT_USER"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_client_user_cannot_create(api_client: AsyncClient) -> None:
    response = await api_client.post(
        "/api/clients", json={"name": "Sneaky"}, headers=client_headers(1)
    )
    assert response.status_code == 403
    assert response.json()["detail"] == "Administrator access required"


@pytest.mark.asyncio
async def test_list_clients_with_search_and_pagination(api_client: AsyncClient) -> None:
    """Search client list and paginate results."""
    await _create_client(api_client, "Alice Walker")
    await _create_client(api_client, "Alicia Stone")
    await _create_client(api_client, "Bob Summers")

    response = await api_client.get(
        "/api/clients", params={"search": "ali", "limit": 1}, headers=ADMIN_HEADERS
    )
    assert response.status_code == 200
    payload = response.json()
    assert payload["total"] == 2
    assert payload["limit"] == 1
    assert len(payload["items"]) == 1


@pytest.mark.asyncio
async def test_list_clients_filters_by_status(api_client: AsyncClient) -> None:
    await _create_client(api_client, "Active One")
    await _create_client(api_client, "Dormant", status="inactive")

    response = await api_client.get(
        "/api/clients", params={"status": "inactive"}, headers=ADMIN_HEADERS
    )
    assert [item["name"] for item in response.json()["items"]] == ["Dormant"]


@pytest.mark.asyncio
async def test_client_user_sees_only_own_client(api_client: AsyncClient) -> None:
    mine = await _create_client(api_client, "Mine")
    other = await _create_client(api_client, "Other")

    response = await api_client.get("/api/clients", headers=client_headers(mine["id"]))
    payload = response.json()
    assert payload["total"] == 1
    assert payload["items"][0]["id"] == mine["id"]

    denied = await api_client.get(
        f"/api/clients/{other['id']}", headers=client_headers(mine["id"])
    )
    assert denied.status_code == 403


@pytest.mark.asyncio
async def test_update_client_partial(api_client: AsyncClient) -> None:
    """Patch updates client fields."""
    created = await _create_client(api_client, "Client Name")

    patch_response = await api_client.patch(
        f"/api/clients/{created['id']}",
        json={"name": "Updated Name", "status": "inactive"},
        headers=ADMIN_HEADERS,
    )
    assert patch_response.status_code == 200
    payload = patch_response.json()
    assert payload["name"] == "Updated Name"
    assert payload["status"] == "inactive"


@pytest.mark.asyncio
async def test_get_client_not_found(api_client: AsyncClient) -> None:
    """Unknown client ID returns 404."""
    response = await api_client.get("/api/clients/99999", headers=ADMIN_HEADERS)
    assert response.status_code == 404
    assert response.json()["detail"] == "Client not found"


@pytest.mark.asyncio
async def test_delete_client_blocked_by_dependents(api_client: AsyncClient) -> None:
    created = await _create_client(api_client, "With Contract")
    contract = await api_client.post(
        "/api/contracts",
        json={
            "client_id": created["id"],
            "start_date": "2024-01-01",
            "end_date": "2024-01-31",
            "contracted_hours": 10,
        },
        headers=ADMIN_HEADERS,
    )
    assert contract.status_code == 201

    blocked = await api_client.delete(
        f"/api/clients/{created['id']}", headers=ADMIN_HEADERS
    )
    assert blocked.status_code == 409

    await api_client.delete(
        f"/api/contracts/{contract.json()['id']}", headers=ADMIN_HEADERS
    )
    deleted = await api_client.delete(
        f"/api/clients/{created['id']}", headers=ADMIN_HEADERS
    )
    assert deleted.status_code == 204


@pytest.mark.asyncio
async def test_active_contract_endpoint(
    api_client: AsyncClient, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr("src.api.clients.today", lambda: date(2024, 6, 15))
    created = await _create_client(api_client, "Contracted")

    empty = await api_client.get(
        f"/api/clients/{created['id']}/active-contract", headers=ADMIN_HEADERS
    )
    assert empty.status_code == 200
    assert empty.json() is None

    for start, end in [("2024-01-01", "2024-12-31"), ("2024-06-01", "2024-06-30")]:
        await api_client.post(
            "/api/contracts",
            json={
                "client_id": created["id"],
                "start_date": start,
                "end_date": end,
                "contracted_hours": 40,
            },
            headers=ADMIN_HEADERS,
        )

    response = await api_client.get(
        f"/api/clients/{created['id']}/active-contract",
        headers=client_headers(created["id"]),
    )
    payload = response.json()
    assert payload["start_date"] == "2024-06-01"
    assert payload["status"] == "active"
    assert payload["days_until_expiry"] == 15
