"""Tests for the renewal console entry point."""

from datetime import date

import orjson
import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from conftest import seed_client, seed_contract
from src.jobs import renew_contracts as cli
from src.models import Base


def _memory_engine():
    return create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )


@pytest.mark.asyncio
async def test_run_renews_against_configured_database(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    engine = _memory_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with async_sessionmaker(engine, expire_on_commit=False)() as session:
        client = await seed_client(session)
        await seed_contract(
            session, client.id, date(2024, 1, 1), date(2024, 1, 31), is_recurring=True
        )
        await session.commit()

    monkeypatch.setattr(cli, "create_engine", lambda: engine)

    exit_code, payload = await cli.run(date(2024, 2, 1))

    assert exit_code == 0
    assert payload["renewed"] == 1
    assert payload["date"] == "2024-02-01"


@pytest.mark.asyncio
async def test_run_reports_abort_with_non_zero_exit(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    # No schema: the candidate scan fails like an unreachable database would.
    engine = _memory_engine()
    monkeypatch.setattr(cli, "create_engine", lambda: engine)

    exit_code, payload = await cli.run(date(2024, 2, 1))

    assert exit_code == 1
    assert payload["success"] is False
    assert "error" in payload


def test_main_prints_summary(monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    seen: dict[str, date | None] = {}

    async def fake_run(as_of=None):
        seen["as_of"] = as_of
        return 0, {"success": True, "date": as_of.isoformat(), "renewed": 0}

    monkeypatch.setattr(cli, "run", fake_run)
    monkeypatch.setattr(cli, "configure_logging", lambda: None)

    exit_code = cli.main(["--as-of", "2024-03-11"])

    assert exit_code == 0
    assert seen["as_of"] == date(2024, 3, 11)
    assert orjson.loads(capsys.readouterr().out) == {
        "success": True,
        "date": "2024-03-11",
        "renewed": 0,
    }
