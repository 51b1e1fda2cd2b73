"""Daily renewal of recurring contracts.

The job scans recurring contracts that ended before ``as_of`` and creates
one successor per contract, starting the day after it ended and lasting
exactly ``recurrence_months`` calendar months. The successor inherits the
recurring flag; the original loses it in the same transaction.

There is no global lock. A run is safe to repeat, and safe to overlap with
another run, because:

- a contract is skipped when its client already has a contract starting
  after its end date;
- contracts are unique per (client_id, start_date), so a racing insert of
  the same successor fails and is re-checked as a skip;
- the flag flip only matches rows that are still recurring.

Each contract is its own unit of work: one failing renewal is reported
and the rest of the batch continues. Losing the database connection is
fatal and aborts the batch.
"""

from __future__ import annotations

import calendar
import enum
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any

import structlog
from sqlalchemy import exists, select, update
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.errors import HourbankError
from src.models.contract import Contract

logger = structlog.get_logger()

FATAL_STORAGE_ERRORS = (OperationalError, InterfaceError)


# =============================================================================
# Data Structures
# =============================================================================


class RenewalOutcome(str, enum.Enum):
    RENEWED = "renewed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class RenewalCandidate:
    """Plain snapshot of an expired recurring contract.

    Detached from any session so each renewal can run in its own.
    """

    id: int
    client_id: int
    start_date: date
    end_date: date
    contracted_hours: int
    notes: str | None
    recurrence_months: int

    @classmethod
    def from_contract(cls, contract: Contract) -> "RenewalCandidate":
        return cls(
            id=contract.id,
            client_id=contract.client_id,
            start_date=contract.start_date,
            end_date=contract.end_date,
            contracted_hours=contract.contracted_hours,
            notes=contract.notes,
            recurrence_months=contract.recurrence_months,
        )


@dataclass(frozen=True)
class RenewalFailure:
    contract_id: int
    error: str


@dataclass
class RenewalSummary:
    """Result of one renewal run.

    Attributes:
        date: The ``as_of`` date the run used as "today".
        total_expired: Expired recurring contracts found.
        renewed_ids: Contracts that received a successor.
        skipped_ids: Contracts that already had a successor.
        errors: Per-contract failures; those contracts stay recurring.
        success: False only when the run was aborted.
    """

    date: date
    total_expired: int = 0
    renewed_ids: list[int] = field(default_factory=list)
    skipped_ids: list[int] = field(default_factory=list)
    errors: list[RenewalFailure] = field(default_factory=list)
    success: bool = True

    @property
    def renewed(self) -> int:
        return len(self.renewed_ids)

    def to_dict(self) -> dict[str, Any]:
        """JSON-shaped summary returned to the scheduled trigger."""
        payload: dict[str, Any] = {
            "success": self.success,
            "date": self.date.isoformat(),
            "totalExpired": self.total_expired,
            "renewed": self.renewed,
            "renewedIds": list(self.renewed_ids),
            "skipped": len(self.skipped_ids),
        }
        if self.errors:
            payload["errors"] = [
                {"contractId": failure.contract_id, "error": failure.error}
                for failure in self.errors
            ]
        return payload


class RenewalAborted(HourbankError):
    """The batch stopped because storage became unavailable.

    Carries the partial summary so the caller can still report what was
    renewed before the abort.
    """

    status_code = 500

    def __init__(self, summary: RenewalSummary, cause: str) -> None:
        summary.success = False
        self.summary = summary
        self.cause = cause
        super().__init__(f"Contract renewal aborted: {cause}")

    def to_dict(self) -> dict[str, Any]:
        payload = self.summary.to_dict()
        payload["error"] = self.cause
        return payload


# =============================================================================
# Period arithmetic
# =============================================================================


def add_months(value: date, months: int) -> date:
    """Shift a date by calendar months, clamping the day to the month length."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def successor_period(end_date: date, recurrence_months: int) -> tuple[date, date]:
    """Closed period that directly follows a contract ending on ``end_date``.

    Starts the next day and ends the day before the same day-of-month
    ``recurrence_months`` later: 2024-01-31 with 1 month gives
    2024-02-01..2024-02-29.
    """
    if not 1 <= recurrence_months <= 12:
        raise ValueError("recurrence_months must be between 1 and 12")
    new_start = end_date + timedelta(days=1)
    new_end = add_months(new_start, recurrence_months) - timedelta(days=1)
    return new_start, new_end


# =============================================================================
# Storage steps
# =============================================================================


async def find_expired_recurring(
    session: AsyncSession, as_of: date
) -> list[RenewalCandidate]:
    """Recurring contracts whose end date is before ``as_of``."""
    stmt = (
        select(Contract)
        .where(Contract.is_recurring.is_(True), Contract.end_date < as_of)
        .order_by(Contract.end_date, Contract.id)
    )
    result = await session.execute(stmt)
    return [RenewalCandidate.from_contract(c) for c in result.scalars().all()]


async def successor_exists(
    session: AsyncSession, client_id: int, after: date
) -> bool:
    """True if the client has any contract starting after ``after``."""
    stmt = select(
        exists().where(Contract.client_id == client_id, Contract.start_date > after)
    )
    result = await session.execute(stmt)
    return bool(result.scalar())


class ConcurrentRenewal(Exception):
    """The contract stopped being recurring while we were renewing it."""


async def renew_contract(
    session: AsyncSession, candidate: RenewalCandidate
) -> Contract | None:
    """Insert the successor of one contract and retire its recurring flag.

    Must run inside a transaction: the insert and the flag update commit
    together or not at all.

    Returns:
        The new contract, or None when a successor already exists.

    Raises:
        IntegrityError: A concurrent run inserted the same successor first.
        ConcurrentRenewal: A concurrent run already retired the flag.
    """
    if await successor_exists(session, candidate.client_id, candidate.end_date):
        return None

    new_start, new_end = successor_period(
        candidate.end_date, candidate.recurrence_months
    )
    successor = Contract(
        client_id=candidate.client_id,
        start_date=new_start,
        end_date=new_end,
        contracted_hours=candidate.contracted_hours,
        notes=candidate.notes,
        is_recurring=True,
        recurrence_months=candidate.recurrence_months,
    )
    session.add(successor)
    await session.flush()

    result = await session.execute(
        update(Contract)
        .where(Contract.id == candidate.id, Contract.is_recurring.is_(True))
        .values(is_recurring=False)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise ConcurrentRenewal(f"contract {candidate.id} is no longer recurring")
    return successor


async def _renew_in_own_transaction(
    session_factory: async_sessionmaker[AsyncSession],
    candidate: RenewalCandidate,
) -> tuple[RenewalOutcome, RenewalCandidate | None]:
    try:
        async with session_factory() as session, session.begin():
            successor = await renew_contract(session, candidate)
            snapshot = (
                RenewalCandidate.from_contract(successor) if successor else None
            )
    except ConcurrentRenewal:
        return RenewalOutcome.SKIPPED, None
    except IntegrityError:
        async with session_factory() as session:
            if await successor_exists(session, candidate.client_id, candidate.end_date):
                return RenewalOutcome.SKIPPED, None
        raise

    if snapshot is None:
        return RenewalOutcome.SKIPPED, None
    return RenewalOutcome.RENEWED, snapshot


# =============================================================================
# Entry point
# =============================================================================


async def renew_contracts(
    session_factory: async_sessionmaker[AsyncSession],
    as_of: date,
) -> RenewalSummary:
    """Renew every recurring contract that expired before ``as_of``.

    Args:
        session_factory: Factory for fresh sessions; each contract is
            renewed in its own transaction.
        as_of: The date treated as "today".

    Returns:
        Summary of renewed, skipped and failed contracts.

    Raises:
        RenewalAborted: Storage became unavailable. Contracts renewed
            before the abort stay renewed.
    """
    summary = RenewalSummary(date=as_of)
    logger.info("contract_renewal_started", as_of=as_of.isoformat())

    try:
        async with session_factory() as session:
            candidates = await find_expired_recurring(session, as_of)
    except Exception as exc:
        logger.exception("contract_renewal_fetch_failed", error=str(exc))
        raise RenewalAborted(summary, str(exc)) from exc

    summary.total_expired = len(candidates)
    logger.info("contract_renewal_candidates", total_expired=summary.total_expired)

    for candidate in candidates:
        try:
            outcome, successor = await _renew_in_own_transaction(
                session_factory, candidate
            )
        except FATAL_STORAGE_ERRORS as exc:
            logger.exception(
                "contract_renewal_aborted",
                contract_id=candidate.id,
                error=str(exc),
            )
            raise RenewalAborted(summary, str(exc)) from exc
        except Exception as exc:
            logger.exception(
                "contract_renewal_failed",
                contract_id=candidate.id,
                client_id=candidate.client_id,
                error=str(exc),
            )
            summary.errors.append(
                RenewalFailure(contract_id=candidate.id, error=str(exc))
            )
            continue

        if outcome is RenewalOutcome.SKIPPED:
            summary.skipped_ids.append(candidate.id)
            logger.info(
                "contract_renewal_skipped",
                contract_id=candidate.id,
                client_id=candidate.client_id,
                reason="successor_exists",
            )
            continue

        summary.renewed_ids.append(candidate.id)
        logger.info(
            "contract_renewed",
            contract_id=candidate.id,
            client_id=candidate.client_id,
            successor_id=successor.id,
            start_date=successor.start_date.isoformat(),
            end_date=successor.end_date.isoformat(),
        )

    logger.info(
        "contract_renewal_completed",
        total_expired=summary.total_expired,
        renewed=summary.renewed,
        skipped=len(summary.skipped_ids),
        failed=len(summary.errors),
    )
    return summary
