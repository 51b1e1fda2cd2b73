"""Ticket state machine.

Provides declarative status transitions for tickets, with the billing side
effects of completion applied in callbacks. The machine is bound to the
Ticket model, so each transition writes ``ticket.status`` directly.
"""

from dataclasses import dataclass
from datetime import date, time
from typing import TYPE_CHECKING

import structlog
from statemachine import State, StateMachine
from statemachine.exceptions import TransitionNotAllowed

from src.billing.hours import (
    MIN_BILLED_HOURS,
    calculate_billed_hours,
    calculate_duration_minutes,
    ensure_time_window,
)
from src.core.errors import ValidationFailed
from src.models.ticket import TicketStatus

if TYPE_CHECKING:
    from src.models.ticket import Ticket

logger = structlog.get_logger()


@dataclass(frozen=True)
class BillingFields:
    """Billing values a ticket carries once completed."""

    service_date: date
    start_time: time | None
    end_time: time | None
    duration_minutes: int | None
    billed_hours: int


def resolve_billing(
    *,
    service_date: date | None,
    start_time: time | None,
    end_time: time | None,
    duration_minutes: int | None,
    billed_hours: int | None,
    min_billed_hours: int = MIN_BILLED_HOURS,
) -> BillingFields:
    """Validate and derive the billing fields of a completed ticket.

    When both times are given the duration is derived from them and any
    supplied duration is ignored. Billed hours default to the value
    derived from the duration.

    Raises:
        ValidationFailed: Missing service date, inverted time window,
            negative duration, or billed hours below the minimum.
    """
    if service_date is None:
        raise ValidationFailed("service_date is required to complete a ticket")

    ensure_time_window(start_time, end_time)
    if start_time is not None and end_time is not None:
        duration_minutes = calculate_duration_minutes(start_time, end_time)
    elif duration_minutes is not None and duration_minutes < 0:
        raise ValidationFailed("duration_minutes cannot be negative")

    if billed_hours is None:
        if duration_minutes is None:
            raise ValidationFailed(
                "billed_hours is required when no duration or time window is given"
            )
        billed_hours = calculate_billed_hours(duration_minutes, min_billed_hours)

    if billed_hours < min_billed_hours:
        raise ValidationFailed(
            f"billed_hours must be at least {min_billed_hours} for a completed ticket"
        )

    return BillingFields(
        service_date=service_date,
        start_time=start_time,
        end_time=end_time,
        duration_minutes=duration_minutes,
        billed_hours=billed_hours,
    )


class TicketStateMachine(StateMachine):
    """State machine for ticket lifecycle management.

    States match TicketStatus enum from models:
    - open: Ticket raised, no work billed yet
    - in_progress: Technician working on the request
    - completed: Work finished and billed (final)

    Transitions:
    - start: open -> in_progress
    - complete: open/in_progress -> completed (skip-ahead allowed)
    """

    # States (match TicketStatus enum values)
    open = State(initial=True, value=TicketStatus.OPEN)
    in_progress = State(value=TicketStatus.IN_PROGRESS)
    completed = State(final=True, value=TicketStatus.COMPLETED)

    # Transitions
    start = open.to(in_progress)
    complete = open.to(completed) | in_progress.to(completed)

    def __init__(
        self,
        ticket: "Ticket",
        min_billed_hours: int = MIN_BILLED_HOURS,
    ) -> None:
        """Initialize state machine for a ticket.

        Args:
            ticket: Ticket model instance to manage; its status is the
                current state.
            min_billed_hours: Minimum chargeable hours on completion.
        """
        self.ticket = ticket
        self.min_billed_hours = min_billed_hours
        self._billing: BillingFields | None = None
        super().__init__(model=ticket, state_field="status")

    # Transition callbacks
    def before_complete(
        self,
        service_date: date | None = None,
        start_time: time | None = None,
        end_time: time | None = None,
        duration_minutes: int | None = None,
        billed_hours: int | None = None,
    ) -> None:
        """Validate billing input; raising here leaves the ticket untouched.

        Without an explicit ``billed_hours`` or new times, hours already set
        on the ticket are kept when they meet the minimum; otherwise they are
        derived from the duration.
        """
        new_timing = any(
            value is not None for value in (start_time, end_time, duration_minutes)
        )
        preset = self.ticket.billed_hours
        if (
            billed_hours is None
            and not new_timing
            and preset is not None
            and preset >= self.min_billed_hours
        ):
            billed_hours = preset
        self._billing = resolve_billing(
            service_date=service_date or self.ticket.service_date,
            start_time=start_time if start_time is not None else self.ticket.start_time,
            end_time=end_time if end_time is not None else self.ticket.end_time,
            duration_minutes=(
                duration_minutes
                if duration_minutes is not None
                else self.ticket.duration_minutes
            ),
            billed_hours=billed_hours,
            min_billed_hours=self.min_billed_hours,
        )

    def on_start(self) -> None:
        """Called when a technician picks the ticket up."""
        logger.info(
            "ticket_started",
            ticket_id=self.ticket.id,
            client_id=self.ticket.client_id,
        )

    def on_complete(self) -> None:
        """Called when the ticket is completed; its hours now count."""
        billing = self._billing
        self.ticket.service_date = billing.service_date
        self.ticket.start_time = billing.start_time
        self.ticket.end_time = billing.end_time
        self.ticket.duration_minutes = billing.duration_minutes
        self.ticket.billed_hours = billing.billed_hours
        logger.info(
            "ticket_completed",
            ticket_id=self.ticket.id,
            client_id=self.ticket.client_id,
            billed_hours=billing.billed_hours,
            duration_minutes=billing.duration_minutes,
        )


def create_state_machine(
    ticket: "Ticket",
    min_billed_hours: int = MIN_BILLED_HOURS,
) -> TicketStateMachine:
    """Factory function to create state machine for a ticket.

    Args:
        ticket: Ticket model instance
        min_billed_hours: Minimum chargeable hours on completion

    Returns:
        TicketStateMachine initialized from ticket's current status
    """
    return TicketStateMachine(ticket=ticket, min_billed_hours=min_billed_hours)


__all__ = [
    "BillingFields",
    "TicketStateMachine",
    "TransitionNotAllowed",
    "create_state_machine",
    "resolve_billing",
]
