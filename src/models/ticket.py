"""Ticket-related SQLAlchemy models."""

import enum
from datetime import date, time
from typing import TYPE_CHECKING

from sqlalchemy import (
    CheckConstraint,
    Date,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from src.models.client import Client


class TicketStatus(enum.Enum):
    """Enumeration of possible ticket statuses."""

    OPEN = "open"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class Ticket(Base, TimestampMixin):
    """Represents a support request and the hours billed for it."""

    __tablename__ = "tickets"
    __table_args__ = (
        CheckConstraint("billed_hours >= 0", name="ck_tickets_billed_hours"),
        Index("ix_tickets_client_service_date", "client_id", "service_date"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    client_id: Mapped[int] = mapped_column(ForeignKey("clients.id"), nullable=False)
    created_by_user_id: Mapped[str | None] = mapped_column(String(64))
    title: Mapped[str | None] = mapped_column(String(200))
    requester_name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    service_date: Mapped[date | None] = mapped_column(Date)
    start_time: Mapped[time | None] = mapped_column(Time)
    end_time: Mapped[time | None] = mapped_column(Time)
    duration_minutes: Mapped[int | None] = mapped_column(Integer)
    billed_hours: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    status: Mapped[TicketStatus] = mapped_column(
        Enum(
            TicketStatus,
            name="ticket_status",
            values_callable=lambda members: [member.value for member in members],
        ),
        default=TicketStatus.OPEN,
        nullable=False,
    )

    # Relationships
    client: Mapped["Client"] = relationship(back_populates="tickets")
