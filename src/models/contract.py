"""Contract SQLAlchemy model."""

from datetime import date
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from src.models.client import Client


class Contract(Base, TimestampMixin):
    """A pool of hours granted to a client over a closed date range.

    Recurring contracts hand their recurring flag to the successor created
    by the renewal job. The (client_id, start_date) uniqueness is what keeps
    two concurrent renewal runs from both inserting a successor.
    """

    __tablename__ = "contracts"
    __table_args__ = (
        UniqueConstraint("client_id", "start_date", name="uq_contracts_client_start"),
        CheckConstraint("end_date >= start_date", name="ck_contracts_date_range"),
        CheckConstraint("contracted_hours >= 0", name="ck_contracts_hours"),
        CheckConstraint(
            "recurrence_months BETWEEN 1 AND 12", name="ck_contracts_recurrence"
        ),
        Index("ix_contracts_client_dates", "client_id", "start_date", "end_date"),
        Index(
            "ix_contracts_recurring_end_date",
            "end_date",
            postgresql_where=text("is_recurring"),
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    client_id: Mapped[int] = mapped_column(ForeignKey("clients.id"), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    contracted_hours: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    notes: Mapped[str | None] = mapped_column(String(2000))
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    recurrence_months: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    # Relationships
    client: Mapped["Client"] = relationship(back_populates="contracts")
