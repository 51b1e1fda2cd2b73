"""Client-related SQLAlchemy models."""

import enum
from typing import TYPE_CHECKING

from sqlalchemy import Enum, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from src.models.contract import Contract
    from src.models.product import ProductUsage
    from src.models.ticket import Ticket


class ClientStatus(enum.Enum):
    """Whether a client is currently served."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class Client(Base, TimestampMixin):
    """Represents a client company served by the IT team.

    Root aggregate: contracts, tickets and product usage all belong to
    exactly one client.
    """

    __tablename__ = "clients"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[ClientStatus] = mapped_column(
        Enum(
            ClientStatus,
            name="client_status",
            values_callable=lambda members: [member.value for member in members],
        ),
        default=ClientStatus.ACTIVE,
        nullable=False,
    )

    # Relationships
    contracts: Mapped[list["Contract"]] = relationship(back_populates="client")
    tickets: Mapped[list["Ticket"]] = relationship(back_populates="client")
    product_usages: Mapped[list["ProductUsage"]] = relationship(
        back_populates="client"
    )
