"""Product usage SQLAlchemy model."""

from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, ForeignKey, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from src.models.client import Client


class ProductUsage(Base, TimestampMixin):
    """Informational record of products a client used in a competence month.

    Independent of contracts; never counted as consumed hours.
    """

    __tablename__ = "products_used"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_products_used_quantity"),
        Index("ix_products_used_client_month", "client_id", "competence_month"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    client_id: Mapped[int] = mapped_column(ForeignKey("clients.id"), nullable=False)
    competence_month: Mapped[str] = mapped_column(String(7), nullable=False)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    notes: Mapped[str | None] = mapped_column(String(2000))

    # Relationships
    client: Mapped["Client"] = relationship(back_populates="product_usages")
