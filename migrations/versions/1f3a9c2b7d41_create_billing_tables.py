"""create_billing_tables

Revision ID: 1f3a9c2b7d41
Revises:
Create Date: 2026-10-17 09:12:44.118302

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '1f3a9c2b7d41'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

client_status = sa.Enum("active", "inactive", name="client_status")
ticket_status = sa.Enum("open", "in_progress", "completed", name="ticket_status")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    """Create clients, contracts, tickets and products_used."""
    op.create_table(
        "clients",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("status", client_status, nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "contracts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("client_id", sa.Integer(), sa.ForeignKey("clients.id"), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("contracted_hours", sa.Integer(), nullable=False),
        sa.Column("notes", sa.String(length=2000), nullable=True),
        sa.Column("is_recurring", sa.Boolean(), nullable=False),
        sa.Column("recurrence_months", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("client_id", "start_date", name="uq_contracts_client_start"),
        sa.CheckConstraint("end_date >= start_date", name="ck_contracts_date_range"),
        sa.CheckConstraint("contracted_hours >= 0", name="ck_contracts_hours"),
        sa.CheckConstraint(
            "recurrence_months BETWEEN 1 AND 12", name="ck_contracts_recurrence"
        ),
    )
    op.create_index(
        "ix_contracts_client_dates",
        "contracts",
        ["client_id", "start_date", "end_date"],
    )
    # Renewal scans only ever look at recurring rows.
    op.create_index(
        "ix_contracts_recurring_end_date",
        "contracts",
        ["end_date"],
        postgresql_where=sa.text("is_recurring"),
    )

    op.create_table(
        "tickets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("client_id", sa.Integer(), sa.ForeignKey("clients.id"), nullable=False),
        sa.Column("created_by_user_id", sa.String(length=64), nullable=True),
        sa.Column("title", sa.String(length=200), nullable=True),
        sa.Column("requester_name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("service_date", sa.Date(), nullable=True),
        sa.Column("start_time", sa.Time(), nullable=True),
        sa.Column("end_time", sa.Time(), nullable=True),
        sa.Column("duration_minutes", sa.Integer(), nullable=True),
        sa.Column("billed_hours", sa.Integer(), nullable=False),
        sa.Column("status", ticket_status, nullable=False),
        *_timestamps(),
        sa.CheckConstraint("billed_hours >= 0", name="ck_tickets_billed_hours"),
    )
    op.create_index(
        "ix_tickets_client_service_date",
        "tickets",
        ["client_id", "service_date"],
    )

    op.create_table(
        "products_used",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("client_id", sa.Integer(), sa.ForeignKey("clients.id"), nullable=False),
        sa.Column("competence_month", sa.String(length=7), nullable=False),
        sa.Column("product_name", sa.String(length=255), nullable=False),
        sa.Column("quantity", sa.Numeric(12, 2), nullable=False),
        sa.Column("notes", sa.String(length=2000), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("quantity > 0", name="ck_products_used_quantity"),
    )
    op.create_index(
        "ix_products_used_client_month",
        "products_used",
        ["client_id", "competence_month"],
    )


def downgrade() -> None:
    """Drop all billing tables and enum types."""
    op.drop_index("ix_products_used_client_month", table_name="products_used")
    op.drop_table("products_used")
    op.drop_index("ix_tickets_client_service_date", table_name="tickets")
    op.drop_table("tickets")
    op.drop_index("ix_contracts_recurring_end_date", table_name="contracts")
    op.drop_index("ix_contracts_client_dates", table_name="contracts")
    op.drop_table("contracts")
    op.drop_table("clients")
    ticket_status.drop(op.get_bind(), checkfirst=True)
    client_status.drop(op.get_bind(), checkfirst=True)
