"""SQLAlchemy models for the Hourbank application."""

from src.models.base import Base
from src.models.client import Client, ClientStatus
from src.models.contract import Contract
from src.models.product import ProductUsage
from src.models.ticket import Ticket, TicketStatus

__all__ = [
    "Base",
    "Client",
    "ClientStatus",
    "Contract",
    "ProductUsage",
    "Ticket",
    "TicketStatus",
]
