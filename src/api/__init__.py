"""API module exports."""

from src.api.clients import router as clients_router
from src.api.contracts import router as contracts_router
from src.api.dashboard import router as dashboard_router
from src.api.deps import get_auth_context, get_db, require_admin
from src.api.health import router as health_router
from src.api.jobs import router as jobs_router
from src.api.products import router as products_router
from src.api.tickets import router as tickets_router

__all__ = [
    "clients_router",
    "contracts_router",
    "dashboard_router",
    "get_auth_context",
    "get_db",
    "health_router",
    "jobs_router",
    "products_router",
    "require_admin",
    "tickets_router",
]
