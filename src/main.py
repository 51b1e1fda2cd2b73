"""FastAPI application entry point with lifespan management."""

from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.api.clients import router as clients_router
from src.api.contracts import router as contracts_router
from src.api.dashboard import router as dashboard_router
from src.api.health import router as health_router
from src.api.jobs import router as jobs_router
from src.api.middleware import RequestContextMiddleware
from src.api.products import router as products_router
from src.api.tickets import router as tickets_router
from src.core.config import settings
from src.core.database import create_engine, create_session_factory
from src.core.errors import HourbankError
from src.core.logging import configure_logging, get_logger
from src.core.sentry import init_sentry

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Own the engine for the life of the process.

    Tests skip the lifespan and put their own factory on ``app.state``.
    """
    configure_logging()
    init_sentry()

    app.state.db_engine = create_engine()
    app.state.async_session = create_session_factory(app.state.db_engine)
    logger.info(
        "portal_started",
        environment=settings.environment,
        timezone=settings.timezone,
        min_billed_hours=settings.min_billed_hours,
        scheduler_key_configured=bool(settings.scheduler_api_key),
    )
    try:
        yield
    finally:
        await app.state.db_engine.dispose()
        logger.info("portal_stopped")


app = FastAPI(
    title="Hourbank",
    description="IT-services hour tracking and contract billing portal",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(HourbankError)
async def handle_domain_error(request: Request, exc: HourbankError) -> JSONResponse:
    """Translate domain errors into JSON responses with their status code."""
    if exc.status_code >= 500:
        logger.error(
            "request_failed",
            path=request.url.path,
            error=exc.message,
        )
    else:
        logger.info(
            "request_rejected",
            path=request.url.path,
            status_code=exc.status_code,
            error=exc.message,
        )
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# The portal SPA calls the API from another origin.
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestContextMiddleware)

for router in (
    health_router,
    clients_router,
    contracts_router,
    tickets_router,
    products_router,
    dashboard_router,
    jobs_router,
):
    app.include_router(router)
