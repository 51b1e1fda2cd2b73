"""Structured logging configuration using structlog.

Every event carries the correlation fields known at the time it is
emitted: the HTTP request id, the tenant (client) the caller is scoped to,
and the scheduled job name when running inside a renewal pass. Event names
are snake_case verbs in the past tense (``contract_renewed``,
``ticket_completed``).
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

import orjson
import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from src.core.config import settings

request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)
client_id_ctx: ContextVar[str | None] = ContextVar("client_id", default=None)
job_ctx: ContextVar[str | None] = ContextVar("job", default=None)

_CORRELATION_FIELDS: tuple[tuple[str, ContextVar[str | None]], ...] = (
    ("request_id", request_id_ctx),
    ("client_id", client_id_ctx),
    ("job", job_ctx),
)

# Chatty libraries that only matter when debugging.
_NOISY_LOGGERS = ("sqlalchemy.engine", "asyncpg", "httpx")


def _add_context_vars(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Copy correlation context variables onto the event, skipping unset ones."""
    for field_name, var in _CORRELATION_FIELDS:
        value = var.get()
        if value:
            event_dict[field_name] = value
    return event_dict


def _orjson_serializer(obj: Any, **kwargs: Any) -> str:
    return orjson.dumps(obj).decode("utf-8")


def _use_json() -> bool:
    log_format = settings.log_format.lower() if settings.log_format else None
    if log_format is not None:
        return log_format == "json"
    return settings.environment != "development"


def configure_logging() -> None:
    """Configure structlog for the API process and the renewal CLI.

    Development mode: ConsoleRenderer with colors for readability.
    Other environments, or ``LOG_FORMAT=json``: one orjson line per event
    with the event name under ``message``.
    """
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        _add_context_vars,
    ]

    if _use_json():
        processors: list[Processor] = [
            *shared_processors,
            structlog.processors.EventRenamer("message"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(serializer=_orjson_serializer),
        ]
    else:
        processors = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(colors=True),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    level = logging.DEBUG if settings.debug else logging.INFO
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(level if settings.debug else logging.WARNING)


@contextmanager
def job_context(name: str) -> Iterator[None]:
    """Tag every event emitted inside the block with ``job=<name>``."""
    token = job_ctx.set(name)
    try:
        yield
    finally:
        job_ctx.reset(token)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a configured structlog logger.

    Args:
        name: Optional logger name. Defaults to __name__ of caller.

    Returns:
        Configured structlog bound logger.
    """
    return structlog.get_logger(name)
