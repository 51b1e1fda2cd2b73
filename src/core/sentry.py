"""Sentry error tracking integration."""

from typing import Any

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

from src.core.config import settings
from src.core.logging import client_id_ctx, job_ctx

# Free-text ticket fields written by client users.
SCRUBBED_FIELDS = frozenset({"description", "requester_name"})
SCRUBBED = "[scrubbed]"


def _scrub(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            key: SCRUBBED if key in SCRUBBED_FIELDS else _scrub(item)
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [_scrub(item) for item in value]
    return value


def before_send(event: dict[str, Any], hint: dict[str, Any]) -> dict[str, Any]:
    """Drop ticket free text and tag the event with tenant and job."""
    request = event.get("request")
    if isinstance(request, dict) and "data" in request:
        request["data"] = _scrub(request["data"])
    if "extra" in event:
        event["extra"] = _scrub(event["extra"])

    tags = event.setdefault("tags", {})
    if client_id_ctx.get():
        tags["client_id"] = client_id_ctx.get()
    if job_ctx.get():
        tags["job"] = job_ctx.get()
    return event


def init_sentry() -> None:
    """Initialize Sentry when ``SENTRY_DSN`` is configured.

    Only 5xx responses are reported; 4xx domain errors are expected traffic.
    """
    if not settings.sentry_dsn:
        return

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,
        traces_sample_rate=0.1,
        send_default_pii=False,
        before_send=before_send,
        integrations=[
            StarletteIntegration(transaction_style="endpoint"),
            FastApiIntegration(
                transaction_style="endpoint",
                failed_request_status_codes={*range(500, 600)},
            ),
            SqlalchemyIntegration(),
        ],
    )
