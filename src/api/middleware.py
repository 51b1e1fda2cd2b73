"""Request correlation and access logging."""

import time
import uuid
from collections.abc import Awaitable, Callable

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from src.core.logging import client_id_ctx, request_id_ctx

RequestResponseEndpoint = Callable[[Request], Awaitable[Response]]

REQUEST_ID_HEADER = "X-Request-ID"

logger = structlog.get_logger()


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind a request id for the lifetime of each request.

    The id comes from ``X-Request-ID`` when the gateway sends one and is
    echoed back on the response. The tenant id is cleared at the start of
    every request; ``get_auth_context`` binds it once the caller is known.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request_token = request_id_ctx.set(request_id)
        client_token = client_id_ctx.set(None)
        started = time.perf_counter()
        try:
            response = await call_next(request)
            logger.info(
                "request_handled",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                elapsed_ms=round((time.perf_counter() - started) * 1000, 1),
            )
        finally:
            client_id_ctx.reset(client_token)
            request_id_ctx.reset(request_token)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
