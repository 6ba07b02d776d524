"""Per-request context for the Dhan API.

Each HTTP request gets an ID (the caller's ``X-Request-ID`` or a fresh
UUID). While the request is served, the ID, method and path are bound to
structlog's context so that validation failures, guard decisions and Dhan
upstream calls logged along the way can be tied back to the route that
triggered them. One ``http_request_completed`` line closes each request.
"""

import time
import uuid
from contextvars import ContextVar
from typing import Callable

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

REQUEST_ID_HEADER = "X-Request-ID"

request_id_ctx: ContextVar[str] = ContextVar("request_id", default="")

logger = structlog.get_logger(__name__)


def get_request_id() -> str:
    """Current request ID, or "" outside a request."""
    return request_id_ctx.get()


def set_request_id(request_id: str) -> None:
    request_id_ctx.set(request_id)


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tag each request with an ID and log its outcome.

    The ID is echoed back in the ``X-Request-ID`` response header so that
    dashboard error reports can quote it.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER.lower()) or str(uuid.uuid4())
        set_request_id(request_id)
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            http_method=request.method,
            path=request.url.path,
        )

        started = time.perf_counter()
        try:
            response = await call_next(request)
            logger.info(
                "http_request_completed",
                status_code=response.status_code,
                duration_ms=round((time.perf_counter() - started) * 1000, 1),
            )
        finally:
            structlog.contextvars.unbind_contextvars("request_id", "http_method", "path")

        response.headers[REQUEST_ID_HEADER] = request_id
        return response


__all__ = [
    "REQUEST_ID_HEADER",
    "RequestIdMiddleware",
    "get_request_id",
    "set_request_id",
]
