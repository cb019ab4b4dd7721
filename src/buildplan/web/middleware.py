"""Request logging middleware for Buildplan.

Each request gets a correlation id (taken from ``X-Correlation-ID`` or freshly
generated) that is echoed on the response. The tenant headers
``X-Organization-ID`` and ``X-User-ID`` are bound to the structlog context so
scheduling and recalculation logs can be traced back to the caller.
"""

from __future__ import annotations

import time
import uuid
from typing import TYPE_CHECKING, Any

import structlog
from starlette.middleware.base import BaseHTTPMiddleware

from buildplan.logging import bind_request_context, get_logger, set_correlation_id

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from starlette.requests import Request
    from starlette.responses import Response

logger = get_logger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


def _request_fields(request: Request) -> dict[str, Any]:
    fields: dict[str, Any] = {"method": request.method, "path": request.url.path}
    if request.url.query:
        fields["query"] = request.url.query
    return fields


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log request start, completion or failure with a correlation id."""

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or uuid.uuid4().hex
        set_correlation_id(correlation_id)
        bind_request_context(
            organization_id=request.headers.get("X-Organization-ID"),
            user_id=request.headers.get("X-User-ID"),
        )
        fields = _request_fields(request)
        started = time.perf_counter()
        logger.info("request_started", **fields)

        try:
            response = await call_next(request)
            logger.info(
                "request_completed",
                status_code=response.status_code,
                duration_ms=_elapsed_ms(started),
                **fields,
            )
        except Exception as exc:
            logger.error(
                "request_failed",
                duration_ms=_elapsed_ms(started),
                error=str(exc),
                exc_info=True,
                **fields,
            )
            raise
        finally:
            set_correlation_id(None)
            structlog.contextvars.clear_contextvars()

        response.headers[CORRELATION_HEADER] = correlation_id
        return response
