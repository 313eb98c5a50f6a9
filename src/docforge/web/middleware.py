"""Request logging middleware for the Docforge API.

Every request gets a correlation id (taken from ``X-Correlation-ID`` or
generated) that is bound into the structlog context for the duration of
the request and echoed back in the response headers. Liveness probes are
not logged.
"""

from __future__ import annotations

import time
import uuid
from typing import TYPE_CHECKING

from starlette.middleware.base import BaseHTTPMiddleware

from docforge.logging import get_logger, set_correlation_id

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from starlette.requests import Request
    from starlette.responses import Response

logger = get_logger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"
QUIET_PATHS = frozenset({"/health", "/health/"})


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs each request with its status, duration, and correlation id."""

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        set_correlation_id(correlation_id)
        quiet = request.url.path in QUIET_PATHS
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                "request_failed",
                method=request.method,
                path=request.url.path,
                duration_ms=_elapsed_ms(started),
                error=str(exc),
                exc_info=True,
            )
            raise
        finally:
            set_correlation_id(None)

        if not quiet:
            logger.info(
                "request_completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=_elapsed_ms(started),
            )
        response.headers[CORRELATION_HEADER] = correlation_id
        return response


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)
