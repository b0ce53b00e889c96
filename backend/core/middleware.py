"""Request Middleware

Binds a correlation ID to every log line of a request, logs request
completion with timing and flags requests slower than a threshold.
"""
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from core.logging import (
    generate_correlation_id,
    bind_context,
    clear_context,
    api_logger,
)

log = api_logger()

CORRELATION_HEADER = "X-Correlation-ID"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs each request and echoes its correlation ID back to the client."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or generate_correlation_id()

        clear_context()
        bind_context(
            correlation_id=correlation_id,
            method=request.method,
            path=request.url.path,
        )

        start = time.perf_counter()
        log.debug(
            "request_started",
            query=str(request.query_params) if request.query_params else None,
            client_ip=request.client.host if request.client else "unknown",
        )

        try:
            response = await call_next(request)
        except Exception as exc:
            log.exception(
                "request_failed",
                error_type=type(exc).__name__,
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
            )
            raise
        else:
            response.headers[CORRELATION_HEADER] = correlation_id
            status = response.status_code
            log_method = log.info if status < 400 else (log.warning if status < 500 else log.error)
            log_method(
                "request_completed",
                status=status,
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
            )
            return response
        finally:
            clear_context()


class SlowRequestMiddleware(BaseHTTPMiddleware):
    """Warns about requests slower than ``slow_threshold_ms``."""

    def __init__(self, app, slow_threshold_ms: float = 1000):
        super().__init__(app)
        self.slow_threshold_ms = slow_threshold_ms

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000

        if duration_ms > self.slow_threshold_ms:
            log.warning(
                "slow_request",
                path=request.url.path,
                duration_ms=round(duration_ms, 2),
                threshold_ms=self.slow_threshold_ms,
            )

        return response
