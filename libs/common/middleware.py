"""Request tracing middleware.

Every request gets an ``X-Request-ID`` (propagated from the caller when sent)
and a log line on start and finish carrying the timing and status. The request
ID is bound into the logging context so service logs can be correlated.

Usage:
    from libs.common.middleware import add_observability_middleware

    app = FastAPI()
    add_observability_middleware(app)
"""
import time
from typing import Callable

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from libs.common.logging import (
    clear_request_context,
    configure_logging,
    get_logger,
    set_request_context,
)

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
RESPONSE_TIME_HEADER = "X-Response-Time-Ms"

# Probes would drown out real traffic
_QUIET_PATHS = frozenset({"/health"})


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


def _client_ip(request: Request):
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind request context for logging and time the request."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = set_request_context(
            request_id=request.headers.get(REQUEST_ID_HEADER),
            path=request.url.path,
            method=request.method,
        )
        quiet = request.url.path in _QUIET_PATHS
        started = time.perf_counter()

        if not quiet:
            logger.info(
                "%s %s", request.method, request.url.path,
                extra={"extra_fields": {
                    "client_ip": _client_ip(request),
                    "query": request.url.query or None,
                }},
            )

        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "Unhandled error after %sms", _elapsed_ms(started),
            )
            raise
        finally:
            clear_request_context()

        elapsed = _elapsed_ms(started)
        if not quiet:
            log = logger.warning if response.status_code >= 400 else logger.info
            log(
                "%s %s -> %s", request.method, request.url.path, response.status_code,
                extra={"extra_fields": {
                    "request_id": request_id,
                    "status_code": response.status_code,
                    "duration_ms": elapsed,
                }},
            )

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers[RESPONSE_TIME_HEADER] = str(elapsed)
        return response


def add_observability_middleware(app: FastAPI) -> None:
    """Configure logging and install the request context middleware."""
    configure_logging()
    app.add_middleware(RequestContextMiddleware)
