"""Rate limiting configuration for the Dibs API.

Uses slowapi; storage is Redis in deployed environments and in-memory locally.
"""

from functools import lru_cache
from typing import Callable

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from libs.common.config import get_settings
from libs.common.errors import ErrorCode, error_body


def _get_client_ip(request: Request) -> str:
    """
    Get client IP from request, handling proxies.

    Checks X-Forwarded-For header first (for proxied requests),
    then falls back to direct connection IP.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return get_remote_address(request)


@lru_cache
def get_limiter() -> Limiter:
    """Create and return a cached Limiter instance."""
    settings = get_settings()

    return Limiter(
        key_func=_get_client_ip,
        default_limits=["100/minute"],
        storage_uri=settings.RATE_LIMIT_STORAGE_URI,
        strategy="fixed-window",
        enabled=settings.RATE_LIMIT_ENABLED,
    )


limiter = get_limiter()


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """Render rate limit errors in the standard response envelope."""
    return JSONResponse(
        status_code=429,
        content=error_body(
            ErrorCode.RATE_LIMITED, f"Rate limit exceeded: {exc.detail}"
        ),
        headers={"Retry-After": str(getattr(exc, "retry_after", 60))},
    )


def mutation_limit(func: Callable) -> Callable:
    """Apply strict rate limit for state-changing booking endpoints (10/minute)."""
    return limiter.limit("10/minute")(func)


def webhook_limit(func: Callable) -> Callable:
    """Apply relaxed rate limit for provider webhooks (120/minute)."""
    return limiter.limit("120/minute")(func)
