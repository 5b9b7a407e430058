"""FastAPI application for the Scheduling Service."""
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded

load_dotenv()

from libs.common.config import get_settings
from libs.common.error_handler import add_exception_handlers
from libs.common.middleware import add_observability_middleware
from libs.common.rate_limit import limiter, rate_limit_exceeded_handler
from services.scheduling_service.routers import (
    bookings_router,
    event_types_router,
    managed_users_router,
    schedules_router,
    webhooks_router,
)


def create_app() -> FastAPI:
    """Create and configure the Scheduling Service FastAPI app."""
    settings = get_settings()
    app = FastAPI(
        title="Dibs Scheduling Service",
        version="0.1.0",
        description="Cal.com event types, bookings, and coaching sessions for Dibs.",
    )

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Structured logging + request tracing
    add_observability_middleware(app)
    # Every error leaves in the {data, error} envelope
    add_exception_handlers(app)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "scheduling"}

    app.include_router(event_types_router)
    app.include_router(bookings_router)
    app.include_router(schedules_router)
    app.include_router(managed_users_router)
    app.include_router(webhooks_router)

    return app


app = create_app()
