"""Scheduling service routers."""

from services.scheduling_service.routers.bookings import router as bookings_router
from services.scheduling_service.routers.event_types import router as event_types_router
from services.scheduling_service.routers.managed_users import router as managed_users_router
from services.scheduling_service.routers.schedules import router as schedules_router
from services.scheduling_service.routers.webhooks import router as webhooks_router

__all__ = [
    "bookings_router",
    "event_types_router",
    "managed_users_router",
    "schedules_router",
    "webhooks_router",
]
