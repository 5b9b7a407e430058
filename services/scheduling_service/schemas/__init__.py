"""Scheduling Service schemas package."""

from services.scheduling_service.schemas.bookings import (
    BookingResponse,
    CalendarLink,
    CancelBookingRequest,
    CancelBookingResponse,
    CreateBookingRequest,
    CreateBookingResponse,
    SessionResponse,
)
from services.scheduling_service.schemas.cal import (
    CalBookingFromApi,
    CalEventTypeFromApi,
    CalManagedUser,
    CalManagedUserCreated,
    CalScheduleFromApi,
    CalTokenPair,
    CalWebhookBooking,
    CalWebhookEvent,
)
from services.scheduling_service.schemas.event_types import (
    DefaultEventTypesResponse,
    EventTypeCreate,
    EventTypeResponse,
    EventTypeUpdate,
    SyncStatsResponse,
)
from services.scheduling_service.schemas.managed_users import (
    IntegrationResponse,
    ManagedUserCreate,
    ManagedUserResponse,
    ManagedUserUpdate,
)
from services.scheduling_service.schemas.schedules import (
    ScheduleCreate,
    ScheduleResponse,
    ScheduleUpdate,
)

__all__ = [
    "BookingResponse",
    "CalBookingFromApi",
    "CalEventTypeFromApi",
    "CalManagedUser",
    "CalManagedUserCreated",
    "CalScheduleFromApi",
    "CalTokenPair",
    "CalWebhookBooking",
    "CalWebhookEvent",
    "CalendarLink",
    "CancelBookingRequest",
    "CancelBookingResponse",
    "CreateBookingRequest",
    "CreateBookingResponse",
    "DefaultEventTypesResponse",
    "EventTypeCreate",
    "EventTypeResponse",
    "EventTypeUpdate",
    "IntegrationResponse",
    "ManagedUserCreate",
    "ManagedUserResponse",
    "ManagedUserUpdate",
    "ScheduleCreate",
    "ScheduleResponse",
    "ScheduleUpdate",
    "SessionResponse",
    "SyncStatsResponse",
]
