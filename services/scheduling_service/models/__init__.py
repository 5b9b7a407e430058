"""Scheduling Service models package."""

from services.scheduling_service.models.core import (
    CalBooking,
    CalendarIntegration,
    CalEventType,
    CoachingAvailabilitySchedule,
    CoachProfile,
    Session,
    User,
)
from services.scheduling_service.models.enums import (
    BookingStatus,
    CalendarProvider,
    SchedulingType,
    SessionStatus,
    UserRole,
)

__all__ = [
    "BookingStatus",
    "CalBooking",
    "CalendarIntegration",
    "CalendarProvider",
    "CalEventType",
    "CoachingAvailabilitySchedule",
    "CoachProfile",
    "SchedulingType",
    "Session",
    "SessionStatus",
    "User",
    "UserRole",
]
