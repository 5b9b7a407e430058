"""Enum definitions for scheduling service models."""

import enum


def enum_values(enum_cls):
    """Return persistent DB values for SAEnum mappings."""
    return [member.value for member in enum_cls]


class UserRole(str, enum.Enum):
    MENTEE = "MENTEE"
    COACH = "COACH"
    REALTOR = "REALTOR"
    ADMIN = "ADMIN"


class CalendarProvider(str, enum.Enum):
    CAL = "CAL"


class SchedulingType(str, enum.Enum):
    MANAGED = "MANAGED"
    OFFICE_HOURS = "OFFICE_HOURS"
    GROUP_SESSION = "GROUP_SESSION"
    ROUND_ROBIN = "ROUND_ROBIN"
    COLLECTIVE = "COLLECTIVE"

    @classmethod
    def from_remote(cls, value) -> "SchedulingType":
        """Map a provider scheduling type onto ours; unknown values become MANAGED."""
        if not value:
            return cls.MANAGED
        try:
            return cls(str(value).upper())
        except ValueError:
            return cls.MANAGED


class BookingStatus(str, enum.Enum):
    CONFIRMED = "CONFIRMED"
    PENDING = "PENDING"
    CANCELLED = "CANCELLED"
    REJECTED = "REJECTED"
    RESCHEDULED = "RESCHEDULED"

    @classmethod
    def from_remote(cls, value) -> "BookingStatus":
        status = str(value or "").upper()
        if status in ("ACCEPTED", "CONFIRMED"):
            return cls.CONFIRMED
        if status in ("CANCELLED", "CANCELED"):
            return cls.CANCELLED
        try:
            return cls(status)
        except ValueError:
            return cls.PENDING


class SessionStatus(str, enum.Enum):
    """Session lifecycle: SCHEDULED moves to CANCELLED or COMPLETED, both terminal."""

    SCHEDULED = "SCHEDULED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
