from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from libs.common.datetime_utils import utc_now
from libs.common.ids import new_ulid
from libs.db.base import Base
from services.scheduling_service.models.enums import (
    BookingStatus,
    CalendarProvider,
    SchedulingType,
    SessionStatus,
    enum_values,
)
from sqlalchemy import JSON, Boolean, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import Float, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column


def _ulid_pk() -> Mapped[str]:
    return mapped_column(String(26), primary_key=True, default=new_ulid)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )


# ============================================================================
# USERS
# ============================================================================


class User(TimestampMixin, Base):
    __tablename__ = "users"

    ulid: Mapped[str] = _ulid_pk()
    # Subject claim from the identity provider's JWT
    user_id: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    first_name: Mapped[Optional[str]] = mapped_column(String(255))
    last_name: Mapped[Optional[str]] = mapped_column(String(255))
    display_name: Mapped[Optional[str]] = mapped_column(String(255))
    roles: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)

    @property
    def full_name(self) -> str:
        if self.display_name:
            return self.display_name
        parts = [p for p in (self.first_name, self.last_name) if p]
        return " ".join(parts) or self.email


class CoachProfile(TimestampMixin, Base):
    __tablename__ = "coach_profiles"

    ulid: Mapped[str] = _ulid_pk()
    user_ulid: Mapped[str] = mapped_column(
        String(26), ForeignKey("users.ulid", ondelete="CASCADE"), unique=True
    )
    hourly_rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    bio: Mapped[Optional[str]] = mapped_column(Text)


# ============================================================================
# CAL.COM INTEGRATION
# ============================================================================


class CalendarIntegration(TimestampMixin, Base):
    """Stored provider credentials for one user."""

    __tablename__ = "calendar_integrations"

    ulid: Mapped[str] = _ulid_pk()
    user_ulid: Mapped[str] = mapped_column(
        String(26), ForeignKey("users.ulid", ondelete="CASCADE"), unique=True
    )
    provider: Mapped[CalendarProvider] = mapped_column(
        SAEnum(
            CalendarProvider,
            name="calendar_provider_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=CalendarProvider.CAL,
        nullable=False,
    )
    cal_managed_user_id: Mapped[Optional[int]] = mapped_column(Integer, index=True)
    cal_username: Mapped[Optional[str]] = mapped_column(String(255))
    cal_access_token: Mapped[Optional[str]] = mapped_column(Text)
    cal_refresh_token: Mapped[Optional[str]] = mapped_column(Text)
    cal_access_token_expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True)
    )
    time_zone: Mapped[str] = mapped_column(String(64), default="UTC")
    sync_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    last_sync_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))


class CalEventType(TimestampMixin, Base):
    """
    Local mirror of a provider event type.

    ``cal_event_type_id`` is null for records that have not been pushed to the
    provider yet; those are never matched or deactivated by a sync. Default
    records are never deleted.
    """

    __tablename__ = "cal_event_types"

    ulid: Mapped[str] = _ulid_pk()
    calendar_integration_ulid: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("calendar_integrations.ulid", ondelete="CASCADE"),
        index=True,
    )
    cal_event_type_id: Mapped[Optional[int]] = mapped_column(Integer, index=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    slug: Mapped[Optional[str]] = mapped_column(String(255))
    length_in_minutes: Mapped[int] = mapped_column(Integer, default=30)
    scheduling: Mapped[SchedulingType] = mapped_column(
        SAEnum(
            SchedulingType,
            name="scheduling_type_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=SchedulingType.MANAGED,
        nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, default=0)

    # Pricing (cents)
    is_free: Mapped[bool] = mapped_column(Boolean, default=True)
    price: Mapped[int] = mapped_column(Integer, default=0)
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    discount_percentage: Mapped[Optional[float]] = mapped_column(Float)

    # Booking rules
    minimum_booking_notice: Mapped[int] = mapped_column(Integer, default=0)
    before_event_buffer: Mapped[int] = mapped_column(Integer, default=0)
    after_event_buffer: Mapped[int] = mapped_column(Integer, default=0)
    slot_interval: Mapped[Optional[int]] = mapped_column(Integer)
    max_participants: Mapped[Optional[int]] = mapped_column(Integer)
    locations: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)

    # Flags
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)
    hidden: Mapped[bool] = mapped_column(Boolean, default=False)

    organization_ulid: Mapped[Optional[str]] = mapped_column(String(26))
    # "metadata" is reserved on declarative classes
    event_metadata: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, default=dict)


class CoachingAvailabilitySchedule(TimestampMixin, Base):
    __tablename__ = "coaching_availability_schedules"

    ulid: Mapped[str] = _ulid_pk()
    user_ulid: Mapped[str] = mapped_column(
        String(26), ForeignKey("users.ulid", ondelete="CASCADE"), index=True
    )
    cal_schedule_id: Mapped[Optional[int]] = mapped_column(Integer, unique=True)
    name: Mapped[str] = mapped_column(String(255))
    time_zone: Mapped[str] = mapped_column(String(64), default="UTC")
    availability: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    overrides: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)


# ============================================================================
# BOOKINGS & SESSIONS
# ============================================================================


class CalBooking(TimestampMixin, Base):
    __tablename__ = "cal_bookings"

    ulid: Mapped[str] = _ulid_pk()
    # Booker (mentee)
    user_ulid: Mapped[Optional[str]] = mapped_column(
        String(26), ForeignKey("users.ulid", ondelete="SET NULL"), index=True
    )
    coach_user_ulid: Mapped[Optional[str]] = mapped_column(
        String(26), ForeignKey("users.ulid", ondelete="SET NULL"), index=True
    )
    calendar_integration_ulid: Mapped[Optional[str]] = mapped_column(
        String(26), ForeignKey("calendar_integrations.ulid", ondelete="SET NULL")
    )
    cal_booking_uid: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    cal_booking_id: Mapped[Optional[int]] = mapped_column(Integer)
    cal_event_type_id: Mapped[Optional[int]] = mapped_column(Integer)

    title: Mapped[str] = mapped_column(String(255), default="")
    description: Mapped[Optional[str]] = mapped_column(Text)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    attendee_name: Mapped[Optional[str]] = mapped_column(String(255))
    attendee_email: Mapped[Optional[str]] = mapped_column(String(320))
    meeting_url: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[BookingStatus] = mapped_column(
        SAEnum(
            BookingStatus,
            name="booking_status_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=BookingStatus.CONFIRMED,
        nullable=False,
    )
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text)
    booking_metadata: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, default=dict)


class Session(TimestampMixin, Base):
    """A booked coaching session between a coach and a mentee."""

    __tablename__ = "sessions"

    ulid: Mapped[str] = _ulid_pk()
    coach_ulid: Mapped[str] = mapped_column(
        String(26), ForeignKey("users.ulid", ondelete="CASCADE"), index=True
    )
    mentee_ulid: Mapped[str] = mapped_column(
        String(26), ForeignKey("users.ulid", ondelete="CASCADE"), index=True
    )
    cal_booking_ulid: Mapped[Optional[str]] = mapped_column(
        String(26), ForeignKey("cal_bookings.ulid", ondelete="SET NULL"), index=True
    )
    cal_event_type_ulid: Mapped[Optional[str]] = mapped_column(
        String(26), ForeignKey("cal_event_types.ulid", ondelete="SET NULL")
    )
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    status: Mapped[SessionStatus] = mapped_column(
        SAEnum(
            SessionStatus,
            name="session_status_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=SessionStatus.SCHEDULED,
        nullable=False,
    )
    topic: Mapped[Optional[str]] = mapped_column(Text)

    # Cancellation metadata
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text)
    cancelled_by: Mapped[Optional[str]] = mapped_column(String(320))
    cancelled_by_ulid: Mapped[Optional[str]] = mapped_column(String(26))
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
