"""Typed views of Cal.com v2 payloads.

Remote responses are validated here before any business logic sees them.
Field names are snake_case in Python and camelCase on the wire.
"""

from datetime import datetime, timedelta
from typing import Any, Optional

from libs.common.datetime_utils import from_epoch_ms, utc_now
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class CalModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )


class CalEventTypeFromApi(CalModel):
    id: int
    title: str
    slug: Optional[str] = None
    description: Optional[str] = None
    length_in_minutes: Optional[int] = None
    # Older API versions report duration as ``length``
    length: Optional[int] = None
    hidden: bool = False
    scheduling_type: Optional[str] = None
    position: int = 0
    price: int = 0
    currency: Optional[str] = None
    minimum_booking_notice: Optional[int] = None
    before_event_buffer: Optional[int] = None
    after_event_buffer: Optional[int] = None
    slot_interval: Optional[int] = None
    seats_per_time_slot: Optional[int] = None
    locations: list[dict[str, Any]] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _normalise(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        seats = data.get("seats")
        if data.get("seatsPerTimeSlot") is None and isinstance(seats, dict):
            data["seatsPerTimeSlot"] = seats.get("seatsPerTimeSlot")
        for key in ("locations", "metadata", "price", "position"):
            if data.get(key) is None:
                data.pop(key, None)
        return data

    @property
    def duration(self) -> int:
        return self.length_in_minutes or self.length or 30

    @property
    def discount_percentage(self) -> Optional[float]:
        value = self.metadata.get("discountPercentage")
        return float(value) if isinstance(value, (int, float)) else None


class CalAttendee(CalModel):
    name: Optional[str] = None
    email: Optional[str] = None
    time_zone: Optional[str] = None


class CalBookingFromApi(CalModel):
    id: Optional[int] = None
    uid: str
    title: str = ""
    description: Optional[str] = None
    status: str = "accepted"
    start: datetime
    end: datetime
    event_type_id: Optional[int] = None
    meeting_url: Optional[str] = None
    location: Optional[str] = None
    attendees: list[CalAttendee] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _accept_legacy_times(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            data.setdefault("start", data.get("startTime"))
            data.setdefault("end", data.get("endTime"))
            if data.get("metadata") is None:
                data.pop("metadata", None)
        return data


class CalScheduleFromApi(CalModel):
    id: int
    name: str
    time_zone: str = "UTC"
    is_default: bool = False
    availability: list[dict[str, Any]] = Field(default_factory=list)
    overrides: list[dict[str, Any]] = Field(default_factory=list)


class CalManagedUser(CalModel):
    id: int
    email: str
    username: Optional[str] = None
    name: Optional[str] = None
    time_zone: Optional[str] = None


class CalTokenPair(BaseModel):
    access_token: str
    refresh_token: str
    expires_at: datetime

    @classmethod
    def from_platform(cls, data: dict) -> "CalTokenPair":
        """Managed-user payloads: camelCase keys, expiry as epoch milliseconds."""
        expires_at = from_epoch_ms(data.get("accessTokenExpiresAt"))
        return cls(
            access_token=data["accessToken"],
            refresh_token=data["refreshToken"],
            expires_at=expires_at or utc_now() + timedelta(hours=1),
        )

    @classmethod
    def from_oauth(cls, data: dict) -> "CalTokenPair":
        """OAuth refresh-grant payloads: snake_case keys, ``expires_in`` seconds."""
        return cls(
            access_token=data["access_token"],
            refresh_token=data["refresh_token"],
            expires_at=utc_now() + timedelta(seconds=int(data.get("expires_in", 3600))),
        )


class CalManagedUserCreated(BaseModel):
    user: CalManagedUser
    tokens: CalTokenPair

    @classmethod
    def from_api(cls, data: dict) -> "CalManagedUserCreated":
        return cls(
            user=CalManagedUser.model_validate(data["user"]),
            tokens=CalTokenPair.from_platform(data),
        )


# ---------------------------------------------------------------------------
# Webhooks
# ---------------------------------------------------------------------------


class CalWebhookOrganizer(CalModel):
    id: Optional[int] = None
    email: Optional[str] = None
    name: Optional[str] = None
    username: Optional[str] = None


class CalWebhookBooking(CalModel):
    uid: str
    booking_id: Optional[int] = None
    title: str = ""
    description: Optional[str] = None
    start_time: datetime
    end_time: datetime
    event_type_id: Optional[int] = None
    status: Optional[str] = None
    organizer: CalWebhookOrganizer = Field(default_factory=CalWebhookOrganizer)
    attendees: list[CalAttendee] = Field(default_factory=list)
    cancellation_reason: Optional[str] = None
    rescheduled_from_uid: Optional[str] = Field(default=None, alias="rescheduleUid")
    metadata: Optional[dict[str, Any]] = None


class CalWebhookEvent(CalModel):
    trigger_event: str
    created_at: Optional[datetime] = None
    payload: dict[str, Any] = Field(default_factory=dict)
