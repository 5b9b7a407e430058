from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from services.scheduling_service.models import BookingStatus, SessionStatus


class CreateBookingRequest(BaseModel):
    coach_ulid: str
    event_type_ulid: str
    start_time: datetime
    time_zone: str = "UTC"
    session_topic: Optional[str] = Field(None, max_length=2000)
    attendee_name: Optional[str] = None


class BookingResponse(BaseModel):
    ulid: str
    cal_booking_uid: str
    title: str
    start_time: datetime
    end_time: datetime
    status: BookingStatus
    meeting_url: Optional[str] = None
    attendee_name: Optional[str] = None
    attendee_email: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class SessionResponse(BaseModel):
    ulid: str
    coach_ulid: str
    mentee_ulid: str
    cal_booking_ulid: Optional[str] = None
    start_time: datetime
    end_time: datetime
    status: SessionStatus
    cancellation_reason: Optional[str] = None
    cancelled_by: Optional[str] = None
    cancelled_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class CreateBookingResponse(BaseModel):
    booking: BookingResponse
    session: Optional[SessionResponse] = None


class CalendarLink(BaseModel):
    label: str
    link: str


class CancelBookingRequest(BaseModel):
    session_ulid: str
    cal_booking_ulid: str
    cancellation_reason: Optional[str] = Field(None, max_length=2000)

    @model_validator(mode="after")
    def _strip_reason(self):
        if self.cancellation_reason is not None:
            self.cancellation_reason = self.cancellation_reason.strip() or None
        return self


class CancelBookingResponse(BaseModel):
    session: SessionResponse
    booking_status: BookingStatus
