"""Booking creation through Cal.com and the local booking/session mirror."""

from dataclasses import dataclass
from typing import Optional

from libs.auth.models import RequestContext
from libs.common.errors import (
    DatabaseError,
    FetchError,
    InvalidStateError,
    NotFoundError,
)
from libs.common.logging import get_logger
from services.scheduling_service.cal_client import CalApiError
from services.scheduling_service.models import (
    BookingStatus,
    CalBooking,
    CalEventType,
    Session,
    SessionStatus,
    User,
)
from services.scheduling_service.schemas import CalendarLink, CreateBookingRequest
from services.scheduling_service.services.token_service import (
    CalClientFactory,
    get_integration,
)
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


@dataclass
class BookingCreated:
    booking: CalBooking
    session: Optional[Session]


async def create_booking(
    db: AsyncSession,
    ctx: RequestContext,
    clients: CalClientFactory,
    data: CreateBookingRequest,
) -> BookingCreated:
    """
    Book ``data.event_type_ulid`` with the coach on behalf of the caller, then
    record the booking and a SCHEDULED session locally.
    """
    mentee = await db.get(User, ctx.user_ulid)
    if mentee is None:
        raise NotFoundError("User not found")

    integration = await get_integration(db, data.coach_ulid)
    event_type = await db.get(CalEventType, data.event_type_ulid)
    if event_type is None or event_type.calendar_integration_ulid != integration.ulid:
        raise NotFoundError("Event type not found for this coach")
    if not event_type.is_active:
        raise InvalidStateError("Event type is not bookable")
    if event_type.cal_event_type_id is None:
        raise InvalidStateError("Event type is not linked to Cal.com")

    attendee_name = data.attendee_name or mentee.full_name
    payload = {
        "start": data.start_time.isoformat(),
        "eventTypeId": event_type.cal_event_type_id,
        "attendee": {
            "name": attendee_name,
            "email": mentee.email,
            "timeZone": data.time_zone,
            "language": "en",
        },
        "location": "link",
        "bookingFieldsResponses": {"session-topic": data.session_topic or ""},
        "metadata": {"userUlid": ctx.user_ulid, "coachUlid": data.coach_ulid},
    }

    client = await clients.for_user(db, data.coach_ulid)
    try:
        remote = await client.create_booking(payload)
    except CalApiError as exc:
        raise FetchError(f"Failed to create booking in Cal.com: {exc.message}") from exc

    booking = CalBooking(
        user_ulid=ctx.user_ulid,
        coach_user_ulid=data.coach_ulid,
        calendar_integration_ulid=integration.ulid,
        cal_booking_uid=remote.uid,
        cal_booking_id=remote.id,
        cal_event_type_id=event_type.cal_event_type_id,
        title=remote.title or event_type.name,
        description=remote.description,
        start_time=remote.start,
        end_time=remote.end,
        attendee_name=attendee_name,
        attendee_email=mentee.email,
        meeting_url=remote.meeting_url or remote.location,
        status=BookingStatus.from_remote(remote.status),
        booking_metadata=remote.metadata or {},
    )
    session = Session(
        coach_ulid=data.coach_ulid,
        mentee_ulid=ctx.user_ulid,
        cal_event_type_ulid=event_type.ulid,
        start_time=booking.start_time,
        end_time=booking.end_time,
        status=SessionStatus.SCHEDULED,
        topic=data.session_topic,
    )

    try:
        db.add(booking)
        await db.flush()
        session.cal_booking_ulid = booking.ulid
        db.add(session)
        await db.commit()
    except SQLAlchemyError:
        # The booking exists in Cal.com; the webhook receiver can backfill it.
        await db.rollback()
        logger.exception(
            "Cal.com booking %s created but local records could not be saved",
            remote.uid,
        )
        raise DatabaseError(
            "Booking created in Cal.com but could not be saved locally",
            details={"cal_booking_uid": remote.uid},
        )

    logger.info(
        "Created booking %s (session %s) between coach %s and mentee %s",
        booking.cal_booking_uid,
        session.ulid,
        data.coach_ulid,
        ctx.user_ulid,
    )
    return BookingCreated(booking=booking, session=session)


async def get_calendar_links(
    db: AsyncSession, ctx: RequestContext, clients: CalClientFactory, booking_uid: str
) -> list[CalendarLink]:
    booking = await db.scalar(
        select(CalBooking).where(CalBooking.cal_booking_uid == booking_uid)
    )
    if booking is None:
        raise NotFoundError("Booking not found")
    if ctx.user_ulid not in (booking.user_ulid, booking.coach_user_ulid):
        raise NotFoundError("Booking not found")

    client = await clients.for_user(db, booking.coach_user_ulid)
    try:
        links = await client.get_calendar_links(booking_uid)
    except CalApiError as exc:
        raise FetchError(f"Failed to fetch calendar links: {exc.message}") from exc
    return [
        CalendarLink(label=item.get("label", ""), link=item.get("link", ""))
        for item in links
        if isinstance(item, dict)
    ]
