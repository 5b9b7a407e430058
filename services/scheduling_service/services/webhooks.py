"""Cal.com booking webhooks: signature check and local booking upserts."""

import hashlib
import hmac
from typing import Optional

from libs.common.config import get_settings
from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from services.scheduling_service.models import (
    BookingStatus,
    CalBooking,
    CalendarIntegration,
    Session,
    SessionStatus,
    User,
)
from services.scheduling_service.schemas.cal import CalWebhookBooking, CalWebhookEvent
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

BOOKING_CREATED = "BOOKING_CREATED"
BOOKING_RESCHEDULED = "BOOKING_RESCHEDULED"
BOOKING_CANCELLED = "BOOKING_CANCELLED"


def verify_cal_signature(raw_body: bytes, signature: Optional[str]) -> bool:
    secret = get_settings().CAL_WEBHOOK_SECRET
    if not secret or not signature:
        return False
    digest = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(digest, signature)


async def _find_integration(
    db: AsyncSession, booking: CalWebhookBooking
) -> Optional[CalendarIntegration]:
    if booking.organizer.id is None:
        return None
    return await db.scalar(
        select(CalendarIntegration).where(
            CalendarIntegration.cal_managed_user_id == booking.organizer.id
        )
    )


async def _resolve_booker(db: AsyncSession, booking: CalWebhookBooking) -> Optional[str]:
    user_ulid = (booking.metadata or {}).get("userUlid")
    if user_ulid and await db.get(User, user_ulid) is not None:
        return user_ulid
    return None


async def _upsert_booking(
    db: AsyncSession,
    integration: CalendarIntegration,
    payload: CalWebhookBooking,
    status: BookingStatus,
) -> CalBooking:
    booking = await db.scalar(
        select(CalBooking).where(CalBooking.cal_booking_uid == payload.uid)
    )
    attendee = payload.attendees[0] if payload.attendees else None
    if booking is None:
        booking = CalBooking(
            cal_booking_uid=payload.uid,
            coach_user_ulid=integration.user_ulid,
            calendar_integration_ulid=integration.ulid,
            user_ulid=await _resolve_booker(db, payload),
        )
        db.add(booking)

    booking.cal_booking_id = payload.booking_id
    booking.cal_event_type_id = payload.event_type_id
    booking.title = payload.title
    booking.description = payload.description
    booking.start_time = payload.start_time
    booking.end_time = payload.end_time
    booking.status = status
    booking.booking_metadata = payload.metadata or {}
    if attendee is not None:
        booking.attendee_name = attendee.name
        booking.attendee_email = attendee.email
    await db.flush()
    return booking


async def _ensure_session(db: AsyncSession, booking: CalBooking) -> None:
    """Backfill a SCHEDULED session for bookings made outside the app."""
    if not (booking.user_ulid and booking.coach_user_ulid):
        return
    existing = await db.scalar(
        select(Session.ulid).where(Session.cal_booking_ulid == booking.ulid)
    )
    if existing is None:
        db.add(
            Session(
                coach_ulid=booking.coach_user_ulid,
                mentee_ulid=booking.user_ulid,
                cal_booking_ulid=booking.ulid,
                start_time=booking.start_time,
                end_time=booking.end_time,
                status=SessionStatus.SCHEDULED,
            )
        )


async def _handle_created(
    db: AsyncSession, integration: CalendarIntegration, payload: CalWebhookBooking
) -> None:
    booking = await _upsert_booking(db, integration, payload, BookingStatus.CONFIRMED)
    await _ensure_session(db, booking)


async def _handle_rescheduled(
    db: AsyncSession, integration: CalendarIntegration, payload: CalWebhookBooking
) -> None:
    booking = await _upsert_booking(db, integration, payload, BookingStatus.CONFIRMED)
    previous = None
    if payload.rescheduled_from_uid:
        previous = await db.scalar(
            select(CalBooking).where(
                CalBooking.cal_booking_uid == payload.rescheduled_from_uid
            )
        )
    if previous is None:
        await _ensure_session(db, booking)
        return

    previous.status = BookingStatus.RESCHEDULED
    # Move the still-scheduled session onto the new booking
    await db.execute(
        update(Session)
        .where(
            Session.cal_booking_ulid == previous.ulid,
            Session.status == SessionStatus.SCHEDULED,
        )
        .values(
            cal_booking_ulid=booking.ulid,
            start_time=booking.start_time,
            end_time=booking.end_time,
            updated_at=utc_now(),
        )
    )
    await _ensure_session(db, booking)


async def _handle_cancelled(db: AsyncSession, payload: CalWebhookBooking) -> bool:
    booking = await db.scalar(
        select(CalBooking).where(CalBooking.cal_booking_uid == payload.uid)
    )
    if booking is None:
        return False
    now = utc_now()
    booking.status = BookingStatus.CANCELLED
    booking.cancellation_reason = payload.cancellation_reason
    await db.execute(
        update(Session)
        .where(
            Session.cal_booking_ulid == booking.ulid,
            Session.status == SessionStatus.SCHEDULED,
        )
        .values(
            status=SessionStatus.CANCELLED,
            cancellation_reason=payload.cancellation_reason,
            cancelled_at=now,
            updated_at=now,
        )
    )
    return True


async def process_webhook_event(db: AsyncSession, event: CalWebhookEvent) -> str:
    """Apply a webhook event and return what was done (for the response body)."""
    trigger = event.trigger_event.upper()
    if trigger not in (BOOKING_CREATED, BOOKING_RESCHEDULED, BOOKING_CANCELLED):
        logger.info("Ignoring Cal.com webhook %s", trigger)
        return "ignored"

    payload = CalWebhookBooking.model_validate(event.payload)

    if trigger == BOOKING_CANCELLED:
        handled = await _handle_cancelled(db, payload)
        await db.commit()
        return "cancelled" if handled else "ignored"

    integration = await _find_integration(db, payload)
    if integration is None:
        logger.warning(
            "No calendar integration for Cal.com organizer %s (booking %s)",
            payload.organizer.id,
            payload.uid,
        )
        return "ignored"

    if trigger == BOOKING_CREATED:
        await _handle_created(db, integration, payload)
    else:
        await _handle_rescheduled(db, integration, payload)
    await db.commit()

    logger.info(
        "Processed Cal.com webhook %s for booking %s", trigger, payload.uid
    )
    return "processed"
