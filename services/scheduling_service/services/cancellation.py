"""
Session cancellation.

Only SCHEDULED sessions can be cancelled, only by the session's coach or
mentee, and never inside the cancellation window before the start time.
Cal.com is cancelled first; the local Session and CalBooking rows are updated
only after the remote call succeeds.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from libs.auth.models import RequestContext
from libs.common.config import get_settings
from libs.common.datetime_utils import hours_until, utc_now
from libs.common.errors import (
    DatabaseError,
    FetchError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    PolicyViolationError,
)
from libs.common.logging import get_logger
from services.scheduling_service.cal_client import CalApiError
from services.scheduling_service.models import (
    BookingStatus,
    CalBooking,
    Session,
    SessionStatus,
)
from services.scheduling_service.services.token_service import (
    CalClientFactory,
    get_integration,
)
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

DEFAULT_CANCELLATION_REASON = "User requested cancellation"


@dataclass
class CancellationResult:
    session: Session
    booking_status: BookingStatus


async def _load_session(db: AsyncSession, session_ulid: str) -> Session:
    session = await db.scalar(select(Session).where(Session.ulid == session_ulid))
    if session is None:
        raise NotFoundError("Session not found")
    return session


async def cancel_session(
    db: AsyncSession,
    ctx: RequestContext,
    clients: CalClientFactory,
    *,
    session_ulid: str,
    cal_booking_ulid: str,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> CancellationResult:
    settings = get_settings()
    now = now or utc_now()

    session = await _load_session(db, session_ulid)
    if ctx.user_ulid not in (session.coach_ulid, session.mentee_ulid):
        raise ForbiddenError("You are not authorized to cancel this session")

    if session.status == SessionStatus.CANCELLED:
        raise InvalidStateError("Session is already cancelled")
    if session.status != SessionStatus.SCHEDULED:
        raise InvalidStateError("Only scheduled sessions can be cancelled")

    hours_left = hours_until(session.start_time, now)
    if hours_left < settings.CANCELLATION_WINDOW_HOURS:
        raise PolicyViolationError(
            f"Sessions cannot be cancelled less than "
            f"{settings.CANCELLATION_WINDOW_HOURS} hours before the start time",
            details={"hours_until_start": round(hours_left, 2)},
        )

    integration = await get_integration(db, session.coach_ulid)
    if not integration.cal_access_token:
        raise InvalidStateError("Coach's Cal.com access token not found")

    booking = await db.scalar(select(CalBooking).where(CalBooking.ulid == cal_booking_ulid))
    if booking is None or not booking.cal_booking_uid:
        raise NotFoundError("Booking not found")
    if booking.coach_user_ulid != session.coach_ulid or (
        session.cal_booking_ulid and session.cal_booking_ulid != booking.ulid
    ):
        raise InvalidStateError("Booking does not belong to this session")

    reason = reason or DEFAULT_CANCELLATION_REASON
    booking_uid = booking.cal_booking_uid
    coach_ulid = session.coach_ulid

    client = await clients.for_user(db, coach_ulid)
    try:
        await client.cancel_booking(booking_uid, reason)
    except CalApiError as exc:
        logger.error(
            "Cal.com cancellation failed for booking %s: %s", booking_uid, exc.message
        )
        raise FetchError(f"Failed to cancel booking in Cal.com: {exc.message}") from exc

    cancelled_at = utc_now()
    try:
        async with db.begin_nested():
            result = await db.execute(
                update(Session)
                .where(Session.ulid == session_ulid, Session.status == SessionStatus.SCHEDULED)
                .values(
                    status=SessionStatus.CANCELLED,
                    cancellation_reason=reason,
                    cancelled_by=ctx.email,
                    cancelled_by_ulid=ctx.user_ulid,
                    cancelled_at=cancelled_at,
                    updated_at=cancelled_at,
                )
            )
            if result.rowcount == 0:
                logger.warning(
                    "Session %s was no longer scheduled when cancellation was recorded",
                    session_ulid,
                )
    except SQLAlchemyError as exc:
        logger.exception(
            "Booking %s cancelled in Cal.com but session %s could not be updated",
            booking_uid,
            session_ulid,
        )
        raise DatabaseError(
            "Booking was cancelled but the session could not be updated",
            details={"session_ulid": session_ulid, "cal_booking_uid": booking_uid},
        ) from exc

    try:
        async with db.begin_nested():
            await db.execute(
                update(CalBooking)
                .where(CalBooking.ulid == cal_booking_ulid)
                .values(
                    status=BookingStatus.CANCELLED,
                    cancellation_reason=reason,
                    updated_at=cancelled_at,
                )
            )
    except SQLAlchemyError as exc:
        # Session is already cancelled; keep it and report the divergence.
        await db.commit()
        logger.exception(
            "Session %s cancelled but booking %s status could not be updated",
            session_ulid,
            cal_booking_ulid,
        )
        raise DatabaseError(
            "Session was cancelled but the booking record could not be updated",
            details={"session_ulid": session_ulid, "cal_booking_ulid": cal_booking_ulid},
        ) from exc

    await db.commit()
    logger.info(
        "Session %s cancelled by %s",
        session_ulid,
        ctx.user_ulid,
        extra={"extra_fields": {"cal_booking_uid": booking_uid, "reason": reason}},
    )
    return CancellationResult(
        session=await _load_session(db, session_ulid),
        booking_status=BookingStatus.CANCELLED,
    )
