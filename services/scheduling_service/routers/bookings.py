"""Booking endpoints: create, calendar links, and cancellation."""

from fastapi import APIRouter, Depends, Request
from libs.auth.models import RequestContext
from libs.common.errors import ApiResponse, ok
from libs.common.rate_limit import mutation_limit
from libs.db.session import get_async_db
from services.scheduling_service.dependencies import get_cal_clients, get_request_context
from services.scheduling_service.schemas import (
    BookingResponse,
    CalendarLink,
    CancelBookingRequest,
    CancelBookingResponse,
    CreateBookingRequest,
    CreateBookingResponse,
    SessionResponse,
)
from services.scheduling_service.services import bookings as booking_service
from services.scheduling_service.services.cancellation import cancel_session
from services.scheduling_service.services.token_service import CalClientFactory
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["bookings"])


@router.post(
    "/cal/bookings", response_model=ApiResponse[CreateBookingResponse], status_code=201
)
@mutation_limit
async def create_booking(
    request: Request,
    payload: CreateBookingRequest,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_async_db),
    clients: CalClientFactory = Depends(get_cal_clients),
):
    """Book a coach's event type for the caller."""
    created = await booking_service.create_booking(db, ctx, clients, payload)
    return ok(
        CreateBookingResponse(
            booking=BookingResponse.model_validate(created.booking),
            session=SessionResponse.model_validate(created.session),
        )
    )


@router.get(
    "/cal/bookings/{booking_uid}/calendar-links",
    response_model=ApiResponse[list[CalendarLink]],
)
async def get_calendar_links(
    booking_uid: str,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_async_db),
    clients: CalClientFactory = Depends(get_cal_clients),
):
    links = await booking_service.get_calendar_links(db, ctx, clients, booking_uid)
    return ok(links)


@router.post("/bookings/cancel", response_model=ApiResponse[CancelBookingResponse])
@mutation_limit
async def cancel_booking(
    request: Request,
    payload: CancelBookingRequest,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_async_db),
    clients: CalClientFactory = Depends(get_cal_clients),
):
    """
    Cancel a scheduled session.

    The caller must be the session's coach or mentee, and the session must
    start more than the cancellation window from now.
    """
    result = await cancel_session(
        db,
        ctx,
        clients,
        session_ulid=payload.session_ulid,
        cal_booking_ulid=payload.cal_booking_ulid,
        reason=payload.cancellation_reason,
    )
    return ok(
        CancelBookingResponse(
            session=SessionResponse.model_validate(result.session),
            booking_status=result.booking_status,
        )
    )
