"""Event type CRUD mirrored to Cal.com."""

import re
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

from libs.auth.models import RequestContext
from libs.common.config import get_settings
from libs.common.errors import FetchError, ForbiddenError, NotFoundError
from libs.common.logging import get_logger
from services.scheduling_service.cal_client import CalApiError, CalClient
from services.scheduling_service.models import (
    CalendarIntegration,
    CalEventType,
    CoachProfile,
    SchedulingType,
)
from services.scheduling_service.schemas import EventTypeCreate, EventTypeUpdate
from services.scheduling_service.services.token_service import get_integration
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

# Default records keep their identity; only presentation fields may change.
IMMUTABLE_DEFAULT_FIELDS = ("name", "length_in_minutes", "scheduling")


def generate_slug(name: str) -> str:
    """Lowercase, non-alphanumerics collapsed to ``-``, trimmed at both ends."""
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def calculate_event_price(hourly_rate, duration_minutes: int) -> int:
    """Price in cents for ``duration_minutes`` at ``hourly_rate`` (dollars)."""
    if not hourly_rate or hourly_rate <= 0:
        return 0
    cents_per_hour = (Decimal(str(hourly_rate)) * 100).quantize(
        Decimal("1"), rounding=ROUND_HALF_UP
    )
    return int(
        (cents_per_hour * duration_minutes / 60).quantize(
            Decimal("1"), rounding=ROUND_HALF_UP
        )
    )


def default_locations() -> list[dict[str, Any]]:
    return [{"type": "link", "link": get_settings().DEFAULT_MEETING_LINK, "public": True}]


def event_type_to_cal_payload(
    *,
    name: str,
    description: str,
    length_in_minutes: int,
    price: int,
    scheduling: SchedulingType = SchedulingType.MANAGED,
    hidden: bool = False,
    minimum_booking_notice: Optional[int] = 60,
    before_event_buffer: int = 0,
    after_event_buffer: int = 0,
    max_participants: Optional[int] = 1,
    locations: Optional[list[dict[str, Any]]] = None,
    slug: Optional[str] = None,
    slot_interval: Optional[int] = None,
    custom_label: Optional[str] = None,
) -> dict[str, Any]:
    """Request body for creating/updating a Cal.com event type."""
    return {
        "title": name,
        "slug": slug or generate_slug(name),
        "description": description,
        "lengthInMinutes": length_in_minutes,
        "hidden": hidden,
        "price": price,
        "currency": "USD",
        "schedulingType": scheduling.value,
        "locations": locations or default_locations(),
        "minimumBookingNotice": 60 if minimum_booking_notice is None else minimum_booking_notice,
        "beforeEventBuffer": before_event_buffer,
        "afterEventBuffer": after_event_buffer,
        "disableGuests": True,
        "slotInterval": slot_interval or 30,
        "confirmationPolicy": {"disabled": True},
        "color": {"lightThemeHex": "#3B82F6", "darkThemeHex": "#60A5FA"},
        "seats": {
            "seatsPerTimeSlot": max_participants or 1,
            "showAttendeeInfo": False,
            "showAvailabilityCount": False,
        },
        "customName": f"Dibs: {custom_label or name} between {{Organiser}} and {{Scheduler}}",
        "useDestinationCalendarEmail": True,
        "hideCalendarEventDetails": False,
    }


async def get_hourly_rate(db: AsyncSession, user_ulid: str) -> Optional[Decimal]:
    return await db.scalar(
        select(CoachProfile.hourly_rate).where(CoachProfile.user_ulid == user_ulid)
    )


async def list_event_types(
    db: AsyncSession, ctx: RequestContext, *, active_only: bool = False
) -> list[CalEventType]:
    integration = await get_integration(db, ctx.user_ulid)
    query = (
        select(CalEventType)
        .where(CalEventType.calendar_integration_ulid == integration.ulid)
        .order_by(CalEventType.position.asc(), CalEventType.created_at.asc())
    )
    if active_only:
        query = query.where(CalEventType.is_active.is_(True))
    result = await db.execute(query)
    return list(result.scalars().all())


async def _get_owned_event_type(
    db: AsyncSession, ctx: RequestContext, event_type_ulid: str
) -> tuple[CalEventType, CalendarIntegration]:
    event_type = await db.get(CalEventType, event_type_ulid)
    if event_type is None:
        raise NotFoundError("Event type not found")
    integration = await db.get(CalendarIntegration, event_type.calendar_integration_ulid)
    if integration is None or integration.user_ulid != ctx.user_ulid:
        raise ForbiddenError("You do not have permission to modify this event type")
    return event_type, integration


async def create_event_type(
    db: AsyncSession, ctx: RequestContext, client: CalClient, data: EventTypeCreate
) -> CalEventType:
    integration = await get_integration(db, ctx.user_ulid)

    price = 0
    if not data.is_free:
        price = calculate_event_price(
            await get_hourly_rate(db, ctx.user_ulid), data.length_in_minutes
        )
    locations = data.locations or default_locations()
    payload = event_type_to_cal_payload(
        name=data.name,
        description=data.description,
        length_in_minutes=data.length_in_minutes,
        price=price,
        scheduling=data.scheduling,
        hidden=data.hidden,
        minimum_booking_notice=data.minimum_booking_notice,
        before_event_buffer=data.before_event_buffer,
        after_event_buffer=data.after_event_buffer,
        max_participants=data.max_participants,
        locations=locations,
    )

    try:
        remote = await client.create_event_type(payload)
    except CalApiError as exc:
        raise FetchError(f"Failed to create event type in Cal.com: {exc.message}") from exc

    metadata = dict(remote.metadata or {})
    if data.discount_percentage is not None:
        metadata["discountPercentage"] = data.discount_percentage

    event_type = CalEventType(
        calendar_integration_ulid=integration.ulid,
        cal_event_type_id=remote.id,
        name=data.name,
        description=data.description,
        slug=remote.slug or payload["slug"],
        length_in_minutes=data.length_in_minutes,
        scheduling=data.scheduling,
        position=data.position,
        is_free=price == 0,
        price=price,
        currency="USD",
        discount_percentage=data.discount_percentage,
        minimum_booking_notice=data.minimum_booking_notice,
        before_event_buffer=data.before_event_buffer,
        after_event_buffer=data.after_event_buffer,
        slot_interval=payload["slotInterval"],
        max_participants=data.max_participants,
        locations=locations,
        is_active=not data.hidden,
        hidden=data.hidden,
        is_default=False,
        event_metadata=metadata,
    )
    db.add(event_type)
    await db.commit()
    await db.refresh(event_type)

    logger.info(
        "Created event type %s (cal id %s) for user %s",
        event_type.ulid,
        remote.id,
        ctx.user_ulid,
    )
    return event_type


async def update_event_type(
    db: AsyncSession,
    ctx: RequestContext,
    client: CalClient,
    event_type_ulid: str,
    data: EventTypeUpdate,
) -> CalEventType:
    event_type, _ = await _get_owned_event_type(db, ctx, event_type_ulid)
    changes = data.model_dump(exclude_unset=True)

    if event_type.is_default:
        locked = [
            name
            for name in IMMUTABLE_DEFAULT_FIELDS
            if name in changes and changes[name] != getattr(event_type, name)
        ]
        if locked:
            raise ForbiddenError(
                "Default event types cannot change these fields",
                details={"fields": locked},
            )
        if changes.get("is_active") is False and (event_type.event_metadata or {}).get("isRequired"):
            raise ForbiddenError("Required default event types cannot be deactivated")

    if "is_active" in changes:
        changes["hidden"] = not changes["is_active"]
    if "is_free" in changes or "length_in_minutes" in changes:
        is_free = changes.get("is_free", event_type.is_free)
        length = changes.get("length_in_minutes", event_type.length_in_minutes)
        changes["is_free"] = is_free
        changes["price"] = (
            0
            if is_free
            else calculate_event_price(await get_hourly_rate(db, ctx.user_ulid), length)
        )
    if "discount_percentage" in changes:
        metadata = dict(event_type.event_metadata or {})
        metadata["discountPercentage"] = changes["discount_percentage"]
        changes["event_metadata"] = metadata

    for key, value in changes.items():
        setattr(event_type, key, value)

    if event_type.cal_event_type_id is not None:
        payload = event_type_to_cal_payload(
            name=event_type.name,
            description=event_type.description,
            length_in_minutes=event_type.length_in_minutes,
            price=event_type.price,
            scheduling=event_type.scheduling,
            hidden=event_type.hidden,
            minimum_booking_notice=event_type.minimum_booking_notice,
            before_event_buffer=event_type.before_event_buffer,
            after_event_buffer=event_type.after_event_buffer,
            max_participants=event_type.max_participants,
            locations=event_type.locations,
            slug=event_type.slug,
            slot_interval=event_type.slot_interval,
        )
        try:
            await client.update_event_type(event_type.cal_event_type_id, payload)
        except CalApiError as exc:
            await db.rollback()
            raise FetchError(f"Failed to update event type in Cal.com: {exc.message}") from exc

    await db.commit()
    await db.refresh(event_type)
    return event_type


async def delete_event_type(
    db: AsyncSession, ctx: RequestContext, client: CalClient, event_type_ulid: str
) -> None:
    event_type, _ = await _get_owned_event_type(db, ctx, event_type_ulid)
    if event_type.is_default:
        raise ForbiddenError("Default event types cannot be deleted")

    if event_type.cal_event_type_id is not None:
        try:
            await client.delete_event_type(event_type.cal_event_type_id)
        except CalApiError as exc:
            # Already gone remotely; still remove the local mirror
            if exc.status_code != 404:
                raise FetchError(
                    f"Failed to delete event type in Cal.com: {exc.message}"
                ) from exc

    await db.delete(event_type)
    await db.commit()
    logger.info("Deleted event type %s for user %s", event_type_ulid, ctx.user_ulid)
