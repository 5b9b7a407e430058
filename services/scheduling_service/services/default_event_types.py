"""Provision the standard event types every coach starts with."""

from dataclasses import dataclass
from typing import Any

from libs.auth.models import RequestContext
from libs.common.errors import CreateError
from libs.common.logging import get_logger
from services.scheduling_service.cal_client import CalApiError, CalClient
from services.scheduling_service.models import CalEventType, SchedulingType
from services.scheduling_service.services.event_type_ops import (
    calculate_event_price,
    default_locations,
    event_type_to_cal_payload,
    get_hourly_rate,
)
from services.scheduling_service.services.event_type_sync import sync_event_types
from services.scheduling_service.services.token_service import get_integration
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


@dataclass(frozen=True)
class DefaultEventType:
    name: str
    slug: str
    description: str
    length_in_minutes: int
    is_free: bool
    is_required: bool
    position: int
    slot_interval: int
    label: str
    minimum_booking_notice: int = 60


DEFAULT_EVENT_TYPES = (
    DefaultEventType(
        name="1:1 Q&A Coaching Call",
        slug="coaching-qa-30",
        description="A focused 30-minute 1-on-1 coaching session to ask questions and get personalized guidance.",
        length_in_minutes=30,
        is_free=False,
        is_required=True,
        position=0,
        slot_interval=30,
        label="Q&A",
    ),
    DefaultEventType(
        name="1:1 Deep Dive Coaching Call",
        slug="coaching-deep-dive-60",
        description="A comprehensive 60-minute 1-on-1 coaching session for deeper exploration and problem-solving.",
        length_in_minutes=60,
        is_free=False,
        is_required=True,
        position=1,
        slot_interval=60,
        label="Deep Dive",
    ),
    DefaultEventType(
        name="Get to Know You",
        slug="get-to-know-you-15",
        description="15-minute goal setting and introduction session",
        length_in_minutes=15,
        is_free=True,
        is_required=False,
        position=2,
        slot_interval=15,
        label="Introduction",
    ),
)
DEFAULT_NAMES = {item.name: item for item in DEFAULT_EVENT_TYPES}


@dataclass
class DefaultEventTypesResult:
    created: bool
    message: str
    event_types: list[CalEventType]


async def _active_defaults(db: AsyncSession, integration_ulid: str) -> list[CalEventType]:
    result = await db.execute(
        select(CalEventType)
        .where(
            CalEventType.calendar_integration_ulid == integration_ulid,
            CalEventType.is_default.is_(True),
            CalEventType.is_active.is_(True),
        )
        .order_by(CalEventType.position.asc())
    )
    return list(result.scalars().all())


async def _adopt_synced_defaults(db: AsyncSession, integration_ulid: str) -> int:
    """Flag synced records whose title matches a default as default records."""
    adopted = 0
    result = await db.execute(
        select(CalEventType).where(
            CalEventType.calendar_integration_ulid == integration_ulid,
            CalEventType.name.in_(list(DEFAULT_NAMES)),
            CalEventType.cal_event_type_id.is_not(None),
        )
    )
    for event_type in result.scalars().all():
        definition = DEFAULT_NAMES[event_type.name]
        metadata: dict[str, Any] = dict(event_type.event_metadata or {})
        metadata["isRequired"] = definition.is_required
        event_type.is_default = True
        event_type.event_metadata = metadata
        if definition.is_required:
            event_type.is_active = True
            event_type.hidden = False
        adopted += 1
    if adopted:
        await db.commit()
    return adopted


async def create_default_event_types(
    db: AsyncSession, ctx: RequestContext, client: CalClient
) -> DefaultEventTypesResult:
    """
    Ensure the caller has the standard event types.

    Idempotent: existing active defaults are returned as-is. Otherwise the
    caller's Cal.com event types are synced first and any matching titles are
    adopted; only what is still missing is created. Paid defaults are skipped
    while the coach has no hourly rate.
    """
    integration = await get_integration(db, ctx.user_ulid)
    integration_ulid = integration.ulid

    existing = await _active_defaults(db, integration_ulid)
    if existing:
        return DefaultEventTypesResult(
            created=False, message="Default event types already exist", event_types=existing
        )

    sync_result = await sync_event_types(
        db,
        client,
        user_ulid=ctx.user_ulid,
        calendar_integration_ulid=integration_ulid,
    )
    if not sync_result.success:
        logger.warning(
            "Sync before default creation failed, continuing: %s", sync_result.error
        )
    elif await _adopt_synced_defaults(db, integration_ulid):
        return DefaultEventTypesResult(
            created=False,
            message="Default event types found in Cal.com",
            event_types=await _active_defaults(db, integration_ulid),
        )

    present = set(
        (
            await db.execute(
                select(CalEventType.name).where(
                    CalEventType.calendar_integration_ulid == integration_ulid,
                    CalEventType.is_default.is_(True),
                )
            )
        ).scalars().all()
    )
    hourly_rate = await get_hourly_rate(db, ctx.user_ulid)
    has_rate = bool(hourly_rate and hourly_rate > 0)

    attempted = 0
    failures: list[str] = []
    for default in DEFAULT_EVENT_TYPES:
        if default.name in present:
            continue
        if not default.is_free and not has_rate:
            logger.info("Skipping paid default %r: coach has no hourly rate", default.name)
            continue

        attempted += 1
        price = (
            0
            if default.is_free
            else calculate_event_price(hourly_rate, default.length_in_minutes)
        )
        locations = default_locations()
        payload = event_type_to_cal_payload(
            name=default.name,
            description=default.description,
            length_in_minutes=default.length_in_minutes,
            price=price,
            minimum_booking_notice=default.minimum_booking_notice,
            before_event_buffer=5,
            after_event_buffer=5,
            max_participants=1,
            locations=locations,
            slug=default.slug,
            slot_interval=default.slot_interval,
            custom_label=default.label,
        )
        try:
            remote = await client.create_event_type(payload)
        except CalApiError as exc:
            logger.error("Failed to create default event type %r: %s", default.name, exc.message)
            failures.append(default.name)
            continue

        db.add(
            CalEventType(
                calendar_integration_ulid=integration_ulid,
                cal_event_type_id=remote.id,
                name=default.name,
                description=default.description,
                slug=remote.slug or default.slug,
                length_in_minutes=default.length_in_minutes,
                scheduling=SchedulingType.MANAGED,
                position=default.position,
                is_free=default.is_free,
                price=price,
                currency="USD",
                minimum_booking_notice=default.minimum_booking_notice,
                before_event_buffer=5,
                after_event_buffer=5,
                slot_interval=default.slot_interval,
                max_participants=1,
                locations=locations,
                is_active=True,
                is_default=True,
                hidden=False,
                event_metadata={**(remote.metadata or {}), "isRequired": default.is_required},
            )
        )

    if attempted and len(failures) == attempted:
        raise CreateError(
            "Failed to create default event types", details={"failed": failures}
        )

    await db.commit()
    return DefaultEventTypesResult(
        created=attempted > len(failures),
        message="Default event types created",
        event_types=await _active_defaults(db, integration_ulid),
    )
