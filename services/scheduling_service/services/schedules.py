"""Availability schedules: Cal.com pass-through with a local mirror."""

from libs.auth.models import RequestContext
from libs.common.errors import FetchError, NotFoundError
from libs.common.logging import get_logger
from services.scheduling_service.cal_client import CalApiError, CalClient
from services.scheduling_service.models import CoachingAvailabilitySchedule
from services.scheduling_service.schemas import ScheduleCreate, ScheduleUpdate
from services.scheduling_service.schemas.cal import CalScheduleFromApi
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


async def _mirror(
    db: AsyncSession, ctx: RequestContext, remote: CalScheduleFromApi
) -> CoachingAvailabilitySchedule:
    schedule = await db.scalar(
        select(CoachingAvailabilitySchedule).where(
            CoachingAvailabilitySchedule.cal_schedule_id == remote.id
        )
    )
    if schedule is None:
        schedule = CoachingAvailabilitySchedule(
            user_ulid=ctx.user_ulid, cal_schedule_id=remote.id
        )
        db.add(schedule)
    schedule.name = remote.name
    schedule.time_zone = remote.time_zone
    schedule.is_default = remote.is_default
    schedule.availability = remote.availability
    schedule.overrides = remote.overrides
    await db.commit()
    await db.refresh(schedule)
    return schedule


async def _owned(
    db: AsyncSession, ctx: RequestContext, cal_schedule_id: int
) -> CoachingAvailabilitySchedule:
    schedule = await db.scalar(
        select(CoachingAvailabilitySchedule).where(
            CoachingAvailabilitySchedule.cal_schedule_id == cal_schedule_id,
            CoachingAvailabilitySchedule.user_ulid == ctx.user_ulid,
        )
    )
    if schedule is None:
        raise NotFoundError("Schedule not found")
    return schedule


async def list_schedules(
    db: AsyncSession, ctx: RequestContext, client: CalClient
) -> list[CoachingAvailabilitySchedule]:
    try:
        remote = await client.list_schedules()
    except CalApiError as exc:
        raise FetchError(f"Failed to fetch schedules: {exc.message}") from exc
    return [await _mirror(db, ctx, item) for item in remote]


async def create_schedule(
    db: AsyncSession, ctx: RequestContext, client: CalClient, data: ScheduleCreate
) -> CoachingAvailabilitySchedule:
    try:
        remote = await client.create_schedule(data.to_cal_payload())
    except CalApiError as exc:
        raise FetchError(f"Failed to create schedule: {exc.message}") from exc
    logger.info("Created Cal.com schedule %s for user %s", remote.id, ctx.user_ulid)
    return await _mirror(db, ctx, remote)


async def update_schedule(
    db: AsyncSession,
    ctx: RequestContext,
    client: CalClient,
    cal_schedule_id: int,
    data: ScheduleUpdate,
) -> CoachingAvailabilitySchedule:
    await _owned(db, ctx, cal_schedule_id)
    try:
        remote = await client.update_schedule(cal_schedule_id, data.to_cal_payload())
    except CalApiError as exc:
        raise FetchError(f"Failed to update schedule: {exc.message}") from exc
    return await _mirror(db, ctx, remote)


async def delete_schedule(
    db: AsyncSession, ctx: RequestContext, client: CalClient, cal_schedule_id: int
) -> None:
    schedule = await _owned(db, ctx, cal_schedule_id)
    try:
        await client.delete_schedule(cal_schedule_id)
    except CalApiError as exc:
        if exc.status_code != 404:
            raise FetchError(f"Failed to delete schedule: {exc.message}") from exc
    await db.delete(schedule)
    await db.commit()
