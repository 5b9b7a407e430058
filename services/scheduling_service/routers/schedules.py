"""Availability schedule endpoints (Cal.com pass-through)."""

from fastapi import APIRouter, Depends
from libs.auth.models import RequestContext
from libs.common.errors import ApiResponse, ok
from libs.db.session import get_async_db
from services.scheduling_service.dependencies import get_cal_clients, get_request_context
from services.scheduling_service.schemas import (
    ScheduleCreate,
    ScheduleResponse,
    ScheduleUpdate,
)
from services.scheduling_service.services import schedules as schedule_service
from services.scheduling_service.services.token_service import CalClientFactory
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/cal/schedules", tags=["schedules"])


@router.get("", response_model=ApiResponse[list[ScheduleResponse]])
async def list_schedules(
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_async_db),
    clients: CalClientFactory = Depends(get_cal_clients),
):
    client = await clients.for_user(db, ctx.user_ulid)
    rows = await schedule_service.list_schedules(db, ctx, client)
    return ok([ScheduleResponse.model_validate(row) for row in rows])


@router.post("", response_model=ApiResponse[ScheduleResponse], status_code=201)
async def create_schedule(
    payload: ScheduleCreate,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_async_db),
    clients: CalClientFactory = Depends(get_cal_clients),
):
    client = await clients.for_user(db, ctx.user_ulid)
    schedule = await schedule_service.create_schedule(db, ctx, client, payload)
    return ok(ScheduleResponse.model_validate(schedule))


@router.patch("/{schedule_id}", response_model=ApiResponse[ScheduleResponse])
async def update_schedule(
    schedule_id: int,
    payload: ScheduleUpdate,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_async_db),
    clients: CalClientFactory = Depends(get_cal_clients),
):
    client = await clients.for_user(db, ctx.user_ulid)
    schedule = await schedule_service.update_schedule(
        db, ctx, client, schedule_id, payload
    )
    return ok(ScheduleResponse.model_validate(schedule))


@router.delete("/{schedule_id}", response_model=ApiResponse[dict])
async def delete_schedule(
    schedule_id: int,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_async_db),
    clients: CalClientFactory = Depends(get_cal_clients),
):
    client = await clients.for_user(db, ctx.user_ulid)
    await schedule_service.delete_schedule(db, ctx, client, schedule_id)
    return ok({"deleted": schedule_id})
