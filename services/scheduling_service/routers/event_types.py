"""Event type endpoints: CRUD, sync, and default provisioning."""

from fastapi import APIRouter, Depends, Query
from libs.auth.models import RequestContext
from libs.common.errors import ApiError, ApiResponse, ok
from libs.db.session import get_async_db
from services.scheduling_service.dependencies import get_cal_clients, get_request_context
from services.scheduling_service.schemas import (
    DefaultEventTypesResponse,
    EventTypeCreate,
    EventTypeResponse,
    EventTypeUpdate,
    SyncStatsResponse,
)
from services.scheduling_service.services import default_event_types, event_type_ops
from services.scheduling_service.services.event_type_sync import sync_event_types
from services.scheduling_service.services.token_service import (
    CalClientFactory,
    get_integration,
)
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/cal/event-types", tags=["event-types"])


@router.get("", response_model=ApiResponse[list[EventTypeResponse]])
async def list_event_types(
    active_only: bool = Query(False),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_async_db),
):
    """List the caller's event types ordered by position."""
    rows = await event_type_ops.list_event_types(db, ctx, active_only=active_only)
    return ok([EventTypeResponse.model_validate(row) for row in rows])


@router.post("", response_model=ApiResponse[EventTypeResponse], status_code=201)
async def create_event_type(
    payload: EventTypeCreate,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_async_db),
    clients: CalClientFactory = Depends(get_cal_clients),
):
    client = await clients.for_user(db, ctx.user_ulid)
    event_type = await event_type_ops.create_event_type(db, ctx, client, payload)
    return ok(EventTypeResponse.model_validate(event_type))


@router.patch("/{event_type_ulid}", response_model=ApiResponse[EventTypeResponse])
async def update_event_type(
    event_type_ulid: str,
    payload: EventTypeUpdate,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_async_db),
    clients: CalClientFactory = Depends(get_cal_clients),
):
    client = await clients.for_user(db, ctx.user_ulid)
    event_type = await event_type_ops.update_event_type(
        db, ctx, client, event_type_ulid, payload
    )
    return ok(EventTypeResponse.model_validate(event_type))


@router.delete("/{event_type_ulid}", response_model=ApiResponse[dict])
async def delete_event_type(
    event_type_ulid: str,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_async_db),
    clients: CalClientFactory = Depends(get_cal_clients),
):
    client = await clients.for_user(db, ctx.user_ulid)
    await event_type_ops.delete_event_type(db, ctx, client, event_type_ulid)
    return ok({"deleted": event_type_ulid})


@router.post("/sync", response_model=ApiResponse[SyncStatsResponse])
async def sync_caller_event_types(
    delete_missing: bool = Query(False),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_async_db),
    clients: CalClientFactory = Depends(get_cal_clients),
):
    """Reconcile the caller's local event types with Cal.com."""
    integration = await get_integration(db, ctx.user_ulid)
    integration_ulid = integration.ulid
    client = await clients.for_user(db, ctx.user_ulid)
    result = await sync_event_types(
        db,
        client,
        user_ulid=ctx.user_ulid,
        calendar_integration_ulid=integration_ulid,
        delete_missing=delete_missing,
    )
    if not result.success:
        raise ApiError(result.error, details=result.stats.as_dict(), code=result.error_code)
    return ok(result.stats.as_dict())


@router.post("/defaults", response_model=ApiResponse[DefaultEventTypesResponse])
async def create_default_event_types(
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_async_db),
    clients: CalClientFactory = Depends(get_cal_clients),
):
    client = await clients.for_user(db, ctx.user_ulid)
    result = await default_event_types.create_default_event_types(db, ctx, client)
    return ok(
        DefaultEventTypesResponse(
            created=result.created,
            message=result.message,
            event_types=[EventTypeResponse.model_validate(row) for row in result.event_types],
        )
    )
