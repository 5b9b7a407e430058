"""Cal.com platform managed users and token refresh."""

from fastapi import APIRouter, Depends
from libs.auth.models import RequestContext
from libs.common.errors import ApiResponse, ok
from libs.db.session import get_async_db
from services.scheduling_service.dependencies import (
    get_cal_clients,
    get_request_context,
    require_admin,
)
from services.scheduling_service.schemas import (
    IntegrationResponse,
    ManagedUserCreate,
    ManagedUserResponse,
    ManagedUserUpdate,
)
from services.scheduling_service.services import managed_users as managed_user_service
from services.scheduling_service.services.token_service import (
    CalClientFactory,
    refresh_tokens,
)
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/cal", tags=["managed-users"])


def _integration_response(integration) -> IntegrationResponse:
    return IntegrationResponse(
        calendar_integration_ulid=integration.ulid,
        cal_managed_user_id=integration.cal_managed_user_id,
        cal_username=integration.cal_username,
        expires_at=integration.cal_access_token_expires_at,
    )


@router.get("/managed-users", response_model=ApiResponse[list[ManagedUserResponse]])
async def list_managed_users(
    _: RequestContext = Depends(require_admin),
    clients: CalClientFactory = Depends(get_cal_clients),
):
    users = await managed_user_service.list_managed_users(clients.platform())
    return ok([ManagedUserResponse(**user.model_dump()) for user in users])


@router.post(
    "/managed-users", response_model=ApiResponse[IntegrationResponse], status_code=201
)
async def create_managed_user(
    payload: ManagedUserCreate,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_async_db),
    clients: CalClientFactory = Depends(get_cal_clients),
):
    """Connect the caller to Cal.com through a platform managed user."""
    integration = await managed_user_service.create_managed_user(
        db, ctx, clients.platform(), payload
    )
    return ok(_integration_response(integration))


@router.patch(
    "/managed-users/{managed_user_id}", response_model=ApiResponse[ManagedUserResponse]
)
async def update_managed_user(
    managed_user_id: int,
    payload: ManagedUserUpdate,
    _: RequestContext = Depends(require_admin),
    clients: CalClientFactory = Depends(get_cal_clients),
):
    user = await managed_user_service.update_managed_user(
        clients.platform(), managed_user_id, payload.to_cal_payload()
    )
    return ok(ManagedUserResponse(**user.model_dump()))


@router.delete("/managed-users/{managed_user_id}", response_model=ApiResponse[dict])
async def delete_managed_user(
    managed_user_id: int,
    _: RequestContext = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
    clients: CalClientFactory = Depends(get_cal_clients),
):
    await managed_user_service.delete_managed_user(
        db, clients.platform(), managed_user_id
    )
    return ok({"deleted": managed_user_id})


@router.post("/tokens/refresh", response_model=ApiResponse[IntegrationResponse])
async def refresh_cal_tokens(
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_async_db),
    clients: CalClientFactory = Depends(get_cal_clients),
):
    """Force-refresh the caller's Cal.com tokens."""
    integration = await refresh_tokens(
        db, ctx.user_ulid, force=True, client=clients.platform()
    )
    return ok(_integration_response(integration))
