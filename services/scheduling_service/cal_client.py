"""
Cal.com v2 API client.

Provides async methods for:
- Event types (list/create/update/delete)
- Bookings (create/cancel/calendar links)
- Availability schedules
- Platform managed users and OAuth token refresh

User-scoped calls carry the user's bearer token and go through
``with_token_refresh`` so an expired token is refreshed and the request
retried exactly once. Platform calls authenticate with the OAuth client
credentials instead.
"""

from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx
from pydantic import BaseModel, ValidationError
from libs.common.config import get_settings
from libs.common.logging import get_logger
from services.scheduling_service.schemas.cal import (
    CalBookingFromApi,
    CalEventTypeFromApi,
    CalManagedUser,
    CalManagedUserCreated,
    CalScheduleFromApi,
    CalTokenPair,
)

logger = get_logger(__name__)

# cal-api-version per resource family
BOOKINGS_API_VERSION = "2024-08-13"
EVENT_TYPES_API_VERSION = "2024-06-14"
SCHEDULES_API_VERSION = "2024-06-11"

TOKEN_EXPIRED_STATUSES = {401, 498}
TOKEN_EXPIRED_CODE = "TokenExpiredException"

Sender = Callable[[Optional[str]], Awaitable[httpx.Response]]
TokenRefresher = Callable[[], Awaitable[str]]
ModelT = TypeVar("ModelT")


class CalApiError(Exception):
    """Base exception for Cal.com API errors."""

    def __init__(
        self, message: str, status_code: int = None, response_data: Any = None
    ):
        self.message = message
        self.status_code = status_code
        self.response_data = response_data or {}
        super().__init__(message)


def _json(response: httpx.Response) -> Any:
    if not response.content:
        return {}
    try:
        return response.json()
    except ValueError:
        return {"message": response.text}


def _parse(parser: Callable[[Any], ModelT], data: Any, endpoint: str) -> ModelT:
    """Validate a response body, reporting malformed payloads as API errors."""
    try:
        return parser(data)
    except (ValidationError, KeyError, TypeError, AttributeError) as exc:
        logger.error("Malformed Cal.com response from %s: %s", endpoint, exc)
        raise CalApiError(
            f"Invalid Cal.com response from {endpoint}", response_data=data
        ) from exc


def _parse_list(model: type[BaseModel], data: Any, endpoint: str) -> list:
    return _parse(
        lambda items: [model.model_validate(item) for item in items or []], data, endpoint
    )


def is_token_expired_response(response: httpx.Response) -> bool:
    """True when Cal.com signals that the bearer token has expired."""
    if response.status_code in TOKEN_EXPIRED_STATUSES:
        return True
    if response.is_success:
        return False
    body = _json(response)
    error = body.get("error") if isinstance(body, dict) else None
    return isinstance(error, dict) and error.get("code") == TOKEN_EXPIRED_CODE


async def with_token_refresh(
    send: Sender, token: Optional[str], refresh: Optional[TokenRefresher]
) -> httpx.Response:
    """
    Execute ``send(token)``; on an auth-expired response refresh the credential
    once and retry once with the new token. The second response is returned
    as-is so the caller can surface it as an error.
    """
    response = await send(token)
    if refresh is None or not is_token_expired_response(response):
        return response

    logger.info(
        "Cal.com token expired, refreshing and retrying once",
        extra={"extra_fields": {"status_code": response.status_code}},
    )
    new_token = await refresh()
    return await send(new_token)


class CalClient:
    """Async client for the Cal.com v2 API."""

    def __init__(
        self,
        access_token: Optional[str] = None,
        *,
        refresh: Optional[TokenRefresher] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.access_token = access_token
        self._refresh = refresh
        self.base_url = (base_url or settings.CAL_API_URL).rstrip("/")
        self.timeout = timeout or settings.CAL_HTTP_TIMEOUT
        self.client_id = settings.CAL_CLIENT_ID
        self.client_secret = settings.CAL_CLIENT_SECRET
        self._transport = transport

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _send(
        self,
        method: str,
        endpoint: str,
        *,
        headers: dict,
        params: dict = None,
        json_data: Any = None,
    ) -> httpx.Response:
        async with httpx.AsyncClient(
            base_url=self.base_url, timeout=self.timeout, transport=self._transport
        ) as client:
            return await client.request(
                method=method,
                url=endpoint,
                headers=headers,
                params=params,
                json=json_data,
            )

    def _raise_for_status(self, response: httpx.Response, endpoint: str) -> Any:
        data = _json(response)
        if response.is_success:
            if isinstance(data, dict) and "data" in data:
                return data["data"]
            return data

        message = "Unknown Cal.com error"
        if isinstance(data, dict):
            error = data.get("error")
            if isinstance(error, dict):
                message = error.get("message") or error.get("code") or message
            elif isinstance(error, str):
                message = error
            message = data.get("message") or message
        logger.error(
            "Cal.com API error: %s %s - %s",
            response.status_code,
            endpoint,
            message,
        )
        raise CalApiError(
            message=message, status_code=response.status_code, response_data=data
        )

    async def _refresh_token(self) -> str:
        self.access_token = await self._refresh()
        return self.access_token

    async def _request(
        self,
        method: str,
        endpoint: str,
        *,
        api_version: str,
        params: dict = None,
        json_data: Any = None,
    ) -> Any:
        """User-authenticated request with a single refresh-and-retry."""
        if not self.access_token:
            raise CalApiError("No Cal.com access token available", status_code=401)

        async def send(token: Optional[str]) -> httpx.Response:
            return await self._send(
                method,
                endpoint,
                headers={
                    "Authorization": f"Bearer {token}",
                    "cal-api-version": api_version,
                    "Content-Type": "application/json",
                },
                params=params,
                json_data=json_data,
            )

        try:
            response = await with_token_refresh(
                send,
                self.access_token,
                self._refresh_token if self._refresh else None,
            )
        except httpx.HTTPError as exc:
            raise CalApiError(f"Cal.com request failed: {exc}") from exc
        return self._raise_for_status(response, endpoint)

    async def _platform_request(
        self, method: str, endpoint: str, *, json_data: Any = None
    ) -> Any:
        """Request authenticated with the platform OAuth client credentials."""
        if not (self.client_id and self.client_secret):
            raise CalApiError("CAL_CLIENT_ID and CAL_CLIENT_SECRET are required")
        try:
            response = await self._send(
                method,
                endpoint,
                headers={
                    "x-cal-client-id": self.client_id,
                    "x-cal-secret-key": self.client_secret,
                    "Content-Type": "application/json",
                },
                json_data=json_data,
            )
        except httpx.HTTPError as exc:
            raise CalApiError(f"Cal.com request failed: {exc}") from exc
        return self._raise_for_status(response, endpoint)

    # ------------------------------------------------------------------
    # Event types
    # ------------------------------------------------------------------

    async def list_event_types(self, username: str) -> list[CalEventTypeFromApi]:
        data = await self._request(
            "GET",
            "/event-types",
            api_version=EVENT_TYPES_API_VERSION,
            params={"username": username},
        )
        # Older API versions group event types by profile
        if isinstance(data, dict) and "eventTypeGroups" in data:
            data = [
                event_type
                for group in data["eventTypeGroups"]
                for event_type in group.get("eventTypes", [])
            ]
        return _parse_list(CalEventTypeFromApi, data, "/event-types")

    async def create_event_type(self, payload: dict) -> CalEventTypeFromApi:
        data = await self._request(
            "POST",
            "/event-types",
            api_version=EVENT_TYPES_API_VERSION,
            json_data=payload,
        )
        return _parse(CalEventTypeFromApi.model_validate, data, "/event-types")

    async def update_event_type(
        self, event_type_id: int, payload: dict
    ) -> CalEventTypeFromApi:
        data = await self._request(
            "PATCH",
            f"/event-types/{event_type_id}",
            api_version=EVENT_TYPES_API_VERSION,
            json_data=payload,
        )
        return _parse(
            CalEventTypeFromApi.model_validate, data, f"/event-types/{event_type_id}"
        )

    async def delete_event_type(self, event_type_id: int) -> None:
        await self._request(
            "DELETE",
            f"/event-types/{event_type_id}",
            api_version=EVENT_TYPES_API_VERSION,
        )

    # ------------------------------------------------------------------
    # Bookings
    # ------------------------------------------------------------------

    async def create_booking(self, payload: dict) -> CalBookingFromApi:
        data = await self._request(
            "POST", "/bookings", api_version=BOOKINGS_API_VERSION, json_data=payload
        )
        return _parse(CalBookingFromApi.model_validate, data, "/bookings")

    async def cancel_booking(self, booking_uid: str, reason: str) -> dict:
        return await self._request(
            "POST",
            f"/bookings/{booking_uid}/cancel",
            api_version=BOOKINGS_API_VERSION,
            json_data={"cancellationReason": reason},
        )

    async def get_calendar_links(self, booking_uid: str) -> list[dict]:
        data = await self._request(
            "GET",
            f"/bookings/{booking_uid}/calendar-links",
            api_version=BOOKINGS_API_VERSION,
        )
        return list(data or [])

    # ------------------------------------------------------------------
    # Schedules
    # ------------------------------------------------------------------

    async def list_schedules(self) -> list[CalScheduleFromApi]:
        data = await self._request(
            "GET", "/schedules", api_version=SCHEDULES_API_VERSION
        )
        return _parse_list(CalScheduleFromApi, data, "/schedules")

    async def create_schedule(self, payload: dict) -> CalScheduleFromApi:
        data = await self._request(
            "POST", "/schedules", api_version=SCHEDULES_API_VERSION, json_data=payload
        )
        return _parse(CalScheduleFromApi.model_validate, data, "/schedules")

    async def update_schedule(self, schedule_id: int, payload: dict) -> CalScheduleFromApi:
        data = await self._request(
            "PATCH",
            f"/schedules/{schedule_id}",
            api_version=SCHEDULES_API_VERSION,
            json_data=payload,
        )
        return _parse(
            CalScheduleFromApi.model_validate, data, f"/schedules/{schedule_id}"
        )

    async def delete_schedule(self, schedule_id: int) -> None:
        await self._request(
            "DELETE", f"/schedules/{schedule_id}", api_version=SCHEDULES_API_VERSION
        )

    # ------------------------------------------------------------------
    # Platform: managed users and tokens
    # ------------------------------------------------------------------

    async def list_managed_users(self) -> list[CalManagedUser]:
        data = await self._platform_request(
            "GET", f"/oauth-clients/{self.client_id}/users"
        )
        return _parse_list(CalManagedUser, data, "/oauth-clients/users")

    async def create_managed_user(
        self, email: str, name: Optional[str] = None, time_zone: str = "UTC"
    ) -> CalManagedUserCreated:
        payload = {"email": email, "timeZone": time_zone}
        if name:
            payload["name"] = name
        data = await self._platform_request(
            "POST", f"/oauth-clients/{self.client_id}/users", json_data=payload
        )
        return _parse(CalManagedUserCreated.from_api, data, "/oauth-clients/users")

    async def update_managed_user(self, user_id: int, payload: dict) -> CalManagedUser:
        data = await self._platform_request(
            "PATCH", f"/oauth-clients/{self.client_id}/users/{user_id}", json_data=payload
        )
        return _parse(
            CalManagedUser.model_validate, data, f"/oauth-clients/users/{user_id}"
        )

    async def delete_managed_user(self, user_id: int) -> None:
        await self._platform_request(
            "DELETE", f"/oauth-clients/{self.client_id}/users/{user_id}"
        )

    async def force_refresh_managed_user(self, user_id: int) -> CalTokenPair:
        data = await self._platform_request(
            "POST", f"/oauth-clients/{self.client_id}/users/{user_id}/force-refresh"
        )
        return _parse(
            CalTokenPair.from_platform, data, f"/oauth-clients/users/{user_id}/force-refresh"
        )

    async def refresh_oauth_token(self, refresh_token: str) -> CalTokenPair:
        """Standard OAuth refresh-token grant."""
        try:
            response = await self._send(
                "POST",
                "/oauth/token",
                headers={"Content-Type": "application/json"},
                json_data={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "grant_type": "refresh_token",
                    "refresh_token": refresh_token,
                },
            )
        except httpx.HTTPError as exc:
            raise CalApiError(f"Cal.com request failed: {exc}") from exc
        return _parse(
            CalTokenPair.from_oauth,
            self._raise_for_status(response, "/oauth/token"),
            "/oauth/token",
        )
