from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field


class ManagedUserCreate(BaseModel):
    email: EmailStr
    name: Optional[str] = Field(None, max_length=255)
    time_zone: str = "UTC"


class ManagedUserUpdate(BaseModel):
    email: Optional[EmailStr] = None
    name: Optional[str] = Field(None, max_length=255)
    time_zone: Optional[str] = None

    def to_cal_payload(self) -> dict:
        payload = {}
        if self.email is not None:
            payload["email"] = self.email
        if self.name is not None:
            payload["name"] = self.name
        if self.time_zone is not None:
            payload["timeZone"] = self.time_zone
        return payload


class ManagedUserResponse(BaseModel):
    id: int
    email: str
    username: Optional[str] = None
    name: Optional[str] = None
    time_zone: Optional[str] = None


class IntegrationResponse(BaseModel):
    calendar_integration_ulid: str
    cal_managed_user_id: Optional[int] = None
    cal_username: Optional[str] = None
    expires_at: Optional[datetime] = None
