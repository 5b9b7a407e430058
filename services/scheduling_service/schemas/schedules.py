from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class AvailabilityWindow(BaseModel):
    """One weekly availability block, e.g. Monday-Friday 09:00-17:00."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    days: list[str] = Field(..., min_length=1)
    start_time: str = Field(..., pattern=r"^\d{2}:\d{2}$")
    end_time: str = Field(..., pattern=r"^\d{2}:\d{2}$")


class ScheduleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    time_zone: str = "UTC"
    is_default: bool = False
    availability: list[AvailabilityWindow] = Field(default_factory=list)
    overrides: list[dict[str, Any]] = Field(default_factory=list)

    def to_cal_payload(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "timeZone": self.time_zone,
            "isDefault": self.is_default,
            "availability": [w.model_dump(by_alias=True) for w in self.availability],
            "overrides": self.overrides,
        }


class ScheduleUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    time_zone: Optional[str] = None
    is_default: Optional[bool] = None
    availability: Optional[list[AvailabilityWindow]] = None
    overrides: Optional[list[dict[str, Any]]] = None

    def to_cal_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        if self.name is not None:
            payload["name"] = self.name
        if self.time_zone is not None:
            payload["timeZone"] = self.time_zone
        if self.is_default is not None:
            payload["isDefault"] = self.is_default
        if self.availability is not None:
            payload["availability"] = [
                w.model_dump(by_alias=True) for w in self.availability
            ]
        if self.overrides is not None:
            payload["overrides"] = self.overrides
        return payload


class ScheduleResponse(BaseModel):
    ulid: str
    cal_schedule_id: Optional[int] = None
    name: str
    time_zone: str
    is_default: bool
    availability: list[dict[str, Any]]
    overrides: list[dict[str, Any]]
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
