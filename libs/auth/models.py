from dataclasses import dataclass, field
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class AuthUser(BaseModel):
    """
    Claims from a validated bearer token.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    user_id: str = Field(..., alias="sub")
    email: Optional[EmailStr] = None
    role: str = "authenticated"


@dataclass(frozen=True)
class RequestContext:
    """
    Request-scoped caller identity, resolved once per request and passed
    explicitly into every service function.
    """

    user_id: str
    user_ulid: str
    email: Optional[str] = None
    roles: tuple[str, ...] = field(default_factory=tuple)

    def has_role(self, role: str) -> bool:
        return role in self.roles

    @property
    def is_admin(self) -> bool:
        return self.has_role("ADMIN")
