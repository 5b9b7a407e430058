from typing import Annotated, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import ValidationError

from libs.auth.models import AuthUser
from libs.common.config import get_settings
from libs.common.errors import UnauthorizedError

security = HTTPBearer(auto_error=False)


def decode_token(token: str) -> AuthUser:
    """Validate a bearer JWT and return its claims."""
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=settings.JWT_ALGORITHMS,
            audience=settings.JWT_AUDIENCE,
            options={"verify_aud": settings.JWT_AUDIENCE is not None},
        )
        return AuthUser(**payload)
    except (JWTError, ValidationError):
        raise UnauthorizedError("Could not validate credentials")


async def get_current_user(
    token: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)]
) -> AuthUser:
    """
    Validate the bearer JWT and return the authenticated user.
    """
    if token is None:
        raise UnauthorizedError("User not authenticated")
    return decode_token(token.credentials)
