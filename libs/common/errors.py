"""Application error taxonomy and the uniform ``{data, error}`` response envelope.

Service functions raise ``ApiError`` subclasses; ``libs.common.error_handler``
turns them into enveloped JSON responses with the matching status code.
"""

import enum
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class ErrorCode(str, enum.Enum):
    UNAUTHORIZED = "UNAUTHORIZED"
    NOT_FOUND = "NOT_FOUND"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    FORBIDDEN = "FORBIDDEN"
    INVALID_STATE = "INVALID_STATE"
    POLICY_VIOLATION = "POLICY_VIOLATION"
    DATABASE_ERROR = "DATABASE_ERROR"
    FETCH_ERROR = "FETCH_ERROR"
    CREATE_ERROR = "CREATE_ERROR"
    RATE_LIMITED = "RATE_LIMITED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ApiError(Exception):
    """Base exception for errors reported to API callers."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR
    status_code: int = 500

    def __init__(self, message: str, details: Any = None, code: ErrorCode = None):
        self.message = message
        self.details = details
        if code is not None:
            self.code = code
            self.status_code = STATUS_BY_CODE.get(code, self.status_code)
        super().__init__(message)


class UnauthorizedError(ApiError):
    code = ErrorCode.UNAUTHORIZED
    status_code = 401


class NotFoundError(ApiError):
    code = ErrorCode.NOT_FOUND
    status_code = 404


class ValidationError(ApiError):
    code = ErrorCode.VALIDATION_ERROR
    status_code = 422


class ForbiddenError(ApiError):
    code = ErrorCode.FORBIDDEN
    status_code = 403


class InvalidStateError(ApiError):
    """The record exists but is not in a state that allows the operation."""

    code = ErrorCode.INVALID_STATE
    status_code = 409


class PolicyViolationError(ApiError):
    """A business rule (such as the cancellation window) rejects the request."""

    code = ErrorCode.POLICY_VIOLATION
    status_code = 400


class DatabaseError(ApiError):
    code = ErrorCode.DATABASE_ERROR
    status_code = 500


class FetchError(ApiError):
    """A downstream provider call failed."""

    code = ErrorCode.FETCH_ERROR
    status_code = 502


class CreateError(ApiError):
    code = ErrorCode.CREATE_ERROR
    status_code = 500


STATUS_BY_CODE = {
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.VALIDATION_ERROR: 422,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.INVALID_STATE: 409,
    ErrorCode.POLICY_VIOLATION: 400,
    ErrorCode.DATABASE_ERROR: 500,
    ErrorCode.FETCH_ERROR: 502,
    ErrorCode.CREATE_ERROR: 500,
    ErrorCode.RATE_LIMITED: 429,
    ErrorCode.INTERNAL_ERROR: 500,
}


class ErrorBody(BaseModel):
    code: ErrorCode
    message: str
    details: Optional[Any] = None


class ApiResponse(BaseModel, Generic[T]):
    data: Optional[T] = None
    error: Optional[ErrorBody] = None


def ok(data: Any = None) -> dict:
    """Wrap a successful payload in the response envelope."""
    return {"data": data, "error": None}


def error_body(code: ErrorCode, message: str, details: Any = None) -> dict:
    return {
        "data": None,
        "error": {"code": code.value, "message": message, "details": details},
    }
