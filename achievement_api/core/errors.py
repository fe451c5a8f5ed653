# achievement_api/core/errors.py
"""
Error kinds produced by the achievement core.

The HTTP layer maps each kind to a status code; nothing below the routers
raises HTTPException directly.
"""
from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not-found"
    VALIDATION_ERROR = "validation-error"
    INVALID_STATE = "invalid-state"
    INCONSISTENT = "inconsistent"
    DEADLINE_EXCEEDED = "deadline-exceeded"
    INTERNAL = "internal"


STATUS_CODES = {
    ErrorKind.UNAUTHENTICATED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.VALIDATION_ERROR: 400,
    ErrorKind.INVALID_STATE: 400,
    ErrorKind.INCONSISTENT: 409,
    ErrorKind.DEADLINE_EXCEEDED: 504,
    ErrorKind.INTERNAL: 500,
}


class AchievementError(Exception):
    kind: ErrorKind = ErrorKind.INTERNAL
    code: Optional[str] = None

    def __init__(self, message: str = "", code: Optional[str] = None):
        super().__init__(message or self.kind.value)
        self.message = message or self.kind.value
        if code is not None:
            self.code = code

    @property
    def status_code(self) -> int:
        return STATUS_CODES[self.kind]

    def to_dict(self) -> dict:
        body = {"status": "error", "error": self.kind.value, "message": self.message}
        if self.code:
            body["code"] = self.code
        return body


class Unauthenticated(AchievementError):
    kind = ErrorKind.UNAUTHENTICATED


class Forbidden(AchievementError):
    kind = ErrorKind.FORBIDDEN


class ProfileMissing(Forbidden):
    code = "profile-missing"


class NotFound(AchievementError):
    kind = ErrorKind.NOT_FOUND


class ValidationFailed(AchievementError):
    kind = ErrorKind.VALIDATION_ERROR


class InvalidState(AchievementError):
    kind = ErrorKind.INVALID_STATE


class Inconsistent(AchievementError):
    kind = ErrorKind.INCONSISTENT
    retryable = True

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["retryable"] = self.retryable
        return body


class DeadlineExceeded(AchievementError):
    kind = ErrorKind.DEADLINE_EXCEEDED

    def __init__(self, operation: str):
        super().__init__(f"deadline exceeded during {operation}")
        self.operation = operation


class InternalError(AchievementError):
    kind = ErrorKind.INTERNAL


class StoreUnavailable(InternalError):
    code = "store-unavailable"


class PartialAggregationError(InternalError):
    code = "partial-aggregation-error"

    def __init__(self, sub_query: str):
        super().__init__(f"aggregation sub-query '{sub_query}' failed")
        self.sub_query = sub_query

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["subQuery"] = self.sub_query
        return body
