from enum import Enum

from pydantic import BaseModel


class ErrorCode(str, Enum):
    INVALID_URL = "INVALID_URL"
    URL_BLOCKED = "URL_BLOCKED"
    FETCH_FAILED = "FETCH_FAILED"
    TIMEOUT = "TIMEOUT"
    RATE_LIMITED = "RATE_LIMITED"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    INVALID_REQUEST = "INVALID_REQUEST"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ApiError(Exception):
    """Outward-facing failure with a stable code and HTTP status."""

    def __init__(
        self,
        status: int,
        code: ErrorCode,
        message: str,
        details: str | None = None,
        retry_after: int | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.code = code
        self.message = message
        self.details = details
        self.retry_after = retry_after
        self.headers = headers or {}

    def __repr__(self) -> str:
        return f"ApiError(status={self.status}, code={self.code.value}, message={self.message!r})"


class ErrorBody(BaseModel):
    code: ErrorCode
    message: str
    details: str | None = None


class ErrorResponse(BaseModel):
    success: bool = False
    error: ErrorBody


def bad_request(message: str, details: str | None = None) -> ApiError:
    return ApiError(
        status=400, code=ErrorCode.INVALID_REQUEST, message=message, details=details
    )


def to_error_response(error: ApiError) -> ErrorResponse:
    return ErrorResponse(
        error=ErrorBody(code=error.code, message=error.message, details=error.details)
    )
