from dataclasses import dataclass
from enum import Enum


class FetchErrorKind(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    TIMEOUT = "TIMEOUT"
    INVALID_URL = "INVALID_URL"
    HTTP_ERROR = "HTTP_ERROR"
    CONNECTION_FAILED = "CONNECTION_FAILED"
    EXTRACTION_FAILED = "EXTRACTION_FAILED"
    INVALID_INPUT = "INVALID_INPUT"


class FetchError(Exception):
    """A failed outbound fetch, tagged with what went wrong."""

    def __init__(self, kind: FetchErrorKind, message: str, url: str | None = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.url = url

    def __repr__(self) -> str:
        return f"FetchError(kind={self.kind.value}, url={self.url!r}, message={self.message!r})"


@dataclass(frozen=True)
class FetchedPage:
    html: str
    final_url: str
    status_code: int = 200
