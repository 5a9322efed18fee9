from dataclasses import dataclass, field

from pydantic import BaseModel, Field


@dataclass(frozen=True)
class RateLimitConfig:
    window_ms: int = 60_000
    max_requests: int = 30
    max_buckets: int = 10_000
    endpoint_limits: dict[str, int] = field(
        default_factory=lambda: {"/health": 100, "/scrape": 20}
    )


@dataclass
class Bucket:
    reset_at: float
    count: int = 0


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    scope: str
    retry_after: int

    def to_headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(int(self.reset_at)),
            "X-RateLimit-Scope": self.scope,
        }


class EndpointCounters(BaseModel):
    requests: int = 0
    blocked: int = 0


class RateLimitStats(BaseModel):
    total_requests: int
    blocked_requests: int
    active_buckets: int
    by_endpoint: dict[str, EndpointCounters] = Field(default_factory=dict)
