import logging
import math
import time
from collections.abc import Callable

from citescrape.modules.rate_limit.schemas import (
    Bucket,
    EndpointCounters,
    RateLimitConfig,
    RateLimitResult,
    RateLimitStats,
)

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT = "unknown"


def client_ip_from_headers(headers, fallback: str | None = None) -> str:
    """First proxy-supplied address wins: Cloudflare, X-Forwarded-For, X-Real-IP."""
    cf_ip = (headers.get("cf-connecting-ip") or "").strip()
    if cf_ip:
        return cf_ip
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip() or UNKNOWN_CLIENT
    real_ip = (headers.get("x-real-ip") or "").strip()
    if real_ip:
        return real_ip
    return fallback or UNKNOWN_CLIENT


class RateLimiter:
    """Fixed-window request counter keyed by ``client:path``.

    Each path gets its own limit (matched on the path suffix, so ``/api/scrape``
    uses the ``/scrape`` entry). A window opens on the first request and
    resets ``window_ms`` later. Expired buckets are swept at most once per
    window, and the oldest buckets are dropped beyond ``max_buckets``.
    """

    def __init__(
        self,
        config: RateLimitConfig | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config or RateLimitConfig()
        self._clock = clock
        self._buckets: dict[str, Bucket] = {}
        self._last_sweep_at = 0.0
        self._total_requests = 0
        self._blocked_requests = 0
        self._by_endpoint: dict[str, EndpointCounters] = {}

    @property
    def bucket_count(self) -> int:
        return len(self._buckets)

    def limit_for(self, path: str) -> int:
        for endpoint, limit in self._config.endpoint_limits.items():
            if path.endswith(endpoint):
                return limit
        return self._config.max_requests

    def hit(self, client: str, path: str) -> RateLimitResult:
        """Count one request and report whether it is within the limit."""
        now = self._clock()
        window_s = self._config.window_ms / 1000
        limit = self.limit_for(path)

        self._total_requests += 1
        counters = self._by_endpoint.setdefault(path, EndpointCounters())
        counters.requests += 1

        self._sweep(now, window_s)

        key = f"{client}:{path}"
        bucket = self._buckets.get(key)
        if bucket is None or now >= bucket.reset_at:
            bucket = Bucket(reset_at=now + window_s)
            self._buckets.pop(key, None)
            self._buckets[key] = bucket
            self._evict_overflow()
        bucket.count += 1

        allowed = bucket.count <= limit
        if not allowed:
            self._blocked_requests += 1
            counters.blocked += 1
            logger.info("Rate limited %s for %s (limit: %d)", path, client, limit)

        return RateLimitResult(
            allowed=allowed,
            limit=limit,
            remaining=max(0, limit - bucket.count),
            reset_at=bucket.reset_at,
            scope=path,
            retry_after=max(1, math.ceil(bucket.reset_at - now)),
        )

    def _sweep(self, now: float, window_s: float) -> None:
        if now - self._last_sweep_at > window_s:
            expired = [key for key, bucket in self._buckets.items() if now >= bucket.reset_at]
            for key in expired:
                del self._buckets[key]
            self._last_sweep_at = now

    def _evict_overflow(self) -> None:
        overflow = len(self._buckets) - self._config.max_buckets
        if overflow > 0:
            # dicts keep insertion order, so the head holds the oldest windows
            for key in list(self._buckets)[:overflow]:
                del self._buckets[key]
            logger.warning("Evicted %d rate limit buckets", overflow)

    def get_stats(self) -> RateLimitStats:
        return RateLimitStats(
            total_requests=self._total_requests,
            blocked_requests=self._blocked_requests,
            active_buckets=len(self._buckets),
            by_endpoint={
                path: counters.model_copy() for path, counters in self._by_endpoint.items()
            },
        )


def create_rate_limiter(
    window_ms: int = 60_000,
    max_requests: int = 30,
    max_buckets: int = 10_000,
    clock: Callable[[], float] = time.time,
) -> RateLimiter:
    return RateLimiter(
        RateLimitConfig(window_ms=window_ms, max_requests=max_requests, max_buckets=max_buckets),
        clock=clock,
    )
