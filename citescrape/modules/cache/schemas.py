from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel


@dataclass(frozen=True)
class CacheConfig:
    l1_max_items: int = 100
    l1_ttl_ms: int = 5 * 60 * 1000
    l2_ttl_ms: int = 60 * 60 * 1000
    redis_url: str | None = None

    @property
    def l2_enabled(self) -> bool:
        return bool(self.redis_url)


class CacheEntry(BaseModel):
    """One cached payload; ``inserted_at`` is epoch seconds."""

    key: str
    value: Any
    inserted_at: float
    ttl_ms: int

    @property
    def expires_at(self) -> float:
        return self.inserted_at + self.ttl_ms / 1000

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class CacheStats(BaseModel):
    hits: int
    misses: int
    size: int
    hit_rate: float


class LocalTierStats(BaseModel):
    size: int
    hits: int
    misses: int
