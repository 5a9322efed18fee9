import logging
import time
from collections.abc import Callable, Iterable
from typing import Any

from citescrape.modules.cache.contracts import SecondaryTierContract
from citescrape.modules.cache.local_tier import LocalTier
from citescrape.modules.cache.schemas import (
    CacheConfig,
    CacheEntry,
    CacheStats,
    LocalTierStats,
)

logger = logging.getLogger(__name__)

L2_PREFIX = "l2:"


def _escape_key_part(part: object) -> str:
    return str(part).replace("%", "%25").replace(":", "%3A")


def create_cache_key(
    namespace: str,
    parts: Iterable[object | None],
    scope: str | None = None,
) -> str:
    """Build ``namespace:scope:part1:part2`` from the given pieces.

    ``None`` parts are dropped. Separators inside a part are escaped so two
    different part lists never produce the same key.
    """
    segments = [_escape_key_part(namespace)]
    if scope is not None:
        segments.append(_escape_key_part(scope))
    segments.extend(_escape_key_part(p) for p in parts if p is not None)
    return ":".join(segments)


class TieredCache:
    """In-process LRU tier in front of an optional shared secondary tier.

    Values must be JSON-serialisable. The secondary tier is best effort: any
    error talking to it is logged and treated as a miss (reads) or ignored
    (writes).
    """

    def __init__(
        self,
        config: CacheConfig | None = None,
        secondary: SecondaryTierContract | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config or CacheConfig()
        self._local = LocalTier(self._config.l1_max_items, self._config.l1_ttl_ms)
        self._secondary = secondary
        self._clock = clock

        self._hits = 0
        self._misses = 0
        self._local_hits = 0
        self._local_misses = 0

    @property
    def secondary_enabled(self) -> bool:
        return self._secondary is not None

    async def get(self, key: str) -> Any | None:
        now = self._clock()

        entry = self._local.get(key, now)
        if entry is not None:
            self._local_hits += 1
            self._hits += 1
            logger.debug("[Cache] L1 hit: %s", key)
            return entry.value
        self._local_misses += 1

        if self._secondary is not None:
            entry = await self._get_secondary(key, now)
            if entry is not None:
                self._local.put(entry, now)
                self._hits += 1
                logger.debug("[Cache] L2 hit: %s", key)
                return entry.value

        self._misses += 1
        logger.debug("[Cache] Miss: %s", key)
        return None

    async def _get_secondary(self, key: str, now: float) -> CacheEntry | None:
        try:
            raw = await self._secondary.get(L2_PREFIX + key)
            if raw is None:
                return None
            entry = CacheEntry.model_validate_json(raw)
        except Exception:
            logger.exception("[Cache] L2 read failed for %s", key)
            return None
        if entry.is_expired(now):
            return None
        return entry

    async def set(self, key: str, value: Any, ttl_ms: int | None = None) -> None:
        now = self._clock()
        entry = CacheEntry(
            key=key,
            value=value,
            inserted_at=now,
            ttl_ms=ttl_ms if ttl_ms is not None else self._config.l2_ttl_ms,
        )
        self._local.put(entry, now)

        if self._secondary is None:
            logger.debug("[Cache] Set L1: %s", key)
            return
        try:
            await self._secondary.set(L2_PREFIX + key, entry.model_dump_json(), entry.ttl_ms)
            logger.debug("[Cache] Set L1+L2: %s", key)
        except Exception:
            logger.exception("[Cache] L2 write failed for %s", key)

    async def delete(self, key: str) -> None:
        self._local.delete(key)
        if self._secondary is not None:
            try:
                await self._secondary.delete(L2_PREFIX + key)
            except Exception:
                logger.exception("[Cache] L2 delete failed for %s", key)
        logger.debug("[Cache] Deleted: %s", key)

    async def clear(self) -> None:
        self._local.clear()
        if self._secondary is not None:
            try:
                await self._secondary.clear(L2_PREFIX)
            except Exception:
                logger.exception("[Cache] L2 clear failed")
        logger.info("[Cache] Cleared all tiers")

    def get_stats(self) -> CacheStats:
        self._local.prune(self._clock())
        total = self._hits + self._misses
        return CacheStats(
            hits=self._hits,
            misses=self._misses,
            size=len(self._local),
            hit_rate=self._hits / total if total > 0 else 0.0,
        )

    def get_local_stats(self) -> LocalTierStats:
        return LocalTierStats(
            size=len(self._local),
            hits=self._local_hits,
            misses=self._local_misses,
        )

    def reset_stats(self) -> None:
        self._hits = 0
        self._misses = 0
        self._local_hits = 0
        self._local_misses = 0

    async def aclose(self) -> None:
        if self._secondary is not None:
            await self._secondary.aclose()


def create_tiered_cache(
    config: CacheConfig | None = None,
    secondary: SecondaryTierContract | None = None,
    clock: Callable[[], float] = time.time,
) -> TieredCache:
    """Build a cache, wiring Redis as the secondary tier when configured."""
    config = config or CacheConfig()
    if secondary is None and config.l2_enabled:
        from citescrape.modules.cache.redis_tier import RedisTier

        secondary = RedisTier.from_url(config.redis_url)
    return TieredCache(config=config, secondary=secondary, clock=clock)
