"""Redis-backed secondary cache tier.

Suitable for sharing scrape results between several API instances.
"""

import logging

from redis import asyncio as aioredis

from citescrape.modules.cache.contracts import SecondaryTierContract

logger = logging.getLogger(__name__)


class RedisTier(SecondaryTierContract):
    def __init__(self, client: aioredis.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, redis_url: str) -> "RedisTier":
        client = aioredis.from_url(redis_url, decode_responses=True)
        logger.info("Redis cache tier configured")
        return cls(client)

    async def get(self, key: str) -> str | None:
        return await self._client.get(key)

    async def set(self, key: str, raw: str, ttl_ms: int) -> None:
        await self._client.set(key, raw, px=ttl_ms)

    async def delete(self, key: str) -> None:
        await self._client.delete(key)

    async def clear(self, prefix: str) -> None:
        # Only our own keys; the database may be shared.
        keys = [key async for key in self._client.scan_iter(match=f"{prefix}*")]
        if keys:
            await self._client.delete(*keys)
        logger.info("Cleared %d keys from Redis tier", len(keys))

    async def aclose(self) -> None:
        await self._client.aclose()
