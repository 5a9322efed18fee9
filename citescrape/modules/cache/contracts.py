from abc import ABC, abstractmethod


class SecondaryTierContract(ABC):
    """Shared key/value store behind the in-process tier.

    Values are pre-serialised JSON strings; expiry is enforced by the store.
    """

    @abstractmethod
    async def get(self, key: str) -> str | None: ...

    @abstractmethod
    async def set(self, key: str, raw: str, ttl_ms: int) -> None: ...

    @abstractmethod
    async def delete(self, key: str) -> None: ...

    @abstractmethod
    async def clear(self, prefix: str) -> None: ...

    @abstractmethod
    async def aclose(self) -> None: ...
