from collections import OrderedDict

from citescrape.modules.cache.schemas import CacheEntry


class LocalTier:
    """Size-bounded LRU map of cache entries with a per-tier maximum age.

    An entry lives locally until the earlier of its own expiry and
    ``stored_at + max_age_ms``.
    """

    def __init__(self, max_items: int, max_age_ms: int) -> None:
        if max_items <= 0:
            raise ValueError("max_items must be > 0")
        self._max_items = max_items
        self._max_age_s = max_age_ms / 1000
        self._entries: OrderedDict[str, tuple[CacheEntry, float]] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str, now: float) -> CacheEntry | None:
        item = self._entries.get(key)
        if item is None:
            return None
        entry, local_expires_at = item
        if now >= local_expires_at:
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return entry

    def put(self, entry: CacheEntry, now: float) -> None:
        local_expires_at = min(entry.expires_at, now + self._max_age_s)
        self._entries[entry.key] = (entry, local_expires_at)
        self._entries.move_to_end(entry.key)
        while len(self._entries) > self._max_items:
            self._entries.popitem(last=False)

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def prune(self, now: float) -> int:
        expired = [k for k, (_, exp) in self._entries.items() if now >= exp]
        for key in expired:
            del self._entries[key]
        return len(expired)
