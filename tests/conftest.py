"""Shared fixtures: a controllable clock, an in-memory secondary cache tier
and sample pages. Nothing here touches the network."""

import pytest

from citescrape.modules.cache.contracts import SecondaryTierContract


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class InMemorySecondary(SecondaryTierContract):
    """Stands in for Redis; records calls so tests can assert on traffic."""

    def __init__(self) -> None:
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.get_calls = 0
        self.set_calls = 0
        self.closed = False

    async def get(self, key: str) -> str | None:
        self.get_calls += 1
        return self.store.get(key)

    async def set(self, key: str, raw: str, ttl_ms: int) -> None:
        self.set_calls += 1
        self.store[key] = raw
        self.ttls[key] = ttl_ms

    async def delete(self, key: str) -> None:
        self.store.pop(key, None)

    async def clear(self, prefix: str) -> None:
        for key in [k for k in self.store if k.startswith(prefix)]:
            del self.store[key]

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def secondary() -> InMemorySecondary:
    return InMemorySecondary()


NEWS_ARTICLE_HTML = """
<html lang="en">
<head>
  <title>Budget vote | Springfield Gazette</title>
  <script type="application/ld+json">
  {"@type":"NewsArticle","headline":"City Council Approves Budget",
   "datePublished":"2024-01-10","author":{"name":"Jane Doe"}}
  </script>
</head>
<body><h1>Council approves budget</h1></body>
</html>
"""


@pytest.fixture
def news_article_html() -> str:
    return NEWS_ARTICLE_HTML
