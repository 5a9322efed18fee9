import logging
import math
import time
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import ValidationError

from citescrape.config.settings import Settings
from citescrape.core.errors import ApiError, ErrorCode
from citescrape.modules.cache.schemas import CacheConfig, CacheStats
from citescrape.modules.cache.service import (
    TieredCache,
    create_cache_key,
    create_tiered_cache,
)
from citescrape.modules.circuit_breaker.schemas import (
    CircuitBreakerConfig,
    CircuitBreakerStats,
    CircuitState,
)
from citescrape.modules.circuit_breaker.service import (
    CircuitBreaker,
    CircuitBreakerOpenError,
    create_circuit_breaker,
)
from citescrape.modules.extractor.schemas import ExtractionContext, MetadataResult
from citescrape.modules.extractor.service import MetadataExtractor
from citescrape.modules.fetcher.schemas import FetchError, FetchErrorKind
from citescrape.modules.fetcher.service import HtmlFetcher
from citescrape.modules.lookup.doi import DoiClient, validate_doi
from citescrape.modules.lookup.isbn import IsbnClient, validate_isbn
from citescrape.modules.validation.service import (
    UrlValidationError,
    validate_public_http_url,
)

logger = logging.getLogger(__name__)

CACHE_NAMESPACE = "scraper"
BREAKER_NAME = "scraper"

UrlValidator = Callable[[str], Awaitable[str]]


def _log_state_change(new: CircuitState, previous: CircuitState) -> None:
    logger.warning("Scraper circuit %s -> %s", previous.value, new.value)


class ScraperService:
    """Cache, circuit breaker and extractor combined behind one entry point.

    The service is the only layer that turns low-level failures into
    ApiError; nothing else escapes ``scrape``, ``scrape_doi`` or
    ``scrape_isbn``.
    """

    def __init__(
        self,
        cache: TieredCache,
        breaker: CircuitBreaker,
        fetcher: HtmlFetcher,
        extractor: MetadataExtractor | None = None,
        doi_client: DoiClient | None = None,
        isbn_client: IsbnClient | None = None,
        cache_ttl_ms: int = 3_600_000,
        url_validator: UrlValidator = validate_public_http_url,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._cache = cache
        self._breaker = breaker
        self._fetcher = fetcher
        self._extractor = extractor or MetadataExtractor()
        self._doi_client = doi_client or DoiClient()
        self._isbn_client = isbn_client or IsbnClient()
        self._cache_ttl_ms = cache_ttl_ms
        self._validate_url = url_validator
        self._clock = clock

    # ── Cache helpers ───────────────────────────────────────────

    async def _cached(self, key: str) -> MetadataResult | None:
        raw = await self._cache.get(key)
        if raw is None:
            return None
        try:
            return MetadataResult.model_validate(raw)
        except ValidationError:
            logger.warning("Discarding unreadable cache entry %s", key)
            await self._cache.delete(key)
            return None

    async def _store(self, key: str, result: MetadataResult) -> None:
        payload: Any = result.model_dump(mode="json", by_alias=True)
        await self._cache.set(key, payload, self._cache_ttl_ms)

    # ── Error translation ───────────────────────────────────────

    @staticmethod
    def _invalid_url(exc: UrlValidationError) -> ApiError:
        code = ErrorCode.URL_BLOCKED if exc.is_blocked else ErrorCode.INVALID_URL
        return ApiError(
            status=400, code=code, message="Invalid or blocked URL", details=str(exc)
        )

    def _breaker_open(self, exc: CircuitBreakerOpenError) -> ApiError:
        retry_after = max(1, math.ceil(exc.next_attempt_time - self._clock()))
        return ApiError(
            status=503,
            code=ErrorCode.SERVICE_UNAVAILABLE,
            message="Scraping is temporarily unavailable",
            details=str(exc),
            retry_after=retry_after,
        )

    @staticmethod
    def _scrape_failure(exc: FetchError) -> ApiError:
        if exc.kind is FetchErrorKind.NOT_FOUND:
            return ApiError(
                status=404, code=ErrorCode.FETCH_FAILED, message="Page not found", details=exc.message
            )
        if exc.kind is FetchErrorKind.TIMEOUT:
            return ApiError(
                status=504,
                code=ErrorCode.TIMEOUT,
                message="The page took too long to respond",
                details=exc.message,
            )
        return ApiError(
            status=502,
            code=ErrorCode.FETCH_FAILED,
            message="Unable to load the requested URL",
            details=exc.message,
        )

    @staticmethod
    def _lookup_failure(exc: FetchError, label: str) -> ApiError:
        if exc.kind is FetchErrorKind.NOT_FOUND:
            return ApiError(
                status=404, code=ErrorCode.FETCH_FAILED, message=f"{label} not found", details=exc.message
            )
        if exc.kind is FetchErrorKind.INVALID_INPUT:
            return ApiError(
                status=400,
                code=ErrorCode.INVALID_REQUEST,
                message=f"Invalid {label} format",
                details=exc.message,
            )
        return ApiError(
            status=502,
            code=ErrorCode.FETCH_FAILED,
            message=f"Unable to fetch {label} metadata",
            details=exc.message,
        )

    # ── Operations ──────────────────────────────────────────────

    async def _fetch_and_extract(self, url: str) -> MetadataResult:
        page = await self._fetcher.fetch_html(url)
        return self._extractor.extract(
            ExtractionContext(html=page.html, url=url)
        )

    async def scrape(self, url_string: str) -> MetadataResult:
        try:
            normalized = await self._validate_url(url_string)
        except UrlValidationError as exc:
            logger.info("Rejected URL %r: %s", url_string, exc.code)
            raise self._invalid_url(exc) from exc

        key = create_cache_key(CACHE_NAMESPACE, [normalized], scope="scrape")
        cached = await self._cached(key)
        if cached is not None:
            logger.debug("Cache hit for %s", normalized)
            return cached

        try:
            result = await self._breaker.execute(lambda: self._fetch_and_extract(normalized))
        except CircuitBreakerOpenError as exc:
            logger.warning("Circuit open, rejecting scrape of %s", normalized)
            raise self._breaker_open(exc) from exc
        except FetchError as exc:
            logger.warning("Scrape of %s failed (%s): %s", normalized, exc.kind.value, exc.message)
            raise self._scrape_failure(exc) from exc
        except Exception as exc:
            logger.exception("Unexpected error scraping %s", normalized)
            raise ApiError(
                status=502,
                code=ErrorCode.FETCH_FAILED,
                message="Unable to load the requested URL",
            ) from exc

        await self._store(key, result)
        logger.info("Scraped %s (source=%s)", normalized, result.source.value if result.source else None)
        return result

    async def _lookup(
        self,
        identifier: str,
        scope: str,
        label: str,
        normalize: Callable[[str], str],
        fetch: Callable[[str], Awaitable[MetadataResult]],
    ) -> MetadataResult:
        try:
            value = normalize(identifier)
            key = create_cache_key(CACHE_NAMESPACE, [value], scope=scope)
            cached = await self._cached(key)
            if cached is not None:
                return cached
            result = await fetch(value)
        except FetchError as exc:
            logger.warning("%s lookup for %r failed (%s): %s", label, identifier, exc.kind.value, exc.message)
            raise self._lookup_failure(exc, label) from exc
        except Exception as exc:
            logger.exception("Unexpected error looking up %s %r", label, identifier)
            raise ApiError(
                status=502,
                code=ErrorCode.FETCH_FAILED,
                message=f"Unable to fetch {label} metadata",
            ) from exc

        await self._store(key, result)
        return result

    async def scrape_doi(self, doi: str) -> MetadataResult:
        return await self._lookup(doi, "doi", "DOI", validate_doi, self._doi_client.lookup)

    async def scrape_isbn(self, isbn: str) -> MetadataResult:
        return await self._lookup(isbn, "isbn", "ISBN", validate_isbn, self._isbn_client.lookup)

    # ── Observability ───────────────────────────────────────────

    async def check_health(self) -> bool:
        return await self._fetcher.check_health()

    def get_cache_stats(self) -> CacheStats:
        return self._cache.get_stats()

    def get_circuit_breaker_stats(self) -> CircuitBreakerStats:
        return self._breaker.get_stats()

    async def aclose(self) -> None:
        await self._fetcher.aclose()
        await self._doi_client.aclose()
        await self._isbn_client.aclose()
        await self._cache.aclose()


def create_scraper_service(settings: Settings, **overrides: Any) -> ScraperService:
    """Wire a ScraperService from settings; keyword overrides replace collaborators."""
    cache = overrides.pop("cache", None) or create_tiered_cache(
        CacheConfig(
            l1_max_items=settings.cache_l1_max_items,
            l1_ttl_ms=settings.cache_l1_ttl_ms,
            l2_ttl_ms=settings.cache_l2_ttl_ms,
            redis_url=settings.redis_url,
        )
    )
    breaker = overrides.pop("breaker", None) or create_circuit_breaker(
        BREAKER_NAME,
        CircuitBreakerConfig(
            failure_threshold=settings.circuit_failure_threshold,
            success_threshold=settings.circuit_success_threshold,
            timeout_ms=settings.circuit_timeout_ms,
            half_open_max_calls=settings.circuit_half_open_max_calls,
        ),
        on_state_change=_log_state_change,
    )
    fetcher = overrides.pop("fetcher", None) or HtmlFetcher(
        timeout_ms=settings.scrape_timeout_ms,
        user_agent=settings.scrape_user_agent,
        max_content_bytes=settings.scrape_max_content_bytes,
        health_check_url=settings.health_check_url,
        redirect_validator=overrides.get("url_validator", validate_public_http_url),
    )
    if overrides.get("doi_client") is None:
        overrides["doi_client"] = DoiClient(timeout_ms=settings.lookup_timeout_ms)
    if overrides.get("isbn_client") is None:
        overrides["isbn_client"] = IsbnClient(timeout_ms=settings.lookup_timeout_ms)
    return ScraperService(
        cache=cache,
        breaker=breaker,
        fetcher=fetcher,
        cache_ttl_ms=settings.scrape_cache_ttl_ms,
        **overrides,
    )
