import logging
from collections.abc import Awaitable, Callable

import httpx
from bs4.dammit import UnicodeDammit

from citescrape.config.settings import DEFAULT_USER_AGENT
from citescrape.modules.fetcher.schemas import FetchedPage, FetchError, FetchErrorKind
from citescrape.modules.validation.service import UrlValidationError

logger = logging.getLogger(__name__)

RedirectValidator = Callable[[str], Awaitable[str]]

DEFAULT_TIMEOUT_MS = 30_000
DEFAULT_MAX_CONTENT_BYTES = 5 * 1024 * 1024
MAX_REDIRECTS = 5

_HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml", "application/xml", "text/xml", "text/plain")


def _default_headers(user_agent: str) -> dict[str, str]:
    return {
        "User-Agent": user_agent,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.9",
    }


def _decode_body(body: bytes, charset: str | None) -> str:
    """Header charset first, then BOM / <meta charset> sniffing."""
    if charset:
        try:
            return body.decode(charset, errors="replace")
        except LookupError:
            logger.debug("Unknown charset %r in Content-Type, sniffing instead", charset)
    markup = UnicodeDammit(body, is_html=True).unicode_markup
    if markup is None:
        return body.decode("utf-8", errors="replace")
    return markup


def _format_seconds(timeout_ms: int) -> str:
    seconds = timeout_ms / 1000
    return f"{seconds:g}"


class HtmlFetcher:
    """Downloads third-party pages for metadata extraction.

    Every failure leaves as a FetchError whose kind the caller can switch on;
    no httpx exception escapes.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        user_agent: str = DEFAULT_USER_AGENT,
        max_content_bytes: int = DEFAULT_MAX_CONTENT_BYTES,
        health_check_url: str = "",
        redirect_validator: RedirectValidator | None = None,
    ) -> None:
        self._timeout_ms = timeout_ms
        self._max_content_bytes = max_content_bytes
        self._health_check_url = health_check_url
        self._redirect_validator = redirect_validator
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            headers=_default_headers(user_agent),
            timeout=httpx.Timeout(timeout_ms / 1000),
            follow_redirects=True,
            max_redirects=MAX_REDIRECTS,
        )
        if redirect_validator is not None:
            hooks = self._client.event_hooks
            hooks["response"] = [*hooks.get("response", []), self._check_redirect_target]
            self._client.event_hooks = hooks

    async def _check_redirect_target(self, response: httpx.Response) -> None:
        """Runs on every hop, so each Location is vetted before it is followed."""
        if not response.has_redirect_location:
            return
        target = response.url.join(response.headers["location"])
        await self._redirect_validator(str(target))

    # ── HTTP layer ──────────────────────────────────────────────

    async def fetch_html(self, url: str) -> FetchedPage:
        try:
            async with self._client.stream("GET", url) as response:
                if response.status_code in (404, 410):
                    raise FetchError(FetchErrorKind.NOT_FOUND, "Page not found", url)
                if response.status_code >= 400:
                    raise FetchError(
                        FetchErrorKind.HTTP_ERROR,
                        f"Upstream responded with HTTP {response.status_code}",
                        url,
                    )
                self._check_content_type(response, url)
                body = await self._read_limited(response, url)
                html = _decode_body(body, response.charset_encoding)
                final_url = str(response.url)
                status_code = response.status_code
        except FetchError:
            raise
        except UrlValidationError as exc:
            logger.warning("Refused redirect from %s: %s", url, exc)
            raise FetchError(FetchErrorKind.INVALID_URL, "Redirect to blocked address", url) from exc
        except httpx.TimeoutException as exc:
            raise FetchError(
                FetchErrorKind.TIMEOUT,
                f"Connection timed out after {_format_seconds(self._timeout_ms)} seconds",
                url,
            ) from exc
        except httpx.InvalidURL as exc:
            raise FetchError(FetchErrorKind.INVALID_URL, str(exc) or "Invalid URL", url) from exc
        except httpx.UnsupportedProtocol as exc:
            raise FetchError(FetchErrorKind.INVALID_URL, str(exc) or "Unsupported protocol", url) from exc
        except httpx.TooManyRedirects as exc:
            raise FetchError(FetchErrorKind.HTTP_ERROR, "Too many redirects", url) from exc
        except httpx.HTTPError as exc:
            raise FetchError(
                FetchErrorKind.CONNECTION_FAILED, str(exc) or type(exc).__name__, url
            ) from exc

        if final_url != url:
            logger.info("Followed redirect %s -> %s", url, final_url)
        logger.debug("Fetched %s (%d bytes)", final_url, len(body))
        return FetchedPage(html=html, final_url=final_url, status_code=status_code)

    @staticmethod
    def _check_content_type(response: httpx.Response, url: str) -> None:
        content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
        if content_type and not content_type.startswith(_HTML_CONTENT_TYPES):
            raise FetchError(
                FetchErrorKind.EXTRACTION_FAILED,
                f"Unsupported content type: {content_type}",
                url,
            )

    async def _read_limited(self, response: httpx.Response, url: str) -> bytes:
        declared = response.headers.get("content-length")
        if declared and declared.isdigit() and int(declared) > self._max_content_bytes:
            raise FetchError(FetchErrorKind.HTTP_ERROR, "Response too large", url)

        chunks: list[bytes] = []
        received = 0
        async for chunk in response.aiter_bytes():
            received += len(chunk)
            if received > self._max_content_bytes:
                raise FetchError(FetchErrorKind.HTTP_ERROR, "Response too large", url)
            chunks.append(chunk)
        return b"".join(chunks)

    # ── Health ──────────────────────────────────────────────────

    async def check_health(self) -> bool:
        if self._client.is_closed:
            return False
        if not self._health_check_url:
            return True
        try:
            response = await self._client.head(self._health_check_url)
        except httpx.HTTPError as exc:
            logger.warning("Fetcher health probe failed: %s", exc)
            return False
        return response.status_code < 500

    async def aclose(self) -> None:
        if self._owns_client and not self._client.is_closed:
            await self._client.aclose()
