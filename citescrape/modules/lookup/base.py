import logging

import httpx

from citescrape.modules.fetcher.schemas import FetchError, FetchErrorKind

logger = logging.getLogger(__name__)

DEFAULT_LOOKUP_TIMEOUT_MS = 15_000
REGISTRY_USER_AGENT = "CiteGenerator/1.0 (https://citegenerator.org; mailto:support@citegenerator.org)"

DESCRIPTION_MAX_CHARS = 500


class RegistryClient:
    """Shared HTTP plumbing for JSON registry lookups."""

    registry_name = "registry"

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout_ms: int = DEFAULT_LOOKUP_TIMEOUT_MS,
    ) -> None:
        self._timeout_ms = timeout_ms
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            headers={"Accept": "application/json", "User-Agent": REGISTRY_USER_AGENT},
            timeout=httpx.Timeout(timeout_ms / 1000),
            follow_redirects=True,
        )

    async def _get_json(self, url: str, identifier: str, not_found_message: str) -> object:
        try:
            response = await self._client.get(url)
        except httpx.TimeoutException as exc:
            raise FetchError(
                FetchErrorKind.TIMEOUT, f"{self.registry_name} request timed out", identifier
            ) from exc
        except httpx.HTTPError as exc:
            raise FetchError(
                FetchErrorKind.CONNECTION_FAILED,
                f"{self.registry_name} unreachable: {exc}",
                identifier,
            ) from exc

        if response.status_code == 404:
            raise FetchError(FetchErrorKind.NOT_FOUND, not_found_message, identifier)
        if response.status_code >= 400:
            raise FetchError(
                FetchErrorKind.HTTP_ERROR,
                f"{self.registry_name} API error: {response.status_code}",
                identifier,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise FetchError(
                FetchErrorKind.EXTRACTION_FAILED,
                f"{self.registry_name} returned invalid JSON",
                identifier,
            ) from exc

    async def aclose(self) -> None:
        if self._owns_client and not self._client.is_closed:
            await self._client.aclose()
