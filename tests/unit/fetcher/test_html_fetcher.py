"""Tests for modules/fetcher/service.py: status and transport error classification."""

import httpx
import pytest

from citescrape.modules.fetcher.schemas import FetchError, FetchErrorKind
from citescrape.modules.fetcher.service import HtmlFetcher
from citescrape.modules.validation.service import validate_public_http_url

URL = "https://example.com/article"


def make_fetcher(handler, **kwargs) -> HtmlFetcher:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), follow_redirects=True)
    return HtmlFetcher(client=client, **kwargs)


def html_response(body: str = "<html><title>ok</title></html>", status: int = 200, **headers):
    return httpx.Response(
        status, content=body.encode(), headers={"content-type": "text/html; charset=utf-8", **headers}
    )


class TestFetchHtml:
    @pytest.mark.asyncio
    async def test_returns_page(self):
        fetcher = make_fetcher(lambda request: html_response())
        page = await fetcher.fetch_html(URL)
        assert page.html == "<html><title>ok</title></html>"
        assert page.final_url == URL
        assert page.status_code == 200

    @pytest.mark.asyncio
    async def test_follows_redirects(self):
        def handler(request):
            if request.url.path == "/old":
                return httpx.Response(301, headers={"location": URL})
            return html_response()

        page = await make_fetcher(handler).fetch_html("https://example.com/old")
        assert page.final_url == URL

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [404, 410])
    async def test_not_found(self, status):
        fetcher = make_fetcher(lambda request: html_response(status=status))
        with pytest.raises(FetchError) as excinfo:
            await fetcher.fetch_html(URL)
        assert excinfo.value.kind is FetchErrorKind.NOT_FOUND
        assert excinfo.value.url == URL

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [403, 500, 503])
    async def test_other_http_errors(self, status):
        fetcher = make_fetcher(lambda request: html_response(status=status))
        with pytest.raises(FetchError) as excinfo:
            await fetcher.fetch_html(URL)
        assert excinfo.value.kind is FetchErrorKind.HTTP_ERROR

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(FetchError) as excinfo:
            await make_fetcher(handler, timeout_ms=30_000).fetch_html(URL)
        assert excinfo.value.kind is FetchErrorKind.TIMEOUT
        assert "30 seconds" in excinfo.value.message

    @pytest.mark.asyncio
    async def test_connection_failure(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(FetchError) as excinfo:
            await make_fetcher(handler).fetch_html(URL)
        assert excinfo.value.kind is FetchErrorKind.CONNECTION_FAILED

    @pytest.mark.asyncio
    async def test_unsupported_content_type(self):
        fetcher = make_fetcher(
            lambda request: httpx.Response(200, content=b"%PDF", headers={"content-type": "application/pdf"})
        )
        with pytest.raises(FetchError) as excinfo:
            await fetcher.fetch_html(URL)
        assert excinfo.value.kind is FetchErrorKind.EXTRACTION_FAILED

    @pytest.mark.asyncio
    async def test_oversized_body(self):
        fetcher = make_fetcher(lambda request: html_response("x" * 100), max_content_bytes=10)
        with pytest.raises(FetchError) as excinfo:
            await fetcher.fetch_html(URL)
        assert excinfo.value.kind is FetchErrorKind.HTTP_ERROR
        assert "too large" in excinfo.value.message


class TestDecoding:
    @pytest.mark.asyncio
    async def test_meta_charset_used_when_header_has_none(self):
        body = '<html><head><meta charset="iso-8859-1"><title>Café Müller</title></head></html>'
        fetcher = make_fetcher(
            lambda request: httpx.Response(
                200, content=body.encode("latin-1"), headers={"content-type": "text/html"}
            )
        )
        page = await fetcher.fetch_html(URL)
        assert "Café Müller" in page.html

    @pytest.mark.asyncio
    async def test_header_charset_wins(self):
        fetcher = make_fetcher(
            lambda request: httpx.Response(
                200,
                content="<title>Zürich</title>".encode("latin-1"),
                headers={"content-type": "text/html; charset=ISO-8859-1"},
            )
        )
        assert (await fetcher.fetch_html(URL)).html == "<title>Zürich</title>"

    @pytest.mark.asyncio
    async def test_undeclared_utf8(self):
        fetcher = make_fetcher(
            lambda request: httpx.Response(
                200, content="<title>Ærø og Åbenrå</title>".encode(), headers={"content-type": "text/html"}
            )
        )
        assert "Ærø og Åbenrå" in (await fetcher.fetch_html(URL)).html


async def public_resolver(hostname):
    return ["93.184.216.34"]


async def public_only(url):
    return await validate_public_http_url(url, resolver=public_resolver)


class TestRedirectGuard:
    @pytest.mark.asyncio
    async def test_redirect_to_private_address_refused(self):
        requested = []

        def handler(request):
            requested.append(str(request.url))
            if request.url.host == "example.com":
                return httpx.Response(302, headers={"location": "http://10.0.0.1/admin"})
            return html_response()

        fetcher = make_fetcher(handler, redirect_validator=public_only)
        with pytest.raises(FetchError) as excinfo:
            await fetcher.fetch_html(URL)
        assert excinfo.value.kind is FetchErrorKind.INVALID_URL
        assert excinfo.value.message == "Redirect to blocked address"
        assert requested == [URL]

    @pytest.mark.asyncio
    async def test_relative_redirect_to_public_host_followed(self):
        def handler(request):
            if request.url.path == "/old":
                return httpx.Response(301, headers={"location": "/article"})
            return html_response()

        fetcher = make_fetcher(handler, redirect_validator=public_only)
        page = await fetcher.fetch_html("https://example.com/old")
        assert page.final_url == URL

    @pytest.mark.asyncio
    async def test_each_hop_checked(self):
        checked = []

        async def record(url):
            checked.append(url)
            return url

        def handler(request):
            hops = {"/a": "/b", "/b": "/article"}
            if request.url.path in hops:
                return httpx.Response(302, headers={"location": hops[request.url.path]})
            return html_response()

        await make_fetcher(handler, redirect_validator=record).fetch_html("https://example.com/a")
        assert checked == ["https://example.com/b", URL]


class TestHealth:
    @pytest.mark.asyncio
    async def test_healthy_without_probe_url(self):
        assert await make_fetcher(lambda request: html_response()).check_health() is True

    @pytest.mark.asyncio
    async def test_probe_failure_is_unhealthy(self):
        def handler(request):
            raise httpx.ConnectError("down", request=request)

        fetcher = make_fetcher(handler, health_check_url="https://probe.example.com")
        assert await fetcher.check_health() is False

    @pytest.mark.asyncio
    async def test_closed_client_is_unhealthy(self):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: html_response()))
        fetcher = HtmlFetcher(client=client)
        await client.aclose()
        assert await fetcher.check_health() is False

    @pytest.mark.asyncio
    async def test_aclose_leaves_injected_client_open(self):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: html_response()))
        await HtmlFetcher(client=client).aclose()
        assert not client.is_closed
        await client.aclose()
