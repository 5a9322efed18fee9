import asyncio
import ipaddress
import logging
import socket
from collections.abc import Awaitable, Callable
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

logger = logging.getLogger(__name__)

Resolver = Callable[[str], Awaitable[list[str]]]

MAX_URL_LENGTH = 2048
ALLOWED_SCHEMES = ("http", "https")
DEFAULT_PORTS = {"http": 80, "https": 443}

BLOCKED_HOSTS = frozenset({
    "localhost",
    "0.0.0.0",
    "metadata.google.internal",
    "metadata.azure.internal",
    "169.254.169.254",
})

TRACKING_PARAMS = frozenset({
    "utm_source",
    "utm_medium",
    "utm_campaign",
    "utm_term",
    "utm_content",
    "gclid",
    "fbclid",
    "mc_cid",
    "mc_eid",
})


class UrlValidationError(Exception):
    """Input URL rejected before any network or cache work."""

    BLOCKING_CODES = frozenset({"BLOCKED_HOST", "PRIVATE_IP", "SSRF_DETECTED"})

    def __init__(self, message: str, code: str, field: str = "url") -> None:
        super().__init__(message)
        self.code = code
        self.field = field

    @property
    def is_blocked(self) -> bool:
        return self.code in self.BLOCKING_CODES


def is_private_address(address: str) -> bool:
    try:
        ip = ipaddress.ip_address(address)
    except ValueError:
        return False
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    return (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_reserved
        or ip.is_multicast
        or ip.is_unspecified
    )


async def _resolve_all(hostname: str) -> list[str]:
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(hostname, None, type=socket.SOCK_STREAM)
    return [info[4][0] for info in infos]


def normalize_url_for_citation(url: str) -> str:
    """Canonical form: lowercase scheme/host, no default port, no fragment,
    no tracking parameters."""
    parts = urlsplit(url)
    scheme = parts.scheme.lower()
    host = (parts.hostname or "").encode("idna").decode("ascii").lower()
    if ":" in host:
        host = f"[{host}]"
    netloc = host
    if parts.port is not None and parts.port != DEFAULT_PORTS.get(scheme):
        netloc = f"{host}:{parts.port}"
    query = urlencode(
        [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k not in TRACKING_PARAMS]
    )
    return urlunsplit((scheme, netloc, parts.path or "/", query, ""))


async def validate_public_http_url(url_string: str, resolver: Resolver | None = None) -> str:
    """Reject non-HTTP(S), malformed and internal-network URLs.

    Hostnames are resolved so a public name pointing at a private address is
    refused too. Returns the normalised URL.
    """
    if len(url_string) > MAX_URL_LENGTH:
        raise UrlValidationError("URL too long", "INPUT_TOO_LONG")

    try:
        parts = urlsplit(url_string.strip())
        hostname = parts.hostname
        _ = parts.port
    except ValueError as exc:
        raise UrlValidationError("Invalid URL", "INVALID_URL") from exc

    if parts.scheme.lower() not in ALLOWED_SCHEMES:
        if not parts.scheme:
            raise UrlValidationError("Invalid URL", "INVALID_URL")
        raise UrlValidationError("Blocked protocol", "BLOCKED_PROTOCOL")
    if not hostname:
        raise UrlValidationError("Invalid URL", "INVALID_URL")

    hostname = hostname.lower()
    if hostname in BLOCKED_HOSTS:
        raise UrlValidationError("Blocked host", "BLOCKED_HOST")

    try:
        normalized = normalize_url_for_citation(url_string.strip())
    except UnicodeError as exc:
        raise UrlValidationError("Invalid URL", "INVALID_URL") from exc

    try:
        ipaddress.ip_address(hostname)
    except ValueError:
        pass
    else:
        if is_private_address(hostname):
            raise UrlValidationError("Private IP not allowed", "PRIVATE_IP")
        return normalized

    resolve = resolver or _resolve_all
    try:
        addresses = await resolve(hostname)
    except (OSError, UnicodeError) as exc:
        raise UrlValidationError("Host could not be resolved", "INVALID_URL") from exc

    for address in addresses:
        if is_private_address(address):
            logger.warning("Blocked %s: resolves to internal address %s", hostname, address)
            raise UrlValidationError("SSRF detected", "SSRF_DETECTED")

    return normalized
