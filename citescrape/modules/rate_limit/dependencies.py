from fastapi import Request, Response

from citescrape.core.errors import ApiError, ErrorCode
from citescrape.modules.rate_limit.service import RateLimiter, client_ip_from_headers


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


async def enforce_rate_limit(request: Request, response: Response) -> None:
    """Router-level dependency: count the call and reject it with 429 once
    the client is over the limit for this path."""
    if request.method == "OPTIONS":
        return
    limiter = get_rate_limiter(request)
    fallback = request.client.host if request.client else None
    result = limiter.hit(client_ip_from_headers(request.headers, fallback), request.url.path)

    headers = result.to_headers()
    if not result.allowed:
        raise ApiError(
            status=429,
            code=ErrorCode.RATE_LIMITED,
            message="Too many requests. Please try again shortly.",
            retry_after=result.retry_after,
            headers=headers,
        )
    response.headers.update(headers)
