import logging
import time
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from citescrape.config.logging import setup_logging
from citescrape.config.settings import Settings, settings
from citescrape.core.errors import ApiError, ErrorCode, bad_request, to_error_response
from citescrape.modules.rate_limit.dependencies import enforce_rate_limit
from citescrape.modules.rate_limit.service import RateLimiter, create_rate_limiter
from citescrape.modules.scraper.router import APP_VERSION, health_router
from citescrape.modules.scraper.router import router as scraper_router
from citescrape.modules.scraper.service import create_scraper_service

logger = logging.getLogger(__name__)


def _error_json(error: ApiError) -> JSONResponse:
    headers = {**error.headers, "Cache-Control": "no-store"}
    if error.retry_after is not None:
        headers["Retry-After"] = str(error.retry_after)
    return JSONResponse(
        status_code=error.status,
        content=to_error_response(error).model_dump(mode="json", exclude_none=True),
        headers=headers,
    )


def create_app(
    app_settings: Settings | None = None,
    rate_limiter: RateLimiter | None = None,
    **service_overrides,
) -> FastAPI:
    """Build the API; ``service_overrides`` replace ScraperService collaborators."""
    app_settings = app_settings or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(app_settings.log_level)
        app.state.scraper_service = create_scraper_service(app_settings, **service_overrides)
        app.state.rate_limiter = rate_limiter or create_rate_limiter(
            window_ms=app_settings.rate_limit_window_ms,
            max_requests=app_settings.rate_limit_max_requests,
            max_buckets=app_settings.rate_limit_max_buckets,
        )
        app.state.started_at = time.time()
        logger.info(
            "Scraper service ready (redis=%s)", "on" if app_settings.redis_url else "off"
        )
        yield
        await app.state.scraper_service.aclose()
        logger.info("Scraper service stopped")

    app = FastAPI(title="Citation Scraper", version=APP_VERSION, lifespan=lifespan)

    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError):
        return _error_json(exc)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return _error_json(bad_request("Invalid request body"))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error_json(
            ApiError(status=500, code=ErrorCode.INTERNAL_ERROR, message="Internal server error")
        )

    rate_limited = [Depends(enforce_rate_limit)]
    app.include_router(scraper_router, prefix="/api", tags=["scraper"], dependencies=rate_limited)
    app.include_router(health_router, prefix="/api", tags=["health"], dependencies=rate_limited)
    # unthrottled alias for load balancer probes
    app.include_router(health_router, include_in_schema=False)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("citescrape.main:app", host=settings.app_host, port=settings.app_port)
