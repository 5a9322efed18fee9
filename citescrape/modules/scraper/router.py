import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request, Response

from citescrape.modules.scraper.schemas import (
    DoiRequest,
    HealthCache,
    HealthCircuitBreaker,
    HealthResponse,
    HealthServices,
    IsbnRequest,
    MetadataResponse,
    ScrapeRequest,
)
from citescrape.modules.scraper.service import ScraperService

APP_VERSION = "1.1.0"
DATA_CACHE_CONTROL = "private, max-age=3600"

router = APIRouter()
health_router = APIRouter()


def get_scraper_service(request: Request) -> ScraperService:
    return request.app.state.scraper_service


@router.post("/scrape", response_model=MetadataResponse, response_model_by_alias=True)
async def scrape(
    body: ScrapeRequest,
    response: Response,
    service: ScraperService = Depends(get_scraper_service),
):
    data = await service.scrape(body.url)
    response.headers["Cache-Control"] = DATA_CACHE_CONTROL
    return MetadataResponse(data=data)


@router.post("/doi", response_model=MetadataResponse, response_model_by_alias=True)
async def scrape_doi(
    body: DoiRequest,
    response: Response,
    service: ScraperService = Depends(get_scraper_service),
):
    data = await service.scrape_doi(body.doi)
    response.headers["Cache-Control"] = DATA_CACHE_CONTROL
    return MetadataResponse(data=data)


@router.post("/isbn", response_model=MetadataResponse, response_model_by_alias=True)
async def scrape_isbn(
    body: IsbnRequest,
    response: Response,
    service: ScraperService = Depends(get_scraper_service),
):
    data = await service.scrape_isbn(body.isbn)
    response.headers["Cache-Control"] = DATA_CACHE_CONTROL
    return MetadataResponse(data=data)


@health_router.get("/health", response_model=HealthResponse, response_model_by_alias=True)
async def health(
    request: Request,
    response: Response,
    service: ScraperService = Depends(get_scraper_service),
):
    fetcher_ok = await service.check_health()
    cache_stats = service.get_cache_stats()
    breaker_stats = service.get_circuit_breaker_stats()
    started_at = getattr(request.app.state, "started_at", time.time())

    response.headers["Cache-Control"] = "no-store"
    return HealthResponse(
        status="healthy" if fetcher_ok else "degraded",
        timestamp=datetime.now(timezone.utc).isoformat(),
        services=HealthServices(app=True, fetcher=fetcher_ok),
        version=APP_VERSION,
        uptime=int(time.time() - started_at),
        cache=HealthCache(
            hits=cache_stats.hits,
            misses=cache_stats.misses,
            size=cache_stats.size,
            hit_rate=f"{round(cache_stats.hit_rate * 1000) / 10}%",
        ),
        circuit_breaker=HealthCircuitBreaker(
            state=breaker_stats.state,
            calls=breaker_stats.total_calls,
            failures=breaker_stats.total_failures,
            successes=breaker_stats.total_successes,
        ),
    )
