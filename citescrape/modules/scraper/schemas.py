from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from citescrape.modules.circuit_breaker.schemas import CircuitState
from citescrape.modules.extractor.schemas import MetadataResult


class ScrapeRequest(BaseModel):
    url: str = Field(min_length=1)


class DoiRequest(BaseModel):
    doi: str = Field(min_length=1)


class IsbnRequest(BaseModel):
    isbn: str = Field(min_length=1)


class MetadataResponse(BaseModel):
    """Success envelope shared by the scrape, DOI and ISBN routes."""

    success: Literal[True] = True
    data: MetadataResult


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class HealthServices(_CamelModel):
    app: bool = True
    fetcher: bool


class HealthCache(_CamelModel):
    hits: int
    misses: int
    size: int
    hit_rate: str  # percentage with one decimal, e.g. "42.5%"


class HealthCircuitBreaker(_CamelModel):
    state: CircuitState
    calls: int
    failures: int
    successes: int


class HealthResponse(_CamelModel):
    status: Literal["healthy", "degraded"]
    timestamp: str
    services: HealthServices
    version: str
    uptime: int  # seconds since the app started
    cache: HealthCache
    circuit_breaker: HealthCircuitBreaker
