from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (compatible; CiteGenerator/1.0; +https://citegenerator.org)"
)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    app_host: str = "0.0.0.0"
    app_port: int = 8000
    log_level: str = "INFO"

    # Cache
    scrape_cache_ttl_ms: int = 3_600_000
    cache_l1_max_items: int = 100
    cache_l1_ttl_ms: int = 300_000
    cache_l2_ttl_ms: int = 3_600_000
    redis_url: str | None = None

    # Circuit breaker
    circuit_failure_threshold: int = 5
    circuit_success_threshold: int = 2
    circuit_timeout_ms: int = 60_000
    circuit_half_open_max_calls: int = 3

    # Outbound HTTP
    scrape_timeout_ms: int = 30_000
    lookup_timeout_ms: int = 15_000
    scrape_user_agent: str = DEFAULT_USER_AGENT
    scrape_max_content_bytes: int = 5 * 1024 * 1024
    health_check_url: str = ""

    # Rate limiting (per client and path, fixed window)
    rate_limit_window_ms: int = 60_000
    rate_limit_max_requests: int = 30
    rate_limit_max_buckets: int = 10_000

    @field_validator(
        "scrape_cache_ttl_ms",
        "cache_l1_max_items",
        "cache_l1_ttl_ms",
        "cache_l2_ttl_ms",
        "circuit_failure_threshold",
        "circuit_success_threshold",
        "circuit_timeout_ms",
        "circuit_half_open_max_calls",
        "scrape_timeout_ms",
        "lookup_timeout_ms",
        "scrape_max_content_bytes",
        "rate_limit_window_ms",
        "rate_limit_max_requests",
        "rate_limit_max_buckets",
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be > 0")
        return v

    @field_validator("redis_url")
    @classmethod
    def blank_redis_url_is_unset(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            return None
        return v


def load_settings(**overrides: object) -> Settings:
    """Build settings from the environment with explicit field overrides."""
    return Settings(**overrides)  # type: ignore[arg-type]


settings = Settings()
