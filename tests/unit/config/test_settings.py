"""Tests for config/settings.py: defaults, env overrides and validation."""

import pytest
from pydantic import ValidationError

from citescrape.config.settings import Settings, load_settings


class TestSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("REDIS_URL", raising=False)
        settings = Settings(_env_file=None)
        assert settings.circuit_failure_threshold == 5
        assert settings.circuit_success_threshold == 2
        assert settings.circuit_timeout_ms == 60_000
        assert settings.circuit_half_open_max_calls == 3
        assert settings.scrape_cache_ttl_ms == 3_600_000
        assert settings.redis_url is None
        assert settings.rate_limit_window_ms == 60_000
        assert settings.rate_limit_max_requests == 30
        assert settings.rate_limit_max_buckets == 10_000

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("CIRCUIT_FAILURE_THRESHOLD", "9")
        monkeypatch.setenv("REDIS_URL", "redis://cache:6379/0")
        settings = Settings(_env_file=None)
        assert settings.circuit_failure_threshold == 9
        assert settings.redis_url == "redis://cache:6379/0"

    def test_blank_redis_url_disables_secondary_tier(self):
        assert load_settings(redis_url="   ").redis_url is None

    @pytest.mark.parametrize(
        "field",
        ["scrape_cache_ttl_ms", "circuit_failure_threshold", "cache_l1_max_items", "rate_limit_max_requests"],
    )
    def test_non_positive_rejected(self, field):
        with pytest.raises(ValidationError):
            load_settings(**{field: 0})
