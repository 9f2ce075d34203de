"""Tests for application settings."""

import pytest
from pydantic import ValidationError

from libs.common.settings import Settings, get_settings


class TestSettings:
    """Test settings configuration."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("ATHLETE_AGENT_APP_ENV", raising=False)
        settings = Settings()

        assert settings.app_env == "development"
        assert settings.retrieval_confidence_threshold == 0.5
        assert settings.max_quality_retries == 1
        assert settings.quality_pass_threshold == 0.6
        assert settings.summary_cache_capacity == 1000
        assert settings.summary_ttl_seconds == 3600
        assert settings.feature_quality_checker is True

    def test_prefixed_environment(self, monkeypatch):
        monkeypatch.setenv("ATHLETE_AGENT_MAX_QUALITY_RETRIES", "3")
        monkeypatch.setenv("ATHLETE_AGENT_FEATURE_EMOTIONAL_SUPPORT", "false")

        settings = Settings()

        assert settings.max_quality_retries == 3
        assert settings.feature_emotional_support is False

    def test_provider_keys_without_prefix(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        monkeypatch.setenv("REDIS_URL", "redis://localhost:6379/0")

        settings = Settings()

        assert settings.openai_api_key == "sk-test"
        assert settings.redis_url == "redis://localhost:6379/0"

    def test_cors_origins_parsing(self):
        settings = Settings(cors_origins="http://localhost:3000, http://localhost:8080,")
        assert settings.cors_origins == ["http://localhost:3000", "http://localhost:8080"]

    def test_zero_capacity_rejected(self, monkeypatch):
        monkeypatch.setenv("ATHLETE_AGENT_SUMMARY_CACHE_CAPACITY", "0")
        with pytest.raises(ValidationError):
            Settings()

    def test_negative_retries_rejected(self):
        with pytest.raises(ValidationError):
            Settings(max_quality_retries=-1)

    def test_test_environment(self):
        # The autouse fixture sets ATHLETE_AGENT_APP_ENV=test
        settings = get_settings()
        assert settings.is_test
        assert not settings.is_development
        assert get_settings() is settings
