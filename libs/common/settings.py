"""Application settings for the athlete support agent."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration, read from ATHLETE_AGENT_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="ATHLETE_AGENT_",
        env_file=None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Core application settings
    app_env: Literal["development", "staging", "production", "test"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    debug: bool = False

    # CORS - use string to avoid JSON parsing issues
    cors_origins_str: str = Field(default="http://localhost:3000", alias="cors_origins")

    @property
    def cors_origins(self) -> list[str]:
        """Parse CORS origins from string."""
        return [origin.strip() for origin in self.cors_origins_str.split(",") if origin.strip()]

    # Provider credentials live outside the prefix, matching the provider SDKs
    openai_api_key: str | None = Field(
        default=None, validation_alias=AliasChoices("OPENAI_API_KEY", "ATHLETE_AGENT_OPENAI_API_KEY")
    )
    tavily_api_key: str | None = Field(
        default=None, validation_alias=AliasChoices("TAVILY_API_KEY", "ATHLETE_AGENT_TAVILY_API_KEY")
    )

    # Models
    classifier_model: str = "gpt-4o-mini"
    synthesis_model: str = "gpt-4o"
    embedding_model: str = "text-embedding-3-small"
    synthesis_temperature: float = 0.1
    synthesis_max_tokens: int = 2048

    # Pipeline thresholds
    retrieval_confidence_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    retrieval_top_k: int = 10
    retrieval_broaden_top_k: int = 20
    # Persisted InMemoryVectorStore (``InMemoryVectorStore.dump``) loaded at startup
    knowledge_index_path: str | None = None
    max_quality_retries: int = Field(default=1, ge=0)
    quality_pass_threshold: float = Field(default=0.6, ge=0.0, le=1.0)
    max_search_results: int = 5
    max_research_queries: int = 3
    conversation_max_turns: int = 5
    conversation_max_message_chars: int = 500
    transient_retry_delay_seconds: float = 1.0

    # Conversation memory
    summary_ttl_seconds: int = 3600
    summary_cache_capacity: int = 1000
    summary_store: Literal["memory", "redis"] = "memory"
    redis_url: str | None = Field(
        default=None, validation_alias=AliasChoices("REDIS_URL", "ATHLETE_AGENT_REDIS_URL")
    )

    # Feature flags
    feature_quality_checker: bool = True
    feature_conversation_memory: bool = True
    feature_emotional_support: bool = True

    @field_validator("summary_cache_capacity")
    @classmethod
    def validate_capacity(cls, v: int) -> int:
        """A cache must hold at least one entry."""
        if v < 1:
            raise ValueError("summary_cache_capacity must be at least 1")
        return v

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def is_test(self) -> bool:
        """Check if running under the test suite."""
        return self.app_env == "test"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
