"""
Typed settings for the Vecna content pipeline.

Uses Pydantic Settings to load configuration from environment variables
with validation and type safety. A local .env file at the repository root
is honoured for development; in containers the variables are passed in
directly.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .validate_env import validate_env


class PipelineConfig(BaseModel):
    # Suggestions at or above this confidence are auto-accepted by the taxonomy step
    taxonomy_confidence_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    parse_timeout_seconds: int = 120
    generate_timeout_seconds: int = 300
    # How long a parsing/generating write is trusted before reconciliation demotes it
    processing_lease_seconds: int = 900
    default_quality_tier: str = "sonnet"
    transport_retry_attempts: int = 2
    transport_retry_wait_seconds: float = 2.0
    # Dependent games wait this long for the base game's context rebuild
    family_context_wait_seconds: float = 30.0


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings are validated by Pydantic. Nested pipeline tuning lives
    in PipelineConfig and can be overridden with top-level variables such
    as TAXONOMY_CONFIDENCE_THRESHOLD.
    """
    model_config = SettingsConfigDict(
        env_file=Path(__file__).resolve().parents[1] / ".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        extra="allow",
    )

    database_url: str = Field(..., alias="DATABASE_URL")

    @field_validator("database_url", mode="before")
    @classmethod
    def convert_async_to_sync(cls, v: str) -> str:
        """Workers use synchronous SQLAlchemy, so swap an asyncpg driver for psycopg."""
        if isinstance(v, str) and "asyncpg" in v:
            return v.replace("asyncpg", "psycopg")
        return v

    redis_url: str = Field("redis://localhost:6379/3", alias="REDIS_URL")
    environment: str = Field("development", alias="ENVIRONMENT")
    log_level: str | None = Field(None, alias="LOG_LEVEL")
    sql_echo: bool = Field(False, alias="SQL_ECHO")
    content_api_url: str = Field("http://localhost:3399", alias="CONTENT_API_URL")
    api_key: str | None = Field(None, alias="API_KEY")
    taxonomy_confidence_threshold: float | None = Field(None, alias="TAXONOMY_CONFIDENCE_THRESHOLD")
    processing_lease_seconds: int | None = Field(None, alias="PROCESSING_LEASE_SECONDS")
    pipeline_config: PipelineConfig = Field(default_factory=PipelineConfig)

    @model_validator(mode="after")
    def _apply_pipeline_overrides(self) -> Settings:
        """Allow flat env vars to override the nested pipeline config."""
        if self.taxonomy_confidence_threshold is not None:
            self.pipeline_config.taxonomy_confidence_threshold = self.taxonomy_confidence_threshold
        if self.processing_lease_seconds is not None:
            self.pipeline_config.processing_lease_seconds = self.processing_lease_seconds
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Return cached settings instance.

    Settings are cached to avoid re-parsing environment variables
    on every access.
    """
    validate_env()
    return Settings()


settings = get_settings()
