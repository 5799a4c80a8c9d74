from typing import Literal

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Environment mode: dev or prod
    ENV: Literal["dev", "prod"] = "dev"

    # Relational store (snapshots, aggregates, health rows)
    DATABASE_URL: str | None = None

    # Shared secret for scheduler-triggered sync routes
    AGGREGATOR_SECRET: str | None = None

    # Durable KV cache (Upstash / Vercel KV REST API)
    KV_REST_API_URL: str | None = Field(
        default=None,
        validation_alias=AliasChoices("KV_REST_API_URL", "UPSTASH_REDIS_REST_URL"),
    )
    KV_REST_API_TOKEN: str | None = Field(
        default=None,
        validation_alias=AliasChoices("KV_REST_API_TOKEN", "UPSTASH_REDIS_REST_TOKEN"),
    )
    DISABLE_KV: bool = False

    # Upstream base URL overrides
    SUMCAP_API_BASE: str = "https://api-plasma.sumcap.xyz/api"
    PENDLE_API_BASE: str = "https://api-v2.pendle.finance/core"

    HTTP_TIMEOUT_SECONDS: float = 15.0

    # Logging
    LOG_LEVEL: str = "INFO"
    SLACK_WEBHOOK_URL: str | None = None

    # In-process snapshot loop (normally the sync route is hit by an external cron)
    SYNC_ENABLED: bool = False
    SYNC_INTERVAL_SECONDS: int = 60 * 60

    # Docs Configuration
    DOCS_ENABLED: bool | None = None  # Override docs setting (None = auto based on ENV)

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",  # ignore unrelated keys in local .env
        populate_by_name=True,
    )

    @field_validator("SUMCAP_API_BASE", "PENDLE_API_BASE")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENV == "prod"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENV == "dev"

    @property
    def debug_enabled(self) -> bool:
        """Debug mode is only enabled in development."""
        return self.is_development

    @property
    def database_configured(self) -> bool:
        return bool(self.DATABASE_URL)

    @property
    def kv_configured(self) -> bool:
        """Durable KV needs both credentials and must not be switched off."""
        if self.DISABLE_KV:
            return False
        return bool(self.KV_REST_API_URL and self.KV_REST_API_TOKEN)

    @property
    def docs_enabled(self) -> bool:
        """Swagger/ReDoc docs enabled based on environment or override."""
        if self.DOCS_ENABLED is not None:
            return self.DOCS_ENABLED
        return self.is_development


settings = Settings()
