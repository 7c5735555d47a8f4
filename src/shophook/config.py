"""Configuration management for Shophook."""

import logging
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# Feature flag code consulted before any delivery work for a tenant
WEBHOOK_FEATURE_CODE = "WEBHOOK_NOTIFICATIONS"


class Settings(BaseSettings):
    """Shophook configuration loaded from environment variables.

    All settings can be overridden via environment variables with
    the SHOPHOOK_ prefix. For example:
        SHOPHOOK_QDRANT_URL=http://localhost:6333
        SHOPHOOK_DELIVERY_WORKERS=8
        SHOPHOOK_WEBHOOKS_DISABLED_TENANTS='["tenant_a", "tenant_b"]'
    """

    model_config = SettingsConfigDict(
        env_prefix="SHOPHOOK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Environment
    env: Literal["development", "production", "test"] = Field(
        default="development",
        description="Environment: development, production, or test",
    )

    # Storage
    qdrant_url: str = Field(
        default="http://localhost:6333",
        description="Qdrant connection URL",
    )
    qdrant_api_key: str | None = Field(
        default=None,
        description="Qdrant API key (for cloud)",
    )
    collection_prefix: str = Field(
        default="shophook",
        description="Prefix for Qdrant collection names",
    )

    # Feature flags
    webhooks_enabled: bool = Field(
        default=True,
        description="Global switch for outbound webhook delivery",
    )
    webhooks_disabled_tenants: list[str] = Field(
        default_factory=list,
        description="Tenants for which webhook delivery is turned off",
    )

    # Dispatch worker pool
    delivery_workers: int = Field(
        default=4,
        ge=1,
        le=64,
        description="Number of concurrent delivery workers",
    )
    delivery_queue_size: int = Field(
        default=1000,
        ge=1,
        description="Maximum queued dispatch jobs before new ones are dropped",
    )

    # Retry scheduler
    retry_interval_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Period between retry scheduler runs",
    )
    retry_batch_size: int = Field(
        default=100,
        ge=1,
        le=1000,
        description="Maximum due retries processed per run",
    )
    retry_lease_seconds: int = Field(
        default=300,
        ge=1,
        description="How long a claimed retry stays reserved for one scheduler",
    )

    # Endpoint defaults
    default_max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Delivery attempts per event when an endpoint does not set one",
    )
    default_timeout_seconds: int = Field(
        default=30,
        ge=1,
        le=120,
        description="Per-attempt HTTP timeout when an endpoint does not set one",
    )

    # Housekeeping
    log_retention_days: int = Field(
        default=90,
        ge=1,
        description="Attempt logs older than this are eligible for purging",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_format: Literal["json", "text"] = Field(
        default="json",
        description="Log output format",
    )

    @model_validator(mode="after")
    def validate_lease_covers_timeout(self) -> "Settings":
        """Ensure a claimed retry cannot expire while its request is in flight.

        A lease shorter than the longest allowed request timeout would let a
        second scheduler claim a row whose attempt has not finished yet.
        """
        if self.retry_lease_seconds <= 120:
            raise ValueError(
                f"retry_lease_seconds ({self.retry_lease_seconds}) must exceed the "
                "maximum per-attempt timeout of 120 seconds."
            )
        return self

    @model_validator(mode="after")
    def warn_on_local_storage_in_production(self) -> "Settings":
        """Warn when production points at a localhost Qdrant."""
        if self.env == "production" and "localhost" in self.qdrant_url:
            logger.warning(
                "Production environment is using a localhost Qdrant URL: %s", self.qdrant_url
            )
        return self


# Global settings instance
settings = Settings()
