from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """
    Application-level settings for the brokerage API.

    This is separate from brokerage.db.config.Settings, which focuses on the database layer.
    """

    # FastAPI metadata
    APP_NAME: str = Field(default="Brokerage API")
    APP_DESCRIPTION: str = Field(
        default=(
            "Commission and billing engine for a multi-tenant real-estate brokerage platform. "
            "Closes transactions, splits commissions and bills organizations for platform royalties."
        )
    )
    APP_VERSION: str = Field(default="0.1.0")

    # CORS
    CORS_ORIGINS: List[str] = Field(
        default_factory=lambda: ["*"],
        description="Comma-separated list or JSON array of allowed origins. Default: *",
    )
    CORS_ALLOW_CREDENTIALS: bool = Field(default=True)
    CORS_ALLOW_METHODS: List[str] = Field(default_factory=lambda: ["*"])
    CORS_ALLOW_HEADERS: List[str] = Field(default_factory=lambda: ["*"])

    # Startup behavior
    RUN_MIGRATIONS_ON_STARTUP: bool = Field(
        default=True,
        description="If true, run Alembic migrations (upgrade head) at app startup.",
    )
    AUTO_SEED: bool = Field(
        default=False,
        description="If true, seed a demo platform admin, brokerage and agent after migrations.",
    )

    # Identity tokens are issued upstream; we only verify them.
    JWT_SECRET_KEY: str = Field(default="change-me", description="Shared secret used to verify bearer tokens")
    JWT_ALGORITHM: str = Field(default="HS256")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=60)

    # Commission defaults
    DEFAULT_COMMISSION_PERCENTAGE: float = Field(
        default=3.0, ge=0, le=100, description="Commission % applied when a closing omits it"
    )
    DEFAULT_SPLIT_PERCENTAGE: float = Field(
        default=45.0, ge=0, le=100, description="Agent split % when neither request nor profile sets one"
    )

    # Billing / dunning
    ROYALTY_FIRST_DUE_DAY: int = Field(
        default=10, ge=1, le=28, description="Day of the month after the period when royalty is due"
    )
    ROYALTY_SECOND_DUE_DAY: int = Field(
        default=20, ge=1, le=28, description="Escalation day after which the late surcharge applies"
    )
    LATE_SURCHARGE_PERCENTAGE: float = Field(
        default=10.0, ge=0, le=100, description="Surcharge on original_amount once past the second due date"
    )
    BILLING_LIST_LIMIT: int = Field(
        default=100, ge=1, le=1000, description="Row cap for the admin-wide billing record listing"
    )

    # Monthly closing
    CLOSING_MAX_ATTEMPTS: int = Field(default=3, ge=1, description="Attempts per organization on retryable errors")
    CLOSING_RETRY_BACKOFF_SECONDS: float = Field(default=0.5, ge=0)
    CLOSING_SCHEDULE_ENABLED: bool = Field(
        default=False, description="If true, run the monthly closing from the in-process scheduler."
    )
    CLOSING_CRON_DAY: str = Field(
        default="1", description="APScheduler cron 'day' expression; the run closes the month before it fires"
    )
    CLOSING_CRON_HOUR: int = Field(default=0, ge=0, le=23)
    CLOSING_CRON_MINUTE: int = Field(default=15, ge=0, le=59)
    SCHEDULER_TIMEZONE: str = Field(default="America/Argentina/Buenos_Aires")

    LOG_LEVEL: str = Field(default="INFO", description="Root log level (DEBUG, INFO, WARNING, ...)")

    # Environment label
    ENVIRONMENT: Optional[str] = Field(
        default=None, description="Environment label (dev/test/prod)"
    )

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def _parse_cors_origins(cls, v):
        """
        Accept both JSON array format and comma-separated formats for CORS origins.
        """
        if v is None:
            return ["*"]
        if isinstance(v, str):
            parts = [p.strip() for p in v.split(",") if p.strip()]
            return parts or ["*"]
        if isinstance(v, list):
            return v or ["*"]
        return ["*"]


# PUBLIC_INTERFACE
@lru_cache
def get_app_settings() -> AppSettings:
    """
    Return the process-wide AppSettings populated from environment variables.

    Tests that tweak the environment call get_app_settings.cache_clear().
    """
    return AppSettings()
