"""Configuration management for Signet."""

import logging
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Signet configuration loaded from environment variables.

    All settings can be overridden via environment variables with
    the SIGNET_ prefix. For example:
        SIGNET_DATABASE_URL=postgresql+asyncpg://signet@localhost/signet
        SIGNET_WEBHOOK_TIMEOUT_SECONDS=5

    Security Notes:
        - In production (SIGNET_ENV=production), SQLite is rejected because it
          cannot serialize audit appends across worker processes.
    """

    # Environment
    env: Literal["development", "production", "test"] = Field(
        default="development",
        description="Environment: development, production, or test",
    )

    # Storage
    database_url: str = Field(
        default="sqlite+aiosqlite:///./signet.db",
        description="SQLAlchemy async database URL",
    )
    database_echo: bool = Field(
        default=False,
        description="Echo SQL statements to the log",
    )

    # Audit ledger
    audit_append_max_attempts: int = Field(
        default=5,
        ge=1,
        le=50,
        description=(
            "Attempts an append makes to claim the chain head before raising "
            "ChainConflictError. Only contended appends use more than one."
        ),
    )

    # Webhooks
    webhook_timeout_seconds: float = Field(
        default=10.0,
        gt=0.0,
        le=120.0,
        description="HTTP timeout for a single delivery attempt",
    )
    webhook_max_retries: int = Field(
        default=5,
        ge=1,
        le=10,
        description="Retry ceiling: tasks at or past this count are dropped",
    )
    webhook_max_concurrent: int = Field(
        default=10,
        ge=1,
        le=200,
        description="Maximum concurrent outbound deliveries",
    )
    webhook_retry_batch_size: int = Field(
        default=100,
        ge=1,
        le=10000,
        description="Maximum due retry tasks loaded per processing run",
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

    # CORS Configuration
    cors_enabled: bool = Field(
        default=True,
        description="Enable CORS middleware",
    )
    cors_allow_origins: list[str] = Field(
        default_factory=lambda: ["*"],
        description="List of allowed CORS origins. Use ['*'] for permissive mode (dev only).",
    )
    cors_allow_methods: list[str] = Field(
        default_factory=lambda: ["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        description="Allowed HTTP methods for CORS requests",
    )
    cors_allow_headers: list[str] = Field(
        default_factory=lambda: ["*"],
        description="Allowed headers for CORS requests",
    )

    model_config = {
        "env_prefix": "SIGNET_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_nested_delimiter": "__",
    }

    @model_validator(mode="after")
    def validate_production_database(self) -> "Settings":
        """Reject SQLite in production.

        The conditional insert that guards the audit chain works on SQLite,
        but SQLite's single-writer lock turns concurrent appends from several
        workers into lock timeouts.
        """
        if self.env == "production" and self.database_url.startswith("sqlite"):
            raise ValueError(
                "SIGNET_DATABASE_URL must point at a server database in production, "
                f"got {self.database_url!r}"
            )
        if self.database_echo and self.env == "production":
            logger.warning("SQL echo enabled in production - statements will be logged")
        return self


# Global settings instance
settings = Settings()
