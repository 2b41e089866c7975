"""Application configuration."""

import logging

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # API Settings
    API_V1_PREFIX: str = "/api/v1"
    PROJECT_NAME: str = "TramNotify"
    DEBUG: bool = False

    # Database Settings
    DATABASE_URL: str = Field(validation_alias="SECRET_DATABASE_URL")
    DATABASE_ECHO: bool = False
    DATABASE_POOL_SIZE: int = 5  # Connection pool size for worker engine
    DATABASE_MAX_OVERFLOW: int = 10  # Max overflow connections for worker engine

    # LINE Messaging API Settings
    # Optional here so the HTTP app can boot; checked with require_config() where used
    LINE_CHANNEL_ACCESS_TOKEN: str | None = Field(default=None, validation_alias="SECRET_LINE_CHANNEL_ACCESS_TOKEN")
    LINE_CHANNEL_SECRET: str | None = Field(default=None, validation_alias="SECRET_LINE_CHANNEL_SECRET")
    LINE_API_BASE_URL: str = "https://api.line.me"
    LINE_API_TIMEOUT: float = 10.0

    # Shared secret for externally triggered cron endpoints (disabled when unset)
    CRON_SECRET: str | None = Field(default=None, validation_alias="SECRET_CRON_SECRET")

    # Tram position API Settings
    TRAM_API_BASE_URL: str = "https://www.kumamoto-city-tramway.jp/Sys"
    TRAM_API_TIMEOUT: float = 10.0
    TRAM_API_USER_AGENT: str = "TramNotify/0.1"

    # Polling Settings
    TIMEZONE: str = "Asia/Tokyo"
    POLL_INTERVAL_SECONDS: float = 30.0
    OPERATING_HOURS_START: int = 6  # Inclusive, local hour
    OPERATING_HOURS_END: int = 23  # Exclusive, local hour

    @field_validator("OPERATING_HOURS_START", "OPERATING_HOURS_END", mode="after")
    @classmethod
    def validate_operating_hour(cls, v: int) -> int:
        """Ensure operating hours are valid clock hours (24 allowed as end of day)."""
        if not 0 <= v <= 24:  # noqa: PLR2004
            msg = f"Operating hour must be between 0 and 24, got {v}"
            raise ValueError(msg)
        return v

    # Alert Settings
    DEDUP_WINDOW_MINUTES: int = 30  # No repeat notification for the same subscription + vehicle
    HISTORY_RETENTION_HOURS: int = 24

    # Morning batch notification (local time)
    MORNING_NOTIFICATION_HOUR: int = 7
    MORNING_NOTIFICATION_MINUTE: int = 25
    MORNING_MAX_STOPS: int = 15
    MORNING_TRAMS_PER_STATION: int = 2

    # "いま" command horizon
    CURRENT_MAX_STOPS: int = 5
    CURRENT_TRAMS_PER_STATION: int = 3

    # Celery Settings
    CELERY_BROKER_URL: str = Field(validation_alias="SECRET_CELERY_BROKER_URL")
    CELERY_RESULT_BACKEND: str = Field(validation_alias="SECRET_CELERY_RESULT_BACKEND")

    # PII Hashing Settings
    PII_HASH_SECRET: str = Field(
        validation_alias="SECRET_PII_HASH"
    )  # Secret key for HMAC-SHA256 hashing of LINE user ids in logs/telemetry

    @field_validator("PII_HASH_SECRET", mode="after")
    @classmethod
    def validate_pii_hash_secret(cls, v: str) -> str:
        """Ensure SECRET_PII_HASH meets minimum security requirements."""
        min_length = 32  # Minimum characters for cryptographic security
        if len(v) < min_length:
            msg = f"SECRET_PII_HASH must be at least {min_length} characters long for security"
            raise ValueError(msg)
        if v == "REPLACE_ME_WITH_RANDOM_SECRET":
            msg = (
                "SECRET_PII_HASH is set to placeholder value. "
                'Generate a secure secret using: python3 -c "import secrets; print(secrets.token_urlsafe(32))"'
            )
            raise ValueError(msg)
        return v

    # Alembic Settings
    ALEMBIC_INI_PATH: str = "alembic.ini"

    # OpenTelemetry Settings (for observability)
    OTEL_ENABLED: bool = True
    OTEL_SERVICE_NAME: str = "tramnotify-backend"
    OTEL_ENVIRONMENT: str = "production"
    OTEL_EXPORTER_OTLP_TRACES_ENDPOINT: str | None = None
    OTEL_EXPORTER_OTLP_HEADERS: str | None = Field(default=None, validation_alias="SECRET_OTEL_HEADERS")
    OTEL_EXCLUDED_URLS: str = "/health,/ready"

    @field_validator("OTEL_EXCLUDED_URLS", mode="after")
    @classmethod
    def parse_otel_excluded_urls(cls, v: str | list[str]) -> list[str]:
        """Parse comma-separated excluded URLs or pass through list, filtering out empty strings."""
        if isinstance(v, list):
            return [url for url in v if url]
        return [url.strip() for url in v.split(",") if url.strip()]

    # Logging Settings
    LOG_LEVEL: str = "INFO"

    @field_validator("LOG_LEVEL", mode="after")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate and normalize log level."""
        normalized = v.upper()
        valid_levels = logging.getLevelNamesMapping()
        if normalized not in valid_levels:
            msg = f"Invalid LOG_LEVEL '{v}'. Must be one of: {', '.join(sorted(valid_levels.keys()))}"
            raise ValueError(msg)
        return normalized


settings = Settings()


def require_config(*field_names: str) -> None:
    """
    Validate that required configuration fields are set.

    Long-running processes call this at startup so a missing credential is
    fatal immediately; request handlers call it lazily and surface a 5xx.

    Args:
        *field_names: Names of required configuration fields

    Raises:
        ValueError: If any required field is missing or None

    Example:
        from app.core.config import require_config, settings
        require_config("LINE_CHANNEL_ACCESS_TOKEN", "LINE_CHANNEL_SECRET")
    """
    missing = []
    for field in field_names:
        value = getattr(settings, field, None)
        if value is None or (isinstance(value, str) and not value.strip()):
            missing.append(field)

    if missing:
        msg = f"Required configuration missing: {', '.join(missing)}"
        raise ValueError(msg)
