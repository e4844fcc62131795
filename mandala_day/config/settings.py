import os
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from loguru import logger
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def get_database_url() -> str:
    """Get database URL, using absolute path for SQLite to avoid path resolution issues.

    The SQL key-value backend only needs a single table, so a local SQLite
    file is the default for a single installation.
    """
    db_url = os.getenv("DATABASE_URL", "")
    if db_url:
        logger.info(f"Using DATABASE_URL from environment: {db_url}")
        return db_url

    db_path = Path(__file__).parent.parent.parent / "mandala_day.db"
    abs_path = db_path.resolve()
    db_url = f"sqlite:///{abs_path}"
    logger.info(f"Using default database path: {db_url}")
    return db_url


class Settings(BaseSettings):
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_file: str | None = Field(default=None, validation_alias="LOG_FILE")
    timezone: str = Field(
        default="UTC",
        validation_alias="MANDALA_TIMEZONE",
        description="IANA zone used for session times of day and quiet hours",
    )
    storage_backend: str = Field(
        default="sql",
        validation_alias="STORAGE_BACKEND",
        description="Key-value backend: memory | sql | redis",
    )
    database_url: str = Field(
        default_factory=get_database_url,
        validation_alias="DATABASE_URL",
    )
    redis_url: str = Field(default="redis://localhost:6379/0", validation_alias="REDIS_URL")
    storage_key_prefix: str = Field(
        default="",
        validation_alias="STORAGE_KEY_PREFIX",
        description="Prefix prepended to every persisted key (e.g. '@mandala_day/')",
    )
    tick_interval_seconds: float = Field(default=60.0, validation_alias="TICK_INTERVAL_SECONDS")
    plan_debounce_ms: int = Field(default=300, validation_alias="PLAN_DEBOUNCE_MS")
    retention_days: int = Field(default=30, validation_alias="RETENTION_DAYS")
    event_log_cap: int = Field(default=1000, validation_alias="EVENT_LOG_CAP")
    max_snooze_count: int = Field(default=3, validation_alias="MAX_SNOOZE_COUNT")
    missed_surface_minutes: int = Field(
        default=60,
        validation_alias="MISSED_SURFACE_MINUTES",
        description="How long a just-missed session is still offered as the next one",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Validate that log level is one of the standard logging levels."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_value = value.upper()
        if upper_value not in valid_levels:
            logger.warning(f"Invalid LOG_LEVEL '{value}'. Valid levels are: {', '.join(valid_levels)}. Defaulting to INFO.")
            return "INFO"
        return upper_value

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Validate that the configured time zone is a known IANA zone."""
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown MANDALA_TIMEZONE '{value}'") from e
        return value

    @field_validator("storage_backend")
    @classmethod
    def validate_storage_backend(cls, value: str) -> str:
        lowered = value.lower()
        if lowered not in {"memory", "sql", "redis"}:
            raise ValueError(f"STORAGE_BACKEND must be one of memory, sql, redis (got '{value}')")
        return lowered

    @field_validator("max_snooze_count", "retention_days", "event_log_cap")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be at least 1")
        return value

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


settings = Settings()
