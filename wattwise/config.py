"""
Service configuration from environment variables using Pydantic BaseSettings.

All configuration values are loaded from environment variables at startup.
No hardcoded hosts, credentials, or timezone offsets: every period key is
computed against ``TZ_OFFSET_MINUTES``.

CHANGELOG:
- 2026-10-18: Add refold retry, batch time, and stale-threshold settings
- 2026-10-18: Initial creation

TODO:
- None
"""

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Usage rollup service settings loaded from environment variables.

    Attributes:
        DATABASE_URL: SQLAlchemy async connection string (asyncpg).
        REDIS_URL: Redis connection string.
        TZ_OFFSET_MINUTES: Fixed local UTC offset used for day/week/month keys.
        SAMPLE_INTERVAL_MINUTES: Nominal sampling cadence of the meter.
        DEFAULT_DEVICE_ID: Device id used when a sample or query omits one.
        CACHE_TTL_S: Live-usage Redis cache TTL in seconds.
        PREVIOUS_VALUE_TTL_S: TTL of persisted previous-value cache entries.
        STALE_THRESHOLD_S: Age after which the latest bucket counts as stale.
        BATCH_HOUR: Local hour of the end-of-day batch.
        BATCH_MINUTE: Local minute of the end-of-day batch.
        REFOLD_MAX_ATTEMPTS: Attempts per background refold job.
        REFOLD_MAX_BACKOFF_S: Upper bound of the retry backoff in seconds.
        LOG_LEVEL: Root logger level name.
    """

    DATABASE_URL: str
    REDIS_URL: str
    TZ_OFFSET_MINUTES: int = 0
    SAMPLE_INTERVAL_MINUTES: float = 5.0
    DEFAULT_DEVICE_ID: str = "default"
    CACHE_TTL_S: int = 5
    PREVIOUS_VALUE_TTL_S: int = 172800
    STALE_THRESHOLD_S: int = 480
    BATCH_HOUR: int = 0
    BATCH_MINUTE: int = 1
    REFOLD_MAX_ATTEMPTS: int = 3
    REFOLD_MAX_BACKOFF_S: float = 30.0
    LOG_LEVEL: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @field_validator("TZ_OFFSET_MINUTES")
    @classmethod
    def tz_offset_in_range(cls, v: int) -> int:
        """UTC offsets in use range from -12:00 to +14:00."""
        if not -720 <= v <= 840:
            raise ValueError("TZ_OFFSET_MINUTES must be between -720 and 840")
        return v

    @field_validator("SAMPLE_INTERVAL_MINUTES")
    @classmethod
    def sample_interval_positive(cls, v: float) -> float:
        """Validate the nominal sampling interval is positive."""
        if v <= 0:
            raise ValueError("SAMPLE_INTERVAL_MINUTES must be > 0")
        return v

    @field_validator("BATCH_HOUR")
    @classmethod
    def batch_hour_in_range(cls, v: int) -> int:
        if not 0 <= v <= 23:
            raise ValueError("BATCH_HOUR must be between 0 and 23")
        return v

    @field_validator("BATCH_MINUTE")
    @classmethod
    def batch_minute_in_range(cls, v: int) -> int:
        if not 0 <= v <= 59:
            raise ValueError("BATCH_MINUTE must be between 0 and 59")
        return v

    @field_validator("REFOLD_MAX_ATTEMPTS")
    @classmethod
    def refold_attempts_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("REFOLD_MAX_ATTEMPTS must be >= 1")
        return v

    @property
    def sample_interval_hours(self) -> float:
        """Nominal sampling interval expressed in hours."""
        return self.SAMPLE_INTERVAL_MINUTES / 60.0


def get_settings() -> Settings:
    """Create and return a Settings instance.

    Returns:
        Settings: Validated configuration from environment variables.
    """
    return Settings()
