from typing import Annotated, Any

from pydantic import Field, computed_field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables (and an optional .env file).
    """

    PROJECT_NAME: str = "AI Admin"
    VERSION: str = "0.1.0"
    ENVIRONMENT: str = Field("development", description="development | test | production")
    DEBUG: bool = Field(False, description="Debug mode")

    # Logging
    LOG_LEVEL: str = Field("INFO", description="Root log level")
    LOG_FORMAT: str = Field("colored", description="colored | json | plain")
    LOG_FILE: str | None = Field(None, description="Optional JSON log file")
    LOG_MASK_PHONES: bool = Field(True, description="Mask client phone numbers in log output")

    # PostgreSQL Database Settings
    DB_HOST: str = Field("localhost", description="PostgreSQL host")
    DB_PORT: int = Field(5432, description="PostgreSQL port")
    DB_NAME: str = Field("ai_admin", description="Database name")
    DB_USER: str = Field("postgres", description="Database user")
    DB_PASSWORD: str | None = Field(None, description="Database password")
    DB_ECHO: bool = Field(False, description="Log SQL queries (debug only)")
    DB_POOL_SIZE: int = Field(10, description="Connection pool size")
    DB_MAX_OVERFLOW: int = Field(20, description="Pool max overflow")
    DB_POOL_RECYCLE: int = Field(3600, description="Recycle connections every N seconds")

    # Redis Settings
    REDIS_HOST: str = Field("localhost", description="Redis host")
    REDIS_PORT: int = Field(6379, description="Redis port")
    REDIS_DB: int = Field(0, description="Redis database")
    REDIS_PASSWORD: str | None = Field(None, description="Redis password")

    # YClients API
    YCLIENTS_API_URL: str = Field("https://api.yclients.com/api/v1", description="YClients REST base URL")
    YCLIENTS_PARTNER_TOKEN: str = Field("", description="Partner (bearer) token")
    YCLIENTS_USER_TOKEN: str = Field("", description="User token for booking mutations")
    YCLIENTS_TIMEOUT: float = Field(30.0, description="HTTP timeout in seconds")

    # In-process cache
    CONTEXT_CACHE_MAX_SIZE: int = Field(500, description="Conversation context LRU capacity")
    CACHE_CLEANUP_INTERVAL: int = Field(60, description="Expired-entry sweep interval in seconds")

    # Circuit breaker
    CIRCUIT_BREAKER_FAILURE_THRESHOLD: int = Field(5, description="Failures before opening")
    CIRCUIT_BREAKER_RESET_TIMEOUT: float = Field(60.0, description="Seconds before a half-open probe")
    CIRCUIT_BREAKER_TIMEOUT: float = Field(30.0, description="Per-operation timeout in seconds")

    # Rate limiter
    RATE_LIMIT_WINDOW: float = Field(60.0, description="Sliding window in seconds")
    RATE_LIMIT_MAX_REQUESTS: int = Field(30, description="Requests allowed per window")
    RATE_LIMIT_BLOCK_DURATION: float = Field(300.0, description="Hard block duration in seconds")
    RATE_LIMIT_VIOLATIONS_BEFORE_BLOCK: int = Field(3, description="Violations that trigger a hard block")
    RATE_LIMIT_CLEANUP_INTERVAL: float = Field(60.0, description="Record sweep interval in seconds")

    # Retry
    RETRY_MAX_ATTEMPTS: int = Field(3, description="Attempts per booking call")
    RETRY_INITIAL_DELAY: float = Field(1.0, description="First backoff delay in seconds")
    RETRY_MAX_DELAY: float = Field(10.0, description="Backoff ceiling in seconds")
    RETRY_EXPONENTIAL_BASE: float = Field(2.0, description="Backoff factor")
    RETRY_JITTER_FACTOR: float = Field(0.1, description="Relative jitter")

    # Metrics
    METRICS_MAX_SAMPLES: int = Field(1000, description="Response-time samples kept for percentiles")

    # Conversation context lifetimes (seconds)
    CONTEXT_FRESHNESS: int = Field(300, description="Max age of cached dialog state")
    CONTEXT_SELECTION_TTL: int = Field(2 * 3600, description="Dialog selection lifetime")
    CONTEXT_MESSAGES_TTL: int = Field(24 * 3600, description="Message history lifetime")
    CONTEXT_PREFERENCES_TTL: int = Field(30 * 24 * 3600, description="Client preferences lifetime")
    CONTEXT_FULL_TTL: int = Field(12 * 3600, description="Shared full-context cache lifetime")
    CONTEXT_PROCESSING_TTL: int = Field(300, description="Processing marker lifetime")
    CONTEXT_MAX_MESSAGES: int = Field(50, description="Stored history cap")
    CONTEXT_MESSAGES_WINDOW: int = Field(20, description="Messages loaded into the context")
    BOOKING_OWNERSHIP_TTL: int = Field(7 * 24 * 3600, description="Booking ownership record lifetime")
    BOOKING_MIN_MINUTES_AHEAD: int = Field(30, description="Earliest bookable time, minutes from now")
    BOOKING_MAX_DAYS_AHEAD: int = Field(30, description="Latest bookable time, days from now")
    SLOT_SEARCH_TIME_WINDOW: int = Field(120, description="Minutes around a requested time kept by slot search")
    SLOT_SEARCH_MAX_RESULTS: int = Field(10, description="Slots returned per search")

    # Command execution
    CRITICAL_COMMANDS: Annotated[list[str], NoDecode] = Field(
        default=[
            "CREATE_BOOKING",
            "CANCEL_BOOKING",
            "RESCHEDULE_BOOKING",
            "CONFIRM_BOOKING",
            "MARK_NO_SHOW",
        ],
        description="Commands whose failure halts the rest of the batch",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        level = v.upper()
        if level not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of {sorted(allowed)}")
        return level

    @field_validator("LOG_FORMAT")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        if v not in {"colored", "json", "plain"}:
            raise ValueError("LOG_FORMAT must be colored, json or plain")
        return v

    @field_validator("CRITICAL_COMMANDS", mode="before")
    @classmethod
    def parse_critical_commands(cls, v: Any) -> Any:
        if isinstance(v, str):
            return [item.strip().upper() for item in v.split(",") if item.strip()]
        return v

    @computed_field
    @property
    def database_url(self) -> str:
        """Async SQLAlchemy URL for PostgreSQL."""
        credentials = self.DB_USER
        if self.DB_PASSWORD:
            credentials = f"{self.DB_USER}:{self.DB_PASSWORD}"
        return f"postgresql+asyncpg://{credentials}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

    @computed_field
    @property
    def redis_url(self) -> str:
        """Redis connection URL."""
        if self.REDIS_PASSWORD:
            return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"


_settings_instance: Settings | None = None


def get_settings() -> Settings:
    """
    Return the cached settings instance.
    Avoids re-reading the environment on every call.
    """
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance
