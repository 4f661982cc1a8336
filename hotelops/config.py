"""Centralized application configuration using Pydantic settings."""
from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-driven configuration shared across services."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    hotel_name: str = Field(default="Mayfair Hotel", description="Name used in notifications and payments")
    currency: str = Field(default="INR", description="Currency for bookings, orders and payments")

    database_url: str = Field(
        default="sqlite:///./hotelops.db",
        description="SQLAlchemy database URL. Defaults to local SQLite for development.",
    )
    sqlite_busy_timeout: float = Field(
        default=15.0,
        description="Seconds a SQLite connection waits for the write lock before failing.",
    )
    run_db_migrations: bool = Field(
        default=False,
        description="Whether this service should create/update database tables on startup.",
    )
    jwt_secret: str = Field(default="super-secret", description="JWT signing secret")
    jwt_algorithm: str = Field(default="HS256", description="JWT signing algorithm")
    access_token_expire_minutes: int = Field(default=60, description="Token lifetime in minutes")
    cors_origins: List[str] = Field(default_factory=lambda: ["*"], description="Allowed CORS origins")
    default_rate_limit: str = Field(default="60/minute", description="Global rate limiting rule")
    rate_limiting_enabled: bool = Field(default=True, description="Toggle to disable SlowAPI limits (useful in tests)")
    metrics_enabled: bool = Field(default=True, description="Expose Prometheus metrics on /metrics")

    room_cache_ttl: int = Field(default=60, description="TTL (s) for cached room status results")
    order_tax_rate: float = Field(default=0.12, ge=0, description="Tax applied to restaurant order subtotals")
    table_reservation_minutes: int = Field(default=120, gt=0, description="Default table reservation length")
    cancellation_cutoff_hours: int = Field(
        default=24,
        ge=0,
        description="Customers must cancel at least this many hours before check-in",
    )

    outbound_max_retries: int = Field(default=3, ge=1, description="Attempts per outbound integration call")
    outbound_retry_backoff: float = Field(default=0.5, ge=0, description="Base backoff (s), doubled per attempt")
    outbound_timeout: float = Field(default=30.0, gt=0, description="Default outbound request timeout (s)")
    outbound_failure_threshold: int = Field(default=5, ge=1, description="Failures before a provider circuit opens")
    outbound_recovery_timeout: int = Field(default=60, ge=1, description="Seconds before an open circuit is retried")

    users_service_port: int = 8001
    rooms_service_port: int = 8002
    bookings_service_port: int = 8003
    restaurant_service_port: int = 8004
    reports_service_port: int = 8005
    integrations_service_port: int = 8006


@lru_cache
def get_settings() -> Settings:
    """Return a cached instance of the Settings object."""

    return Settings()


def reset_settings_cache() -> None:
    """Clear the cached Settings instance (useful for tests)."""

    get_settings.cache_clear()
