from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SLOTBOOK_", env_file=".env", extra="ignore")

    database_url: str = "sqlite:///./slotbook.db"
    db_busy_timeout_seconds: float = 30.0
    db_statement_timeout_ms: int = 10_000  # postgres only
    store_retry_attempts: int = 3

    # Slots starting sooner than this are hidden from listings
    booking_lead_minutes: int = 90
    max_participants_per_booking: int = 50
    default_currency: str = "EUR"

    jwt_secret: str = "dev-only-change-me-slotbook-local-secret"
    jwt_algorithm: str = "HS256"
    jwt_audience: str | None = None

    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_username: str | None = None
    smtp_password: str | None = None
    smtp_from_email: str | None = None
    smtp_use_tls: bool = True

    log_level: str = "INFO"
    seed_demo_data: bool = False


@lru_cache
def get_settings() -> Settings:
    return Settings()
