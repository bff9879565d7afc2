"""
Application configuration using pydantic-settings.
All config is validated at startup - fail fast if anything is missing.
"""
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Application
    app_env: str = "development"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_base_url: str = "http://localhost:8000"
    app_secret_key: str
    log_level: str = "INFO"
    log_format: str = "json"  # json | text

    # Database
    database_url: str
    database_pool_size: int = 20
    database_max_overflow: int = 10

    # Redis (worker heartbeat + readiness check)
    redis_url: str = "redis://localhost:6379/0"

    # Sentry
    sentry_dsn: str = ""

    # Admin sessions
    session_jwt_secret: str = ""
    session_jwt_expiry_hours: int = 24
    allowed_origins: str = ""  # Comma-separated CORS origins

    # Scheduler trigger (Authorization: Bearer <cron_secret>)
    cron_secret: str = ""

    # Outbound webhook delivery
    webhook_max_attempts: int = 5
    webhook_batch_size: int = 10
    webhook_timeout_seconds: float = 10.0
    webhook_user_agent: str = "SalonBooker-Webhook/1.0"
    delivery_concurrency: int = 5
    delivery_claim_ttl_seconds: int = 300

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
