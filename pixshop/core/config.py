"""
Application configuration.
All settings are loaded from environment variables.
Use env.example as a reference for required variables.
"""
from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    IMPORTANT: Credentials have no defaults - they MUST be set in .env file.
    """

    # ===========================================
    # APPLICATION
    # ===========================================
    cors_origins: str = ""

    # ===========================================
    # DATABASE (PostgreSQL)
    # ===========================================
    database_url: str  # Required, no default

    # ===========================================
    # REDIS & CELERY
    # ===========================================
    redis_url: str  # Required, no default
    celery_broker_url: str  # Required, no default
    celery_result_backend: str  # Required, no default

    # ===========================================
    # TELEGRAM BOT
    # ===========================================
    telegram_bot_token: str  # Required, no default
    # Bot username without @ (deep links: t.me/<bot>?start=model_<id>)
    telegram_bot_username: str = ""

    # ===========================================
    # PIX PROVIDER (Arkama)
    # ===========================================
    arkama_api_url: str = "https://api.arkama.com.br/v1"
    # Empty or shorter than arkama_min_key_length = simulation mode
    arkama_api_key: str = ""
    arkama_min_key_length: int = 16
    # Empty = webhook rejects every request
    arkama_webhook_secret: str = ""
    arkama_timeout: float = 15.0

    # ===========================================
    # PIX SIMULATOR (no provider credentials)
    # ===========================================
    pix_sim_auto_pay_seconds: float = 10.0
    pix_code_ttl_minutes: int = 30
    pix_merchant_name: str = "PixShop"
    pix_merchant_city: str = "SaoPaulo"

    # ===========================================
    # CONTENT
    # ===========================================
    # Public URL prefix for content keys that are not already URLs
    storage_public_url: str = ""
    subscription_default_days: int = 30
    delivery_batch_size: int = 10

    # ===========================================
    # SUBSCRIPTION SCHEDULER
    # ===========================================
    notify_delay_seconds: float = 0.1
    delete_delay_seconds: float = 0.05
    subscription_notify_hour: int = 9
    celery_task_retry_delay: int = 5
    celery_task_max_retries: int = 3

    # ===========================================
    # ADMIN API
    # ===========================================
    admin_api_key: str | None = None

    # ===========================================
    # CIRCUIT BREAKER
    # ===========================================
    cb_failure_threshold: int = 5
    cb_open_seconds: int = 30

    # ===========================================
    # LOGGING
    # ===========================================
    log_file: str | None = None
    log_max_bytes: int = 10_000_000
    log_backup_count: int = 5

    # ===========================================
    # STATE MANAGEMENT
    # ===========================================
    idempotency_ttl: int = 5  # "I've paid" double-tap window, seconds

    @field_validator("delivery_batch_size")
    @classmethod
    def validate_batch_size(cls, v: int) -> int:
        """Telegram media groups hold 2-10 items."""
        if not 1 <= v <= 10:
            raise ValueError("delivery_batch_size must be between 1 and 10")
        return v

    @field_validator("storage_public_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
