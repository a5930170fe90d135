"""
Application configuration.
All settings are loaded from environment variables.
Use env.example as a reference for required variables.
"""
from datetime import datetime

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Secrets default to empty strings: a missing Tribute key does not stop the
    process from starting, it makes every webhook fail signature verification.
    """

    # ===========================================
    # APPLICATION
    # ===========================================
    app_env: str = "local"
    # Base URL of the web client, used for payment success/fail redirects
    app_url: str = "https://aiverse.app"
    # CORS: comma-separated list. Empty = default list in app.main.
    cors_origins: str = ""

    # ===========================================
    # ROW STORE
    # ===========================================
    # postgrest = Supabase REST API, sql = direct SQLAlchemy connection (local/dev)
    row_store_backend: str = "postgrest"
    supabase_url: str = ""
    supabase_service_role_key: str = ""
    database_url: str = "sqlite:///./aiverse.db"

    # ===========================================
    # TRIBUTE SHOP API
    # ===========================================
    tribute_api_url: str = "https://tribute.tg/api/v1"
    # Also the shared secret of the webhook HMAC signature
    tribute_api_key: str = ""
    # Currencies accepted by create-order (comma-separated)
    tribute_order_currencies: str = "eur,rub"
    # Order sources that notify the buyer themselves (comma-separated)
    tribute_silent_sources: str = "aiverse_hub_bot"

    # ===========================================
    # TELEGRAM
    # ===========================================
    telegram_bot_token: str = ""
    # Operator account that receives a message for every payment/refund
    owner_telegram_id: str = ""
    telegram_init_data_max_age_seconds: int = 86400

    # ===========================================
    # PROMO
    # ===========================================
    promo_start: datetime | None = None
    promo_end: datetime | None = None
    promo_bonus_multiplier: float = 1.2

    # ===========================================
    # PARTNER PROGRAM
    # ===========================================
    partner_eur_to_rub_rate: int = 91

    # ===========================================
    # BALANCE
    # ===========================================
    balance_cas_max_attempts: int = 5

    # ===========================================
    # RATE LIMIT (Redis, optional)
    # ===========================================
    redis_url: str | None = None
    purchase_rate_limit: int = 5
    purchase_rate_window_seconds: int = 60

    # ===========================================
    # INTERNAL SERVICES
    # ===========================================
    http_client_timeout: float = 10.0
    detached_max_workers: int = 4

    # ===========================================
    # CIRCUIT BREAKER
    # ===========================================
    cb_failure_threshold: int = 5
    cb_open_seconds: int = 30

    # ===========================================
    # INTERNAL API
    # ===========================================
    admin_api_key: str | None = None

    # ===========================================
    # LOGGING
    # ===========================================
    log_level: str = "INFO"
    request_id_header: str = "X-Request-Id"
    log_file: str | None = None
    log_max_bytes: int = 10_000_000
    log_backup_count: int = 5

    @field_validator("row_store_backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        v = v.lower().strip()
        if v not in ("postgrest", "sql"):
            raise ValueError("row_store_backend must be 'postgrest' or 'sql'")
        return v

    @field_validator("supabase_url", "tribute_api_url", "app_url")
    @classmethod
    def strip_url(cls, v: str) -> str:
        """Tolerate quoted values and trailing slashes copied from dashboards."""
        return v.strip().strip("'\"`").rstrip("/")

    @property
    def order_currencies_set(self) -> set[str]:
        return {c.strip().lower() for c in self.tribute_order_currencies.split(",") if c.strip()}

    @property
    def silent_sources_set(self) -> set[str]:
        return {s.strip() for s in self.tribute_silent_sources.split(",") if s.strip()}

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
