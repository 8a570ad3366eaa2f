"""Application configuration management."""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        if self.debug and self.log_level.upper() != "TRACE":
            self.log_level = "DEBUG"

    # Database
    database_url: str

    # Security
    secret_key: str
    encryption_key: str  # Fernet key for stored upstream tokens
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 1440

    # CORS
    cors_origins: str = "http://localhost:5173"

    # Operator login
    admin_username: str = "admin"
    admin_password: str = "changeme"

    # Application
    debug: bool = False
    log_level: str = "INFO"
    api_v1_str: str = "/api/v1"

    # Upstream (Imweb open API)
    imweb_api_base_url: str = "https://openapi.imweb.me"
    imweb_client_id: str = ""
    imweb_client_secret: str = ""
    imweb_timeout_seconds: float = 30.0

    # Upstream queries use UTC; records and run history are shown in this zone
    display_timezone: str = "Asia/Seoul"

    # Sync windows
    sync_days: int = 3
    sync_overlap_hours: int = 24
    sync_page_size: int = 50
    sync_page_delay_ms: int = 100
    stale_run_minutes: int = 5

    # Credentials
    token_retry_max_attempts: int = 3
    token_retry_delay_ms: int = 500
    token_refresh_margin_minutes: int = 5
    access_token_lifetime_seconds: int = 3600
    batch_access_token_lifetime_seconds: int = 7200
    refresh_token_lifetime_days: int = 30

    # Scheduler
    scheduler_tick_seconds: int = 60
    scheduler_default_interval_minutes: int = 10
    scheduler_min_interval_minutes: int = 1
    scheduler_max_interval_minutes: int = 60
    scheduler_log_size: int = 100
    scheduler_autostart: bool = True  # Start the tick job with the app

    # Live payment check
    realtime_check_cache_minutes: int = 5

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",")]


# Global settings instance
settings = Settings()
