"""Application configuration."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_parse_none_str="null",
    )

    # Application
    app_name: str = Field(default="Medibook API", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")
    api_v1_prefix: str = Field(default="/api/v1", alias="API_V1_PREFIX")

    # Server
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8000, alias="PORT")
    reload: bool = Field(default=False, alias="RELOAD")

    # Database
    database_url: str = Field(..., alias="DATABASE_URL")

    # Redis
    redis_host: str = Field(..., alias="REDIS_HOST")
    redis_port: int = Field(..., alias="REDIS_PORT")
    redis_username: str = Field(default="default", alias="REDIS_USERNAME")
    redis_password: str = Field(default="", alias="REDIS_PASSWORD")
    redis_socket_timeout: float = Field(default=2.0, gt=0, alias="REDIS_SOCKET_TIMEOUT")
    cache_key_prefix: str = Field(default="medibook", alias="CACHE_KEY_PREFIX")

    # JWT
    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(default=30, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    # Firebase (push notifications)
    firebase_credentials_path: str | None = Field(
        default=None,
        alias="FIREBASE_CREDENTIALS_PATH",
        description="Path to Firebase service account JSON file",
    )

    firebase_config_json: str | None = Field(
        default=None,
        alias="FIREBASE_CONFIG_JSON",
        description="Raw JSON string of the Firebase service account",
    )

    # Scheduling
    slot_opening_hour: int = Field(default=10, ge=0, le=23, alias="SLOT_OPENING_HOUR")
    slot_closing_hour: int = Field(default=21, ge=1, le=24, alias="SLOT_CLOSING_HOUR")
    slot_interval_minutes: int = Field(default=30, ge=5, le=120, alias="SLOT_INTERVAL_MINUTES")
    booking_window_days: int = Field(default=7, ge=1, le=30, alias="BOOKING_WINDOW_DAYS")
    clinic_timezone: str = Field(default="UTC", alias="CLINIC_TIMEZONE")
    # Unpaid reservations older than this are released by the stale sweep
    reservation_hold_minutes: int = Field(default=60, ge=1, alias="RESERVATION_HOLD_MINUTES")

    # Paymob
    paymob_base_url: str = Field(
        default="https://accept.paymob.com/api",
        alias="PAYMOB_BASE_URL",
    )
    paymob_api_key: str = Field(default="", alias="PAYMOB_API_KEY")
    paymob_integration_id: int = Field(default=0, alias="PAYMOB_INTEGRATION_ID")
    paymob_iframe_id: str = Field(default="", alias="PAYMOB_IFRAME_ID")
    paymob_hmac_secret: str = Field(default="", alias="PAYMOB_HMAC_SECRET")
    payment_currency: str = Field(default="EGP", alias="PAYMENT_CURRENCY")
    payment_timeout_seconds: float = Field(default=15.0, gt=0, alias="PAYMENT_TIMEOUT_SECONDS")
    payment_max_attempts: int = Field(default=3, ge=1, le=10, alias="PAYMENT_MAX_ATTEMPTS")

    # CORS
    cors_origins_str: str = Field(
        default="http://localhost:3000",
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")

    @property
    def cors_origins(self) -> list[str]:
        """Get CORS origins as a list."""
        if isinstance(self.cors_origins_str, str):
            return [origin.strip() for origin in self.cors_origins_str.split(",") if origin.strip()]
        return [self.cors_origins_str]

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="json", alias="LOG_FORMAT")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()  # type: ignore[call-arg]


# Global settings instance
settings = get_settings()
