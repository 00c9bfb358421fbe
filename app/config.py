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
    app_name: str = Field(default="Push Delivery Service", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")
    api_prefix: str = Field(default="", alias="API_PREFIX")

    # Server
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=3001, alias="PORT")
    reload: bool = Field(default=False, alias="RELOAD")

    # Token registry store
    database_url: str = Field(..., alias="DATABASE_URL")

    # Queue backend
    redis_url: str = Field(..., alias="REDIS_URL")

    # Firebase Cloud Messaging
    firebase_service_account_json: str = Field(
        ...,
        alias="FIREBASE_SERVICE_ACCOUNT_JSON",
        description="Raw JSON string of the Firebase service account",
    )

    # Apple Push Notification service
    apns_key_path: str = Field(
        ...,
        alias="APNS_KEY_PATH",
        description="Path to the .p8 token-signing key",
    )
    apns_key_id: str = Field(..., alias="APNS_KEY_ID")
    apns_team_id: str = Field(..., alias="APNS_TEAM_ID")
    apns_bundle_id: str = Field(..., alias="APNS_BUNDLE_ID")
    apns_production: bool = Field(default=True, alias="APNS_PRODUCTION")

    # Push dispatch
    push_queue_name: str = Field(default="push-queue", alias="PUSH_QUEUE_NAME")
    push_max_attempts: int = Field(default=5, ge=1, alias="PUSH_MAX_ATTEMPTS")
    push_backoff_base_seconds: float = Field(default=1.0, gt=0, alias="PUSH_BACKOFF_BASE_SECONDS")
    push_backoff_cap_seconds: float = Field(default=60.0, gt=0, alias="PUSH_BACKOFF_CAP_SECONDS")
    push_backoff_jitter_ratio: float = Field(
        default=0.1, ge=0, lt=1, alias="PUSH_BACKOFF_JITTER_RATIO"
    )
    push_send_timeout_seconds: float = Field(default=10.0, gt=0, alias="PUSH_SEND_TIMEOUT_SECONDS")
    push_lease_timeout_seconds: float = Field(
        default=30.0, gt=0, alias="PUSH_LEASE_TIMEOUT_SECONDS"
    )
    push_worker_concurrency: int = Field(default=1, ge=1, alias="PUSH_WORKER_CONCURRENCY")
    push_worker_poll_interval_seconds: float = Field(
        default=1.0, gt=0, alias="PUSH_WORKER_POLL_INTERVAL_SECONDS"
    )
    push_worker_enabled: bool = Field(default=True, alias="PUSH_WORKER_ENABLED")

    # CORS
    cors_origins_str: str = Field(
        default="*",
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=False, alias="CORS_ALLOW_CREDENTIALS")

    @property
    def cors_origins(self) -> list[str]:
        """Get CORS origins as a list."""
        return [origin.strip() for origin in self.cors_origins_str.split(",") if origin.strip()]

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="json", alias="LOG_FORMAT")

    @property
    def apns_host(self) -> str:
        """APNs endpoint selected by APNS_PRODUCTION."""
        if self.apns_production:
            return "https://api.push.apple.com"
        return "https://api.sandbox.push.apple.com"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()  # type: ignore[call-arg]


# Global settings instance; a missing required variable fails here, at startup
settings = get_settings()
