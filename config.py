"""Application settings loaded once from the environment (and an optional .env file)."""
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

REQUIRED_SETTINGS = {
    "database_url": "DATABASE_URL",
    "jwt_secret": "JWT_SECRET",
}


class Settings(BaseSettings):
    """Process-wide configuration. Immutable once loaded."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Storage / auth (required at startup, see missing_required)
    database_url: Optional[str] = Field(default=None, description="SQLAlchemy database URL")
    jwt_secret: Optional[str] = Field(default=None, description="HMAC secret for bearer tokens")
    jwt_algorithm: str = "HS256"
    jwt_expire_hours: int = Field(default=24, ge=1)

    # Server
    host: str = "0.0.0.0"
    port: int = Field(default=5000, ge=1, le=65535)
    app_env: str = Field(default="development", description="development | production | test")
    log_level: str = "INFO"
    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        description="Comma-separated list of allowed browser origins",
    )

    # Password reset mail
    frontend_url: str = "http://localhost:3000"
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    mail_from: Optional[str] = None

    # Exchange rates
    rates_timeout: float = Field(default=5.0, gt=0)

    @property
    def allowed_origins(self) -> list[str]:
        """CORS allow-list as a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"

    @property
    def mail_enabled(self) -> bool:
        return bool(self.smtp_host)

    def missing_required(self) -> list[str]:
        """Names of required environment variables that are not set."""
        return [env for field, env in REQUIRED_SETTINGS.items() if not getattr(self, field)]


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload.
    """
    return Settings()
