# backend/pickops/core/settings.py
"""
PickOps - Configuration Management with pydantic-settings

- Loads from environment and root .env
- Validates and normalizes values
- Cached singleton via get_settings()
"""
from functools import lru_cache
from pathlib import Path
from typing import Optional, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# backend/pickops/core/settings.py -> <repo>/.env
_ENV_FILE = Path(__file__).resolve().parent.parent.parent.parent / ".env"


class Settings(BaseSettings):
    """
    Application settings with validation.

    Environment variables take precedence over .env file values.
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ===================
    # Application Settings
    # ===================
    PROJECT_NAME: str = "PickOps"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    DEBUG: bool = Field(default=False, description="Enable debug mode")
    ENVIRONMENT: str = Field(default="development", description="Deployment environment")

    # ===================
    # Database Settings
    # ===================
    DB_HOST: str = Field(default="localhost", description="PostgreSQL host")
    DB_PORT: int = Field(default=5432, description="PostgreSQL port")
    DB_NAME: str = Field(default="pickops", description="Database name")
    DB_USER: str = Field(default="postgres", description="Database user")
    DB_PASSWORD: str = Field(default="postgres", description="Database password")
    DATABASE_URL: Optional[str] = Field(
        default=None, description="Full database URL (overrides DB_* settings)"
    )

    @property
    def database_url(self) -> str:
        """Build PostgreSQL database URL from components or use explicit URL."""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )

    # ===================
    # CORS Settings
    # ===================
    ALLOWED_ORIGINS: List[str] = Field(
        default=[
            "http://localhost:3000",
            "http://127.0.0.1:3000",
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ],
        description="Allowed CORS origins",
    )

    @field_validator("ALLOWED_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    # ===================
    # Order Service (remote fulfillment system)
    # ===================
    ORDER_SERVICE_BACKEND: str = Field(
        default="http", description="Order Service adapter: http or fake"
    )
    ORDER_SERVICE_URL: str = Field(
        default="http://localhost:9000", description="Order Service admin API base URL"
    )
    ORDER_SERVICE_EMAIL: Optional[str] = Field(default=None, description="Admin API user")
    ORDER_SERVICE_PASSWORD: Optional[str] = Field(default=None, description="Admin API password")
    ORDER_SERVICE_TIMEOUT_SECONDS: float = Field(
        default=10.0, gt=0, description="Timeout for every Order Service call"
    )
    ORDER_SERVICE_TOKEN_TTL_SECONDS: int = Field(
        default=50 * 60, gt=0, description="How long a login token is reused"
    )

    @field_validator("ORDER_SERVICE_BACKEND")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        v = v.lower().strip()
        if v not in ("http", "fake"):
            raise ValueError("ORDER_SERVICE_BACKEND must be 'http' or 'fake'")
        return v

    @field_validator("ORDER_SERVICE_URL")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    # ===================
    # Picking & Reconciliation
    # ===================
    VOUCHER_CURRENCY: str = Field(default="ars", description="Currency for compensation vouchers")
    VOUCHER_CODE_PREFIX: str = Field(default="VOUCHER", description="Prefix of voucher codes")
    CANCEL_REASON_MIN_LENGTH: int = Field(default=3, ge=1)

    # ===================
    # Logging
    # ===================
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # json or text
    LOG_FILE: Optional[str] = None
    AUDIT_LOG_FILE: Optional[str] = None

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"


@lru_cache
def get_settings() -> Settings:
    """Singleton settings loader (cached)."""
    return Settings()


# Convenience alias for module-level wiring (app factory, engine)
settings = get_settings()
