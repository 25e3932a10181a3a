"""
Centralized configuration management with validation.

All environment variables are loaded and validated here.
This ensures consistent configuration across the application.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, model_validator
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    """Application settings with validation."""

    # Pydantic v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )

    # Database Configuration
    POSTGRES_USER: str = Field(default="postgres")
    POSTGRES_PASSWORD: str = Field(default="postgres")
    POSTGRES_DB: str = Field(default="territory")
    POSTGRES_HOST: str = Field(default="postgres")
    POSTGRES_PORT: int = Field(default=5432)
    # Full SQLAlchemy URL; overrides the POSTGRES_* parts when set (e.g. sqlite for local runs).
    DATABASE_URL: Optional[str] = Field(default=None)

    # Database Pool Configuration
    DB_POOL_SIZE: int = Field(default=20)
    DB_MAX_OVERFLOW: int = Field(default=10)
    DB_POOL_TIMEOUT: int = Field(default=30)
    DB_POOL_RECYCLE: int = Field(default=3600)  # 1 hour

    # Storage backend for runs and loops: "sql" or "memory"
    RUN_STORE_BACKEND: str = Field(default="sql", pattern="^(sql|memory)$")

    # JWT Authentication - REQUIRED for token verification
    # Must be set via environment variable, never use default in production
    SECRET_KEY: str = Field(
        default=...,  # Required - no default
        description="JWT signing key. Must be cryptographically secure (32+ chars). "
                    "Generate with: python -c \"import secrets; print(secrets.token_urlsafe(32))\""
    )

    # API Configuration
    API_HOST: str = Field(default="0.0.0.0")
    API_PORT: int = Field(default=8000)
    API_RELOAD: bool = Field(default=False)

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="json")  # json or text

    # Celery Configuration
    CELERY_BROKER_URL: str = Field(default="redis://redis:6379/0")
    CELERY_RESULT_BACKEND: str = Field(default="redis://redis:6379/0")

    # Loop capture (game balance + geometry cost caps)
    LOOP_MASTER_ENABLED: bool = Field(default=True)
    MIN_LOOP_LENGTH: int = Field(default=5, ge=1)
    HEX_RESOLUTION: int = Field(default=8, ge=0, le=15)
    # Rasterization cost grows with resolution and perimeter; bound both.
    MAX_HEX_RESOLUTION: int = Field(default=11, ge=0, le=15)
    MAX_BOUNDARY_HEXES: int = Field(default=5000, ge=4)
    AREA_RESOLVE_TIMEOUT_S: float = Field(default=30.0, gt=0)

    # Environment
    ENVIRONMENT: str = Field(default="development")
    DEBUG: bool = Field(default=False)

    # CORS - comma-separated list of allowed origins for production
    CORS_ORIGINS: Optional[str] = Field(default=None)

    # Sentry Error Tracking
    SENTRY_DSN: Optional[str] = Field(default=None)
    SENTRY_TRACES_SAMPLE_RATE: float = Field(default=0.1)  # 10% of transactions

    @model_validator(mode="after")
    def check_hex_resolution(self) -> "Settings":
        if self.HEX_RESOLUTION > self.MAX_HEX_RESOLUTION:
            raise ValueError(
                f"HEX_RESOLUTION ({self.HEX_RESOLUTION}) must not exceed "
                f"MAX_HEX_RESOLUTION ({self.MAX_HEX_RESOLUTION})"
            )
        return self


# Global settings instance
settings = Settings()
