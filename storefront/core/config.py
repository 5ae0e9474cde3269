"""
Application configuration management with environment variables.

This module provides centralized configuration management using Pydantic
BaseSettings for type-safe environment variable handling with validation
and default values.
"""

from decimal import Decimal
from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings with environment variable support.

    All settings can be overridden via environment variables with the
    STOREFRONT_ prefix (e.g., STOREFRONT_TAX_RATE, STOREFRONT_ERP_BASE_URL).
    """

    model_config = SettingsConfigDict(
        env_prefix="STOREFRONT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application Configuration
    app_name: str = Field(
        default="Storefront Order Service",
        description="Application name",
    )

    app_version: str = Field(
        default="1.0.0",
        description="Application version",
    )

    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment",
    )

    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Application logging level",
    )

    api_v1_prefix: str = Field(
        default="/api/v1",
        description="API version 1 route prefix",
    )

    cors_origins: list[str] = Field(
        default=["http://localhost:5173", "http://localhost:8000"],
        description="Allowed CORS origins",
    )

    # Pricing Policy
    tax_rate: Decimal = Field(
        default=Decimal("0.08"),
        ge=0,
        le=1,
        description="Sales tax rate applied to the order subtotal",
    )

    free_shipping_threshold: Decimal = Field(
        default=Decimal("100"),
        ge=0,
        description="Subtotal above which shipping is free",
    )

    flat_shipping_fee: Decimal = Field(
        default=Decimal("10"),
        ge=0,
        description="Shipping fee charged at or below the threshold",
    )

    # Local Persistence
    storage_backend: Literal["memory", "file", "redis"] = Field(
        default="file",
        description="Snapshot store backing the order cache and sync ledger",
    )

    storage_path: str = Field(
        default=".storefront-data",
        description="Directory used by the file snapshot store",
    )

    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL for the redis snapshot store",
    )

    redis_max_connections: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Maximum Redis connection pool size",
    )

    redis_namespace: str = Field(
        default="storefront",
        description="Key prefix for snapshots stored in Redis",
    )

    # ERP Integration
    erp_mode: Literal["simulated", "http"] = Field(
        default="simulated",
        description="Use the simulated ERP or call the real ERP over HTTP",
    )

    erp_base_url: str = Field(
        default="http://localhost:8080",
        description="ERP system base URL",
    )

    erp_api_key: str = Field(
        default="ecommerce-api-key",
        description="API key sent to the ERP in the X-API-Key header",
    )

    erp_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Upper bound for a single ERP sync call",
    )

    erp_max_retries: int = Field(
        default=3,
        ge=1,
        description="Retry budget for a failed ERP sync before dead-lettering",
    )

    erp_simulated_delay_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Artificial latency of the simulated ERP",
    )

    # Hosted Backend (primary order write path)
    backend_url: Optional[str] = Field(
        default=None,
        description="Hosted backend base URL; primary order creation is disabled when unset",
    )

    backend_api_key: Optional[str] = Field(
        default=None,
        description="Hosted backend API key",
    )

    backend_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Upper bound for primary order creation",
    )

    @field_validator("redis_url")
    @classmethod
    def validate_redis_url(cls, v: str) -> str:
        """
        Validate Redis URL format.

        Args:
            v: Redis URL value

        Returns:
            Validated Redis URL

        Raises:
            ValueError: If Redis URL format is invalid
        """
        if not v.startswith(("redis://", "rediss://")):
            raise ValueError("Redis URL must start with 'redis://' or 'rediss://'")
        return v

    @field_validator("erp_base_url", "backend_url")
    @classmethod
    def validate_http_url(cls, v: Optional[str]) -> Optional[str]:
        """Validate remote base URLs and strip trailing slashes."""
        if v is None:
            return v
        if not v.startswith(("http://", "https://")):
            raise ValueError("URL must start with 'http://' or 'https://'")
        return v.rstrip("/")

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v) -> list[str]:
        """
        Parse CORS origins from string or list.

        Args:
            v: CORS origins value (string or list)

        Returns:
            List of CORS origin URLs
        """
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @model_validator(mode="after")
    def validate_backend_credentials(self) -> "Settings":
        """Require an API key whenever the hosted backend is configured."""
        if self.backend_url and not self.backend_api_key:
            raise ValueError(
                "STOREFRONT_BACKEND_API_KEY must be set when "
                "STOREFRONT_BACKEND_URL is configured"
            )
        return self

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings instance.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
