"""
Shared configuration management for the GitHub Access Governor.
"""

from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Environment
    env: str = Field(default="local", validation_alias="GOVERNOR_ENV")
    log_level: str = Field(default="info", validation_alias="GOVERNOR_LOG_LEVEL")

    # GitHub App identity
    app_id: Optional[int] = Field(default=None, validation_alias="GITHUB_APP_ID")
    private_key: Optional[str] = Field(default=None, validation_alias="GITHUB_PRIVATE_KEY")

    # Token issuance
    jwt_ttl_seconds: int = Field(default=600, validation_alias="GITHUB_JWT_TTL_SECONDS")
    jwt_expiry_buffer_seconds: int = Field(default=60, validation_alias="GITHUB_JWT_EXPIRY_BUFFER_SECONDS")

    # Rate limiting
    rate_limit_warning_threshold: int = Field(
        default=100, validation_alias="GITHUB_RATE_LIMIT_WARNING_THRESHOLD"
    )
    rate_limit_critical_threshold: int = Field(
        default=10, validation_alias="GITHUB_RATE_LIMIT_CRITICAL_THRESHOLD"
    )

    @field_validator("private_key")
    @classmethod
    def _expand_newlines(cls, value: Optional[str]) -> Optional[str]:
        # Keys passed through env vars usually carry literal "\n" sequences
        if value is None:
            return value
        return value.replace("\\n", "\n")


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
