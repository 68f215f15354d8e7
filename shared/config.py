"""
Shared configuration management for the eSawitKu API.
"""

from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="ESAWIT_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # External services
    postgres_dsn: str = Field(default="postgresql://localhost:5432/esawitku")
    postgres_min_pool_size: int = Field(default=2)
    postgres_max_pool_size: int = Field(default=10)
    redis_url: str = Field(default="redis://localhost:6379/0")

    # Identity provider
    jwks_url: str = Field(default="http://localhost:8080/.well-known/jwks.json")
    token_issuer: Optional[str] = Field(default=None)
    token_audience: Optional[str] = Field(default=None)
    authorized_parties: List[str] = Field(default_factory=list)
    user_directory_url: str = Field(default="http://localhost:8080/v1")
    user_directory_api_key: Optional[str] = Field(default=None)
    super_admin_emails: List[str] = Field(default_factory=list)
    auth_scheme_order: List[str] = Field(default_factory=lambda: ["session", "api_key"])

    # Rate limiting
    rate_limit_default: int = Field(default=100)
    rate_limit_window_seconds: int = Field(default=900)
    rate_limits_file: Optional[str] = Field(default=None)

    # Request gate
    gate_step_timeout_seconds: float = Field(default=5.0)
    audit_queue_size: int = Field(default=1000)

    # Peers allowed to set X-Forwarded-For / X-Real-IP
    trusted_proxies: List[str] = Field(default_factory=list)


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
