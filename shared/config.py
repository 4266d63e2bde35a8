"""
Shared configuration management for the Avatar Gateway.
"""

from dataclasses import dataclass
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    app_env: str = Field(default="development")
    log_level: str = Field(default="info")
    aws_region: Optional[str] = Field(default=None)

    # Upstream avatar service
    duix_api_url: str = Field(default="https://api.duix.com")
    duix_app_id: str = Field(default="")
    duix_app_key: str = Field(default="")
    token_expiry: int = Field(default=1800, gt=0)

    # Outbound TLS: the upstream purpose tolerates certificate chain errors
    # unless an operator switches this off.
    upstream_relaxed_tls: bool = Field(default=True)

    # Inbound surface
    enable_rate_limiting: bool = Field(default=True)
    allowed_origins: str = Field(default="")

    @property
    def is_production(self) -> bool:
        return self.app_env.strip().lower() == "production"

    @property
    def environment_name(self) -> str:
        return "production" if self.is_production else "development"

    @property
    def region_label(self) -> str:
        return self.aws_region or "local"

    @property
    def cors_origins(self) -> List[str]:
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str = "avatar_gateway"
    port: int = 3000
    host: str = "0.0.0.0"


@dataclass(frozen=True)
class Capabilities:
    """Optional behaviours resolved once at startup.

    Routes and middleware consult this set instead of probing for optional
    libraries at request time.
    """

    rate_limiting: bool
    security_headers: bool
    debug_endpoints: bool
    api_docs: bool


def resolve_capabilities(config: BaseConfig) -> Capabilities:
    """Derive the capability set from configuration."""
    return Capabilities(
        rate_limiting=config.enable_rate_limiting,
        security_headers=config.is_production,
        debug_endpoints=not config.is_production,
        api_docs=not config.is_production,
    )


def get_config(service_name: str = "avatar_gateway", port: Optional[int] = None, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    if port is not None:
        overrides["port"] = port
    return ServiceConfig(service_name=service_name, **overrides)
