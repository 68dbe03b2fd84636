"""
Configuration for the workspace integrations client.

Two layers:
- Settings: process-wide tunables loaded from the environment (WI_ prefix)
- IntegrationConfig: the per-connection options passed to connect()
"""

import logging
from functools import lru_cache
from typing import Any, Literal

import structlog
from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = structlog.get_logger()

NotificationMode = Literal["longpolling", "webhook", "none"]
LogLevel = Literal["error", "warn", "info", "verbose"]


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_prefix="WI_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # HTTP
    request_timeout: float = 30.0
    poll_timeout: float = 120.0  # Long-poll requests are held open by the server

    # Polling
    poll_backoff_seconds: float = 5.0

    # Tokens
    token_refresh_margin_seconds: int = 15 * 60

    # Activation credentials
    credential_max_age_seconds: int = 5 * 60
    default_region: str = "us-east-2_a"
    jwks_urls: dict[str, str] = {
        "us-west-2_r": "https://xapi-r.wbx2.com/jwks",
        "us-east-2_a": "https://xapi-a.wbx2.com/jwks",
        "eu-central-1_k": "https://xapi-k.wbx2.com/jwks",
        "us-east-1_int13": "https://xapi-intb.wbx2.com/jwks",
        "us-gov-west-1_a1": "https://xapi.gov.ciscospark.com/jwks",
    }

    # Device / workspace metadata
    cache_ttl_seconds: int = 60 * 60
    page_size: int = 999

    log_level: LogLevel = "error"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


class Webhook(BaseModel):
    """Public web hook where the cloud posts notifications."""

    model_config = ConfigDict(populate_by_name=True)

    target_url: str = Field(alias="targetUrl")
    type: Literal["hmac_signature", "basic_authentication", "none"]
    secret: str = ""
    username: str | None = None
    password: str | None = None


class IntegrationConfig(BaseModel):
    """
    Options for connecting an integration.

    activation_code is either the signed string copied from the admin portal
    or an already decoded mapping (as printed by the wi-decode CLI).
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    client_id: str = Field(alias="clientId")
    client_secret: str = Field(alias="clientSecret")
    activation_code: str | dict[str, Any] = Field(alias="activationCode")
    notifications: NotificationMode = "none"
    webhook: Webhook | None = None
    actions_url: str | None = Field(default=None, alias="actionsUrl")
    log_level: LogLevel | None = Field(default=None, alias="logLevel")

    def unknown_keys(self) -> list[str]:
        return sorted((self.model_extra or {}).keys())


_LEVELS = {
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "info": logging.INFO,
    "verbose": logging.DEBUG,
}


def configure_logging(level: LogLevel) -> None:
    """Set the structlog filter level. 'verbose' maps to debug."""
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(_LEVELS[level]),
    )
    logger.info("log_level_set", level=level)
