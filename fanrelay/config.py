"""Centralized configuration for fanrelay.

Uses Pydantic BaseSettings with environment variable loading and validation.
All RELAY_* environment variables are validated at import time.
"""

from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = {"env_prefix": "RELAY_", "case_sensitive": False, "extra": "ignore"}

    # Server
    host: str = Field(default="0.0.0.0", description="Server bind host")  # noqa: S104
    port: int = Field(default=3001, ge=1, le=65535, description="Server bind port")
    service_name: str = Field(default="Chat WebSocket Server", description="Name on the info page")

    # Webhook
    webhook_secret: str | None = Field(
        default=None, description="Shared secret expected on inbound webhooks (unset = no check)"
    )
    secret_header: str = Field(
        default="x-cometchat-webhook-secret",
        min_length=1,
        description="Header carrying the webhook shared secret",
    )
    default_event_type: str = Field(
        default="onMessageSent", min_length=1, description="Event type when the webhook omits one"
    )
    default_source_id: str = Field(
        default="admin_monitor_webhook",
        min_length=1,
        description="Source identifier when the webhook omits one",
    )

    # Delivery
    send_timeout: float = Field(
        default=5.0, gt=0, description="Seconds a single recipient may take to accept a message"
    )
    shutdown_timeout: float = Field(
        default=10.0, ge=0, description="Seconds to wait for in-flight broadcasts on shutdown"
    )
    greeting_enabled: bool = Field(default=True, description="Greet new WebSocket sessions")
    prune_closed: bool = Field(
        default=True, description="Unregister CLOSED connections found during a broadcast"
    )

    # CORS
    cors_origins: str = Field(default="*", description="Comma-separated CORS origins")

    # Rate limiting
    rate_limit: str = Field(
        default="600/minute",
        description="Webhook rate limit (e.g., 600/minute). Set to 'none' to disable.",
    )

    # Logging
    log_format: str = Field(default="text", description="Log format: text or json")
    log_level: str = Field(default="INFO", description="Python log level")

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.lower()
        if v not in ("text", "json"):
            msg = f"RELAY_LOG_FORMAT must be 'text' or 'json', got '{v}'"
            raise ValueError(msg)
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        import logging

        v = v.upper()
        if not isinstance(getattr(logging, v, None), int):
            msg = f"RELAY_LOG_LEVEL must be a valid Python log level, got '{v}'"
            raise ValueError(msg)
        return v

    @field_validator("webhook_secret")
    @classmethod
    def validate_webhook_secret(cls, v: str | None) -> str | None:
        # An empty variable means "no secret configured".
        if v is None or not v.strip():
            return None
        return v

    @property
    def cors_origin_list(self) -> list[str]:
        """Return parsed list of CORS origins."""
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def rate_limit_enabled(self) -> bool:
        return self.rate_limit.strip().lower() != "none"


# Singleton, validated at import time.
settings = Settings()
