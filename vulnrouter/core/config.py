"""Configuration management for the Vulnerability Router service.

Configuration is loaded from environment variables. Routing defaults only seed
the in-memory routing configuration at startup; operator edits are not
persisted.
"""

from __future__ import annotations

import os
from enum import StrEnum
from functools import lru_cache

from pydantic import AliasChoices, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from vulnrouter.routing.severity import is_known_severity, normalize_severity


class AppEnvironment(StrEnum):
    LOCAL = "local"
    TEST = "test"
    PROD = "prod"


class LogLevel(StrEnum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class AppConfig(BaseSettings):
    name: str = Field(default="vuln-severity-router")
    env: AppEnvironment = Field(default=AppEnvironment.LOCAL)
    version: str = Field(default="0.1.0")
    log_level: LogLevel = Field(default=LogLevel.INFO)

    model_config = SettingsConfigDict(env_prefix="APP_")

    @field_validator("env", mode="before")
    @classmethod
    def validate_env(cls, v: str | AppEnvironment) -> AppEnvironment:
        if isinstance(v, AppEnvironment):
            return v
        return AppEnvironment(v)

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v: str | LogLevel) -> LogLevel:
        if isinstance(v, LogLevel):
            return v
        return LogLevel(v.upper())


class ServerConfig(BaseSettings):
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8080)

    model_config = SettingsConfigDict(env_prefix="SERVER_")


class PubSubConfig(BaseSettings):
    enabled: bool = Field(default=True)
    project_id: str = Field(
        default="",
        validation_alias=AliasChoices("pubsub_project_id", "gcp_project"),
    )
    subscription: str = Field(
        default="",
        validation_alias=AliasChoices("pubsub_subscription", "pubsub_subscription_id"),
    )
    max_messages: int = Field(default=100)
    startup_retry_attempts: int = Field(default=5)

    model_config = SettingsConfigDict(env_prefix="PUBSUB_", populate_by_name=True)

    @property
    def is_configured(self) -> bool:
        return self.enabled and bool(self.project_id) and bool(self.subscription)


class SlackConfig(BaseSettings):
    webhook_url: SecretStr = Field(
        default=SecretStr(""),
        validation_alias=AliasChoices("slack_webhook_url", "slack_webhook"),
    )
    timeout_seconds: float = Field(default=10.0)

    model_config = SettingsConfigDict(env_prefix="SLACK_", populate_by_name=True)


class RoutingDefaultsConfig(BaseSettings):
    """Routing rules installed at process start."""

    os_channel: str = Field(default="#os-vulns")
    os_min_severity: str = Field(default="MEDIUM")
    app_channel: str = Field(default="#app-vulns")
    app_min_severity: str = Field(default="HIGH")

    model_config = SettingsConfigDict(env_prefix="ROUTING_")

    @field_validator("os_min_severity", "app_min_severity", mode="after")
    @classmethod
    def validate_min_severity(cls, v: str) -> str:
        if not is_known_severity(v):
            raise ValueError(f"Unknown severity threshold: {v!r}")
        return normalize_severity(v)


class SecurityConfig(BaseSettings):
    security_headers_enabled: bool = Field(default=True)
    max_request_size_bytes: int = Field(default=65_536)

    model_config = SettingsConfigDict(env_prefix="SECURITY_")


class ObservabilityConfig(BaseSettings):
    service_name: str = Field(default="vuln-severity-router")
    otlp_endpoint: str | None = Field(
        default=None,
        validation_alias=AliasChoices("exporter_otlp_endpoint", "otlp_endpoint"),
    )
    otlp_insecure: bool = Field(
        default=True,
        validation_alias=AliasChoices("exporter_otlp_insecure", "otlp_insecure"),
    )
    log_record_format: str = Field(default="json")

    model_config = SettingsConfigDict(env_prefix="OTEL_")

    @model_validator(mode="after")
    def apply_exporter_env_fallbacks(self) -> ObservabilityConfig:
        """Support standard OpenTelemetry env names used in container orchestration."""
        if not self.otlp_endpoint:
            endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
            if endpoint:
                self.otlp_endpoint = endpoint

        insecure = os.getenv("OTEL_EXPORTER_OTLP_INSECURE")
        if insecure is not None:
            self.otlp_insecure = insecure.strip().lower() in {"1", "true", "yes", "on"}

        return self


class Settings(BaseSettings):
    app: AppConfig = Field(default_factory=AppConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    pubsub: PubSubConfig = Field(default_factory=PubSubConfig)
    slack: SlackConfig = Field(default_factory=SlackConfig)
    routing: RoutingDefaultsConfig = Field(default_factory=RoutingDefaultsConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)
    metrics_token: str | None = Field(default=None)

    @model_validator(mode="after")
    def validate_production_settings(self) -> Settings:
        if self.app.env == AppEnvironment.PROD and self.observability.otlp_insecure:
            if self.observability.otlp_endpoint:
                raise ValueError("OTLP insecure mode is not allowed in production")
        return self


@lru_cache
def get_settings() -> Settings:
    return Settings()


def reload_settings() -> Settings:
    get_settings.cache_clear()
    return get_settings()
