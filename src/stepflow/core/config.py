"""Configuration management for stepflow.

This module provides configuration models and loading functionality using Pydantic
for validation and type safety. Provider credentials are read here, once, at
composition time and handed to step handlers as explicit config objects.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings, SettingsConfigDict

_DOTENV_LOADED = False

DEFAULT_RETRYABLE_STATUSES: tuple[int, ...] = (408, 429, 500, 502, 503, 504)

DEFAULT_RETRYABLE_ERROR_PATTERNS: tuple[str, ...] = (
    "ECONNRESET",
    "ECONNREFUSED",
    "ETIMEDOUT",
    "ENOTFOUND",
    "EAI_AGAIN",
    "network",
    "timeout",
    "timed out",
    "connection refused",
    "connection reset",
    "temporary failure in name resolution",
    "fetch failed",
    "ConnectError",
    "RemoteProtocolError",
)


def _load_env_once() -> None:
    """Load environment variables from a .env file exactly once."""

    global _DOTENV_LOADED
    if not _DOTENV_LOADED:
        load_dotenv()
        _DOTENV_LOADED = True


def _expand_env_vars(data: Any) -> Any:
    """Recursively expand environment variables in configuration data."""

    if isinstance(data, str):
        return os.path.expandvars(data)
    if isinstance(data, dict):
        return {key: _expand_env_vars(value) for key, value in data.items()}
    if isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    return data


class RetryConfig(BaseModel):
    """Retry policy for calls to external services.

    Delays are expressed in milliseconds. Step configurations may use either
    snake_case or camelCase keys (``maxRetries``, ``baseDelay``...).
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    max_retries: int = Field(default=3, ge=0, description="Retries after the first attempt")
    base_delay: float = Field(default=1000, ge=0, description="Initial delay in milliseconds")
    max_delay: float = Field(default=30000, ge=0, description="Delay cap in milliseconds")
    backoff_multiplier: float = Field(
        default=2.0, ge=1.0, description="Multiplier applied to the delay after each failure"
    )
    jitter: bool = Field(default=True, description="Scale delays by a random factor in [0.5, 1]")
    retryable_statuses: list[int] = Field(
        default_factory=lambda: list(DEFAULT_RETRYABLE_STATUSES),
        description="HTTP status codes that trigger a retry",
    )
    retryable_error_patterns: list[str] = Field(
        default_factory=lambda: list(DEFAULT_RETRYABLE_ERROR_PATTERNS),
        validation_alias=AliasChoices(
            "retryable_error_patterns", "retryableErrorPatterns", "retryableErrors"
        ),
        description="Case-insensitive substrings of error messages that trigger a retry",
    )

    @field_validator("retryable_error_patterns", mode="before")
    @classmethod
    def _coerce_patterns(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [value]
        return value


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format",
    )
    log_file: str | None = Field(default=None, description="Log file path")
    max_bytes: int = Field(default=10485760, description="Max log file size (10MB)")
    backup_count: int = Field(default=5, description="Number of backup files")

    @field_validator("level")
    @classmethod
    def normalise_level(cls, value: str) -> str:
        level = (value or "INFO").strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unsupported log level: {value}")
        return level


class EmailProviderConfig(BaseModel):
    """Credentials and endpoint for the transactional email API."""

    api_key: str | None = Field(default=None, description="Bearer token for the email API")
    from_email: str | None = Field(default=None, description="Default sender address")
    api_url: str = Field(
        default="https://api.resend.com/emails", description="Email send endpoint"
    )
    site_domain: str = Field(
        default="localhost", description="Domain used for the noreply@ fallback sender"
    )
    timeout: float = Field(default=30.0, ge=0.0, description="Request timeout in seconds")

    @property
    def default_sender(self) -> str:
        """Sender used when a step does not specify ``from``."""
        return self.from_email or f"noreply@{self.site_domain}"


class SlackConfig(BaseModel):
    """Endpoint settings for the Slack Web API."""

    api_base_url: str = Field(default="https://slack.com/api", description="Slack Web API base")
    timeout: float = Field(default=30.0, ge=0.0, description="Request timeout in seconds")

    @property
    def post_message_url(self) -> str:
        return f"{self.api_base_url.rstrip('/')}/chat.postMessage"


class HTTPClientConfig(BaseModel):
    """Default HTTP client configuration for the http_request step."""

    timeout: float = Field(default=30.0, ge=0.0, description="Default HTTP timeout in seconds")


class DatabaseConfig(BaseModel):
    """Optional database backing the contact and integration stores."""

    url: str | None = Field(default=None, description="SQLAlchemy database URL")


class EngineSettings(BaseSettings):
    """Main configuration for the workflow engine."""

    model_config = SettingsConfigDict(
        env_prefix="STEPFLOW_",
        env_nested_delimiter="__",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )
    email: EmailProviderConfig = Field(
        default_factory=EmailProviderConfig, description="Email provider settings"
    )
    slack: SlackConfig = Field(default_factory=SlackConfig, description="Slack API settings")
    http: HTTPClientConfig = Field(
        default_factory=HTTPClientConfig, description="Default HTTP client settings"
    )
    retry: RetryConfig = Field(
        default_factory=RetryConfig, description="Default retry policy for steps with retry: true"
    )
    database: DatabaseConfig = Field(
        default_factory=DatabaseConfig, description="Contact/integration store database"
    )

    @classmethod
    def from_yaml(cls, path: str | Path) -> EngineSettings:
        """Load configuration from a YAML file."""

        _load_env_once()
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, encoding="utf-8") as handle:
            try:
                config_data = yaml.safe_load(handle)
            except yaml.YAMLError as exc:
                raise ValueError(f"Invalid YAML in config file: {exc}") from exc

        if not config_data:
            config_data = {}

        config_data = _expand_env_vars(config_data)
        return cls(**config_data)

    @classmethod
    def from_json(cls, path: str | Path) -> EngineSettings:
        """Load configuration from a JSON file."""

        _load_env_once()
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, encoding="utf-8") as handle:
            try:
                config_data = json.load(handle)
            except json.JSONDecodeError as exc:
                raise ValueError(f"Invalid JSON in config file: {exc}") from exc

        config_data = _expand_env_vars(config_data)
        return cls(**config_data)

    @classmethod
    def load(cls, path: str | Path | None = None) -> EngineSettings:
        """Load settings from a YAML/JSON file, or from the environment only."""

        if path is None:
            _load_env_once()
            return cls()
        if str(path).endswith(".json"):
            return cls.from_json(path)
        return cls.from_yaml(path)
