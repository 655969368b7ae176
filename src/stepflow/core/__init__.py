"""Core configuration, logging and error types."""

from .config import (
    DatabaseConfig,
    EmailProviderConfig,
    EngineSettings,
    HTTPClientConfig,
    LoggingConfig,
    RetryConfig,
    SlackConfig,
)
from .exceptions import (
    ConfigurationError,
    HandlerNotRegisteredError,
    RecipientResolutionError,
    StepflowError,
)
from .logger import get_logger, log_exception, setup_logging

__all__ = [
    "ConfigurationError",
    "DatabaseConfig",
    "EmailProviderConfig",
    "EngineSettings",
    "HTTPClientConfig",
    "HandlerNotRegisteredError",
    "LoggingConfig",
    "RecipientResolutionError",
    "RetryConfig",
    "SlackConfig",
    "StepflowError",
    "get_logger",
    "log_exception",
    "setup_logging",
]
