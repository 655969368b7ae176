"""Base class for step handlers.

Each handler declares the step ``type`` it serves and a pydantic
``config_model`` describing that step's configuration. The configuration is
parsed before the handler body runs, so handlers work with typed fields and
never inspect a raw dict for missing keys.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any, ClassVar, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from ..core.config import RetryConfig
from ..core.exceptions import ConfigurationError
from ..core.logger import get_logger
from ..engine.context import ExecutionContext
from ..engine.models import Step, StepResult, StepStatus
from ..engine.retry import RetryResult, parse_retry_directive, with_retry
from ..engine.templates import TemplateResolver, template_resolver

logger = get_logger("handlers")

ConfigT = TypeVar("ConfigT", bound=BaseModel)
T = TypeVar("T")

NO_RETRY = RetryConfig(max_retries=0)


class HandlerConfig(BaseModel):
    """Base for step configuration models.

    Keys may be given in snake_case or camelCase. Unknown keys are ignored so
    editors can store extra metadata on a step.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class RetryableConfig(HandlerConfig):
    """Step configuration carrying a ``retry`` directive."""

    retry: bool | int | dict[str, Any] | None = None

    @field_validator("retry")
    @classmethod
    def _check_retry(cls, value: Any) -> Any:
        if isinstance(value, dict):
            RetryConfig.model_validate(value)
        return value


def format_validation_error(exc: ValidationError) -> str:
    """Condense a pydantic error into ``field: message`` pairs."""
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()))
        message = error.get("msg", "invalid value")
        if message.startswith("Value error, "):
            message = message[len("Value error, ") :]
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts)


class StepHandler(ABC, Generic[ConfigT]):
    """Base class for step handlers.

    Subclasses implement :meth:`run`. Expected failures are returned as failed
    results through :meth:`failed`; exceptions escaping :meth:`run` are treated
    as unexpected and contained by the executor.
    """

    type: ClassVar[str]
    config_model: ClassVar[type[BaseModel]]

    def __init__(self, default_retry: RetryConfig | None = None) -> None:
        self.default_retry = default_retry or RetryConfig()
        self.templates: TemplateResolver = template_resolver

    def parse_config(self, config: dict[str, Any]) -> ConfigT:
        """Validate a raw step configuration.

        Raises:
            ConfigurationError: If the configuration does not match ``config_model``
        """
        try:
            return self.config_model.model_validate(config or {})  # type: ignore[return-value]
        except ValidationError as exc:
            raise ConfigurationError(
                f"Invalid {self.type} configuration: {format_validation_error(exc)}"
            ) from exc

    async def execute(self, step: Step, context: ExecutionContext) -> StepResult:
        """Parse the step configuration and run the handler."""
        try:
            config = self.parse_config(step.config)
        except ConfigurationError as exc:
            return self.failed(step, str(exc))
        return await self.run(step, config, context)

    @abstractmethod
    async def run(self, step: Step, config: ConfigT, context: ExecutionContext) -> StepResult:
        """Perform the step.

        Args:
            step: Step being executed
            config: Parsed step configuration
            context: Read-only run context

        Returns:
            StepResult with status, data and error
        """
        pass

    def retry_policy(self, directive: Any) -> RetryConfig:
        """Policy for a step's ``retry`` directive; a single attempt when absent."""
        return parse_retry_directive(directive, self.default_retry) or NO_RETRY

    async def call_with_retry(
        self, operation: Callable[[], Awaitable[T]], directive: Any
    ) -> RetryResult[T]:
        return await with_retry(operation, self.retry_policy(directive))

    @staticmethod
    def retry_stats(result: RetryResult[Any]) -> dict[str, Any]:
        """Retry telemetry to merge into step data when retries happened."""
        if result.attempts > 1:
            return {"attempts": result.attempts, "total_delay": result.total_delay}
        return {}

    def completed(self, step: Step, data: Any = None) -> StepResult:
        return StepResult(step_id=step.id, status=StepStatus.COMPLETED, data=data)

    def waiting(self, step: Step, data: Any = None) -> StepResult:
        return StepResult(step_id=step.id, status=StepStatus.WAITING, data=data)

    def failed(self, step: Step, error: str, data: Any = None) -> StepResult:
        logger.warning("Step %s (%s) failed: %s", step.id, self.type, error)
        return StepResult(step_id=step.id, status=StepStatus.FAILED, data=data, error=error)
