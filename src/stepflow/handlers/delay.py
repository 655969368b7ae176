"""Delay step handler.

Never sleeps. The step finishes as ``waiting`` with a ``resume_at`` timestamp;
the caller persists the run and later continues it with
:meth:`WorkflowExecutor.resume`.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Literal

from pydantic import field_validator

from ..engine.context import ExecutionContext
from ..engine.models import Step, StepResult, utcnow
from .base import HandlerConfig, StepHandler

UNIT_SECONDS = {
    "seconds": 1,
    "minutes": 60,
    "hours": 3600,
    "days": 86400,
}

MAX_DELAY = timedelta(days=30)


class DelayConfig(HandlerConfig):
    """Configuration of a ``delay`` step."""

    duration: int
    unit: Literal["seconds", "minutes", "hours", "days"] = "seconds"

    @field_validator("duration", mode="before")
    @classmethod
    def _positive(cls, value: Any) -> Any:
        try:
            number = int(value)
        except (TypeError, ValueError):
            raise ValueError("Delay duration must be a positive number") from None
        if number <= 0:
            raise ValueError("Delay duration must be a positive number")
        return number


class DelayHandler(StepHandler[DelayConfig]):
    """Pause a run until ``resume_at``."""

    type = "delay"
    config_model = DelayConfig

    async def run(self, step: Step, config: DelayConfig, context: ExecutionContext) -> StepResult:
        delay = timedelta(seconds=config.duration * UNIT_SECONDS[config.unit])
        if delay > MAX_DELAY:
            return self.failed(step, "Maximum delay is 30 days")

        resume_at = utcnow() + delay
        return self.waiting(
            step,
            {
                "duration": config.duration,
                "unit": config.unit,
                "resume_at": resume_at.isoformat(),
            },
        )
