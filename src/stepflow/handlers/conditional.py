"""Conditional step handler.

Evaluates a boolean expression and reports which branch applies. The branch
steps themselves are not executed here.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from pydantic import Field

from ..core.logger import get_logger
from ..engine.context import ExecutionContext
from ..engine.models import Step, StepResult
from .base import HandlerConfig, StepHandler

logger = get_logger("handlers.conditional")

# Operators accepted for compatibility with workflows written for JS evaluators.
_OPERATOR_REWRITES = (
    (re.compile(r"!=="), "!="),
    (re.compile(r"==="), "=="),
    (re.compile(r"&&"), " and "),
    (re.compile(r"\|\|"), " or "),
)

SAFE_BUILTINS: dict[str, Any] = {
    "len": len,
    "str": str,
    "int": int,
    "float": float,
    "bool": bool,
    "abs": abs,
    "min": min,
    "max": max,
    "any": any,
    "all": all,
    "True": True,
    "False": False,
    "None": None,
    "true": True,
    "false": False,
    "null": None,
}


class AttrDict(dict):
    """Dict allowing ``obj.key`` access, used inside condition expressions."""

    def __getattr__(self, name: str) -> Any:
        try:
            return self[name]
        except KeyError:
            raise AttributeError(name) from None


def to_attr(value: Any) -> Any:
    if isinstance(value, Mapping):
        return AttrDict({key: to_attr(item) for key, item in value.items()})
    if isinstance(value, list | tuple):
        return [to_attr(item) for item in value]
    return value


def normalize_expression(expression: str) -> str:
    for pattern, replacement in _OPERATOR_REWRITES:
        expression = pattern.sub(replacement, expression)
    return expression.strip()


def evaluate_condition(expression: str, namespace: Mapping[str, Any]) -> bool:
    """Evaluate ``expression`` with restricted builtins.

    Raises:
        Exception: Whatever the expression raises (syntax errors, missing keys...)
    """
    safe_context = dict(SAFE_BUILTINS)
    safe_context.update({key: to_attr(value) for key, value in namespace.items()})
    return bool(eval(normalize_expression(expression), {"__builtins__": {}}, safe_context))


class ConditionalConfig(HandlerConfig):
    """Configuration of a ``conditional`` step."""

    condition: str = Field(min_length=1)
    true_steps: list[str] = Field(default_factory=list)
    false_steps: list[str] = Field(default_factory=list)


class ConditionalHandler(StepHandler[ConditionalConfig]):
    """Evaluate a condition over the run context."""

    type = "conditional"
    config_model = ConditionalConfig

    async def run(
        self, step: Step, config: ConditionalConfig, context: ExecutionContext
    ) -> StepResult:
        condition = self.templates.resolve(config.condition, context)
        try:
            result = evaluate_condition(condition, context.to_namespace())
        except Exception as exc:
            logger.warning("Failed to evaluate condition '%s': %s", condition, exc)
            return self.failed(step, f"Condition evaluation failed: {exc}")

        return self.completed(
            step,
            {
                "condition_result": result,
                "true_steps": list(config.true_steps),
                "false_steps": list(config.false_steps),
            },
        )
