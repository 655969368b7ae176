"""Workflow execution engine."""

from .context import ExecutionContext, WorkflowMeta, create_context
from .executor import CancellationToken, ExecutionOptions, WorkflowExecutor
from .models import (
    ContactFilter,
    ContactInfo,
    ExecutionResult,
    ExecutionStatus,
    RecipientConfig,
    ResolvedRecipients,
    Step,
    StepResult,
    StepStatus,
    UserInfo,
    WorkflowDefinition,
    WorkflowInput,
)
from .recipients import RecipientResolver
from .retry import RetryResult, calculate_delay, parse_retry_directive, with_retry
from .templates import TemplateResolver, has_unresolved, template_resolver

__all__ = [
    "CancellationToken",
    "ContactFilter",
    "ContactInfo",
    "ExecutionContext",
    "ExecutionOptions",
    "ExecutionResult",
    "ExecutionStatus",
    "RecipientConfig",
    "RecipientResolver",
    "ResolvedRecipients",
    "RetryResult",
    "Step",
    "StepResult",
    "StepStatus",
    "TemplateResolver",
    "UserInfo",
    "WorkflowDefinition",
    "WorkflowExecutor",
    "WorkflowInput",
    "WorkflowMeta",
    "calculate_delay",
    "create_context",
    "has_unresolved",
    "parse_retry_directive",
    "template_resolver",
    "with_retry",
]
