"""Per-run execution context.

The executor owns the step results of a run and appends to them after each
step. Handlers receive an :class:`ExecutionContext` whose ``step_results`` is a
read-only view of that dict, so they can read earlier results but never write.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any

from .models import StepResult, UserInfo, WorkflowInput


@dataclass(frozen=True)
class WorkflowMeta:
    """Workflow trigger metadata exposed to templates."""

    id: str
    name: str
    trigger_type: str = "manual"

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "trigger_type": self.trigger_type}


@dataclass(frozen=True)
class ExecutionContext:
    """Immutable view of one run handed to step handlers."""

    run_id: str
    user: UserInfo
    workflow: WorkflowMeta
    trigger_data: Mapping[str, Any] | None = None
    step_results: Mapping[str, StepResult] = field(
        default_factory=lambda: MappingProxyType({})
    )
    overlay: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    def with_overlay(self, **values: Any) -> ExecutionContext:
        """Return a copy carrying extra template variables (e.g. ``contact``)."""
        merged = dict(self.overlay)
        merged.update(values)
        return replace(self, overlay=MappingProxyType(merged))

    def get_step_result(self, step_id: str) -> StepResult | None:
        return self.step_results.get(step_id)

    def to_namespace(self) -> dict[str, Any]:
        """Build the variable namespace used by templates and conditions."""
        namespace: dict[str, Any] = {
            "user": self.user.to_dict(),
            "workflow": self.workflow.to_dict(),
            "trigger": {"data": dict(self.trigger_data) if self.trigger_data else {}},
            "steps": {
                step_id: {"status": result.status.value, "data": result.data}
                for step_id, result in self.step_results.items()
            },
        }
        namespace.update(self.overlay)
        return namespace


def create_context(
    workflow: WorkflowInput,
    user: UserInfo,
    run_id: str,
    results: dict[str, StepResult],
    trigger_data: Mapping[str, Any] | None = None,
) -> ExecutionContext:
    """Create the context for a run over an executor-owned results dict."""
    return ExecutionContext(
        run_id=run_id,
        user=user,
        workflow=WorkflowMeta(
            id=workflow.id, name=workflow.name, trigger_type=workflow.trigger_type
        ),
        trigger_data=trigger_data,
        step_results=MappingProxyType(results),
    )
