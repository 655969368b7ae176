"""CLI command implementations."""

from __future__ import annotations

import argparse
import asyncio
import json
import uuid
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from ..core.config import EngineSettings, LoggingConfig
from ..core.logger import get_logger, setup_logging
from ..engine.executor import ExecutionOptions, WorkflowExecutor
from ..engine.models import ExecutionResult, ExecutionStatus, UserInfo, WorkflowInput
from ..factory import build_executor, build_stores

logger = get_logger("cli")

console = Console()

STATUS_STYLES = {
    "completed": "green",
    "waiting": "yellow",
    "failed": "red",
    "skipped": "dim",
    "running": "cyan",
    "cancelled": "red",
}

STEP_TYPES = {
    "send_email": "Send an email to contacts or addresses",
    "send_slack": "Post a Slack message",
    "http_request": "Make an HTTP request",
    "delay": "Pause the run until a resume time",
    "conditional": "Evaluate a condition",
}


def load_document(path: str | Path) -> dict[str, Any]:
    """Read a YAML or JSON mapping from disk."""
    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"File not found: {file_path}")
    with open(file_path, encoding="utf-8") as handle:
        try:
            data = yaml.safe_load(handle)
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML/JSON in {file_path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"Expected a mapping in {file_path}")
    return data


def load_workflow(path: str | Path, owner_id: str | None = None) -> WorkflowInput:
    """Load a workflow file.

    Top-level ``steps`` are accepted as shorthand for ``definition.steps``.
    """
    data = load_document(path)
    if "definition" not in data and "steps" in data:
        data["definition"] = {
            "steps": data.pop("steps"),
            "triggerStepId": data.pop("triggerStepId", data.pop("trigger_step_id", None)),
        }
    data.setdefault("id", Path(path).stem)
    data.setdefault("name", data["id"])
    if not any(key in data for key in ("owner_id", "ownerId", "userId")):
        data["owner_id"] = owner_id or "local"
    return WorkflowInput.model_validate(data)


def _load_settings(args: argparse.Namespace) -> EngineSettings:
    return EngineSettings.load(getattr(args, "config", None))


def render_result(result: ExecutionResult) -> None:
    """Print a step table and a summary panel."""
    table = Table(title=f"Run {result.execution_id}")
    table.add_column("Step", style="cyan")
    table.add_column("Status")
    table.add_column("Duration", justify="right")
    table.add_column("Details")

    for step in result.steps:
        style = STATUS_STYLES.get(step.status.value, "white")
        if step.error:
            details = step.error
        elif step.data is not None:
            details = json.dumps(step.data, default=str)
        else:
            details = ""
        table.add_row(
            step.step_id,
            f"[{style}]{step.status.value}[/]",
            f"{step.duration or 0} ms",
            escape(details),
        )
    console.print(table)

    style = STATUS_STYLES.get(result.status.value, "white")
    summary = f"[bold]Status:[/bold] [{style}]{result.status.value}[/]\n"
    summary += f"[bold]Duration:[/bold] {result.duration or 0} ms"
    if result.error:
        summary += f"\n[bold]Error:[/bold] {escape(result.error)}"
    console.print(Panel(summary, title="[bold white]Result[/]", border_style=style, expand=False))


def cmd_run(args: argparse.Namespace) -> int:
    """Execute a workflow file.

    Returns:
        0 when the run completed or is waiting, 1 otherwise
    """
    try:
        settings = _load_settings(args)
        if args.debug:
            settings.logging = LoggingConfig(level="DEBUG")
        setup_logging(settings.logging)

        workflow = load_workflow(args.workflow, args.user_id)
        data = load_document(args.data) if args.data else None
        contact_store, integration_store = build_stores(settings, data)
        executor = build_executor(settings, contact_store, integration_store)
        trigger_data = json.loads(args.trigger_data) if args.trigger_data else None
    except (FileNotFoundError, ValueError, ValidationError) as exc:
        console.print(f"[red]Error:[/] {escape(str(exc))}")
        return 1

    user = UserInfo(
        id=args.user_id or workflow.owner_id, email=args.user_email, name=args.user_name
    )
    run_id = args.run_id or uuid.uuid4().hex
    result = asyncio.run(
        executor.execute(workflow, user, run_id, ExecutionOptions(trigger_data=trigger_data))
    )

    if args.json:
        console.print_json(json.dumps(result.to_dict(), default=str))
    else:
        render_result(result)
    return 0 if result.status in (ExecutionStatus.COMPLETED, ExecutionStatus.WAITING) else 1


def cmd_validate(args: argparse.Namespace) -> int:
    """Validate a workflow file against the registered handlers."""
    try:
        settings = _load_settings(args)
        workflow = load_workflow(args.workflow)
    except (FileNotFoundError, ValueError, ValidationError) as exc:
        console.print(f"[red]Error:[/] {escape(str(exc))}")
        return 1

    executor = build_executor(settings)
    errors = executor.validate(workflow)
    if errors:
        console.print(f"[red]Workflow {workflow.id} has {len(errors)} problem(s):[/]")
        for error in errors:
            console.print(f"  - {error}", markup=False)
        return 1

    console.print(f"[green]Workflow {workflow.id} is valid[/] ({len(workflow.steps)} steps)")
    return 0


def cmd_handlers(args: argparse.Namespace) -> int:
    """List the step types the default executor can run."""
    executor: WorkflowExecutor = build_executor(EngineSettings())
    table = Table(title="Step types")
    table.add_column("Type", style="cyan")
    table.add_column("Description")
    for step_type in executor.get_registered_step_types():
        table.add_row(step_type, STEP_TYPES.get(step_type, ""))
    console.print(table)
    return 0
