"""Workflow executor.

Runs a workflow's steps one at a time, in position order, and reports exactly
what happened. The executor stops at the first failed or waiting step, contains
every unexpected exception and keeps no per-run state on the instance, so one
executor can serve concurrent runs.
"""

from __future__ import annotations

import inspect
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any

from ..core.exceptions import ConfigurationError, HandlerNotRegisteredError
from ..core.logger import get_logger, log_exception
from .context import ExecutionContext, create_context
from .models import (
    ExecutionResult,
    ExecutionStatus,
    Step,
    StepResult,
    StepStatus,
    UserInfo,
    WorkflowInput,
    elapsed_ms,
    utcnow,
)

if TYPE_CHECKING:
    from ..handlers.base import StepHandler

logger = get_logger("engine.executor")

CANCELLED_ERROR = "Execution cancelled"
NO_STEPS_ERROR = "Workflow has no steps"
NOT_WAITING_ERROR = "Execution is not in waiting state"

StepStartHook = Callable[[str], Any]
StepCompleteHook = Callable[[StepResult], Any]
ContinueCheck = Callable[[], Any]


class CancellationToken:
    """Cooperative cancellation flag checked before each step."""

    def __init__(self) -> None:
        self._cancelled = False
        self.reason: str | None = None

    def cancel(self, reason: str | None = None) -> None:
        self._cancelled = True
        self.reason = reason

    @property
    def cancelled(self) -> bool:
        return self._cancelled


@dataclass
class ExecutionOptions:
    """Per-run options.

    Attributes:
        trigger_data: Trigger payload exposed as ``{{trigger.data.*}}``
        on_step_start: Awaited with the step id before each step
        on_step_complete: Awaited with each finished StepResult
        should_continue: Polled before each step; returning False cancels the run
        cancellation: Token polled before each step
    """

    trigger_data: Mapping[str, Any] | None = None
    on_step_start: StepStartHook | None = None
    on_step_complete: StepCompleteHook | None = None
    should_continue: ContinueCheck | None = None
    cancellation: CancellationToken | None = None


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _as_user(user: UserInfo | Mapping[str, Any]) -> UserInfo:
    if isinstance(user, UserInfo):
        return user
    return UserInfo(id=str(user["id"]), email=user.get("email", ""), name=user.get("name"))


class WorkflowExecutor:
    """Execute workflows step by step with a registry of step handlers."""

    def __init__(self, handlers: Iterable[StepHandler] = ()) -> None:
        self._handlers: dict[str, StepHandler] = {}
        for handler in handlers:
            self.register_handler(handler)

    def register_handler(self, handler: StepHandler) -> None:
        """Register a handler for its step type, replacing any previous one."""
        if handler.type in self._handlers:
            logger.warning("Replacing handler for step type: %s", handler.type)
        self._handlers[handler.type] = handler
        logger.debug("Registered handler for step type: %s", handler.type)

    def get_registered_step_types(self) -> list[str]:
        return list(self._handlers)

    def get_handler(self, step_type: str) -> StepHandler | None:
        return self._handlers.get(step_type)

    async def execute(
        self,
        workflow: WorkflowInput,
        user: UserInfo | Mapping[str, Any],
        run_id: str,
        options: ExecutionOptions | None = None,
    ) -> ExecutionResult:
        """Execute a workflow.

        Args:
            workflow: Workflow to execute
            user: User on whose behalf the run executes
            run_id: Unique id of this run
            options: Trigger data, hooks and cancellation

        Returns:
            ExecutionResult; this method never raises
        """
        return await self._run(workflow, user, run_id, options or ExecutionOptions())

    async def resume(
        self,
        workflow: WorkflowInput,
        user: UserInfo | Mapping[str, Any],
        run_id: str,
        previous: ExecutionResult,
        options: ExecutionOptions | None = None,
    ) -> ExecutionResult:
        """Continue a run that stopped at a waiting step.

        The waiting step is recorded as completed and execution continues with
        the next step in position order. Earlier results are kept at the front
        of the returned ``steps`` and are visible to templates.
        """
        if previous.status != ExecutionStatus.WAITING:
            now = utcnow()
            return ExecutionResult(
                execution_id=run_id,
                status=ExecutionStatus.FAILED,
                steps=list(previous.steps),
                error=NOT_WAITING_ERROR,
                started_at=now,
                completed_at=now,
                duration=0,
            )

        seed = [
            replace(result, status=StepStatus.COMPLETED)
            if result.status == StepStatus.WAITING
            else result
            for result in previous.steps
        ]
        done = {result.step_id for result in seed if result.status == StepStatus.COMPLETED}
        ordered = workflow.sorted_steps()
        last_index = -1
        for index, step in enumerate(ordered):
            if step.id in done:
                last_index = index

        logger.info("Resuming run %s after step %d", run_id, last_index + 1)
        return await self._run(
            workflow,
            user,
            run_id,
            options or ExecutionOptions(),
            seed=seed,
            start_index=last_index + 1,
        )

    async def _run(
        self,
        workflow: WorkflowInput,
        user: UserInfo | Mapping[str, Any],
        run_id: str,
        options: ExecutionOptions,
        seed: list[StepResult] | None = None,
        start_index: int = 0,
    ) -> ExecutionResult:
        started_at = utcnow()
        steps: list[StepResult] = list(seed or [])
        status = ExecutionStatus.RUNNING
        error: str | None = None

        try:
            ordered = workflow.sorted_steps()
            if not ordered:
                raise ConfigurationError(NO_STEPS_ERROR)

            results = {result.step_id: result for result in steps}
            context = create_context(
                workflow, _as_user(user), run_id, results, trigger_data=options.trigger_data
            )
            logger.info(
                "Starting run %s of workflow %s (%d steps)", run_id, workflow.id, len(ordered)
            )

            for step in ordered[start_index:]:
                if await self._is_cancelled(options):
                    logger.info("Run %s cancelled before step %s", run_id, step.id)
                    status = ExecutionStatus.FAILED
                    error = CANCELLED_ERROR
                    break

                if options.on_step_start is not None:
                    await _maybe_await(options.on_step_start(step.id))

                result = await self._execute_step(step, context)
                steps.append(result)
                results[step.id] = result

                if options.on_step_complete is not None:
                    await _maybe_await(options.on_step_complete(result))

                if result.status == StepStatus.FAILED:
                    status = ExecutionStatus.FAILED
                    error = f'Step "{step.name}" failed: {result.error}'
                    break

                if result.status == StepStatus.WAITING:
                    status = ExecutionStatus.WAITING
                    break

            if status == ExecutionStatus.RUNNING:
                status = ExecutionStatus.COMPLETED
        except Exception as exc:
            log_exception(logger, exc, f"Run {run_id} failed")
            status = ExecutionStatus.FAILED
            error = str(exc) or type(exc).__name__

        completed_at = utcnow()
        logger.info("Run %s finished with status %s", run_id, status.value)
        return ExecutionResult(
            execution_id=run_id,
            status=status,
            steps=steps,
            error=error,
            started_at=started_at,
            completed_at=completed_at,
            duration=elapsed_ms(started_at, completed_at),
        )

    async def _is_cancelled(self, options: ExecutionOptions) -> bool:
        if options.cancellation is not None and options.cancellation.cancelled:
            return True
        if options.should_continue is not None:
            return not await _maybe_await(options.should_continue())
        return False

    async def _execute_step(self, step: Step, context: ExecutionContext) -> StepResult:
        started_at = utcnow()
        data: Any = None
        error: str | None = None

        logger.debug("Executing step %s (%s)", step.id, step.type)
        try:
            handler = self._handlers.get(step.type)
            if handler is None:
                raise HandlerNotRegisteredError(step.type)
            outcome = await handler.execute(step, context)
            status, data, error = outcome.status, outcome.data, outcome.error
        except HandlerNotRegisteredError as exc:
            logger.warning("%s", exc)
            status, error = StepStatus.FAILED, str(exc)
        except Exception as exc:
            log_exception(logger, exc, f"Step {step.id} raised")
            status, error = StepStatus.FAILED, str(exc) or type(exc).__name__

        completed_at = utcnow()
        return StepResult(
            step_id=step.id,
            status=status,
            data=data,
            error=error,
            started_at=started_at,
            completed_at=completed_at,
            duration=elapsed_ms(started_at, completed_at),
        )

    def validate(self, workflow: WorkflowInput) -> list[str]:
        """Check a workflow before running it.

        Returns:
            Human-readable problems; an empty list means the workflow is valid
        """
        errors: list[str] = []
        steps = workflow.sorted_steps()
        if not steps:
            return [NO_STEPS_ERROR]

        seen: set[str] = set()
        for step in steps:
            if step.id in seen:
                errors.append(f"Duplicate step id: {step.id}")
            seen.add(step.id)

        trigger_step_id = workflow.definition.trigger_step_id
        if trigger_step_id and trigger_step_id not in seen:
            errors.append(f"Trigger step not found: {trigger_step_id}")

        for step in steps:
            handler = self._handlers.get(step.type)
            if handler is None:
                errors.append(f'Step "{step.name}": {HandlerNotRegisteredError(step.type)}')
                continue
            try:
                handler.parse_config(step.config)
            except ConfigurationError as exc:
                errors.append(f'Step "{step.name}": {exc}')
        return errors
