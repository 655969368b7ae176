"""Tests for the workflow executor."""

from __future__ import annotations

import logging
from dataclasses import FrozenInstanceError
from typing import Any

import pytest

from stepflow.engine.context import ExecutionContext
from stepflow.engine.executor import (
    CANCELLED_ERROR,
    NOT_WAITING_ERROR,
    CancellationToken,
    ExecutionOptions,
    WorkflowExecutor,
)
from stepflow.engine.models import ExecutionStatus, Step, StepResult, StepStatus
from stepflow.handlers.base import HandlerConfig, StepHandler


class EchoConfig(HandlerConfig):
    value: str = ""
    fail: bool = False


class EchoHandler(StepHandler[EchoConfig]):
    """Records calls and returns the resolved ``value``."""

    type = "echo"
    config_model = EchoConfig

    def __init__(self) -> None:
        super().__init__()
        self.calls: list[str] = []

    async def run(self, step: Step, config: EchoConfig, context: ExecutionContext) -> StepResult:
        self.calls.append(step.id)
        if config.fail:
            return self.failed(step, "echo refused")
        return self.completed(step, {"value": self.templates.resolve(config.value, context)})


class PauseHandler(StepHandler[HandlerConfig]):
    type = "pause"
    config_model = HandlerConfig

    async def run(self, step: Step, config: HandlerConfig, context: ExecutionContext) -> StepResult:
        return self.waiting(step, {"paused": True})


class ExplodingHandler(StepHandler[HandlerConfig]):
    type = "explode"
    config_model = HandlerConfig

    async def run(self, step: Step, config: HandlerConfig, context: ExecutionContext) -> StepResult:
        raise RuntimeError("kaboom")


def echo(step_id: str, position: int, **config: Any) -> dict[str, Any]:
    return {
        "id": step_id,
        "type": "echo",
        "name": step_id.title(),
        "position": position,
        "config": config,
    }


@pytest.fixture
def echo_handler() -> EchoHandler:
    return EchoHandler()


@pytest.fixture
def executor(echo_handler) -> WorkflowExecutor:
    return WorkflowExecutor([echo_handler, PauseHandler(), ExplodingHandler()])


class TestExecute:
    """Tests for WorkflowExecutor.execute."""

    @pytest.mark.anyio
    async def test_runs_steps_in_position_order(
        self, executor, echo_handler, make_workflow, user
    ) -> None:
        """Test steps run sorted by position regardless of list order."""
        workflow = make_workflow([echo("c", 3), echo("a", 1), echo("b", 2)])

        result = await executor.execute(workflow, user, "run-1")

        assert result.status == ExecutionStatus.COMPLETED
        assert result.error is None
        assert echo_handler.calls == ["a", "b", "c"]
        assert [step.step_id for step in result.steps] == ["a", "b", "c"]
        assert all(step.status == StepStatus.COMPLETED for step in result.steps)
        assert result.execution_id == "run-1"
        assert result.duration is not None and result.duration >= 0

    @pytest.mark.anyio
    async def test_equal_positions_keep_list_order(
        self, executor, echo_handler, make_workflow, user
    ) -> None:
        """Test the position sort is stable."""
        workflow = make_workflow([echo("first", 0), echo("second", 0)])

        await executor.execute(workflow, user, "run-1")

        assert echo_handler.calls == ["first", "second"]

    @pytest.mark.anyio
    async def test_later_steps_see_earlier_results(self, executor, make_workflow, user) -> None:
        """Test step data flows into later templates."""
        workflow = make_workflow(
            [
                echo("one", 0, value="{{user.email}}"),
                echo("two", 1, value="got {{steps.one.data.value}} via {{trigger.data.src}}"),
            ]
        )

        result = await executor.execute(
            workflow, user, "run-1", ExecutionOptions(trigger_data={"src": "api"})
        )

        assert result.get_step("two").data == {"value": "got owner@example.com via api"}

    @pytest.mark.anyio
    async def test_no_steps_fails(self, executor, make_workflow, user) -> None:
        """Test an empty workflow fails without executing anything."""
        result = await executor.execute(make_workflow([]), user, "run-1")

        assert result.status == ExecutionStatus.FAILED
        assert result.error == "Workflow has no steps"
        assert result.steps == []

    @pytest.mark.anyio
    async def test_stops_at_first_failure(self, executor, echo_handler, make_workflow, user) -> None:
        """Test a failed step ends the run and later steps never start."""
        workflow = make_workflow([echo("a", 0), echo("b", 1, fail=True), echo("c", 2)])

        result = await executor.execute(workflow, user, "run-1")

        assert result.status == ExecutionStatus.FAILED
        assert result.error == 'Step "B" failed: echo refused'
        assert echo_handler.calls == ["a", "b"]
        assert [step.status for step in result.steps] == [StepStatus.COMPLETED, StepStatus.FAILED]

    @pytest.mark.anyio
    async def test_waiting_step_pauses_run(self, executor, echo_handler, make_workflow, user) -> None:
        """Test a waiting step stops the run with status waiting."""
        pause = {"id": "p", "type": "pause", "name": "Pause", "position": 1}
        workflow = make_workflow([echo("a", 0), pause, echo("c", 2)])

        result = await executor.execute(workflow, user, "run-1")

        assert result.status == ExecutionStatus.WAITING
        assert result.error is None
        assert result.steps[-1].status == StepStatus.WAITING
        assert echo_handler.calls == ["a"]

    @pytest.mark.anyio
    async def test_unknown_step_type(self, executor, make_workflow, user) -> None:
        """Test a step without handler fails with a descriptive error."""
        workflow = make_workflow([{"id": "x", "type": "fax", "name": "Fax"}])

        result = await executor.execute(workflow, user, "run-1")

        assert result.status == ExecutionStatus.FAILED
        assert result.steps[0].error == "No handler registered for step type: fax"
        assert result.error == 'Step "Fax" failed: No handler registered for step type: fax'

    @pytest.mark.anyio
    async def test_handler_exception_is_contained(
        self, executor, make_workflow, user, caplog
    ) -> None:
        """Test an exception escaping a handler becomes a failed step and is logged."""
        workflow = make_workflow([{"id": "boom", "type": "explode", "name": "Boom"}])

        with caplog.at_level(logging.ERROR):
            result = await executor.execute(workflow, user, "run-1")

        assert "Step boom raised: kaboom" in caplog.text
        assert "RuntimeError" in caplog.text

        assert result.status == ExecutionStatus.FAILED
        assert result.steps[0].status == StepStatus.FAILED
        assert result.steps[0].error == "kaboom"
        assert result.steps[0].completed_at is not None

    @pytest.mark.anyio
    async def test_invalid_step_config_fails_step(self, executor, make_workflow, user) -> None:
        """Test a config that does not parse fails the step."""
        workflow = make_workflow([echo("a", 0, fail="not-a-bool")])

        result = await executor.execute(workflow, user, "run-1")

        assert result.status == ExecutionStatus.FAILED
        assert result.steps[0].error.startswith("Invalid echo configuration: fail:")

    @pytest.mark.anyio
    async def test_hooks_called_per_step(self, executor, make_workflow, user) -> None:
        """Test sync and async hooks receive step ids and results."""
        started: list[str] = []
        completed: list[StepResult] = []

        async def on_complete(result: StepResult) -> None:
            completed.append(result)

        workflow = make_workflow([echo("a", 0), echo("b", 1)])
        options = ExecutionOptions(on_step_start=started.append, on_step_complete=on_complete)

        await executor.execute(workflow, user, "run-1", options)

        assert started == ["a", "b"]
        assert [result.step_id for result in completed] == ["a", "b"]

    @pytest.mark.anyio
    async def test_hook_exception_fails_run(
        self, executor, make_workflow, user, caplog
    ) -> None:
        """Test an exception from a hook is contained as a failed run."""

        def on_start(step_id: str) -> None:
            raise ValueError("hook broke")

        workflow = make_workflow([echo("a", 0)])

        with caplog.at_level(logging.ERROR):
            result = await executor.execute(
                workflow, user, "run-1", ExecutionOptions(on_step_start=on_start)
            )

        assert result.status == ExecutionStatus.FAILED
        assert result.error == "hook broke"
        assert "Run run-1 failed: hook broke" in caplog.text

    @pytest.mark.anyio
    async def test_should_continue_cancels(
        self, executor, echo_handler, make_workflow, user
    ) -> None:
        """Test should_continue returning False stops before the next step."""
        checks = iter([True, False])
        workflow = make_workflow([echo("a", 0), echo("b", 1)])

        result = await executor.execute(
            workflow, user, "run-1", ExecutionOptions(should_continue=lambda: next(checks))
        )

        assert result.status == ExecutionStatus.FAILED
        assert result.error == CANCELLED_ERROR
        assert echo_handler.calls == ["a"]
        assert len(result.steps) == 1

    @pytest.mark.anyio
    async def test_async_should_continue(self, executor, echo_handler, make_workflow, user) -> None:
        """Test an async should_continue is awaited."""

        async def should_continue() -> bool:
            return False

        workflow = make_workflow([echo("a", 0)])

        result = await executor.execute(
            workflow, user, "run-1", ExecutionOptions(should_continue=should_continue)
        )

        assert result.error == CANCELLED_ERROR
        assert echo_handler.calls == []

    @pytest.mark.anyio
    async def test_cancellation_token(self, executor, echo_handler, make_workflow, user) -> None:
        """Test a token cancelled from a hook stops the run."""
        token = CancellationToken()
        workflow = make_workflow([echo("a", 0), echo("b", 1)])
        options = ExecutionOptions(
            cancellation=token, on_step_complete=lambda result: token.cancel("user request")
        )

        result = await executor.execute(workflow, user, "run-1", options)

        assert result.status == ExecutionStatus.FAILED
        assert result.error == CANCELLED_ERROR
        assert token.reason == "user request"
        assert echo_handler.calls == ["a"]

    @pytest.mark.anyio
    async def test_accepts_user_mapping(self, executor, make_workflow) -> None:
        """Test the user may be passed as a plain mapping."""
        workflow = make_workflow([echo("a", 0, value="{{user.name}}")])

        result = await executor.execute(
            workflow, {"id": "owner-1", "email": "m@test.io", "name": "Mapped"}, "run-1"
        )

        assert result.steps[0].data == {"value": "Mapped"}

    @pytest.mark.anyio
    async def test_result_serialises(self, executor, make_workflow, user) -> None:
        """Test to_dict produces plain values."""
        result = await executor.execute(make_workflow([echo("a", 0)]), user, "run-1")

        data = result.to_dict()

        assert data["status"] == "completed"
        assert data["steps"][0]["status"] == "completed"
        assert isinstance(data["started_at"], str)


class TestResume:
    """Tests for resuming a waiting run."""

    @pytest.mark.anyio
    async def test_resume_continues_after_waiting_step(
        self, executor, echo_handler, make_workflow, user
    ) -> None:
        """Test resume marks the waiting step completed and runs the rest."""
        workflow = make_workflow(
            [
                echo("a", 0, value="A"),
                {"id": "p", "type": "pause", "name": "Pause", "position": 1},
                echo("c", 2, value="{{steps.a.data.value}}-{{steps.p.status}}"),
            ]
        )
        paused = await executor.execute(workflow, user, "run-1")
        assert paused.status == ExecutionStatus.WAITING

        result = await executor.resume(workflow, user, "run-1", paused)

        assert result.status == ExecutionStatus.COMPLETED
        assert result.execution_id == "run-1"
        assert [step.step_id for step in result.steps] == ["a", "p", "c"]
        assert result.get_step("p").status == StepStatus.COMPLETED
        assert result.get_step("c").data == {"value": "A-completed"}
        assert echo_handler.calls == ["a", "c"]

    @pytest.mark.anyio
    async def test_results_are_immutable(self, executor, make_workflow, user) -> None:
        """Test finalised results reject changes and resume leaves the original intact."""
        workflow = make_workflow(
            [echo("a", 0), {"id": "p", "type": "pause", "name": "Pause", "position": 1}]
        )
        paused = await executor.execute(workflow, user, "run-1")

        with pytest.raises(FrozenInstanceError):
            paused.status = ExecutionStatus.COMPLETED
        with pytest.raises(FrozenInstanceError):
            paused.steps[0].error = "changed"

        await executor.resume(workflow, user, "run-1", paused)

        assert paused.status == ExecutionStatus.WAITING
        assert paused.get_step("p").status == StepStatus.WAITING

    @pytest.mark.anyio
    async def test_resume_requires_waiting_run(self, executor, make_workflow, user) -> None:
        """Test only waiting runs can be resumed."""
        workflow = make_workflow([echo("a", 0)])
        finished = await executor.execute(workflow, user, "run-1")

        result = await executor.resume(workflow, user, "run-1", finished)

        assert result.status == ExecutionStatus.FAILED
        assert result.error == NOT_WAITING_ERROR
        assert len(result.steps) == 1


class TestRegistry:
    """Tests for handler registration and validation."""

    def test_registered_step_types(self, executor) -> None:
        """Test registered types are listed in registration order."""
        assert executor.get_registered_step_types() == ["echo", "pause", "explode"]
        assert isinstance(executor.get_handler("echo"), EchoHandler)
        assert executor.get_handler("fax") is None

    def test_register_replaces(self, executor) -> None:
        """Test registering a type again replaces the handler."""
        replacement = EchoHandler()
        executor.register_handler(replacement)

        assert executor.get_handler("echo") is replacement
        assert executor.get_registered_step_types().count("echo") == 1

    def test_validate_valid(self, executor, make_workflow) -> None:
        """Test a valid workflow yields no problems."""
        assert executor.validate(make_workflow([echo("a", 0)])) == []

    def test_validate_reports_problems(self, executor, make_workflow) -> None:
        """Test validation reports duplicates, unknown types and bad configs."""
        steps = [
            echo("a", 0),
            echo("a", 1),
            {"id": "x", "type": "fax", "name": "Fax"},
            echo("b", 2, fail="nope"),
        ]
        workflow = make_workflow(steps, definition={"steps": steps, "triggerStepId": "missing"})

        errors = executor.validate(workflow)

        assert "Duplicate step id: a" in errors
        assert "Trigger step not found: missing" in errors
        assert 'Step "Fax": No handler registered for step type: fax' in errors
        assert any(error.startswith('Step "B": Invalid echo configuration') for error in errors)

    def test_validate_empty(self, executor, make_workflow) -> None:
        """Test an empty workflow is reported."""
        assert executor.validate(make_workflow([])) == ["Workflow has no steps"]
