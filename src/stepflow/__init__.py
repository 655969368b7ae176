"""stepflow: a sequential workflow execution engine.

Runs user-defined workflows one typed step at a time against external
services, with template substitution, retries with backoff and contact-based
recipient resolution.

Example:
    ```python
    from stepflow import EngineSettings, WorkflowInput, build_executor

    executor = build_executor(EngineSettings.load("config.yaml"))
    workflow = WorkflowInput.model_validate(data)
    result = await executor.execute(workflow, {"id": "u1", "email": "me@x.io"}, "run-1")
    ```
"""

from importlib.metadata import PackageNotFoundError, version

from .core import EngineSettings, get_logger, setup_logging
from .engine import (
    CancellationToken,
    ExecutionOptions,
    ExecutionResult,
    ExecutionStatus,
    StepResult,
    StepStatus,
    UserInfo,
    WorkflowExecutor,
    WorkflowInput,
)
from .factory import build_executor, build_stores
from .handlers import get_default_handlers

__all__ = [
    "__version__",
    "CancellationToken",
    "EngineSettings",
    "ExecutionOptions",
    "ExecutionResult",
    "ExecutionStatus",
    "StepResult",
    "StepStatus",
    "UserInfo",
    "WorkflowExecutor",
    "WorkflowInput",
    "build_executor",
    "build_stores",
    "get_default_handlers",
    "get_logger",
    "setup_logging",
]

try:  # pragma: no cover - best-effort during development
    __version__ = version("stepflow")
except PackageNotFoundError:  # pragma: no cover
    __version__ = "0.0.0"
