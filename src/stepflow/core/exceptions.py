"""Custom exceptions for the workflow engine."""

from __future__ import annotations

from collections.abc import Iterable


class StepflowError(Exception):
    """Base exception for engine errors."""

    pass


class ConfigurationError(StepflowError):
    """Raised when a step or engine is misconfigured.

    Configuration errors are surfaced as failed steps and never retried.
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        """Initialize the exception.

        Args:
            message: Error message
            field: Configuration field at fault, if known
        """
        self.field = field
        super().__init__(message)


class HandlerNotRegisteredError(ConfigurationError):
    """Raised when no handler is registered for a step type."""

    def __init__(self, step_type: str) -> None:
        self.step_type = step_type
        super().__init__(f"No handler registered for step type: {step_type}", field="type")


class RecipientResolutionError(StepflowError):
    """Raised when recipient text matches no contact.

    The message enumerates what the owner does have so the caller can correct
    the recipient.
    """

    def __init__(
        self,
        text: str,
        names: Iterable[str] = (),
        departments: Iterable[str] = (),
        tags: Iterable[str] = (),
    ) -> None:
        """Initialize the exception.

        Args:
            text: The recipient text that could not be resolved
            names: Contact names available to the owner
            departments: Departments available to the owner
            tags: Tags available to the owner
        """
        self.text = text
        self.names = sorted(set(names))
        self.departments = sorted(set(departments))
        self.tags = sorted(set(tags))
        super().__init__(self._build_message())

    def _build_message(self) -> str:
        def _fmt(values: list[str]) -> str:
            return ", ".join(values) if values else "(none)"

        return (
            f'No contact matches "{self.text}". '
            f"Available names: {_fmt(self.names)}. "
            f"Available departments: {_fmt(self.departments)}. "
            f"Available tags: {_fmt(self.tags)}."
        )
