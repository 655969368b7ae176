"""Data model for workflow runs.

Workflow definitions arrive from the workflow store as JSON with camelCase keys
and are validated with pydantic. Run results are plain dataclasses produced by
the executor and serialised with ``to_dict`` for persistence.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def elapsed_ms(started_at: datetime, completed_at: datetime) -> int:
    """Milliseconds between two datetimes."""
    return int((completed_at - started_at).total_seconds() * 1000)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StepStatus(str, Enum):
    """Status of a single step."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    WAITING = "waiting"
    SKIPPED = "skipped"


class ExecutionStatus(str, Enum):
    """Status of a workflow run."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    WAITING = "waiting"
    CANCELLED = "cancelled"


class Step(_CamelModel):
    """A single typed step of a workflow.

    ``config`` is opaque here; each handler parses it with its own config model.
    """

    id: str
    type: str
    name: str
    description: str | None = None
    config: dict[str, Any] = Field(default_factory=dict)
    position: int = 0


class WorkflowDefinition(_CamelModel):
    """Ordered steps plus the id of the step that triggers the workflow."""

    steps: list[Step] = Field(default_factory=list)
    trigger_step_id: str | None = None


class WorkflowInput(_CamelModel):
    """Immutable input to one run."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    name: str
    owner_id: str = Field(validation_alias=AliasChoices("owner_id", "ownerId", "userId"))
    definition: WorkflowDefinition = Field(default_factory=WorkflowDefinition)
    trigger_type: Literal["manual", "webhook", "schedule"] = "manual"
    trigger_config: dict[str, Any] | None = None

    @property
    def steps(self) -> list[Step]:
        return self.definition.steps

    def sorted_steps(self) -> list[Step]:
        """Steps in execution order (stable sort by position)."""
        return sorted(self.definition.steps, key=lambda step: step.position)


@dataclass(frozen=True)
class UserInfo:
    """The user on whose behalf a run executes."""

    id: str
    email: str
    name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "email": self.email, "name": self.name}


@dataclass(frozen=True)
class StepResult:
    """Outcome of one step, finalised once by the executor."""

    step_id: str
    status: StepStatus
    data: Any = None
    error: str | None = None
    started_at: datetime = field(default_factory=utcnow)
    completed_at: datetime | None = None
    duration: int | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == StepStatus.COMPLETED

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "step_id": self.step_id,
            "status": self.status.value,
            "data": self.data,
            "error": self.error,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration": self.duration,
        }


@dataclass(frozen=True)
class ExecutionResult:
    """Aggregated outcome of one run."""

    execution_id: str
    status: ExecutionStatus
    steps: list[StepResult] = field(default_factory=list)
    error: str | None = None
    started_at: datetime = field(default_factory=utcnow)
    completed_at: datetime | None = None
    duration: int | None = None

    def get_step(self, step_id: str) -> StepResult | None:
        for result in self.steps:
            if result.step_id == step_id:
                return result
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "execution_id": self.execution_id,
            "status": self.status.value,
            "steps": [step.to_dict() for step in self.steps],
            "error": self.error,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration": self.duration,
        }


class ContactFilter(_CamelModel):
    """Equality and tag filters for the ``filter`` recipient mode."""

    department: str | None = None
    tags: list[str] = Field(default_factory=list)
    is_active: bool | None = None


class RecipientConfig(_CamelModel):
    """Structured recipient config.

    Tagged by ``type``; a config carrying ``to`` is treated as ``manual``
    regardless of its tag.
    """

    type: Literal["manual", "contacts", "group", "filter"] = "contacts"
    contact_ids: list[str] = Field(default_factory=list)
    group_id: str | None = None
    filter: ContactFilter | None = None
    to: str | list[str] | None = None


@dataclass
class ContactInfo:
    """A resolved recipient."""

    id: str
    name: str
    email: str
    department: str | None = None
    job_title: str | None = None
    company: str | None = None
    tags: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "department": self.department,
            "job_title": self.job_title,
            "company": self.company,
            "tags": list(self.tags),
        }


@dataclass
class ResolvedRecipients:
    """Concrete addresses plus the contacts they came from."""

    emails: list[str] = field(default_factory=list)
    contacts: list[ContactInfo] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.emails)

    @classmethod
    def empty(cls) -> ResolvedRecipients:
        return cls()

    @classmethod
    def from_contacts(cls, contacts: list[ContactInfo]) -> ResolvedRecipients:
        """Build a result, dropping case-insensitive duplicate emails in order."""
        seen: set[str] = set()
        unique: list[ContactInfo] = []
        for contact in contacts:
            key = contact.email.strip().lower()
            if not key or key in seen:
                continue
            seen.add(key)
            unique.append(contact)
        return cls(emails=[contact.email for contact in unique], contacts=unique)
