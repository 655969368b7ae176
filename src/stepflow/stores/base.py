"""Interfaces to the contact and integration stores.

The engine only reads from these stores. Implementations live in
:mod:`stepflow.stores.memory` and :mod:`stepflow.stores.sql`.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable


@dataclass
class ContactRecord:
    """A contact owned by a user."""

    id: str
    owner_id: str
    name: str
    email: str
    department: str | None = None
    job_title: str | None = None
    company: str | None = None
    tags: list[str] = field(default_factory=list)
    is_active: bool = True

    @classmethod
    def from_dict(cls, owner_id: str, data: dict[str, Any]) -> ContactRecord:
        """Build a record from a dict using snake_case or camelCase keys."""
        return cls(
            id=str(data["id"]),
            owner_id=owner_id,
            name=data.get("name", ""),
            email=data.get("email", ""),
            department=data.get("department"),
            job_title=data.get("job_title", data.get("jobTitle")),
            company=data.get("company"),
            tags=list(data.get("tags") or []),
            is_active=data.get("is_active", data.get("isActive", True)),
        )


@dataclass
class IntegrationRecord:
    """Stored credentials for an external service (e.g. a Slack workspace)."""

    id: str
    owner_id: str
    type: str
    name: str = ""
    config: dict[str, Any] = field(default_factory=dict)
    is_active: bool = True

    @property
    def access_token(self) -> str | None:
        return self.config.get("access_token")

    @property
    def webhook_url(self) -> str | None:
        return self.config.get("webhook_url")

    @property
    def default_channel_id(self) -> str | None:
        return self.config.get("default_channel_id") or self.config.get("channel_id")


@runtime_checkable
class ContactStore(Protocol):
    """Read access to contacts and contact groups."""

    async def list_contacts(
        self,
        owner_id: str,
        *,
        ids: Sequence[str] | None = None,
        department: str | None = None,
        is_active: bool | None = None,
    ) -> list[ContactRecord]:
        """Return the owner's contacts matching the equality filters."""
        ...

    async def get_group_contact_ids(self, owner_id: str, group_id: str) -> list[str] | None:
        """Return a group's member ids, or None if the group does not exist."""
        ...


@runtime_checkable
class IntegrationStore(Protocol):
    """Read access to stored integrations."""

    async def get_integration(
        self, owner_id: str, integration_id: str, type: str
    ) -> IntegrationRecord | None:
        """Return the owner's integration of the given type, if any."""
        ...
