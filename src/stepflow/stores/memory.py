"""Dict-backed stores used by the CLI and in tests."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from ..core.logger import get_logger
from .base import ContactRecord, IntegrationRecord

logger = get_logger("stores.memory")


class InMemoryContactStore:
    """Contacts and groups held in memory, keyed by owner."""

    def __init__(
        self,
        contacts: Sequence[ContactRecord] = (),
        groups: Mapping[tuple[str, str], Sequence[str]] | None = None,
    ) -> None:
        self._contacts: list[ContactRecord] = list(contacts)
        self._groups: dict[tuple[str, str], list[str]] = {
            key: list(ids) for key, ids in (groups or {}).items()
        }

    def add_contact(self, contact: ContactRecord) -> None:
        self._contacts.append(contact)

    def add_group(self, owner_id: str, group_id: str, contact_ids: Sequence[str]) -> None:
        self._groups[(owner_id, group_id)] = list(contact_ids)

    async def list_contacts(
        self,
        owner_id: str,
        *,
        ids: Sequence[str] | None = None,
        department: str | None = None,
        is_active: bool | None = None,
    ) -> list[ContactRecord]:
        wanted = set(ids) if ids is not None else None
        results = []
        for contact in self._contacts:
            if contact.owner_id != owner_id:
                continue
            if wanted is not None and contact.id not in wanted:
                continue
            if department is not None and contact.department != department:
                continue
            if is_active is not None and contact.is_active != is_active:
                continue
            results.append(contact)
        return results

    async def get_group_contact_ids(self, owner_id: str, group_id: str) -> list[str] | None:
        ids = self._groups.get((owner_id, group_id))
        return list(ids) if ids is not None else None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> InMemoryContactStore:
        """Load from ``{"contacts": {owner: [...]}, "groups": {owner: [...]}}``.

        Each group entry is ``{"id": ..., "contact_ids": [...]}``; ``contactIds``
        is accepted as well.
        """
        store = cls()
        for owner_id, contacts in (data.get("contacts") or {}).items():
            for item in contacts or []:
                store.add_contact(ContactRecord.from_dict(str(owner_id), item))
        for owner_id, groups in (data.get("groups") or {}).items():
            for group in groups or []:
                member_ids = group.get("contact_ids", group.get("contactIds")) or []
                store.add_group(str(owner_id), str(group["id"]), [str(i) for i in member_ids])
        logger.debug(
            "Loaded %d contacts and %d groups", len(store._contacts), len(store._groups)
        )
        return store


class InMemoryIntegrationStore:
    """Integrations held in memory."""

    def __init__(self, integrations: Sequence[IntegrationRecord] = ()) -> None:
        self._integrations: dict[str, IntegrationRecord] = {
            item.id: item for item in integrations
        }

    def add(self, integration: IntegrationRecord) -> None:
        self._integrations[integration.id] = integration

    async def get_integration(
        self, owner_id: str, integration_id: str, type: str
    ) -> IntegrationRecord | None:
        record = self._integrations.get(integration_id)
        if record is None or record.owner_id != owner_id or record.type != type:
            return None
        return record

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> InMemoryIntegrationStore:
        """Load from ``{"integrations": {owner: [{"id", "type", "config"}, ...]}}``."""
        store = cls()
        for owner_id, items in (data.get("integrations") or {}).items():
            for item in items or []:
                store.add(
                    IntegrationRecord(
                        id=str(item["id"]),
                        owner_id=str(owner_id),
                        type=item.get("type", "slack"),
                        name=item.get("name", ""),
                        config=dict(item.get("config") or {}),
                        is_active=item.get("is_active", item.get("isActive", True)),
                    )
                )
        return store
