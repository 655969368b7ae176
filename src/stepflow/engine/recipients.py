"""Recipient resolution.

Turns a structured recipient config or free text into concrete email
addresses plus the contact details used for personalisation, so step handlers
never query the contact store themselves.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from ..core.exceptions import RecipientResolutionError
from ..core.logger import get_logger
from ..stores.base import ContactRecord, ContactStore
from .models import ContactInfo, RecipientConfig, ResolvedRecipients

logger = get_logger("engine.recipients")

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_valid_email(value: str) -> bool:
    return bool(EMAIL_PATTERN.match(value))


def manual_contact(email: str, index: int = 0) -> ContactInfo:
    """Contact info for an explicit address; the name is the local part."""
    return ContactInfo(id=f"manual-{index}", name=email.split("@")[0], email=email)


def to_contact_info(record: ContactRecord) -> ContactInfo:
    return ContactInfo(
        id=record.id,
        name=record.name,
        email=record.email,
        department=record.department,
        job_title=record.job_title,
        company=record.company,
        tags=list(record.tags),
    )


def _merge(results: Iterable[ResolvedRecipients]) -> ResolvedRecipients:
    contacts: list[ContactInfo] = []
    for result in results:
        contacts.extend(result.contacts)
    return ResolvedRecipients.from_contacts(contacts)


class RecipientResolver:
    """Resolve recipients against a :class:`ContactStore`."""

    def __init__(self, contact_store: ContactStore) -> None:
        self.contact_store = contact_store

    async def resolve_recipients(
        self, owner_id: str, config: RecipientConfig | Mapping[str, Any]
    ) -> ResolvedRecipients:
        """Resolve a structured recipient config.

        Args:
            owner_id: Owner of the contacts
            config: Recipient config (model or raw mapping)

        Returns:
            De-duplicated recipients in resolution order
        """
        if not isinstance(config, RecipientConfig):
            config = RecipientConfig.model_validate(config)

        if config.type == "manual" or config.to:
            return self._resolve_manual(config.to)

        if config.type == "contacts":
            return await self._resolve_ids(owner_id, config.contact_ids)

        if config.type == "group":
            if not config.group_id:
                return ResolvedRecipients.empty()
            member_ids = await self.contact_store.get_group_contact_ids(owner_id, config.group_id)
            if not member_ids:
                logger.debug("Group %s is missing or empty", config.group_id)
                return ResolvedRecipients.empty()
            return await self._resolve_ids(owner_id, member_ids)

        criteria = config.filter
        records = await self.contact_store.list_contacts(
            owner_id,
            department=criteria.department if criteria else None,
            is_active=criteria.is_active if criteria else None,
        )
        if criteria and criteria.tags:
            wanted = set(criteria.tags)
            records = [record for record in records if wanted.intersection(record.tags)]
        return ResolvedRecipients.from_contacts([to_contact_info(r) for r in records])

    def _resolve_manual(self, to: str | Sequence[str] | None) -> ResolvedRecipients:
        if to is None:
            addresses: list[str] = []
        elif isinstance(to, str):
            addresses = [to]
        else:
            addresses = list(to)
        addresses = [address.strip() for address in addresses if address and address.strip()]
        return ResolvedRecipients.from_contacts(
            [manual_contact(address, i) for i, address in enumerate(addresses)]
        )

    async def _resolve_ids(self, owner_id: str, ids: Sequence[str]) -> ResolvedRecipients:
        if not ids:
            return ResolvedRecipients.empty()
        records = await self.contact_store.list_contacts(owner_id, ids=list(ids))
        order = {contact_id: i for i, contact_id in enumerate(ids)}
        records = sorted(records, key=lambda record: order.get(record.id, len(order)))
        return ResolvedRecipients.from_contacts([to_contact_info(r) for r in records])

    async def resolve_recipient_from_text(self, owner_id: str, text: str) -> ResolvedRecipients:
        """Resolve free text to recipients.

        The first non-empty match wins, in this order: a literal email address,
        a comma separated list (each part resolved and merged), an exact contact
        name, an exact department, an exact tag, and finally a partial name.
        Matching is case-insensitive.

        Raises:
            RecipientResolutionError: If nothing matches. The error lists the
                owner's names, departments and tags.
        """
        value = (text or "").strip()

        if is_valid_email(value):
            return ResolvedRecipients.from_contacts([manual_contact(value)])

        if "," in value:
            parts = [part.strip() for part in value.split(",") if part.strip()]
            results = [await self.resolve_recipient_from_text(owner_id, part) for part in parts]
            merged = _merge(results)
            if merged.emails:
                return merged

        records = await self.contact_store.list_contacts(owner_id)
        needle = value.casefold()

        if needle:
            for label, predicate in (
                ("name", lambda r: r.name.casefold() == needle),
                ("department", lambda r: (r.department or "").casefold() == needle),
                ("tag", lambda r: any(tag.casefold() == needle for tag in r.tags)),
                ("partial name", lambda r: needle in r.name.casefold()),
            ):
                matches = [record for record in records if predicate(record)]
                if matches:
                    logger.debug(
                        "Resolved %r by %s to %d contact(s)", value, label, len(matches)
                    )
                    return ResolvedRecipients.from_contacts(
                        [to_contact_info(record) for record in matches]
                    )

        raise RecipientResolutionError(
            value,
            names=[record.name for record in records if record.name],
            departments=[record.department for record in records if record.department],
            tags=[tag for record in records for tag in record.tags],
        )
