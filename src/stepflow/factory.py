"""Composition helpers wiring settings, stores and handlers into an executor."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from .core.config import EngineSettings
from .core.exceptions import ConfigurationError
from .core.logger import get_logger
from .engine.executor import WorkflowExecutor
from .handlers import get_default_handlers
from .stores.base import ContactStore, IntegrationStore
from .stores.memory import InMemoryContactStore, InMemoryIntegrationStore
from .stores.sql import Database, SQLContactStore, SQLIntegrationStore

logger = get_logger("factory")


def build_stores(
    settings: EngineSettings, data: Mapping[str, Any] | None = None
) -> tuple[ContactStore, IntegrationStore]:
    """Create stores from inline data, the configured database, or empty memory.

    Args:
        settings: Engine settings (``database.url`` is used when no data is given)
        data: Mapping with ``contacts``, ``groups`` and ``integrations`` sections
    """
    if data is not None:
        return (
            InMemoryContactStore.from_mapping(data),
            InMemoryIntegrationStore.from_mapping(data),
        )
    if settings.database.url:
        database = Database(settings.database.url)
        database.create_tables()
        return SQLContactStore(database), SQLIntegrationStore(database)
    logger.debug("No contact data or database configured; using empty stores")
    return InMemoryContactStore(), InMemoryIntegrationStore()


def build_executor(
    settings: EngineSettings | None = None,
    contact_store: ContactStore | None = None,
    integration_store: IntegrationStore | None = None,
) -> WorkflowExecutor:
    """Create an executor with the built-in handlers registered.

    Raises:
        ConfigurationError: If only one of the two stores is supplied
    """
    settings = settings or EngineSettings()
    if (contact_store is None) != (integration_store is None):
        raise ConfigurationError("Provide both contact_store and integration_store, or neither")
    if contact_store is None or integration_store is None:
        contact_store, integration_store = build_stores(settings)

    executor = WorkflowExecutor(get_default_handlers(settings, contact_store, integration_store))
    logger.info(
        "Executor ready with step types: %s", ", ".join(executor.get_registered_step_types())
    )
    return executor
