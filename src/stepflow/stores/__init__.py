"""Contact and integration stores."""

from .base import ContactRecord, ContactStore, IntegrationRecord, IntegrationStore
from .memory import InMemoryContactStore, InMemoryIntegrationStore
from .sql import Database, SQLContactStore, SQLIntegrationStore

__all__ = [
    "ContactRecord",
    "ContactStore",
    "Database",
    "InMemoryContactStore",
    "InMemoryIntegrationStore",
    "IntegrationRecord",
    "IntegrationStore",
    "SQLContactStore",
    "SQLIntegrationStore",
]
