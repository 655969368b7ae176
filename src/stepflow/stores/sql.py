"""SQLAlchemy-backed contact and integration stores.

Tables mirror the hosting application's schema: list-valued columns (tags,
group members, integration config) are stored as JSON. Queries run in a worker
thread so the event loop is never blocked.
"""

from __future__ import annotations

import asyncio
from collections.abc import Generator, Sequence
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import JSON, Boolean, DateTime, String, Text, create_engine, select
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from ..core.logger import get_logger
from .base import ContactRecord, IntegrationRecord

logger = get_logger("stores.sql")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class Contact(Base):
    """A user's contact."""

    __tablename__ = "contacts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(36), index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    department: Mapped[Optional[str]] = mapped_column(String(100), index=True, nullable=True)
    job_title: Mapped[Optional[str]] = mapped_column(String(150), nullable=True)
    company: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    tags: Mapped[Optional[list[str]]] = mapped_column(JSON, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<Contact(id={self.id}, name='{self.name}', email='{self.email}')>"

    def to_record(self) -> ContactRecord:
        return ContactRecord(
            id=self.id,
            owner_id=self.user_id,
            name=self.name,
            email=self.email,
            department=self.department,
            job_title=self.job_title,
            company=self.company,
            tags=list(self.tags or []),
            is_active=self.is_active,
        )


class ContactGroup(Base):
    """A named list of contact ids."""

    __tablename__ = "contact_groups"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(36), index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    contact_ids: Mapped[Optional[list[str]]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )


class UserIntegration(Base):
    """Credentials for an external service."""

    __tablename__ = "user_integrations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(36), index=True, nullable=False)
    type: Mapped[str] = mapped_column(String(50), index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    config: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )

    def to_record(self) -> IntegrationRecord:
        return IntegrationRecord(
            id=self.id,
            owner_id=self.user_id,
            type=self.type,
            name=self.name,
            config=dict(self.config or {}),
            is_active=self.is_active,
        )


class Database:
    """Engine and session factory for the store tables."""

    def __init__(self, database_url: str) -> None:
        """Initialize the database.

        Args:
            database_url: SQLAlchemy database URL
        """
        logger.info("Initializing database with URL: %s", database_url)
        if database_url.startswith("sqlite"):
            kwargs: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
            if ":memory:" in database_url or database_url.rstrip("/") == "sqlite:":
                kwargs["poolclass"] = StaticPool
            self._engine = create_engine(database_url, echo=False, **kwargs)
        else:
            self._engine = create_engine(database_url, echo=False)

        self._session_factory = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=self._engine,
        )

    def create_tables(self) -> None:
        """Create all store tables if they don't exist."""
        Base.metadata.create_all(bind=self._engine)
        logger.info("Database tables created")

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """Get a session that commits on success and rolls back on error."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        self._engine.dispose()


class SQLContactStore:
    """Contact store over the ``contacts`` and ``contact_groups`` tables."""

    def __init__(self, database: Database) -> None:
        self.database = database

    async def list_contacts(
        self,
        owner_id: str,
        *,
        ids: Sequence[str] | None = None,
        department: str | None = None,
        is_active: bool | None = None,
    ) -> list[ContactRecord]:
        return await asyncio.to_thread(
            self._list_contacts, owner_id, ids, department, is_active
        )

    def _list_contacts(
        self,
        owner_id: str,
        ids: Sequence[str] | None,
        department: str | None,
        is_active: bool | None,
    ) -> list[ContactRecord]:
        stmt = select(Contact).where(Contact.user_id == owner_id)
        if ids is not None:
            stmt = stmt.where(Contact.id.in_(list(ids)))
        if department is not None:
            stmt = stmt.where(Contact.department == department)
        if is_active is not None:
            stmt = stmt.where(Contact.is_active == is_active)
        stmt = stmt.order_by(Contact.created_at, Contact.id)

        with self.database.session() as session:
            return [row.to_record() for row in session.scalars(stmt)]

    async def get_group_contact_ids(self, owner_id: str, group_id: str) -> list[str] | None:
        return await asyncio.to_thread(self._get_group_contact_ids, owner_id, group_id)

    def _get_group_contact_ids(self, owner_id: str, group_id: str) -> list[str] | None:
        stmt = select(ContactGroup).where(
            ContactGroup.user_id == owner_id, ContactGroup.id == group_id
        )
        with self.database.session() as session:
            group = session.scalars(stmt).first()
            if group is None:
                return None
            return [str(contact_id) for contact_id in group.contact_ids or []]


class SQLIntegrationStore:
    """Integration store over the ``user_integrations`` table."""

    def __init__(self, database: Database) -> None:
        self.database = database

    async def get_integration(
        self, owner_id: str, integration_id: str, type: str
    ) -> IntegrationRecord | None:
        return await asyncio.to_thread(self._get_integration, owner_id, integration_id, type)

    def _get_integration(
        self, owner_id: str, integration_id: str, type: str
    ) -> IntegrationRecord | None:
        stmt = select(UserIntegration).where(
            UserIntegration.id == integration_id,
            UserIntegration.user_id == owner_id,
            UserIntegration.type == type,
        )
        with self.database.session() as session:
            row = session.scalars(stmt).first()
            return row.to_record() if row is not None else None
