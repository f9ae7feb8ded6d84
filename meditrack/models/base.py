"""
SQLAlchemy Base Model
Source: https://docs.sqlalchemy.org/en/20/orm/declarative_styles.html
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Uuid, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    Models are the domain entities: they carry their own invariants and state
    transitions and are persisted as-is by the live repositories.
    """

    pass


class TimeStampedModel:
    """
    Mixin for models with created_at and updated_at timestamps.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class UUIDModel:
    """
    Mixin for models with UUID primary key.

    Uses the generic ``Uuid`` type: native UUID on PostgreSQL, CHAR(32) elsewhere.
    """

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )


class SoftDeleteMixin:
    """
    Tombstone shared by every soft-deletable entity.

    ``visible()`` is the only SQL predicate for "not deleted" and ``is_visible``
    its in-memory twin; repositories must not test ``deleted_at`` directly.
    """

    deleted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        default=None,
    )

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def is_visible(self) -> bool:
        return self.deleted_at is None

    @classmethod
    def visible(cls):  # type: ignore[no-untyped-def]
        """SQL criterion selecting rows that are not tombstoned."""
        return cls.deleted_at.is_(None)

    def _tombstone(self) -> None:
        self.deleted_at = datetime.now(timezone.utc)
