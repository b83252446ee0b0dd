"""
Base model classes and mixins.

Standard mixins:
- TimestampMixin: created_at, updated_at (always use)
- UUIDMixin: UUID primary key
- StatusMixin: enabled/disabled flag (soft disable, never hard delete)
"""

from datetime import datetime, timezone
from typing import Any
from uuid import UUID as PyUUID, uuid4
from sqlalchemy import Boolean, DateTime, JSON, Uuid, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all models."""

    # Common type annotations - all datetimes are timezone-aware
    type_annotation_map = {
        datetime: DateTime(timezone=True),
    }

    def to_dict(self) -> dict[str, Any]:
        """Convert model to dictionary."""
        return {c.name: getattr(self, c.name) for c in self.__table__.columns}


# ============================================================
# TIMESTAMP MIXIN
# ============================================================

class TimestampMixin:
    """
    Mixin for created_at and updated_at timestamps.

    Values are produced client-side so they are available right after a
    flush without an extra round-trip (async sessions can't lazy-load).
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        server_default=func.now(),
        nullable=False,
    )


# ============================================================
# STATUS MIXIN
# ============================================================

class StatusMixin:
    """
    Enabled/disabled flag.

    Permissions, roles, templates, rules and user-role links are
    soft-disabled via status instead of being deleted.
    """

    status: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
        index=True,
    )


# ============================================================
# PRIMARY KEY MIXIN
# ============================================================

class UUIDMixin:
    """
    Mixin for UUID primary key.

    Uses UUID v4 (random) for primary keys.
    """

    id: Mapped[PyUUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )


class StandardMixin(UUIDMixin, TimestampMixin):
    """
    Standard mixin combining UUID + timestamps.

    Provides:
        - id: UUID primary key
        - created_at: When created (UTC)
        - updated_at: When last modified (UTC)
    """
    pass
