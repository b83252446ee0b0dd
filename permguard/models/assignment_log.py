"""Permission assignment audit log."""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, JSONType, UUIDMixin, utc_now


class PermissionAssignmentLog(Base, UUIDMixin):
    """
    Append-only record of a permission operation attempt.

    Written once per attempt, successful or not, and never updated.
    """

    __tablename__ = "permission_assignment_logs"

    # Who performed the operation
    user_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    operation_type: Mapped[str] = mapped_column(String(30), nullable=False, index=True)

    # Snapshots
    before_state: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    after_state: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Outcome
    status: Mapped[str] = mapped_column(String(10), nullable=False)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Request context
    ip_address: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)  # IPv6 max length
    user_agent: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        server_default=func.now(),
        index=True,
    )

    targets: Mapped[list["PermissionAssignmentLogTarget"]] = relationship(
        "PermissionAssignmentLogTarget",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def target_users(self) -> list[UUID]:
        return [target.user_id for target in self.targets]

    def __repr__(self) -> str:
        return f"<PermissionAssignmentLog {self.operation_type} {self.status}>"


class PermissionAssignmentLogTarget(Base, UUIDMixin):
    """A user affected by a logged operation (indexed for per-user history)."""

    __tablename__ = "permission_assignment_log_targets"

    log_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("permission_assignment_logs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)
