"""
User role assignment.

At most one association per (user, role) pair. Rows are never updated in
place except for status.
"""

from uuid import UUID
from sqlalchemy import ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, StandardMixin, StatusMixin
from .role import Role


class UserRole(Base, StandardMixin, StatusMixin):
    """Links a user to a role, optionally within a department."""

    __tablename__ = "user_roles"
    __table_args__ = (
        UniqueConstraint("user_id", "role_id", name="uq_user_role"),
    )

    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("roles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # Departments live in the organization domain; stored as an opaque id
    department_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    created_by: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    role: Mapped[Role] = relationship(Role, lazy="selectin")

    def __repr__(self) -> str:
        dept = f" dept={self.department_id}" if self.department_id else ""
        return f"<UserRole user={self.user_id} role={self.role_id}{dept}>"
