"""
Role models.

A role bundles (permission, data scope) pairs. System roles are
synthesized by the engine itself (the per-user "CUSTOM_<userId>" role)
rather than defined by administrators.
"""

from uuid import UUID
from sqlalchemy import Boolean, ForeignKey, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, StandardMixin, StatusMixin, UUIDMixin
from .enums import DataScope
from .permission import Permission


class Role(Base, StandardMixin, StatusMixin):
    """
    Role definition.

    The version column is an optimistic lock: every write that changes the
    role's permission set bumps it explicitly, and SQLAlchemy adds
    "WHERE version = <old>" to the UPDATE, raising StaleDataError when a
    concurrent writer got there first.
    """

    __tablename__ = "roles"

    code: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_system: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_by: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    permissions: Mapped[list["RolePermission"]] = relationship(
        "RolePermission",
        back_populates="role",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __mapper_args__ = {
        "version_id_col": version,
        "version_id_generator": False,
    }

    @property
    def permission_ids(self) -> set[UUID]:
        return {rp.permission_id for rp in self.permissions}

    def __repr__(self) -> str:
        return f"<Role {self.code} v{self.version}>"


class RolePermission(Base, UUIDMixin):
    """A (permission, data scope) pair held by a role."""

    __tablename__ = "role_permissions"
    __table_args__ = (
        UniqueConstraint("role_id", "permission_id", name="uq_role_permission"),
    )

    role_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("roles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    permission_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("permissions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    data_scope: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=DataScope.ALL.value,
    )

    role: Mapped["Role"] = relationship("Role", back_populates="permissions")
    permission: Mapped[Permission] = relationship(Permission, lazy="selectin")

    def __repr__(self) -> str:
        return f"<RolePermission role={self.role_id} perm={self.permission_id} {self.data_scope}>"
