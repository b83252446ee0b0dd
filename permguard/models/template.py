"""
Permission template models.

Templates are named, reusable permission bundles applied to users in
bulk. At most one template is the default.
"""

from uuid import UUID
from sqlalchemy import Boolean, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, StandardMixin, StatusMixin, UUIDMixin
from .enums import DataScope
from .permission import Permission


class PermissionTemplate(Base, StandardMixin, StatusMixin):
    """Permission template."""

    __tablename__ = "permission_templates"

    name: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        nullable=False,
        index=True,
    )
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)
    created_by: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    permissions: Mapped[list["TemplatePermission"]] = relationship(
        "TemplatePermission",
        back_populates="template",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<PermissionTemplate {self.name}>"


class TemplatePermission(Base, UUIDMixin):
    """A (permission, data scope) pair held by a template."""

    __tablename__ = "template_permissions"
    __table_args__ = (
        UniqueConstraint("template_id", "permission_id", name="uq_template_permission"),
    )

    template_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("permission_templates.id", ondelete="CASCADE"),
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

    template: Mapped["PermissionTemplate"] = relationship(
        "PermissionTemplate", back_populates="permissions"
    )
    permission: Mapped[Permission] = relationship(Permission, lazy="selectin")
