"""
Permission model.

Permissions are atomic capabilities identified by a stable machine code,
e.g. "finance:transaction:create".
"""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, StandardMixin, StatusMixin
from .enums import PermissionType


class Permission(Base, StandardMixin, StatusMixin):
    """Permission definition."""

    __tablename__ = "permissions"

    code: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    module: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=PermissionType.OPERATION.value,
        index=True,
    )

    def __repr__(self) -> str:
        return f"<Permission {self.code}>"
