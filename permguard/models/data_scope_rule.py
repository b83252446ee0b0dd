"""
Custom data-scope rule models.

Rules are additive: any matching rule grants access to a record even
when the user's weighted base scope would not.
"""

from typing import Any
from uuid import UUID
from sqlalchemy import ForeignKey, Index, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, JSONType, StandardMixin, StatusMixin, UUIDMixin


class DataScopeRule(Base, StandardMixin, StatusMixin):
    """
    Custom scoping policy for one permission within one module.

    rule_conditions shape depends on rule_type:
        department: {"departments": [...]}
        user:       {"users": [...]}
        role:       {"roles": [...]}
        field:      {"field": "owner.id", "operator": "eq", "value": ...}
        condition:  {"expression": "target.status == 'open' && ..."}
    """

    __tablename__ = "data_scope_rules"
    __table_args__ = (
        Index("ix_data_scope_rules_permission_module", "permission_id", "module"),
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    permission_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("permissions.id", ondelete="CASCADE"),
        nullable=False,
    )
    module: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    rule_type: Mapped[str] = mapped_column(String(20), nullable=False)
    rule_conditions: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    created_by: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    apply_to: Mapped[list["DataScopeRuleUser"]] = relationship(
        "DataScopeRuleUser",
        back_populates="rule",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def user_ids(self) -> list[UUID]:
        return [target.user_id for target in self.apply_to]

    def __repr__(self) -> str:
        return f"<DataScopeRule {self.name} {self.rule_type}>"


class DataScopeRuleUser(Base, UUIDMixin):
    """A user a data-scope rule is active for."""

    __tablename__ = "data_scope_rule_users"
    __table_args__ = (
        UniqueConstraint("rule_id", "user_id", name="uq_data_scope_rule_user"),
    )

    rule_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("data_scope_rules.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    rule: Mapped["DataScopeRule"] = relationship("DataScopeRule", back_populates="apply_to")
