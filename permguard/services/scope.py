"""
Scope evaluator.

Layers custom data-scope rules on top of the resolver's weighted scope
check. Rules are additive: any matching rule grants access to a record
the base scope would deny, but only for a permission the user holds.
"""

from typing import Any
from uuid import UUID

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from permguard.core.exceptions import ValidationError
from permguard.models.data_scope_rule import DataScopeRule
from permguard.repositories.data_scope_rule import DataScopeRuleRepository
from permguard.repositories.permission import PermissionRepository
from .resolver import PermissionResolver
from .rules import RuleContext, RuleRegistry

logger = structlog.get_logger()


class ScopeEvaluator:
    """
    Usage:
        evaluator = ScopeEvaluator(db, resolver)
        allowed = await evaluator.evaluate_enhanced(
            user_id, "task:close", {"status": "open"}, module="task",
        )
    """

    def __init__(self, db: AsyncSession, resolver: PermissionResolver):
        self.db = db
        self.resolver = resolver
        self.permissions = PermissionRepository(db)
        self.rules = DataScopeRuleRepository(db)

    def _evaluator_options(self) -> dict[str, Any]:
        settings = self.resolver.settings
        return {
            "owner_field": settings.owner_field,
            "department_field": settings.department_field,
            "max_expression_length": settings.max_expression_length,
            "max_expression_depth": settings.max_expression_depth,
        }

    async def evaluate_enhanced(
        self,
        user_id: UUID,
        code: str,
        target: dict[str, Any] | None = None,
        module: str | None = None,
    ) -> bool:
        """
        Base scope check, widened by the user's custom rules.

        1. The user must hold `code`; otherwise deny.
        2. Without a target or a module, the base check decides.
        3. Any enabled rule for (permission, module) that applies to the
           user and matches the target grants access.
        4. Otherwise the base check decides.
        """
        resolved = await self.resolver.get_user_permissions(user_id)
        if not resolved.has(code):
            return False

        base = (
            target is None
            or self.resolver.scope_allows(resolved, resolved.scope_for(code), user_id, target)
        )
        if target is None or not module:
            return base

        permission = await self.permissions.get_by_code(code)
        if permission is None:
            return False

        rules = await self.rules.applicable(permission.id, module, user_id)
        if not rules:
            return base

        role_ids: list[UUID] | None = None

        async def load_role_ids() -> list[UUID]:
            nonlocal role_ids
            if role_ids is None:
                role_ids = await self.resolver.get_user_role_ids(user_id)
            return role_ids

        context = RuleContext(user_id=user_id, target=target, role_ids=load_role_ids)
        for rule in rules:
            if await self.evaluate_rule(rule, context):
                logger.debug(
                    "Data scope rule granted access",
                    user_id=str(user_id),
                    permission=code,
                    rule_id=str(rule.id),
                )
                return True

        return base

    async def evaluate_rule(self, rule: DataScopeRule, context: RuleContext) -> bool:
        """Evaluate one rule; errors count as "did not match"."""
        if not RuleRegistry.has(rule.rule_type):
            logger.warning("Unknown data scope rule type", rule_id=str(rule.id), rule_type=rule.rule_type)
            return False
        evaluator = RuleRegistry.get(rule.rule_type, **self._evaluator_options())
        try:
            matched, reason = await evaluator.evaluate(rule.rule_conditions or {}, context)
        except SQLAlchemyError:
            raise
        except Exception:
            logger.exception(
                "Data scope rule evaluation failed",
                rule_id=str(rule.id),
                rule_type=rule.rule_type,
            )
            return False
        logger.debug("Data scope rule evaluated", rule_id=str(rule.id), matched=matched, reason=reason)
        return matched

    def validate_conditions(self, rule_type: str, conditions: dict[str, Any]) -> None:
        """Raise ValidationError when conditions don't fit the rule type."""
        if not RuleRegistry.has(rule_type):
            raise ValidationError(
                f"Unknown rule type: {rule_type}",
                details={"available": RuleRegistry.list_rule_types()},
            )
        RuleRegistry.get(rule_type, **self._evaluator_options()).validate(conditions)
