"""
Data-scope rule registry.

Each rule type has one evaluator class. Evaluators register themselves
with a decorator, so new rule types can be added without touching the
scope evaluator.

Usage:
    @RuleRegistry.rule("region")
    class RegionRule(RuleEvaluator):
        ...

    evaluator = RuleRegistry.get("region")
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Type
from uuid import UUID


@dataclass
class RuleContext:
    """
    What a rule may look at when deciding.

    role_ids is a loader so the store is only queried by rules that
    actually need the user's roles.
    """
    user_id: UUID
    target: dict[str, Any]
    role_ids: Callable[[], Awaitable[list[UUID]]]


class RuleEvaluator(ABC):
    """
    Evaluates one type of data-scope rule.

    validate() runs when the rule is created and raises
    permguard.core.exceptions.ValidationError for malformed conditions.
    evaluate() runs per check and returns (matched, reason).
    """

    rule_type: str = ""

    def __init__(
        self,
        owner_field: str = "created_by",
        department_field: str = "department",
        max_expression_length: int = 500,
        max_expression_depth: int = 32,
        **kwargs: Any,
    ):
        self.owner_field = owner_field
        self.department_field = department_field
        self.max_expression_length = max_expression_length
        self.max_expression_depth = max_expression_depth

    @abstractmethod
    def validate(self, conditions: dict[str, Any]) -> None:
        pass

    @abstractmethod
    async def evaluate(
        self,
        conditions: dict[str, Any],
        context: RuleContext,
    ) -> tuple[bool, str | None]:
        pass


class RuleRegistry:
    """Central registry of rule evaluators, keyed by rule type."""

    _evaluators: dict[str, Type[RuleEvaluator]] = {}

    @classmethod
    def rule(cls, rule_type: str) -> Callable[[Type[RuleEvaluator]], Type[RuleEvaluator]]:
        """
        Decorator to register a rule evaluator.

        Usage:
            @RuleRegistry.rule("department")
            class DepartmentRule(RuleEvaluator):
                ...
        """
        def decorator(evaluator_class: Type[RuleEvaluator]) -> Type[RuleEvaluator]:
            evaluator_class.rule_type = rule_type
            cls._evaluators[rule_type] = evaluator_class
            return evaluator_class
        return decorator

    @classmethod
    def get(cls, rule_type: str, **kwargs: Any) -> RuleEvaluator:
        """
        Get an evaluator instance by rule type.

        Raises:
            ValueError: If rule type not registered
        """
        evaluator_class = cls._evaluators.get(rule_type)
        if not evaluator_class:
            available = list(cls._evaluators.keys())
            raise ValueError(
                f"Unknown rule type: '{rule_type}'. "
                f"Available: {available}"
            )
        return evaluator_class(**kwargs)

    @classmethod
    def list_rule_types(cls) -> list[str]:
        return list(cls._evaluators.keys())

    @classmethod
    def has(cls, rule_type: str) -> bool:
        return rule_type in cls._evaluators
