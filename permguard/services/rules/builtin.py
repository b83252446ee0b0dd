"""
Built-in data-scope rule evaluators.

    department: {"departments": ["d1", "d2"]}
        target's department is one of the listed ids
    user:       {"users": ["u1", "u2"]}
        target's owner is one of the listed users
    role:       {"roles": ["r1"]}
        the checking user holds any of the listed roles
    field:      {"field": "owner.id", "operator": "eq", "value": "u1"}
        compare a (dotted) target field against a value
    condition:  {"expression": "target.status == 'open' && target.owner == user.id"}
        restricted boolean expression over {user: {id}, target}
"""

from typing import Any

from permguard.core.exceptions import ValidationError
from permguard.models.enums import RuleType
from permguard.utils.ids import id_str
from .expression import MISSING, ExpressionError, compile_expression, lookup, strict_equal
from .registry import RuleContext, RuleEvaluator, RuleRegistry


def _require_list(conditions: dict[str, Any], key: str, label: str) -> None:
    value = conditions.get(key) if isinstance(conditions, dict) else None
    if not isinstance(value, list):
        raise ValidationError(
            f"{label} rules require a '{key}' array",
            details={"field": f"rule_conditions.{key}"},
        )


def _in_ids(value: Any, candidates: list[Any]) -> bool:
    value = id_str(value)
    if value is None:
        return False
    return value.lower() in {str(c).lower() for c in candidates}


def get_nested(data: Any, path: str) -> Any:
    """Resolve a dotted path; unresolved paths return MISSING."""
    value = data
    for part in path.split("."):
        value = lookup(value, part)
        if value is MISSING:
            break
    return value


@RuleRegistry.rule(RuleType.DEPARTMENT.value)
class DepartmentRule(RuleEvaluator):
    """Grant when the target belongs to one of the listed departments."""

    def validate(self, conditions: dict[str, Any]) -> None:
        _require_list(conditions, "departments", "Department")

    async def evaluate(self, conditions, context: RuleContext):
        department = context.target.get(self.department_field)
        if department is None:
            return False, "target has no department"
        if _in_ids(department, conditions.get("departments", [])):
            return True, f"department {id_str(department)} listed"
        return False, f"department {id_str(department)} not listed"


@RuleRegistry.rule(RuleType.USER.value)
class UserRule(RuleEvaluator):
    """Grant when the target was created by one of the listed users."""

    def validate(self, conditions: dict[str, Any]) -> None:
        _require_list(conditions, "users", "User")

    async def evaluate(self, conditions, context: RuleContext):
        owner = context.target.get(self.owner_field)
        if owner is None:
            return False, "target has no owner"
        if _in_ids(owner, conditions.get("users", [])):
            return True, f"owner {id_str(owner)} listed"
        return False, f"owner {id_str(owner)} not listed"


@RuleRegistry.rule(RuleType.ROLE.value)
class RoleRule(RuleEvaluator):
    """Grant when the checking user holds any of the listed roles."""

    def validate(self, conditions: dict[str, Any]) -> None:
        _require_list(conditions, "roles", "Role")

    async def evaluate(self, conditions, context: RuleContext):
        wanted = {str(r).lower() for r in conditions.get("roles", [])}
        held = {str(r).lower() for r in await context.role_ids()}
        matching = wanted & held
        if matching:
            return True, f"holds role(s) {sorted(matching)}"
        return False, "holds none of the listed roles"


FIELD_OPERATORS = ("eq", "ne", "gt", "lt", "gte", "lte", "in", "nin", "contains")


def _comparable(value: Any) -> Any:
    # Normalize ids so UUID("...") eq "..." matches
    if value is None or isinstance(value, (bool, int, float, str, list, dict)):
        return value
    return str(value)


def compare_field(operator: str, actual: Any, expected: Any) -> bool:
    """
    Compare a target field value against a rule value.

    A missing field only satisfies the negative operators (ne, nin).
    """
    if actual is MISSING:
        if operator == "ne":
            return True
        if operator == "nin":
            return isinstance(expected, list)
        return False

    actual = _comparable(actual)
    if operator == "eq":
        return strict_equal(actual, expected)
    if operator == "ne":
        return not strict_equal(actual, expected)
    if operator == "in":
        return isinstance(expected, list) and any(strict_equal(actual, v) for v in expected)
    if operator == "nin":
        return isinstance(expected, list) and not any(strict_equal(actual, v) for v in expected)
    if operator == "contains":
        return isinstance(actual, str) and isinstance(expected, str) and expected in actual

    if actual is None or expected is None:
        return False
    try:
        if operator == "gt":
            return actual > expected
        if operator == "lt":
            return actual < expected
        if operator == "gte":
            return actual >= expected
        if operator == "lte":
            return actual <= expected
    except TypeError:
        return False
    return False


@RuleRegistry.rule(RuleType.FIELD.value)
class FieldRule(RuleEvaluator):
    """Grant when a target field satisfies an operator against a value."""

    def validate(self, conditions: dict[str, Any]) -> None:
        if not isinstance(conditions, dict):
            raise ValidationError("Field rules require an object of conditions")
        field = conditions.get("field")
        if not isinstance(field, str) or not field.strip():
            raise ValidationError(
                "Field rules require a 'field' name",
                details={"field": "rule_conditions.field"},
            )
        if conditions.get("operator") not in FIELD_OPERATORS:
            raise ValidationError(
                f"Field rules require an 'operator' in {list(FIELD_OPERATORS)}",
                details={"field": "rule_conditions.operator"},
            )
        if "value" not in conditions:
            raise ValidationError(
                "Field rules require a 'value'",
                details={"field": "rule_conditions.value"},
            )
        if conditions["operator"] in ("in", "nin") and not isinstance(conditions["value"], list):
            raise ValidationError(
                f"Operator '{conditions['operator']}' requires an array value",
                details={"field": "rule_conditions.value"},
            )

    async def evaluate(self, conditions, context: RuleContext):
        field = conditions["field"]
        operator = conditions["operator"]
        actual = get_nested(context.target, field)
        matched = compare_field(operator, actual, conditions.get("value"))
        return matched, f"{field} {operator} {conditions.get('value')!r}: {matched}"


@RuleRegistry.rule(RuleType.CONDITION.value)
class ConditionRule(RuleEvaluator):
    """Grant when a restricted boolean expression evaluates truthy."""

    def validate(self, conditions: dict[str, Any]) -> None:
        expression = conditions.get("expression") if isinstance(conditions, dict) else None
        if not isinstance(expression, str) or not expression.strip():
            raise ValidationError(
                "Condition rules require an 'expression' string",
                details={"field": "rule_conditions.expression"},
            )
        if len(expression) > self.max_expression_length:
            raise ValidationError(
                f"Expression longer than {self.max_expression_length} characters",
                details={"field": "rule_conditions.expression"},
            )
        try:
            compile_expression(expression, self.max_expression_depth)
        except ExpressionError as e:
            raise ValidationError(
                f"Invalid expression: {e}",
                details={"field": "rule_conditions.expression"},
            ) from e

    async def evaluate(self, conditions, context: RuleContext):
        expression = compile_expression(conditions["expression"], self.max_expression_depth)
        scope = {
            "user": {"id": str(context.user_id)},
            "target": context.target,
        }
        matched = expression.evaluate(scope)
        return matched, f"expression {'matched' if matched else 'did not match'}"
