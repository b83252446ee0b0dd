"""
Data-scope rule evaluation.

Importing this package registers the built-in rule types.
"""

from .registry import RuleContext, RuleEvaluator, RuleRegistry
from .expression import ExpressionError, compile_expression
from . import builtin  # noqa: F401

__all__ = [
    "RuleContext",
    "RuleEvaluator",
    "RuleRegistry",
    "ExpressionError",
    "compile_expression",
]
