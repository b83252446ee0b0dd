"""
Restricted boolean expression language for condition rules.

Expressions come from administrative input and are never handed to
eval/exec. They are tokenized and parsed into a small AST, then walked
by an interpreter that only knows the operations listed below.

Grammar:
    expr       := or_expr
    or_expr    := and_expr (("||" | "or") and_expr)*
    and_expr   := not_expr (("&&" | "and") not_expr)*
    not_expr   := ("!" | "not") not_expr | comparison
    comparison := operand [op operand]
    op         := "==" | "!=" | "===" | "!==" | "<" | "<=" | ">" | ">="
                  | "in" | "not" "in"
    operand    := NUMBER | STRING | true | false | null | list | path | "(" expr ")"
    list       := "[" [expr ("," expr)*] "]"
    path       := ("user" | "target") ("." NAME)*

Usage:
    expr = compile_expression("target.status == 'open' && target.owner == user.id")
    expr.evaluate({"user": {"id": "u1"}, "target": {"status": "open", "owner": "u1"}})
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Mapping
from uuid import UUID


ROOTS = frozenset({"user", "target"})

KEYWORD_LITERALS = {
    "true": True,
    "True": True,
    "false": False,
    "False": False,
    "null": None,
    "None": None,
    "undefined": None,
}

WORD_OPERATORS = {
    "and": "&&",
    "or": "||",
    "not": "!",
    "in": "in",
}

COMPARISON_OPERATORS = frozenset({"==", "!=", "===", "!==", "<", "<=", ">", ">=", "in", "not in"})

# Nesting allowed for parentheses, lists and negation
DEFAULT_MAX_DEPTH = 32


class ExpressionError(ValueError):
    """Raised for malformed or disallowed expressions."""

    def __init__(self, message: str, position: int | None = None):
        if position is not None:
            message = f"{message} (at position {position})"
        super().__init__(message)
        self.position = position


class _Missing:
    """Value of a path that doesn't resolve. Falsy, equal only to null."""

    _instance: "_Missing | None" = None

    def __new__(cls) -> "_Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"


MISSING = _Missing()


# ============================================================
# TOKENIZER
# ============================================================

@dataclass(frozen=True)
class Token:
    kind: str  # number, string, name, op, end
    value: Any
    position: int


_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
    | (?P<number>\d+(?:\.\d+)?)
    | (?P<string>'(?:[^'\\]|\\.)*'|"(?:[^"\\]|\\.)*")
    | (?P<name>[A-Za-z_][A-Za-z0-9_]*)
    | (?P<op>===|!==|==|!=|<=|>=|&&|\|\||[<>!()\[\],.\-])
    """,
    re.VERBOSE,
)

_ESCAPES = {"n": "\n", "t": "\t", "\\": "\\", "'": "'", '"': '"'}


def _unquote(raw: str) -> str:
    body = raw[1:-1]
    return re.sub(r"\\(.)", lambda m: _ESCAPES.get(m.group(1), m.group(1)), body)


def tokenize(source: str) -> list[Token]:
    tokens: list[Token] = []
    position = 0
    while position < len(source):
        match = _TOKEN_RE.match(source, position)
        if match is None:
            raise ExpressionError(f"Unexpected character {source[position]!r}", position)
        kind = match.lastgroup
        text = match.group()
        if kind == "number":
            tokens.append(Token("number", float(text) if "." in text else int(text), position))
        elif kind == "string":
            tokens.append(Token("string", _unquote(text), position))
        elif kind == "name":
            tokens.append(Token("name", text, position))
        elif kind == "op":
            tokens.append(Token("op", text, position))
        position = match.end()
    tokens.append(Token("end", None, len(source)))
    return tokens


# ============================================================
# AST
# ============================================================

class Node:
    def evaluate(self, context: Mapping[str, Any]) -> Any:
        raise NotImplementedError


@dataclass(frozen=True)
class Literal(Node):
    value: Any

    def evaluate(self, context: Mapping[str, Any]) -> Any:
        return self.value


@dataclass(frozen=True)
class ListExpr(Node):
    items: tuple[Node, ...]

    def evaluate(self, context: Mapping[str, Any]) -> Any:
        return [item.evaluate(context) for item in self.items]


@dataclass(frozen=True)
class Path(Node):
    root: str
    parts: tuple[str, ...]

    def evaluate(self, context: Mapping[str, Any]) -> Any:
        value = context.get(self.root, MISSING)
        for part in self.parts:
            value = lookup(value, part)
            if value is MISSING:
                break
        return normalize(value)


@dataclass(frozen=True)
class Unary(Node):
    op: str
    operand: Node

    def evaluate(self, context: Mapping[str, Any]) -> Any:
        return not truthy(self.operand.evaluate(context))


@dataclass(frozen=True)
class Logical(Node):
    op: str
    left: Node
    right: Node

    def evaluate(self, context: Mapping[str, Any]) -> Any:
        left = truthy(self.left.evaluate(context))
        if self.op == "&&":
            return left and truthy(self.right.evaluate(context))
        return left or truthy(self.right.evaluate(context))


@dataclass(frozen=True)
class Comparison(Node):
    op: str
    left: Node
    right: Node

    def evaluate(self, context: Mapping[str, Any]) -> Any:
        return compare(self.op, self.left.evaluate(context), self.right.evaluate(context))


@dataclass(frozen=True)
class Expression:
    """A compiled expression."""
    source: str
    root: Node

    def evaluate(self, context: Mapping[str, Any]) -> bool:
        return truthy(self.root.evaluate(context))


# ============================================================
# PARSER
# ============================================================

class _Parser:
    def __init__(self, tokens: list[Token], max_depth: int = DEFAULT_MAX_DEPTH):
        self.tokens = tokens
        self.index = 0
        self.max_depth = max_depth
        self.depth = 0

    @property
    def current(self) -> Token:
        return self.tokens[self.index]

    def _peek(self, offset: int = 1) -> Token:
        return self.tokens[min(self.index + offset, len(self.tokens) - 1)]

    def _advance(self) -> Token:
        token = self.current
        self.index += 1
        return token

    def _operator(self, token: Token | None = None) -> str | None:
        """Canonical operator for a token (word operators map to symbols)."""
        token = token or self.current
        if token.kind == "op":
            return token.value
        if token.kind == "name" and token.value in WORD_OPERATORS:
            return WORD_OPERATORS[token.value]
        return None

    def _is_word(self, word: str) -> bool:
        return self.current.kind == "name" and self.current.value == word

    def _expect(self, op: str) -> Token:
        if self._operator() != op:
            raise ExpressionError(f"Expected {op!r}", self.current.position)
        return self._advance()

    def _descend(self) -> None:
        self.depth += 1
        if self.depth > self.max_depth:
            raise ExpressionError("Expression nested too deeply", self.current.position)

    def _ascend(self) -> None:
        self.depth -= 1

    def parse(self) -> Node:
        node = self._or()
        if self.current.kind != "end":
            raise ExpressionError(f"Unexpected token {self.current.value!r}", self.current.position)
        return node

    def _or(self) -> Node:
        node = self._and()
        while self._operator() == "||":
            self._advance()
            node = Logical("||", node, self._and())
        return node

    def _and(self) -> Node:
        node = self._not()
        while self._operator() == "&&":
            self._advance()
            node = Logical("&&", node, self._not())
        return node

    def _not(self) -> Node:
        if self._operator() == "!":
            self._advance()
            self._descend()
            node = Unary("!", self._not())
            self._ascend()
            return node
        return self._comparison()

    def _comparison(self) -> Node:
        left = self._operand()
        op = self._operator()
        if self._is_word("not") and self._operator(self._peek()) == "in":
            self._advance()
            self._advance()
            op = "not in"
        elif op in COMPARISON_OPERATORS:
            self._advance()
        else:
            return left
        right = self._operand()
        if self._operator() in COMPARISON_OPERATORS:
            raise ExpressionError("Chained comparisons are not supported", self.current.position)
        return Comparison(op, left, right)

    def _operand(self) -> Node:
        token = self.current
        op = self._operator()

        if token.kind == "number":
            self._advance()
            return Literal(token.value)
        if token.kind == "string":
            self._advance()
            return Literal(token.value)
        if op == "-" and self._peek().kind == "number":
            self._advance()
            return Literal(-self._advance().value)
        if op == "(":
            self._advance()
            self._descend()
            node = self._or()
            self._expect(")")
            self._ascend()
            return node
        if op == "[":
            return self._list()
        if token.kind == "name" and token.value not in WORD_OPERATORS:
            if token.value in KEYWORD_LITERALS:
                self._advance()
                return Literal(KEYWORD_LITERALS[token.value])
            return self._path()

        raise ExpressionError(
            "Unexpected end of expression" if token.kind == "end" else f"Unexpected token {token.value!r}",
            token.position,
        )

    def _list(self) -> Node:
        self._expect("[")
        self._descend()
        items: list[Node] = []
        if self._operator() != "]":
            items.append(self._or())
            while self._operator() == ",":
                self._advance()
                items.append(self._or())
        self._expect("]")
        self._ascend()
        return ListExpr(tuple(items))

    def _path(self) -> Node:
        root = self._advance()
        if root.value not in ROOTS:
            raise ExpressionError(
                f"Unknown name {root.value!r}, expressions may only reference {sorted(ROOTS)}",
                root.position,
            )
        parts: list[str] = []
        while self._operator() == ".":
            self._advance()
            name = self.current
            if name.kind != "name":
                raise ExpressionError("Expected a field name after '.'", name.position)
            if name.value.startswith("_"):
                raise ExpressionError(f"Private field {name.value!r} is not accessible", name.position)
            parts.append(self._advance().value)
        if self._operator() in ("(", "["):
            raise ExpressionError("Calls and indexing are not supported", self.current.position)
        return Path(root.value, tuple(parts))


@lru_cache(maxsize=512)
def compile_expression(source: str, max_depth: int = DEFAULT_MAX_DEPTH) -> Expression:
    """Parse an expression; results are cached by source text and depth limit."""
    if not isinstance(source, str) or not source.strip():
        raise ExpressionError("Expression must be a non-empty string")
    return Expression(source=source, root=_Parser(tokenize(source), max_depth).parse())


# ============================================================
# INTERPRETER HELPERS
# ============================================================

def lookup(value: Any, name: str) -> Any:
    """One step of dotted-path descent."""
    if value is MISSING or value is None:
        return MISSING
    if isinstance(value, Mapping):
        return value.get(name, MISSING)
    attr = getattr(value, name, MISSING)
    if callable(attr):
        return MISSING
    return attr


def normalize(value: Any) -> Any:
    # Ids arrive as UUID objects from the store and as strings from callers
    if isinstance(value, UUID):
        return str(value)
    return value


def truthy(value: Any) -> bool:
    return bool(value)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _loose_equal(left: Any, right: Any) -> bool:
    left_nullish = left is None or left is MISSING
    right_nullish = right is None or right is MISSING
    if left_nullish or right_nullish:
        return left_nullish and right_nullish
    if _is_number(left) and isinstance(right, str):
        try:
            return left == float(right)
        except ValueError:
            return False
    if isinstance(left, str) and _is_number(right):
        return _loose_equal(right, left)
    return normalize(left) == normalize(right)


def strict_equal(left: Any, right: Any) -> bool:
    if left is MISSING or right is MISSING:
        return left is right
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    if _is_number(left) and _is_number(right):
        return left == right
    if type(normalize(left)) is not type(normalize(right)):
        return False
    return normalize(left) == normalize(right)


def _contains(container: Any, item: Any) -> bool:
    if item is MISSING:
        return False
    if isinstance(container, (list, tuple, set, frozenset)):
        return any(_loose_equal(item, candidate) for candidate in container)
    if isinstance(container, str):
        return isinstance(item, str) and item in container
    if isinstance(container, Mapping):
        return item in container
    return False


def compare(op: str, left: Any, right: Any) -> bool:
    if op == "==":
        return _loose_equal(left, right)
    if op == "!=":
        return not _loose_equal(left, right)
    if op == "===":
        return strict_equal(left, right)
    if op == "!==":
        return not strict_equal(left, right)
    if op == "in":
        return _contains(right, left)
    if op == "not in":
        return not _contains(right, left)

    # Ordering: unresolved or mismatched operands never match
    if left is MISSING or right is MISSING or left is None or right is None:
        return False
    try:
        if op == "<":
            return left < right
        if op == "<=":
            return left <= right
        if op == ">":
            return left > right
        if op == ">=":
            return left >= right
    except TypeError:
        return False
    raise ExpressionError(f"Unknown operator {op!r}")
