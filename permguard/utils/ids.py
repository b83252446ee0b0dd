"""
Identifier helpers.

Target records come from arbitrary business modules, so ids in them may
be UUID objects, strings, or ints. Comparisons go through the string
form.
"""

from typing import Any
from uuid import UUID


def id_str(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, dict):
        # Populated reference, e.g. {"id": "...", "name": "..."}
        value = value.get("id", value.get("_id"))
        if value is None:
            return None
    return str(value)


def same_id(left: Any, right: Any) -> bool:
    """Loose id equality: UUID("a...") == "a..." is True."""
    left_str, right_str = id_str(left), id_str(right)
    if left_str is None or right_str is None:
        return False
    return left_str.lower() == right_str.lower()


def to_uuid(value: UUID | str) -> UUID:
    if isinstance(value, UUID):
        return value
    return UUID(str(value))
