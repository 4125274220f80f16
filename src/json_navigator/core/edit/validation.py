"""Edit draft validation shared by the inline editor and the local engine."""

import json
import math
from typing import Any

from json_navigator.errors import EditValidationError
from json_navigator.models.node import ValueType


def parse_number(text: str) -> int | float:
    """Parse a number literal, preferring int.

    Raises:
        EditValidationError: if ``text`` is not a finite int or float literal.
    """
    trimmed = text.strip()
    try:
        return int(trimmed)
    except ValueError:
        pass
    try:
        value = float(trimmed)
    except ValueError:
        msg = "Invalid number literal"
        raise EditValidationError(msg) from None
    if not math.isfinite(value):
        msg = "Invalid number"
        raise EditValidationError(msg)
    return value


def parse_boolean(text: str) -> bool:
    lowered = text.strip().lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    msg = "Invalid boolean (expected true/false)"
    raise EditValidationError(msg)


def looks_like_container(text: str) -> bool:
    """True when trimmed ``text`` is wrapped in ``{}`` or ``[]``."""
    trimmed = text.strip()
    return (trimmed.startswith("{") and trimmed.endswith("}")) or (
        trimmed.startswith("[") and trimmed.endswith("]")
    )


def container_kind(value: Any) -> ValueType | None:
    if isinstance(value, dict):
        return ValueType.OBJECT
    if isinstance(value, list):
        return ValueType.ARRAY
    return None


def parse_container(text: str, expected: ValueType | None = None) -> dict[str, Any] | list[Any]:
    """Parse JSON object/array text, optionally requiring a container kind.

    Raises:
        EditValidationError: on a parse error, a non-container value, or a
            kind different from ``expected``.
    """
    try:
        value = json.loads(text)
    except json.JSONDecodeError as e:
        msg = f"Parse error: {e}"
        raise EditValidationError(msg) from e
    kind = container_kind(value)
    if kind is None:
        msg = "Edited subtree must be an object or array"
        raise EditValidationError(msg)
    if expected is not None and kind != expected:
        msg = "Type change not allowed (must remain object/array)"
        raise EditValidationError(msg)
    return value


def coerce_scalar(value_type: ValueType, draft: str) -> Any:
    """Convert an edit draft to the Python value stored for ``value_type``.

    Raises:
        EditValidationError: if the draft does not fit the type, or the type
            cannot be edited as a scalar.
    """
    if value_type == ValueType.STRING:
        return draft
    if value_type == ValueType.NUMBER:
        return parse_number(draft)
    if value_type == ValueType.BOOLEAN:
        return parse_boolean(draft)
    if value_type == ValueType.NULL:
        msg = "Editing null not supported"
        raise EditValidationError(msg)
    msg = "Editing non-scalar value not supported"
    raise EditValidationError(msg)


def validate_edit(value_type: ValueType, draft: str) -> None:
    """Raise ``EditValidationError`` when ``draft`` cannot replace a ``value_type`` value."""
    if value_type.is_container:
        parse_container(draft, value_type)
    else:
        coerce_scalar(value_type, draft)
