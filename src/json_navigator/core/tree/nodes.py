"""Build view nodes from parsed JSON values."""

import json
from typing import Any

from json_navigator.config import PREVIEW_LIMIT
from json_navigator.core.tree.pointer import last_token
from json_navigator.models.node import Node, ValueType


def value_type_of(value: Any) -> ValueType:
    if isinstance(value, dict):
        return ValueType.OBJECT
    if isinstance(value, list):
        return ValueType.ARRAY
    if isinstance(value, str):
        return ValueType.STRING
    if isinstance(value, bool):
        return ValueType.BOOLEAN
    if value is None:
        return ValueType.NULL
    return ValueType.NUMBER


def scalar_text(value: Any) -> str:
    """Display text of a scalar: raw for strings, JSON literal otherwise."""
    if isinstance(value, str):
        return value
    return json.dumps(value)


def truncate(text: str, limit: int = PREVIEW_LIMIT) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "…"


def preview_of(value: Any) -> str:
    if isinstance(value, dict):
        return f"{{…}} {len(value)} keys" if value else "{} 0 keys"
    if isinstance(value, list):
        return f"[…] {len(value)} items" if value else "[] 0 items"
    return truncate(scalar_text(value))


def make_node(value: Any, pointer: str) -> Node:
    """Build the view descriptor for ``value`` located at ``pointer``."""
    count = len(value) if isinstance(value, (dict, list)) else 0
    return Node(
        pointer=pointer,
        key=last_token(pointer),
        value_type=value_type_of(value),
        has_children=count > 0,
        child_count=count,
        preview=preview_of(value),
    )
