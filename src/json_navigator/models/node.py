"""Domain models for json-navigator."""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any


class ValueType(str, Enum):
    """JSON value kinds as reported by the engine."""

    OBJECT = "object"
    ARRAY = "array"
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    NULL = "null"

    @property
    def is_container(self) -> bool:
        return self in (ValueType.OBJECT, ValueType.ARRAY)


class MatchType(str, Enum):
    """Which part of a document entry a search hit matched."""

    KEY = "key"
    VALUE = "value"
    PATH = "path"


class MatchMode(str, Enum):
    """Effective text matching mode of a query."""

    PLAIN = "plain"
    CASE_SENSITIVE = "case_sensitive"
    WHOLE_WORD = "whole_word"
    REGEX = "regex"


class SearchPhase(str, Enum):
    """Lifecycle of one search session."""

    IDLE = "idle"
    LOADING = "loading"
    APPENDING = "appending"
    DONE = "done"
    ERROR = "error"


@dataclass(frozen=True)
class Node:
    """View-level descriptor of one value in the document."""

    pointer: str
    value_type: ValueType
    preview: str
    key: str | None = None
    has_children: bool = False
    child_count: int = 0

    def __post_init__(self) -> None:
        if self.child_count < 0:
            msg = f"child_count must be >= 0, got {self.child_count}"
            raise ValueError(msg)
        expected = self.value_type.is_container and self.child_count > 0
        if self.has_children != expected:
            msg = (
                f"has_children={self.has_children} inconsistent with "
                f"{self.value_type.value} of {self.child_count} children at {self.pointer!r}"
            )
            raise ValueError(msg)

    @property
    def label(self) -> str:
        """Display label: key, or ``root`` for the document root."""
        return self.key if self.key is not None else "root"

    def with_display(self, other: "Node") -> "Node":
        """Copy display fields from an updated node for the same pointer."""
        return replace(
            self,
            value_type=other.value_type,
            preview=other.preview,
            has_children=other.has_children,
            child_count=other.child_count,
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Node":
        return cls(
            pointer=data["pointer"],
            key=data.get("key"),
            value_type=ValueType(data["value_type"]),
            has_children=bool(data.get("has_children", False)),
            child_count=int(data.get("child_count", 0)),
            preview=data.get("preview", ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "pointer": self.pointer,
            "key": self.key,
            "value_type": self.value_type.value,
            "has_children": self.has_children,
            "child_count": self.child_count,
            "preview": self.preview,
        }


_MODE_FLAGS = ("case_sensitive", "whole_word", "regex")
_TARGET_FLAGS = ("search_keys", "search_values", "search_paths")


@dataclass(frozen=True)
class SearchOptions:
    """Search targets plus the matching mode flags."""

    search_keys: bool = True
    search_values: bool = True
    search_paths: bool = False
    case_sensitive: bool = False
    whole_word: bool = False
    regex: bool = False

    @property
    def has_target(self) -> bool:
        return self.search_keys or self.search_values or self.search_paths

    @property
    def match_mode(self) -> MatchMode:
        if self.regex:
            return MatchMode.REGEX
        if self.whole_word:
            return MatchMode.WHOLE_WORD
        if self.case_sensitive:
            return MatchMode.CASE_SENSITIVE
        return MatchMode.PLAIN

    def with_flag(self, name: str, enabled: bool, *, strict: bool = False) -> "SearchOptions":
        """Return a copy with one flag changed, applying the mode exclusivity policy.

        Enabling ``regex`` clears ``case_sensitive`` and ``whole_word``; enabling
        either of those clears ``regex``. With ``strict`` every mode flag excludes
        the others.
        """
        if name not in _MODE_FLAGS and name not in _TARGET_FLAGS:
            msg = f"Unknown search option: {name!r}"
            raise ValueError(msg)

        changes: dict[str, bool] = {name: enabled}
        if enabled and name in _MODE_FLAGS:
            if strict or name == "regex":
                changes.update({other: False for other in _MODE_FLAGS if other != name})
            else:
                changes["regex"] = False
        return replace(self, **changes)

    def to_dict(self) -> dict[str, bool]:
        return {
            "search_keys": self.search_keys,
            "search_values": self.search_values,
            "search_paths": self.search_paths,
            "case_sensitive": self.case_sensitive,
            "whole_word": self.whole_word,
            "regex": self.regex,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SearchOptions":
        return cls(**{k: bool(v) for k, v in data.items() if k in _MODE_FLAGS + _TARGET_FLAGS})


@dataclass(frozen=True)
class SearchResult:
    """A search hit."""

    node: Node
    match_type: MatchType
    match_text: str
    context: str | None = None

    @property
    def identity(self) -> tuple[str, MatchType]:
        """Key used to avoid duplicate entries within one search session."""
        return (self.node.pointer, self.match_type)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SearchResult":
        return cls(
            node=Node.from_dict(data["node"]),
            match_type=MatchType(data["match_type"]),
            match_text=data.get("match_text", ""),
            context=data.get("context"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "node": self.node.to_dict(),
            "match_type": self.match_type.value,
            "match_text": self.match_text,
            "context": self.context,
        }


@dataclass(frozen=True)
class SearchPage:
    """One page of a non-streaming search response."""

    results: tuple[SearchResult, ...]
    total_count: int
    has_more: bool


@dataclass
class ChildPage:
    """Incrementally loaded children of one expanded container."""

    children: list[Node] = field(default_factory=list)
    has_more: bool = False
    loading: bool = False
    # Bumped whenever an in-flight fetch is abandoned; stale responses compare it.
    generation: int = 0

    @property
    def loaded_count(self) -> int:
        return len(self.children)
