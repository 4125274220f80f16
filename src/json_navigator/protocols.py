"""Protocols for the engine boundary and persisted client state."""

from collections.abc import AsyncIterator, Callable
from pathlib import Path
from typing import Protocol, runtime_checkable

from json_navigator.models.events import EngineEvent
from json_navigator.models.node import Node, SearchOptions, SearchPage

EventCallback = Callable[[EngineEvent], None]


@runtime_checkable
class EngineProtocol(Protocol):
    """Document engine: parses, indexes, pages, searches and edits documents."""

    async def open_document(
        self,
        source: str | Path | bytes,
        *,
        session_id: int,
        on_event: EventCallback | None = None,
    ) -> list[Node]:
        """Open a document and return the first page of root nodes."""
        ...

    async def cancel_open(self) -> None:
        """Best-effort abort of an in-flight open."""
        ...

    async def fetch_children(self, pointer: str, offset: int, limit: int) -> list[Node]:
        """Return children of ``pointer``; fewer than ``limit`` means no more."""
        ...

    async def run_search(
        self, query: str, options: SearchOptions, offset: int, limit: int
    ) -> SearchPage:
        """Return one page of search results."""
        ...

    def run_search_stream(
        self, query: str, options: SearchOptions, *, session_id: int
    ) -> AsyncIterator[EngineEvent]:
        """Stream batch events, terminated by a done (or error) event."""
        ...

    async def get_node_value(self, pointer: str) -> str:
        """Return the raw JSON text of the value at ``pointer``."""
        ...

    async def set_node_value(self, pointer: str, new_value: str) -> Node:
        """Replace a scalar value and return the updated node."""
        ...

    async def set_subtree(self, pointer: str, new_json: str) -> Node:
        """Replace an object/array with new JSON of the same container kind."""
        ...

    async def parse_stringified_json(self, pointer: str) -> Node:
        """Turn a string holding JSON object/array text into the container."""
        ...


@runtime_checkable
class StateStoreProtocol(Protocol):
    """Durable client state owned outside the navigation core."""

    def save_last_opened(self, path: str) -> None:
        """Remember the last successfully opened document."""
        ...

    def load_last_opened(self) -> str | None:
        """Return the remembered document path, or None."""
        ...

    def clear_last_opened(self) -> None:
        """Forget the remembered document path."""
        ...
