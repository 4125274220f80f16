"""In-process document engine backed by the ``json`` module."""

import asyncio
import json
import re
import time
from collections.abc import AsyncIterator, Iterator
from pathlib import Path
from typing import Any

from loguru import logger

from json_navigator.config import PAGE_SIZE, PROGRESS_CHUNK_BYTES, STREAM_BATCH_SIZE
from json_navigator.core.edit.validation import (
    coerce_scalar,
    container_kind,
    looks_like_container,
    parse_container,
)
from json_navigator.core.search.matching import build_pattern, text_matches
from json_navigator.core.tree.nodes import make_node, scalar_text, value_type_of
from json_navigator.core.tree.pointer import (
    ROOT,
    child_pointer,
    last_token,
    parent_pointer,
    split_pointer,
)
from json_navigator.errors import EditValidationError, EngineError, InvalidQueryError, OpenCancelledError
from json_navigator.models.events import BatchEvent, DoneEvent, EngineEvent, ErrorEvent, ProgressEvent
from json_navigator.models.node import MatchType, Node, SearchOptions, SearchPage, SearchResult
from json_navigator.protocols import EventCallback


class LocalEngine:
    """Holds one parsed document in memory and serves the engine calls."""

    def __init__(
        self,
        *,
        chunk_bytes: int = PROGRESS_CHUNK_BYTES,
        batch_size: int = STREAM_BATCH_SIZE,
        root_page_size: int = PAGE_SIZE,
    ) -> None:
        self.chunk_bytes = chunk_bytes
        self.batch_size = batch_size
        self.root_page_size = root_page_size
        self._root: Any = None
        self._loaded = False
        # Each open takes a token; only the newest uncancelled one may install its document
        self._open_token = 0
        self._cancelled_token = 0

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def document(self) -> Any:
        self._require_document()
        return self._root

    # --- Open ---

    async def open_document(
        self,
        source: str | Path | bytes,
        *,
        session_id: int,
        on_event: EventCallback | None = None,
    ) -> list[Node]:
        self._open_token += 1
        token = self._open_token
        if isinstance(source, bytes):
            data = await self._read_bytes(source, token, session_id, on_event)
        else:
            data = await self._read_file(Path(source), token, session_id, on_event)

        try:
            root = json.loads(data)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            msg = f"Invalid JSON: {e}"
            raise EngineError(msg) from e

        if not self._is_live(token):
            logger.debug("Dropping superseded document for session {}", session_id)
            msg = "Open superseded"
            raise OpenCancelledError(msg)

        self._root = root
        self._loaded = True
        logger.debug("Parsed document for session {} ({} bytes)", session_id, len(data))
        return self._children(ROOT, 0, self.root_page_size)

    async def _read_file(
        self, path: Path, token: int, session_id: int, on_event: EventCallback | None
    ) -> bytes:
        try:
            total = path.stat().st_size
            with path.open("rb") as f:
                chunks = []
                read = 0
                while True:
                    self._check_cancel(token, session_id, read, total, on_event)
                    chunk = f.read(self.chunk_bytes)
                    if not chunk:
                        break
                    chunks.append(chunk)
                    read += len(chunk)
                    _emit_progress(on_event, session_id, read, total, done=False)
                    await asyncio.sleep(0)
        except OSError as e:
            msg = f"Failed to read {path}: {e}"
            raise EngineError(msg) from e
        _emit_progress(on_event, session_id, read, total, done=True)
        return b"".join(chunks)

    async def _read_bytes(
        self, data: bytes, token: int, session_id: int, on_event: EventCallback | None
    ) -> bytes:
        total = len(data)
        for start in range(0, total, self.chunk_bytes):
            self._check_cancel(token, session_id, start, total, on_event)
            _emit_progress(on_event, session_id, min(start + self.chunk_bytes, total), total, done=False)
            await asyncio.sleep(0)
        self._check_cancel(token, session_id, total, total, on_event)
        _emit_progress(on_event, session_id, total, total, done=True)
        return data

    def _check_cancel(
        self, token: int, session_id: int, read: int, total: int, on_event: EventCallback | None
    ) -> None:
        if self._is_live(token):
            return
        if on_event is not None:
            on_event(
                ProgressEvent(
                    session_id=session_id,
                    percent=_percent(read, total),
                    canceled=True,
                    read_bytes=read,
                    total_bytes=total,
                )
            )
        msg = "Open cancelled"
        raise OpenCancelledError(msg)

    def _is_live(self, token: int) -> bool:
        return token == self._open_token and token > self._cancelled_token

    async def cancel_open(self) -> None:
        self._cancelled_token = self._open_token

    # --- Navigation ---

    def _require_document(self) -> None:
        if not self._loaded:
            msg = "No document loaded"
            raise EngineError(msg)

    def _resolve(self, pointer: str) -> Any:
        self._require_document()
        try:
            tokens = split_pointer(pointer)
        except ValueError as e:
            raise EngineError(str(e)) from e
        value = self._root
        for token in tokens:
            if isinstance(value, dict) and token in value:
                value = value[token]
            elif isinstance(value, list) and token.isascii() and token.isdigit() and int(token) < len(value):
                value = value[int(token)]
            else:
                msg = f"Invalid pointer: {pointer!r}"
                raise EngineError(msg)
        return value

    def _children(self, pointer: str, offset: int, limit: int) -> list[Node]:
        target = self._resolve(pointer)
        if isinstance(target, dict):
            items = list(target.items())[offset : offset + limit]
            return [make_node(v, child_pointer(pointer, k)) for k, v in items]
        if isinstance(target, list):
            end = min(offset + limit, len(target))
            return [make_node(target[i], child_pointer(pointer, i)) for i in range(offset, end)]
        return []

    async def fetch_children(self, pointer: str, offset: int, limit: int) -> list[Node]:
        return self._children(pointer, offset, limit)

    # --- Search ---

    def iter_matches(self, query: str, options: SearchOptions) -> Iterator[SearchResult]:
        """Yield every hit in document order (pre-order, children in sequence).

        Raises:
            InvalidQueryError: on an invalid regex.
        """
        self._require_document()
        pattern = build_pattern(query, options)
        if pattern is None:
            return
        yield from _walk_matches(self._root, ROOT, pattern, options)

    async def run_search(
        self, query: str, options: SearchOptions, offset: int, limit: int
    ) -> SearchPage:
        if not query.strip():
            return SearchPage(results=(), total_count=0, has_more=False)
        try:
            matches = list(self.iter_matches(query, options))
        except InvalidQueryError as e:
            raise EngineError(str(e)) from e
        total = len(matches)
        return SearchPage(
            results=tuple(matches[offset : offset + limit]),
            total_count=total,
            has_more=offset + limit < total,
        )

    async def run_search_stream(
        self, query: str, options: SearchOptions, *, session_id: int
    ) -> AsyncIterator[EngineEvent]:
        started = time.monotonic()
        if not query.strip():
            yield ErrorEvent(session_id=session_id, message="Empty query")
            return

        total = 0
        batch: list[SearchResult] = []
        try:
            for result in self.iter_matches(query, options):
                batch.append(result)
                if len(batch) >= self.batch_size:
                    total += len(batch)
                    yield BatchEvent(
                        session_id=session_id,
                        batch=tuple(batch),
                        total_so_far=total,
                        elapsed_ms=_elapsed_ms(started),
                    )
                    batch = []
                    await asyncio.sleep(0)
        except (EngineError, InvalidQueryError) as e:
            yield ErrorEvent(session_id=session_id, message=str(e))
            return

        if batch:
            total += len(batch)
            yield BatchEvent(
                session_id=session_id,
                batch=tuple(batch),
                total_so_far=total,
                elapsed_ms=_elapsed_ms(started),
            )
        yield DoneEvent(session_id=session_id, total=total, elapsed_ms=_elapsed_ms(started))

    # --- Edits ---

    def _assign(self, pointer: str, new_value: Any) -> None:
        parent = parent_pointer(pointer)
        if parent is None:
            self._root = new_value
            return
        container = self._resolve(parent)
        token = last_token(pointer)
        if isinstance(container, list):
            container[int(token)] = new_value
        else:
            container[token] = new_value

    async def get_node_value(self, pointer: str) -> str:
        return json.dumps(self._resolve(pointer), ensure_ascii=False)

    async def set_node_value(self, pointer: str, new_value: str) -> Node:
        current = self._resolve(pointer)
        try:
            value = coerce_scalar(value_type_of(current), new_value)
        except EditValidationError as e:
            raise EngineError(str(e)) from e
        self._assign(pointer, value)
        return make_node(value, pointer)

    async def set_subtree(self, pointer: str, new_json: str) -> Node:
        current = self._resolve(pointer)
        try:
            parsed = parse_container(new_json)
        except EditValidationError as e:
            raise EngineError(str(e)) from e
        existing = container_kind(current)
        if existing is None:
            msg = "Current value is not an object or array"
            raise EngineError(msg)
        if existing != container_kind(parsed):
            msg = "Type change not allowed (must remain object/array)"
            raise EngineError(msg)
        self._assign(pointer, parsed)
        return make_node(parsed, pointer)

    async def parse_stringified_json(self, pointer: str) -> Node:
        current = self._resolve(pointer)
        if not isinstance(current, str):
            msg = "Target node is not a string"
            raise EngineError(msg)
        if not looks_like_container(current):
            msg = "String does not look like a JSON object/array"
            raise EngineError(msg)
        try:
            parsed = parse_container(current.strip())
        except EditValidationError as e:
            raise EngineError(str(e)) from e
        self._assign(pointer, parsed)
        return make_node(parsed, pointer)


def _percent(read: int, total: int) -> float:
    return read / total * 100.0 if total > 0 else 0.0


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def _emit_progress(
    on_event: EventCallback | None, session_id: int, read: int, total: int, *, done: bool
) -> None:
    if on_event is None:
        return
    on_event(
        ProgressEvent(
            session_id=session_id,
            percent=100.0 if done else _percent(read, total),
            done=done,
            read_bytes=read,
            total_bytes=total,
        )
    )


def _walk_matches(
    value: Any, pointer: str, pattern: re.Pattern[str], options: SearchOptions
) -> Iterator[SearchResult]:
    if options.search_paths and text_matches(pointer, pattern):
        yield SearchResult(node=make_node(value, pointer), match_type=MatchType.PATH, match_text=pointer)

    if isinstance(value, dict):
        entries: list[tuple[str, Any]] = list(value.items())
        label = "key"
    elif isinstance(value, list):
        entries = [(str(i), item) for i, item in enumerate(value)]
        label = "index"
    else:
        return

    for key, child in entries:
        ptr = child_pointer(pointer, key)
        if label == "key" and options.search_keys and text_matches(key, pattern):
            yield SearchResult(node=make_node(child, ptr), match_type=MatchType.KEY, match_text=key)
        if (
            options.search_values
            and isinstance(child, (str, int, float))
            and text_matches(scalar_text(child), pattern)
        ):
            yield SearchResult(
                node=make_node(child, ptr),
                match_type=MatchType.VALUE,
                match_text=scalar_text(child),
                context=f"in {label}: {key}",
            )
        if isinstance(child, (dict, list)):
            yield from _walk_matches(child, ptr, pattern, options)
