"""HTTP client for a document engine running in another process."""

import asyncio
import json
import os
from collections.abc import AsyncIterator, Iterator
from pathlib import Path
from typing import Any

import requests
from loguru import logger

from json_navigator.config import ENGINE_TIMEOUT_SECONDS, ENGINE_TOKEN_ENV, ENGINE_URL_ENV
from json_navigator.errors import EngineError, EventError
from json_navigator.models.events import EngineEvent, ErrorEvent, ProgressEvent, parse_event
from json_navigator.models.node import Node, SearchOptions, SearchPage, SearchResult
from json_navigator.protocols import EventCallback


class HttpEngine:
    """Engine calls as ``POST {base_url}/{command}`` with a JSON body.

    Responses are ``{"ok": true, "result": ...}`` or ``{"ok": false, "error": ...}``.
    Streaming search returns one JSON event per line.
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        token: str | None = None,
        timeout: float = ENGINE_TIMEOUT_SECONDS,
    ) -> None:
        base_url = base_url or os.environ.get(ENGINE_URL_ENV)
        if not base_url:
            msg = f"No engine URL given and {ENGINE_URL_ENV} is not set"
            raise EngineError(msg)
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.sess = requests.Session()
        self.sess.headers["Content-Type"] = "application/json"
        token = token if token is not None else os.environ.get(ENGINE_TOKEN_ENV)
        if token:
            self.sess.headers["Authorization"] = f"Bearer {token}"
        logger.debug("Engine client ready: {} (token {})", self.base_url, "set" if token else "unset")

    def _post(self, command: str, args: dict[str, Any], *, stream: bool = False) -> requests.Response:
        logger.debug("Engine request: {!r} {}", command, repr(args)[:64])
        try:
            r = self.sess.post(
                f"{self.base_url}/{command}",
                json.dumps(args),
                timeout=self.timeout,
                stream=stream,
            )
            r.raise_for_status()
        except requests.RequestException as e:
            msg = f"Engine call {command!r} failed: {e}"
            raise EngineError(msg) from e
        return r

    def call(self, command: str, args: dict[str, Any]) -> Any:
        """Invoke an engine command and return its ``result``."""
        r = self._post(command, args)
        try:
            rv = r.json()
        except ValueError as e:
            msg = f"Engine call {command!r} returned invalid JSON"
            raise EngineError(msg) from e
        if not isinstance(rv, dict) or not rv.get("ok"):
            error = rv.get("error") if isinstance(rv, dict) else rv
            msg = f"Engine call {command!r} failed: {error}"
            raise EngineError(msg)
        return rv.get("result")

    async def _acall(self, command: str, args: dict[str, Any]) -> Any:
        return await asyncio.to_thread(self.call, command, args)

    # --- EngineProtocol ---

    async def open_document(
        self,
        source: str | Path | bytes,
        *,
        session_id: int,
        on_event: EventCallback | None = None,
    ) -> list[Node]:
        args: dict[str, Any] = {"session_id": session_id}
        if isinstance(source, bytes):
            args["text"] = source.decode("utf-8")
        else:
            args["path"] = str(source)
        result = await self._acall("open-document", args)
        if on_event is not None:
            on_event(ProgressEvent(session_id=session_id, percent=100.0, done=True))
        return [Node.from_dict(item) for item in result]

    async def cancel_open(self) -> None:
        await self._acall("cancel-open", {})

    async def fetch_children(self, pointer: str, offset: int, limit: int) -> list[Node]:
        result = await self._acall(
            "fetch-children", {"pointer": pointer, "offset": offset, "limit": limit}
        )
        return [Node.from_dict(item) for item in result]

    async def run_search(
        self, query: str, options: SearchOptions, offset: int, limit: int
    ) -> SearchPage:
        result = await self._acall(
            "run-search",
            {"query": query, **options.to_dict(), "offset": offset, "limit": limit},
        )
        return SearchPage(
            results=tuple(SearchResult.from_dict(item) for item in result["results"]),
            total_count=int(result["total_count"]),
            has_more=bool(result["has_more"]),
        )

    async def run_search_stream(
        self, query: str, options: SearchOptions, *, session_id: int
    ) -> AsyncIterator[EngineEvent]:
        r = await asyncio.to_thread(
            self._post,
            "run-search-stream",
            {"query": query, **options.to_dict(), "session_id": session_id},
            stream=True,
        )
        lines: Iterator[bytes] = r.iter_lines()
        try:
            while True:
                line = await asyncio.to_thread(next, lines, None)
                if line is None:
                    break
                if not line.strip():
                    continue
                try:
                    event = parse_event(json.loads(line))
                except (ValueError, EventError) as e:
                    logger.warning("Malformed search event: {}", e)
                    yield ErrorEvent(session_id=session_id, message=f"Malformed event: {e}")
                    return
                yield event
        finally:
            r.close()

    async def get_node_value(self, pointer: str) -> str:
        return str(await self._acall("get-node-value", {"pointer": pointer}))

    async def set_node_value(self, pointer: str, new_value: str) -> Node:
        result = await self._acall("set-node-value", {"pointer": pointer, "new_value": new_value})
        return Node.from_dict(result)

    async def set_subtree(self, pointer: str, new_json: str) -> Node:
        result = await self._acall("set-subtree", {"pointer": pointer, "new_json": new_json})
        return Node.from_dict(result)

    async def parse_stringified_json(self, pointer: str) -> Node:
        result = await self._acall("parse-stringified-json", {"pointer": pointer})
        return Node.from_dict(result)
