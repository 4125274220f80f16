"""MCP server exposing JSON document navigation, search and edit tools."""

import json
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

from loguru import logger
from mcp.server.fastmcp import Context, FastMCP

from json_navigator.config import ENGINE_URL_ENV, PAGE_SIZE, SEARCH_PAGE_SIZE
from json_navigator.core.search.matching import render_result_preview
from json_navigator.core.session.controller import DocumentSession, DocumentSessionController
from json_navigator.core.session.state_store import FileStateStore
from json_navigator.core.tree.pointer import ROOT
from json_navigator.engine.local import LocalEngine
from json_navigator.engine.remote import HttpEngine
from json_navigator.models.node import Node, SearchOptions, SearchPhase
from json_navigator.protocols import EngineProtocol

_NO_DOCUMENT = {"error": "No document open. Call open_document first."}


def _node_entry(node: Node) -> dict[str, Any]:
    return {
        "pointer": node.pointer,
        "key": node.key,
        "type": node.value_type.value,
        "preview": node.preview,
        "child_count": node.child_count,
    }


def _latest_notice(session: DocumentSession) -> str | None:
    active = session.notices.active()
    return active[-1].message if active else None


def _search_output(session: DocumentSession) -> dict[str, Any]:
    search = session.search
    if search.phase == SearchPhase.ERROR:
        return {"error": search.error, "results": [], "count": 0, "total": 0}
    results = []
    for r in search.results:
        text, _spans = render_result_preview(r, search.query, search.session_options)
        results.append(
            {
                "pointer": r.node.pointer,
                "match_type": r.match_type.value,
                "match_text": text,
                "context": r.context,
                "type": r.node.value_type.value,
            }
        )
    output: dict[str, Any] = {
        "results": results,
        "count": len(results),
        "total": search.total_count,
        "page": search.page,
        "has_more": search.has_more,
    }
    if search.has_more:
        output["hint"] = "Call search_next_page for more results."
    return output


# --- Core functions (testable without MCP context) ---


async def navigator_open_document(controller: DocumentSessionController, *, path: str) -> dict[str, Any]:
    """Open a JSON file and return its first page of root entries.

    Args:
        path: Path of the JSON file.
    """
    session = await controller.open(os.path.expanduser(path))
    if session is None:
        return {"error": controller.error or "Open was cancelled."}
    page = session.cache.page(ROOT)
    return {
        "file_name": controller.file_name,
        "root": [_node_entry(n) for n in session.cache.root_nodes],
        "has_more": bool(page and page.has_more),
    }


async def navigator_list_children(
    controller: DocumentSessionController,
    *,
    pointer: str = ROOT,
    offset: int = 0,
    limit: int = PAGE_SIZE,
) -> dict[str, Any]:
    """List one page of children of the container at ``pointer``.

    Args:
        pointer: JSON pointer ("" for the root).
        offset: Index of the first child.
        limit: Max children (1-1000).
    """
    session = controller.session
    if session is None:
        return dict(_NO_DOCUMENT)
    limit = max(1, min(limit, 1000))
    if pointer != ROOT:
        session.cache.expanded.add(pointer)
    page = session.cache.page(pointer)
    if offset == 0 or (page is not None and offset == page.loaded_count):
        nodes = await session.cache.fetch_page(pointer, offset, limit)
        if nodes is None:
            return {"error": _latest_notice(session) or f"Could not load children of {pointer!r}."}
    else:
        # Out-of-sequence pages are read straight from the engine so the cache stays contiguous
        try:
            nodes = await controller.engine.fetch_children(pointer, offset, limit)
        except Exception as e:
            logger.warning("list_children {!r} at offset {} failed: {}", pointer, offset, e)
            return {"error": str(e)}
    return {
        "pointer": pointer,
        "children": [_node_entry(n) for n in nodes],
        "count": len(nodes),
        "has_more": len(nodes) == limit,
        "next_offset": offset + len(nodes),
    }


async def navigator_expand_subtree(
    controller: DocumentSessionController,
    *,
    pointer: str = ROOT,
    max_depth: int | None = 3,
) -> dict[str, Any]:
    """Expand a container and its descendants and return the outline.

    Args:
        pointer: JSON pointer of the container to expand.
        max_depth: Levels to expand (None = all).
    """
    session = controller.session
    if session is None:
        return dict(_NO_DOCUMENT)
    cache = session.cache
    if pointer == ROOT:
        for node in cache.root_nodes:
            if node.has_children and (max_depth is None or max_depth > 1):
                await cache.expand_subtree(
                    node.pointer, max_depth=None if max_depth is None else max_depth - 1
                )
    else:
        await cache.expand_subtree(pointer, max_depth=max_depth)

    lines = [
        f"{'  ' * depth}{node.label}: {node.preview}" for depth, node in cache.visible_rows(pointer)
    ]
    return {"pointer": pointer, "outline": "\n".join(lines), "rows": len(lines)}


async def navigator_search(
    controller: DocumentSessionController,
    *,
    query: str,
    search_keys: bool = True,
    search_values: bool = True,
    search_paths: bool = False,
    case_sensitive: bool = False,
    whole_word: bool = False,
    regex: bool = False,
    page_size: int = SEARCH_PAGE_SIZE,
) -> dict[str, Any]:
    """Search the open document.

    Args:
        query: Search text (or regular expression with ``regex``).
        search_keys: Match object keys.
        search_values: Match string, number and boolean values.
        search_paths: Match container pointers.
        case_sensitive: Case-sensitive matching.
        whole_word: Match whole words only.
        regex: Treat the query as a regular expression.
        page_size: Results per page.
    """
    session = controller.session
    if session is None:
        return dict(_NO_DOCUMENT)
    options = SearchOptions(
        search_keys=search_keys, search_values=search_values, search_paths=search_paths
    )
    for name, enabled in (("case_sensitive", case_sensitive), ("whole_word", whole_word), ("regex", regex)):
        if enabled:
            options = options.with_flag(name, True)
    if not options.has_target:
        return {"error": "Select at least one search target: keys, values or paths."}
    await session.search.search(query, options, 1, max(1, page_size))
    return _search_output(session)


async def navigator_search_next_page(controller: DocumentSessionController) -> dict[str, Any]:
    """Append the next page of the current search and return all results so far."""
    session = controller.session
    if session is None:
        return dict(_NO_DOCUMENT)
    if not session.search.query:
        return {"error": "No active search."}
    await session.search.load_next_page()
    return _search_output(session)


async def navigator_get_value(controller: DocumentSessionController, *, pointer: str) -> dict[str, Any]:
    """Return the full JSON value at ``pointer``."""
    if controller.session is None:
        return dict(_NO_DOCUMENT)
    try:
        raw = await controller.engine.get_node_value(pointer)
    except Exception as e:
        logger.warning("get_value {!r} failed: {}", pointer, e)
        return {"error": str(e)}
    return {"pointer": pointer, "value": json.loads(raw)}


async def navigator_set_value(
    controller: DocumentSessionController, *, pointer: str, value: str
) -> dict[str, Any]:
    """Replace the value at ``pointer``.

    Scalars keep their type: numbers must parse, booleans are true/false, null
    cannot be edited. Objects and arrays take JSON text of the same kind.
    """
    session = controller.session
    if session is None:
        return dict(_NO_DOCUMENT)
    updated = await session.editor.edit_pointer(pointer, value)
    if updated is None:
        return {"success": False, "error": session.editor.error or "Edit rejected."}
    return {"success": True, "node": _node_entry(updated)}


# --- Server wiring ---


@dataclass
class ServerContext:
    controller: DocumentSessionController


def _make_engine() -> EngineProtocol:
    if os.environ.get(ENGINE_URL_ENV):
        return HttpEngine()
    return LocalEngine()


@asynccontextmanager
async def server_lifespan(_server: FastMCP) -> AsyncIterator[ServerContext]:
    """Create the controller on startup and reopen the last document."""
    controller = DocumentSessionController(
        _make_engine(), state_store=FileStateStore(), debounce_seconds=0
    )
    await controller.restore_last()
    try:
        yield ServerContext(controller=controller)
    finally:
        controller.unload()


mcp_server = FastMCP(
    "json-navigator",
    instructions="""\
Navigate large JSON documents without loading them into the conversation.

1. open_document with a file path returns the first root entries.
2. list_children pages through a container; expand_subtree gives an outline.
3. search finds keys, values or paths; search_next_page continues a search.
4. get_value returns a full value; set_value edits it in place.

Pointers follow JSON Pointer syntax: "" is the root, "/items/0/name" a nested
value, "~1" escapes "/" and "~0" escapes "~" in keys.
""",
    lifespan=server_lifespan,
)


def _ctx(mcp_ctx: Context) -> ServerContext:
    return mcp_ctx.request_context.lifespan_context  # type: ignore[return-value]


# --- MCP Tool Wrappers ---


@mcp_server.tool()
async def open_document(ctx: Context, path: str) -> dict[str, Any]:
    """Open a JSON file, replacing the currently open document.

    Args:
        path: Path of the JSON file.
    """
    return await navigator_open_document(_ctx(ctx).controller, path=path)


@mcp_server.tool()
async def list_children(
    ctx: Context, pointer: str = "", offset: int = 0, limit: int = PAGE_SIZE
) -> dict[str, Any]:
    """List children of an object or array.

    Pagination: When has_more is true, use next_offset in a follow-up call.

    Args:
        pointer: JSON pointer ("" for the root).
        offset: Index of the first child.
        limit: Max children (1-1000).
    """
    return await navigator_list_children(
        _ctx(ctx).controller, pointer=pointer, offset=offset, limit=limit
    )


@mcp_server.tool()
async def expand_subtree(ctx: Context, pointer: str = "", max_depth: int | None = 3) -> dict[str, Any]:
    """Expand a container and return an indented outline of its descendants.

    Args:
        pointer: JSON pointer of the container.
        max_depth: Levels to expand (None = unlimited; keep small for big documents).
    """
    return await navigator_expand_subtree(_ctx(ctx).controller, pointer=pointer, max_depth=max_depth)


@mcp_server.tool()
async def search(
    ctx: Context,
    query: str,
    search_keys: bool = True,
    search_values: bool = True,
    search_paths: bool = False,
    case_sensitive: bool = False,
    whole_word: bool = False,
    regex: bool = False,
    page_size: int = SEARCH_PAGE_SIZE,
) -> dict[str, Any]:
    """Search keys, values and paths of the open document.

    Args:
        query: Search text (a regular expression when regex is true).
        search_keys: Match object keys.
        search_values: Match string, number and boolean values.
        search_paths: Match container pointers.
        case_sensitive: Case-sensitive matching.
        whole_word: Match whole words only.
        regex: Treat query as a regular expression.
        page_size: Results per page.
    """
    return await navigator_search(
        _ctx(ctx).controller,
        query=query,
        search_keys=search_keys,
        search_values=search_values,
        search_paths=search_paths,
        case_sensitive=case_sensitive,
        whole_word=whole_word,
        regex=regex,
        page_size=page_size,
    )


@mcp_server.tool()
async def search_next_page(ctx: Context) -> dict[str, Any]:
    """Load the next page of the current search."""
    return await navigator_search_next_page(_ctx(ctx).controller)


@mcp_server.tool()
async def get_value(ctx: Context, pointer: str) -> dict[str, Any]:
    """Return the full JSON value at a pointer.

    Args:
        pointer: JSON pointer ("" for the whole document).
    """
    return await navigator_get_value(_ctx(ctx).controller, pointer=pointer)


@mcp_server.tool()
async def set_value(ctx: Context, pointer: str, value: str) -> dict[str, Any]:
    """Replace the value at a pointer in the open document (in memory).

    Args:
        pointer: JSON pointer of the value.
        value: New value; JSON text for objects and arrays.
    """
    return await navigator_set_value(_ctx(ctx).controller, pointer=pointer, value=value)


def run_mcp_server() -> None:
    """Run the MCP server with stdio transport."""
    from json_navigator.logging_config import configure_logging

    configure_logging(verbose=False)
    mcp_server.run(transport="stdio")
