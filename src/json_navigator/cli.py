"""CLI for json-navigator (browse, search, get, set, MCP server)."""

import asyncio
import json
from pathlib import Path
from typing import Annotated

import typer
from loguru import logger

from json_navigator.config import PAGE_SIZE, SEARCH_PAGE_SIZE
from json_navigator.core.search.matching import render_result_preview
from json_navigator.core.session.controller import DocumentSession, DocumentSessionController, LoadPhase
from json_navigator.core.session.state_store import FileStateStore
from json_navigator.core.tree.pointer import ROOT
from json_navigator.engine.local import LocalEngine
from json_navigator.engine.remote import HttpEngine
from json_navigator.errors import EngineError
from json_navigator.logging_config import configure_logging
from json_navigator.models.node import Node, SearchOptions, SearchPhase
from json_navigator.protocols import EngineProtocol

app = typer.Typer(help="json-navigator: browse, search and edit large JSON documents.")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only log warnings and errors"),
) -> None:
    configure_logging(verbose=verbose, quiet=quiet)


async def _open(
    controller: DocumentSessionController, path: Path | None
) -> DocumentSession:
    if path is None:
        session = await controller.restore_last()
        if session is None and controller.phase != LoadPhase.ERROR:
            logger.error("No PATH given and no previously opened file to restore")
            raise typer.Exit(1)
    else:
        if not path.exists():
            logger.error("File not found: {}", path)
            raise typer.Exit(1)
        session = await controller.open(path)
    if session is None:
        logger.error("Could not open document: {}", controller.error or "cancelled")
        raise typer.Exit(1)
    return session


def _node_line(depth: int, node: Node) -> str:
    indent = "  " * depth
    return f"{indent}{node.label}: {node.preview}  [{node.value_type.value}] {node.pointer or '/'}"


@app.command()
def browse(
    path: Annotated[
        Path | None,
        typer.Argument(help="JSON file (defaults to the last opened file)"),
    ] = None,
    pointer: str = typer.Option(ROOT, "--pointer", "-p", help="JSON pointer to list"),
    offset: int = typer.Option(0, "--offset", "-o", help="Index of the first child"),
    limit: int = typer.Option(PAGE_SIZE, "--limit", "-n", help="Max children to list"),
    depth: int = typer.Option(1, "--depth", "-d", help="Levels to expand below POINTER"),
    engine_url: Annotated[
        str | None,
        typer.Option("--engine-url", help="Use a remote engine instead of parsing locally"),
    ] = None,
) -> None:
    """List the children of a node, optionally expanding several levels."""
    engine: EngineProtocol
    if engine_url:
        try:
            engine = HttpEngine(engine_url)
        except EngineError as e:
            logger.error("{}", e)
            raise typer.Exit(1) from e
    else:
        engine = LocalEngine()

    async def run() -> None:
        controller = DocumentSessionController(engine, state_store=FileStateStore())
        session = await _open(controller, path)
        cache = session.cache

        if pointer != ROOT:
            cache.expanded.add(pointer)
        if pointer != ROOT or offset or limit != PAGE_SIZE:
            if await cache.fetch_page(pointer, offset, limit) is None:
                for notice in session.notices.active():
                    logger.error("{}", notice.message)
                raise typer.Exit(1)

        if depth > 1:
            for child in cache.visible_children(pointer) or []:
                if child.has_children:
                    await cache.expand_subtree(child.pointer, max_depth=depth - 1)

        typer.echo(f"{controller.file_name}  {pointer or '/'}")
        for level, node in cache.visible_rows(pointer):
            typer.echo(_node_line(level, node))
        page = cache.page(pointer)
        if page is not None and page.has_more:
            typer.echo(f"… more (next offset {offset + page.loaded_count})")

    asyncio.run(run())


@app.command()
def search(
    path: Path = typer.Argument(..., help="JSON file"),
    query: str = typer.Argument(..., help="Search query"),
    keys: bool = typer.Option(True, "--keys/--no-keys", help="Match object keys"),
    values: bool = typer.Option(True, "--values/--no-values", help="Match scalar values"),
    paths: bool = typer.Option(False, "--paths", help="Match container pointers"),
    case_sensitive: bool = typer.Option(False, "--case-sensitive", "-c", help="Case-sensitive match"),
    whole_word: bool = typer.Option(False, "--whole-word", "-w", help="Whole word match"),
    regex: bool = typer.Option(False, "--regex", "-r", help="Treat QUERY as a regular expression"),
    page: int = typer.Option(1, "--page", help="Result page (1-based)"),
    page_size: int = typer.Option(SEARCH_PAGE_SIZE, "--page-size", "-n", help="Results per page"),
    stream: bool = typer.Option(False, "--stream", help="Stream all results in batches"),
    output_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """Search keys, values and paths of a document."""
    options = SearchOptions(search_keys=keys, search_values=values, search_paths=paths)
    # Later flags win: regex clears the other modes
    for name, enabled in (("case_sensitive", case_sensitive), ("whole_word", whole_word), ("regex", regex)):
        if enabled:
            options = options.with_flag(name, True)

    if not options.has_target:
        logger.error("Select at least one search target: --keys, --values or --paths")
        raise typer.Exit(1)

    async def run() -> None:
        controller = DocumentSessionController(
            LocalEngine(), state_store=FileStateStore(), debounce_seconds=0, streaming=stream
        )
        session = await _open(controller, path)
        orchestrator = session.search
        await orchestrator.search(query, options, page, page_size)
        if orchestrator.phase == SearchPhase.ERROR:
            logger.error("{}", orchestrator.error)
            raise typer.Exit(1)

        if output_json:
            data = {
                "results": [r.to_dict() for r in orchestrator.results],
                "total": orchestrator.total_count,
                "page": orchestrator.page,
                "has_more": orchestrator.has_more,
            }
            typer.echo(json.dumps(data, indent=2, ensure_ascii=False))
            return

        typer.echo(f"Found {orchestrator.total_count} results (showing {len(orchestrator.results)}):\n")
        for r in orchestrator.results:
            text, _spans = render_result_preview(r, orchestrator.query, orchestrator.session_options)
            typer.echo(f"  [{r.match_type.value}] {r.node.pointer or '/'}")
            typer.echo(f"    {text}" + (f"  ({r.context})" if r.context else ""))
        if orchestrator.has_more:
            typer.echo(f"\nMore results: --page {orchestrator.page + 1}")

    asyncio.run(run())


@app.command()
def get(
    path: Path = typer.Argument(..., help="JSON file"),
    pointer: str = typer.Argument(..., help="JSON pointer ('' for the root)"),
) -> None:
    """Print the value at POINTER as JSON."""

    async def run() -> None:
        engine = LocalEngine()
        controller = DocumentSessionController(engine, state_store=FileStateStore())
        await _open(controller, path)
        try:
            raw = await engine.get_node_value(pointer)
        except EngineError as e:
            logger.error("{}", e)
            raise typer.Exit(1) from e
        typer.echo(json.dumps(json.loads(raw), indent=2, ensure_ascii=False))

    asyncio.run(run())


@app.command(name="set")
def set_cmd(
    path: Path = typer.Argument(..., help="JSON file"),
    pointer: str = typer.Argument(..., help="JSON pointer of the value to replace"),
    value: str = typer.Argument(..., help="New value (JSON text for objects and arrays)"),
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Write the edited document here"),
    ] = None,
) -> None:
    """Replace a value, validating it against the current type."""

    async def run() -> None:
        engine = LocalEngine()
        controller = DocumentSessionController(engine, state_store=FileStateStore())
        session = await _open(controller, path)
        updated = await session.editor.edit_pointer(pointer, value)
        if updated is None:
            logger.error("Edit rejected: {}", session.editor.error)
            raise typer.Exit(1)

        typer.echo(f"{updated.pointer or '/'} = {updated.preview}")
        if output is not None:
            output.write_text(
                json.dumps(engine.document, indent=2, ensure_ascii=False) + "\n", encoding="utf-8"
            )
            typer.echo(f"Wrote {output}")

    asyncio.run(run())


@app.command()
def serve() -> None:
    """Start the MCP server (stdio transport)."""
    from json_navigator.mcp.server import run_mcp_server

    run_mcp_server()
