"""Search orchestration: debounced, paged or streamed, stale-safe result sets."""

import asyncio
from collections.abc import Iterable
from dataclasses import replace

from loguru import logger

from json_navigator.config import (
    SEARCH_DEBOUNCE_SECONDS,
    SEARCH_PAGE_SIZE,
    SEARCH_PAGE_SIZES,
    STRICT_MATCH_MODES,
)
from json_navigator.core.notices import NoticeBoard, NoticeKind
from json_navigator.core.search.matching import validate_query
from json_navigator.models.events import BatchEvent, DoneEvent, ErrorEvent
from json_navigator.models.node import (
    MatchType,
    Node,
    SearchOptions,
    SearchPhase,
    SearchResult,
    ValueType,
)
from json_navigator.protocols import EngineProtocol

NO_TARGET_MESSAGE = "Please select at least one search target: keys, values, or paths"


class SearchOrchestrator:
    """Turns a query plus options into a paged or streamed result list.

    Every request bumps ``request_id``; a response is applied only while its id
    is still current, so superseded work is dropped silently.
    """

    def __init__(
        self,
        engine: EngineProtocol,
        notices: NoticeBoard,
        *,
        options: SearchOptions | None = None,
        page_size: int = SEARCH_PAGE_SIZE,
        debounce_seconds: float = SEARCH_DEBOUNCE_SECONDS,
        streaming: bool = False,
        strict_modes: bool = STRICT_MATCH_MODES,
    ) -> None:
        self._engine = engine
        self._notices = notices
        self.debounce_seconds = debounce_seconds
        self.streaming = streaming
        self.strict_modes = strict_modes

        self.options = options or SearchOptions()
        self.input_text = ""
        self.page_size = page_size

        # Current search session
        self.request_id = 0
        self.query = ""
        self.session_options = self.options
        self.results: list[SearchResult] = []
        self.total_count = 0
        self.has_more = False
        self.page = 0
        self.phase = SearchPhase.IDLE
        self.error = ""

        self._seen: set[tuple[str, MatchType]] = set()
        self._full_previews: set[str] = set()
        self._pending: asyncio.Task[None] | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._closed = False

    @property
    def is_active(self) -> bool:
        """True while search results (or a search in progress) replace the tree."""
        return self.phase != SearchPhase.IDLE

    # --- Input (debounced) ---

    def set_query(self, text: str) -> None:
        """Record a keystroke; the search runs after the quiet window."""
        self.input_text = text
        self._schedule()

    def set_option(self, name: str, enabled: bool) -> SearchOptions:
        """Change one option flag and re-run the current query after the quiet window."""
        return self.set_options(self.options.with_flag(name, enabled, strict=self.strict_modes))

    def set_options(self, options: SearchOptions) -> SearchOptions:
        self.options = options
        self._notices.dismiss_kind(NoticeKind.NO_SEARCH_TARGET)
        if self.input_text.strip():
            self._schedule()
        return self.options

    def _schedule(self) -> None:
        if self._closed:
            return
        if self._pending is not None:
            self._pending.cancel()
        task = asyncio.create_task(self._debounced())
        self._pending = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _debounced(self) -> None:
        await asyncio.sleep(self.debounce_seconds)
        if self._pending is asyncio.current_task():
            self._pending = None
        await self.search(self.input_text, self.options, 1, self.page_size)

    async def flush(self) -> None:
        """Wait until pending debounced searches have run."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # --- Requests ---

    async def search(
        self,
        query: str,
        options: SearchOptions | None = None,
        page: int = 1,
        page_size: int | None = None,
        *,
        append: bool = False,
    ) -> None:
        """Run one search request.

        A blank query clears the results and returns to idle. Without any
        search target a transient notice is posted and nothing else changes.
        An invalid regex is reported inline without calling the engine.
        """
        if self._closed:
            return
        options = options or self.options
        page_size = page_size or self.page_size
        trimmed = query.strip()

        if not trimmed:
            self.request_id += 1
            self._clear_session()
            self._notices.dismiss_kind(NoticeKind.NO_SEARCH_TARGET)
            return

        if not options.has_target:
            self._notices.post_transient(NoticeKind.NO_SEARCH_TARGET, NO_TARGET_MESSAGE)
            return

        self.request_id += 1
        request_id = self.request_id
        self._notices.dismiss_kind(NoticeKind.NO_SEARCH_TARGET)
        if not append:
            self.query = trimmed
            self.session_options = options
            self.page_size = page_size

        problem = validate_query(trimmed, options)
        if problem:
            self._fail(problem, append=append, notify=False)
            return

        self.error = ""
        self.phase = SearchPhase.APPENDING if append else SearchPhase.LOADING

        if self.streaming and not append:
            await self._run_stream(request_id, trimmed, options)
            return

        offset = (page - 1) * page_size
        try:
            response = await self._engine.run_search(trimmed, options, offset, page_size)
        except Exception as e:
            if request_id != self.request_id:
                logger.debug("Ignoring failure of superseded search {}", request_id)
                return
            logger.warning("Search for {!r} failed: {}", trimmed, e)
            self._fail(f"Search failed: {e}", append=append)
            return

        if request_id != self.request_id:
            logger.debug("Discarding stale search response {} (current {})", request_id, self.request_id)
            return

        if append:
            self._extend(response.results)
        else:
            self._replace(response.results)
        self.total_count = response.total_count
        self.has_more = response.has_more
        self.page = page
        self.phase = SearchPhase.DONE

    async def _run_stream(self, request_id: int, query: str, options: SearchOptions) -> None:
        self._replace(())
        self.total_count = 0
        self.has_more = False
        self.page = 1

        stream = self._engine.run_search_stream(query, options, session_id=request_id)
        try:
            async for event in stream:
                if request_id != self.request_id:
                    logger.debug("Search stream {} superseded, closing", request_id)
                    return
                if event.session_id != request_id:
                    logger.debug("Ignoring event for session {} in stream {}", event.session_id, request_id)
                    continue
                if isinstance(event, BatchEvent):
                    self._extend(event.batch)
                    self.total_count = event.total_so_far
                elif isinstance(event, DoneEvent):
                    self.total_count = event.total
                    self.phase = SearchPhase.DONE
                    return
                elif isinstance(event, ErrorEvent):
                    self._fail(f"Search failed: {event.message}", append=False)
                    return
        except Exception as e:
            if request_id == self.request_id:
                logger.warning("Search stream for {!r} failed: {}", query, e)
                self._fail(f"Search failed: {e}", append=False)
            return
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

        # Stream ended without a done event
        if request_id == self.request_id and self.phase == SearchPhase.LOADING:
            self.phase = SearchPhase.DONE

    async def load_next_page(self) -> None:
        """Fetch the next page of the current query (not debounced)."""
        if self.streaming or not self.has_more or not self.query:
            return
        if self.phase in (SearchPhase.LOADING, SearchPhase.APPENDING):
            return
        await self.search(self.query, self.session_options, self.page + 1, self.page_size, append=True)

    async def on_scroll_near_end(self) -> None:
        await self.load_next_page()

    async def set_page_size(self, page_size: int) -> None:
        """Change the batch size and restart the current query from page 1."""
        if page_size not in SEARCH_PAGE_SIZES:
            msg = f"page_size must be one of {SEARCH_PAGE_SIZES}, got {page_size}"
            raise ValueError(msg)
        self.page_size = page_size
        if self.query:
            await self.search(self.query, self.options, 1, page_size)

    # --- Result bookkeeping ---

    def _replace(self, results: Iterable[SearchResult]) -> None:
        self.results = []
        self._seen = set()
        self._extend(results)

    def _extend(self, results: Iterable[SearchResult]) -> None:
        for result in results:
            if result.identity in self._seen:
                continue
            self._seen.add(result.identity)
            self.results.append(result)

    def _fail(self, message: str, *, append: bool, notify: bool = True) -> None:
        self.phase = SearchPhase.ERROR
        self.error = message
        if not append:
            self._replace(())
            self.total_count = 0
            self.has_more = False
            self.page = 0
        if notify:
            self._notices.post_transient(NoticeKind.SEARCH_FAILED, message)

    def _clear_session(self) -> None:
        self.query = ""
        self._replace(())
        self.total_count = 0
        self.has_more = False
        self.page = 0
        self.phase = SearchPhase.IDLE
        self.error = ""

    def patch_node(self, node: Node) -> None:
        """Keep result nodes in sync with a confirmed edit."""
        for i, result in enumerate(self.results):
            if result.node.pointer == node.pointer:
                self.results[i] = replace(result, node=result.node.with_display(node))

    # --- Preview toggles ---

    def can_toggle_preview(self, result: SearchResult) -> bool:
        return (
            result.node.value_type == ValueType.STRING
            and bool(self.query)
            and self.session_options.search_values
        )

    def toggle_full_preview(self, pointer: str) -> bool:
        if pointer in self._full_previews:
            self._full_previews.discard(pointer)
            return False
        self._full_previews.add(pointer)
        return True

    def shows_full(self, pointer: str) -> bool:
        return pointer in self._full_previews

    # --- Lifecycle ---

    def reset(self) -> None:
        """Drop the current query and results; in-flight responses become stale."""
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None
        self.request_id += 1
        self.input_text = ""
        self._full_previews.clear()
        self._clear_session()

    def close(self) -> None:
        self.reset()
        self._closed = True
