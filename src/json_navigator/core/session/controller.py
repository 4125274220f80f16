"""Document session lifecycle: open, cancel, unload, restore."""

from enum import Enum
from pathlib import Path

from loguru import logger

from json_navigator.config import (
    PAGE_SIZE,
    SEARCH_DEBOUNCE_SECONDS,
    SEARCH_PAGE_SIZE,
    STRICT_MATCH_MODES,
    SUBTREE_PAGE_SIZE,
)
from json_navigator.core.edit.editor import InlineEditor
from json_navigator.core.notices import NoticeBoard, NoticeKind
from json_navigator.core.search.orchestrator import SearchOrchestrator
from json_navigator.core.tree.cache import NodeCache
from json_navigator.errors import OpenCancelledError
from json_navigator.models.events import EngineEvent, ProgressEvent
from json_navigator.protocols import EngineProtocol, StateStoreProtocol


class LoadPhase(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


class DocumentSession:
    """Everything that belongs to one opened document.

    Built fresh per open; ``close`` makes all in-flight work resolve as stale.
    """

    def __init__(
        self,
        engine: EngineProtocol,
        session_id: int,
        *,
        page_size: int = PAGE_SIZE,
        subtree_page_size: int = SUBTREE_PAGE_SIZE,
        search_page_size: int = SEARCH_PAGE_SIZE,
        debounce_seconds: float = SEARCH_DEBOUNCE_SECONDS,
        streaming: bool = False,
        strict_modes: bool = STRICT_MATCH_MODES,
    ) -> None:
        self.id = session_id
        self.notices = NoticeBoard()
        self.cache = NodeCache(
            engine, self.notices, page_size=page_size, subtree_page_size=subtree_page_size
        )
        self.search = SearchOrchestrator(
            engine,
            self.notices,
            page_size=search_page_size,
            debounce_seconds=debounce_seconds,
            streaming=streaming,
            strict_modes=strict_modes,
        )
        self.editor = InlineEditor(engine, self.cache, self.search, self.notices)

    def close(self) -> None:
        self.editor.cancel()
        self.search.close()
        self.cache.close()
        self.notices.clear()


class DocumentSessionController:
    """Tracks which document is open and owns its ``DocumentSession``.

    ``session_id`` is bumped by every open, cancel and unload; engine results
    tagged with an older id are dropped.
    """

    def __init__(
        self,
        engine: EngineProtocol,
        *,
        state_store: StateStoreProtocol | None = None,
        page_size: int = PAGE_SIZE,
        subtree_page_size: int = SUBTREE_PAGE_SIZE,
        search_page_size: int = SEARCH_PAGE_SIZE,
        debounce_seconds: float = SEARCH_DEBOUNCE_SECONDS,
        streaming: bool = False,
        strict_modes: bool = STRICT_MATCH_MODES,
    ) -> None:
        self.engine = engine
        self.state_store = state_store
        self._session_options = {
            "page_size": page_size,
            "subtree_page_size": subtree_page_size,
            "search_page_size": search_page_size,
            "debounce_seconds": debounce_seconds,
            "streaming": streaming,
            "strict_modes": strict_modes,
        }

        self.session_id = 0
        self.session: DocumentSession | None = None
        self.phase = LoadPhase.IDLE
        self.progress = 0.0
        self.error = ""
        self.file_name: str | None = None
        # Used while no session exists (e.g. after a failed open)
        self._idle_notices = NoticeBoard()

    @property
    def notices(self) -> NoticeBoard:
        return self.session.notices if self.session is not None else self._idle_notices

    @property
    def is_loading(self) -> bool:
        return self.phase == LoadPhase.LOADING

    def _close_session(self) -> None:
        if self.session is not None:
            self.session.close()
            self.session = None

    def _reset(self) -> None:
        self._close_session()
        self.phase = LoadPhase.IDLE
        self.progress = 0.0
        self.error = ""
        self.file_name = None

    def _is_current(self, session_id: int) -> bool:
        return session_id == self.session_id

    async def open(self, source: str | Path | bytes, *, name: str | None = None) -> DocumentSession | None:
        """Open ``source`` (a path or raw bytes) as the current document.

        Replaces any open document. Returns the new session, or None when the
        open failed or was superseded.
        """
        self.session_id += 1
        session_id = self.session_id
        self._close_session()
        self._idle_notices.clear()

        session = DocumentSession(self.engine, session_id, **self._session_options)
        self.session = session
        self.phase = LoadPhase.LOADING
        self.progress = 0.0
        self.error = ""
        if isinstance(source, bytes):
            self.file_name = name or "untitled.json"
        else:
            self.file_name = name or Path(source).name
        logger.info("Opening {} (session {})", self.file_name, session_id)

        def on_event(event: EngineEvent) -> None:
            if not isinstance(event, ProgressEvent):
                return
            if event.session_id != session_id or not self._is_current(session_id):
                logger.debug("Ignoring progress for session {}", event.session_id)
                return
            self.progress = event.percent

        try:
            nodes = await self.engine.open_document(source, session_id=session_id, on_event=on_event)
        except OpenCancelledError:
            logger.debug("Open for session {} was cancelled", session_id)
            if self._is_current(session_id):
                self._reset()
            return None
        except Exception as e:
            if not self._is_current(session_id):
                logger.debug("Ignoring failure of superseded open {}", session_id)
                return None
            logger.warning("Failed to open {}: {}", self.file_name, e)
            self._close_session()
            self.phase = LoadPhase.ERROR
            self.progress = 0.0
            self.error = str(e)
            self._idle_notices.post(NoticeKind.OPEN_FAILED, f"Failed to open {self.file_name}: {e}")
            return None

        if not self._is_current(session_id):
            logger.debug("Discarding result of superseded open {}", session_id)
            return None

        session.cache.seed_root(nodes)
        self.progress = 100.0
        self.phase = LoadPhase.READY
        if not isinstance(source, bytes) and self.state_store is not None:
            self.state_store.save_last_opened(str(Path(source).resolve()))
        logger.info("Opened {} with {} root nodes", self.file_name, len(nodes))
        return session

    async def cancel(self) -> None:
        """Abort the current open and return to idle immediately."""
        self.session_id += 1
        self._reset()
        if self.state_store is not None:
            self.state_store.clear_last_opened()
        logger.info("Open cancelled")
        try:
            await self.engine.cancel_open()
        except Exception as e:
            logger.warning("Engine failed to cancel open: {}", e)

    def unload(self) -> None:
        """Close the current document."""
        self.session_id += 1
        self._reset()
        if self.state_store is not None:
            self.state_store.clear_last_opened()
        logger.info("Document unloaded")

    async def restore_last(self) -> DocumentSession | None:
        """Reopen the remembered document if it still exists."""
        if self.state_store is None:
            return None
        path = self.state_store.load_last_opened()
        if path is None:
            return None
        if not Path(path).is_file():
            logger.info("Last opened file {} is gone, forgetting it", path)
            self.state_store.clear_last_opened()
            return None
        return await self.open(path)
