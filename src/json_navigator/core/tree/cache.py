"""Node cache and expansion tracker: lazy, paginated children per pointer."""

from collections import deque

from loguru import logger

from json_navigator.config import EXPAND_LEVEL_MAX_DEPTH, PAGE_SIZE, SUBTREE_PAGE_SIZE
from json_navigator.core.notices import NoticeBoard, NoticeKind
from json_navigator.core.tree.pointer import ROOT, is_descendant_or_self, parent_pointer
from json_navigator.models.node import ChildPage, Node
from json_navigator.protocols import EngineProtocol


class NodeCache:
    """Expanded pointers plus the incrementally loaded children of each.

    Owned by exactly one document session. At most one fetch per pointer is in
    flight; responses for abandoned fetches are dropped.
    """

    def __init__(
        self,
        engine: EngineProtocol,
        notices: NoticeBoard,
        *,
        page_size: int = PAGE_SIZE,
        subtree_page_size: int = SUBTREE_PAGE_SIZE,
    ) -> None:
        self._engine = engine
        self._notices = notices
        self.page_size = page_size
        self.subtree_page_size = subtree_page_size
        self.expanded: set[str] = set()
        self.pages: dict[str, ChildPage] = {}
        self._closed = False

    # --- Queries ---

    def page(self, pointer: str) -> ChildPage | None:
        return self.pages.get(pointer)

    def is_expanded(self, pointer: str) -> bool:
        return pointer in self.expanded

    def is_loading(self, pointer: str) -> bool:
        page = self.pages.get(pointer)
        return page is not None and page.loading

    @property
    def root_nodes(self) -> list[Node]:
        page = self.pages.get(ROOT)
        return list(page.children) if page else []

    def visible_children(self, pointer: str) -> list[Node] | None:
        """Children to draw under ``pointer``, or None when it is collapsed.

        The root level is always visible. An expanded pointer whose first page
        is still loading yields an empty list.
        """
        if pointer != ROOT and pointer not in self.expanded:
            return None
        page = self.pages.get(pointer)
        return list(page.children) if page else []

    def visible_rows(self, pointer: str = ROOT) -> list[tuple[int, Node]]:
        """Flatten the visible tree under ``pointer`` into ``(depth, node)`` rows."""
        rows: list[tuple[int, Node]] = []

        def walk(current: str, level: int) -> None:
            for child in self.visible_children(current) or []:
                rows.append((level, child))
                if child.pointer in self.expanded:
                    walk(child.pointer, level + 1)

        walk(pointer, 0)
        return rows

    # --- Loading ---

    def seed_root(self, nodes: list[Node], *, limit: int | None = None) -> None:
        """Install the first root page returned by open-document."""
        limit = limit or self.page_size
        self.pages[ROOT] = ChildPage(children=list(nodes), has_more=len(nodes) == limit)

    async def fetch_page(
        self, pointer: str, offset: int = 0, limit: int | None = None
    ) -> list[Node] | None:
        """Fetch one page of children for ``pointer``.

        Offset 0 replaces the cached children, a positive offset appends.
        Returns the fetched nodes, or None when the call was skipped (a fetch
        is already in flight), failed, or was abandoned while in flight.
        """
        if self._closed:
            return None
        limit = limit or self.page_size

        page = self.pages.get(pointer)
        created = page is None
        if page is None:
            page = ChildPage()
            self.pages[pointer] = page
        elif page.loading:
            logger.debug("Fetch for {!r} already in flight, skipping", pointer)
            return None

        page.loading = True
        generation = page.generation
        try:
            nodes = await self._engine.fetch_children(pointer, offset, limit)
        except Exception as e:
            if not self._is_current(pointer, page, generation):
                logger.debug("Ignoring failure of abandoned fetch for {!r}", pointer)
                return None
            page.loading = False
            if created:
                # Nothing was ever loaded; let the next expansion retry
                del self.pages[pointer]
            logger.warning("Failed to load children of {!r} at offset {}: {}", pointer, offset, e)
            self._notices.post_transient(
                NoticeKind.FETCH_FAILED,
                f"Failed to load children of {pointer or '/'} at offset {offset}: {e}",
            )
            return None

        if not self._is_current(pointer, page, generation):
            logger.debug("Discarding stale page for {!r} (offset {})", pointer, offset)
            return None

        page.loading = False
        if offset == 0:
            page.children = list(nodes)
        else:
            page.children.extend(nodes)
        page.has_more = len(nodes) == limit
        return list(nodes)

    def _is_current(self, pointer: str, page: ChildPage, generation: int) -> bool:
        return not self._closed and self.pages.get(pointer) is page and page.generation == generation

    async def on_scroll_near_end(self, pointer: str) -> list[Node] | None:
        """Load the next page when the pagination sentinel becomes visible."""
        page = self.pages.get(pointer)
        if page is None or not page.has_more or page.loading:
            return None
        return await self.fetch_page(pointer, page.loaded_count)

    def abandon(self, pointer: str) -> None:
        """Forget an in-flight fetch for ``pointer`` without cancelling I/O."""
        page = self.pages.get(pointer)
        if page is not None and page.loading:
            page.loading = False
            page.generation += 1
            logger.debug("Abandoned in-flight fetch for {!r}", pointer)

    # --- Expansion ---

    async def toggle(self, pointer: str) -> bool:
        """Collapse an expanded pointer, or expand it and load its first page.

        Returns True when the pointer ends up expanded.
        """
        if pointer in self.expanded:
            self.expanded.discard(pointer)
            return False
        self.expanded.add(pointer)
        if pointer not in self.pages:
            await self.fetch_page(pointer, 0)
        return True

    async def _load_level(self, pointer: str) -> list[Node] | None:
        """Children of ``pointer`` for traversal, fetching a full level when needed."""
        page = self.pages.get(pointer)
        if page is not None and (page.loading or (page.children and not page.has_more)):
            return list(page.children)
        await self.fetch_page(pointer, 0, self.subtree_page_size)
        page = self.pages.get(pointer)
        return list(page.children) if page is not None else None

    async def expand_subtree(self, pointer: str, *, max_depth: int | None = None) -> int:
        """Expand ``pointer`` and its container descendants breadth first.

        ``max_depth`` limits how many levels (counting ``pointer`` itself) are
        expanded. A branch that fails to load is skipped; its siblings continue.
        Returns the number of pointers expanded.
        """
        visited: set[str] = set()
        todo: deque[tuple[str, int]] = deque([(pointer, 1)])
        while todo:
            current, level = todo.popleft()
            if current in visited:
                continue
            visited.add(current)
            self.expanded.add(current)

            children = await self._load_level(current)
            if children is None:
                logger.debug("Skipping branch {!r}: children unavailable", current)
                continue
            if max_depth is not None and level >= max_depth:
                continue
            for child in children:
                if child.has_children and child.pointer not in visited:
                    todo.append((child.pointer, level + 1))
        return len(visited)

    def collapse_subtree(self, pointer: str) -> int:
        """Collapse ``pointer`` and every expanded descendant. Cached pages stay."""
        removed = {p for p in self.expanded if is_descendant_or_self(p, pointer)}
        self.expanded -= removed
        return len(removed)

    def collapse_all(self) -> None:
        self.expanded.clear()

    async def expand_next_level(self, *, max_depth: int = EXPAND_LEVEL_MAX_DEPTH) -> list[str]:
        """Expand the shallowest level that still has collapsed containers.

        Returns the pointers newly expanded (empty when everything reachable
        within ``max_depth`` levels is already expanded).
        """
        current = [n.pointer for n in self.root_nodes if n.has_children]
        for _ in range(max_depth):
            collapsed = [p for p in current if p not in self.expanded]
            if collapsed:
                for p in collapsed:
                    self.expanded.add(p)
                    if p not in self.pages:
                        await self.fetch_page(p, 0)
                return collapsed

            next_level: list[str] = []
            for p in current:
                children = await self._load_level(p)
                if children is None:
                    continue
                next_level.extend(c.pointer for c in children if c.has_children)
            if not next_level:
                break
            current = next_level
        return []

    # --- Edits ---

    def patch_node(self, node: Node) -> bool:
        """Replace the display fields of a cached node in its parent's page."""
        parent = parent_pointer(node.pointer)
        if parent is None:
            return False
        page = self.pages.get(parent)
        if page is None:
            return False
        for i, existing in enumerate(page.children):
            if existing.pointer == node.pointer:
                page.children[i] = existing.with_display(node)
                return True
        return False

    async def apply_edit(self, node: Node) -> None:
        """Reflect a confirmed write-back in the cache.

        The node is patched in place. When it is expanded (or is the root) its
        children are re-fetched from offset 0, abandoning any load in flight.
        Cached descendants of the edited pointer are dropped because a subtree
        replacement invalidates them.
        """
        self.patch_node(node)

        stale = [p for p in self.pages if p != node.pointer and is_descendant_or_self(p, node.pointer)]
        for p in stale:
            self.abandon(p)
            del self.pages[p]
        self.expanded -= {p for p in self.expanded if p != node.pointer and is_descendant_or_self(p, node.pointer)}

        if node.pointer == ROOT or node.pointer in self.expanded:
            self.abandon(node.pointer)
            await self.fetch_page(node.pointer, 0)

    # --- Lifecycle ---

    def clear(self) -> None:
        for pointer in list(self.pages):
            self.abandon(pointer)
        self.pages.clear()
        self.expanded.clear()

    def close(self) -> None:
        self.clear()
        self._closed = True
