"""Inline value editor: draft, validate, write back, re-sync views."""

import json
from enum import Enum

from loguru import logger

from json_navigator.core.edit.validation import validate_edit
from json_navigator.core.notices import NoticeBoard, NoticeKind
from json_navigator.core.search.orchestrator import SearchOrchestrator
from json_navigator.core.tree.cache import NodeCache
from json_navigator.core.tree.nodes import make_node
from json_navigator.errors import EditValidationError
from json_navigator.models.node import Node, ValueType
from json_navigator.protocols import EngineProtocol


class EditPhase(str, Enum):
    IDLE = "idle"
    EDITING = "editing"
    SAVING = "saving"


def draft_from_raw(value_type: ValueType, raw: str) -> str:
    """Turn the engine's JSON text for a value into editable text.

    Containers are pretty-printed, strings are unquoted, other scalars are
    used as-is.
    """
    if value_type.is_container:
        return json.dumps(json.loads(raw), indent=2, ensure_ascii=False)
    if value_type == ValueType.STRING:
        return json.loads(raw)
    return raw


class InlineEditor:
    """Edits one node at a time.

    ``idle -> editing -> saving -> idle``. A failed save returns to
    ``editing`` with ``error`` set. Each ``begin`` or ``cancel`` bumps a token
    so responses for an abandoned edit are dropped.
    """

    def __init__(
        self,
        engine: EngineProtocol,
        cache: NodeCache,
        search: SearchOrchestrator,
        notices: NoticeBoard,
    ) -> None:
        self._engine = engine
        self._cache = cache
        self._search = search
        self._notices = notices
        self._token = 0

        self.phase = EditPhase.IDLE
        self.node: Node | None = None
        self.draft = ""
        self.original = ""
        self.error = ""

    @property
    def is_editing(self) -> bool:
        return self.phase != EditPhase.IDLE

    def _reset(self) -> None:
        self.phase = EditPhase.IDLE
        self.node = None
        self.draft = ""
        self.original = ""
        self.error = ""

    async def begin(self, node: Node) -> bool:
        """Start editing ``node``, loading its current value.

        Returns False when the node cannot be edited or its value could not
        be loaded.
        """
        self._token += 1
        token = self._token
        self._reset()

        if node.value_type == ValueType.NULL:
            self.error = "Editing null not supported"
            self._notices.post_transient(NoticeKind.INVALID_INPUT, self.error)
            return False

        try:
            raw = await self._engine.get_node_value(node.pointer)
        except Exception as e:
            if token != self._token:
                return False
            logger.warning("Failed to load value of {!r} for editing: {}", node.pointer, e)
            self.error = f"Failed to load value: {e}"
            self._notices.post_transient(NoticeKind.FETCH_FAILED, self.error)
            return False

        if token != self._token:
            logger.debug("Discarding value for superseded edit of {!r}", node.pointer)
            return False

        self.node = node
        self.original = draft_from_raw(node.value_type, raw)
        self.draft = self.original
        self.phase = EditPhase.EDITING
        return True

    def update(self, draft: str) -> str | None:
        """Store the draft and return the inline validation error, if any."""
        if self.node is None:
            return None
        self.draft = draft
        try:
            validate_edit(self.node.value_type, draft)
        except EditValidationError as e:
            self.error = str(e)
        else:
            self.error = ""
        return self.error or None

    async def save(self) -> Node | None:
        """Write the draft back and re-sync the tree and search results.

        Returns the updated node, or None when nothing was written.
        """
        if self.phase != EditPhase.EDITING or self.node is None:
            return None
        node = self.node
        if self.update(self.draft):
            return None

        token = self._token
        self.phase = EditPhase.SAVING
        try:
            if node.value_type.is_container:
                updated = await self._engine.set_subtree(node.pointer, self.draft)
            elif node.value_type == ValueType.STRING:
                updated = await self._engine.set_node_value(node.pointer, self.draft)
            else:
                updated = await self._engine.set_node_value(node.pointer, self.draft.strip())
        except Exception as e:
            if token != self._token:
                logger.debug("Ignoring failure of superseded edit of {!r}", node.pointer)
                return None
            logger.warning("Failed to save {!r}: {}", node.pointer, e)
            self.phase = EditPhase.EDITING
            self.error = f"Save failed: {e}"
            return None

        if token != self._token:
            logger.debug("Discarding result of superseded edit of {!r}", node.pointer)
            return None

        self._reset()
        await self._apply(updated)
        logger.info("Saved new value at {!r}", updated.pointer)
        return updated

    async def edit_pointer(self, pointer: str, draft: str) -> Node | None:
        """Begin, update and save in one step for callers without a cached node."""
        try:
            raw = await self._engine.get_node_value(pointer)
        except Exception as e:
            logger.warning("Failed to load value of {!r}: {}", pointer, e)
            self.error = str(e)
            return None
        if not await self.begin(make_node(json.loads(raw), pointer)):
            self.error = self.error or f"Cannot edit {pointer or '/'}"
            return None
        if self.update(draft):
            return None
        return await self.save()

    async def parse_stringified(self, node: Node) -> Node | None:
        """Replace a string holding JSON object/array text with the parsed container."""
        if node.value_type != ValueType.STRING:
            self._notices.post_transient(NoticeKind.INVALID_INPUT, "Target node is not a string")
            return None
        if self.node is not None and self.node.pointer == node.pointer:
            self.cancel()
        try:
            updated = await self._engine.parse_stringified_json(node.pointer)
        except Exception as e:
            logger.warning("Could not parse string at {!r} as JSON: {}", node.pointer, e)
            self._notices.post_transient(NoticeKind.INVALID_INPUT, str(e))
            return None
        await self._apply(updated)
        return updated

    async def _apply(self, node: Node) -> None:
        self._search.patch_node(node)
        await self._cache.apply_edit(node)

    def cancel(self) -> None:
        self._token += 1
        self._reset()
