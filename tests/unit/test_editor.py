"""Tests for the inline editor and edit validation."""

import asyncio

import pytest

from json_navigator.core.edit.editor import EditPhase, InlineEditor, draft_from_raw
from json_navigator.core.edit.validation import parse_number, validate_edit
from json_navigator.core.notices import NoticeBoard, NoticeKind
from json_navigator.core.search.orchestrator import SearchOrchestrator
from json_navigator.core.tree.cache import NodeCache
from json_navigator.core.tree.pointer import ROOT
from json_navigator.errors import EditValidationError, EngineError
from json_navigator.models.node import MatchType, Node, SearchResult, ValueType
from tests.unit.fakes import FakeEngine


@pytest.fixture
def editor(
    engine: FakeEngine, cache: NodeCache, orchestrator: SearchOrchestrator, notices: NoticeBoard
) -> InlineEditor:
    return InlineEditor(engine, cache, orchestrator, notices)


def _root_node(cache: NodeCache, pointer: str) -> Node:
    return next(n for n in cache.root_nodes if n.pointer == pointer)


@pytest.mark.parametrize(
    ("value_type", "draft"),
    [
        (ValueType.NUMBER, "42"),
        (ValueType.NUMBER, " -1.5e3 "),
        (ValueType.BOOLEAN, "TRUE"),
        (ValueType.BOOLEAN, "false"),
        (ValueType.STRING, ""),
        (ValueType.OBJECT, '{"a": 1}'),
        (ValueType.ARRAY, "[]"),
    ],
)
def test_validate_edit_accepts(value_type: ValueType, draft: str) -> None:
    validate_edit(value_type, draft)


@pytest.mark.parametrize(
    ("value_type", "draft", "message"),
    [
        (ValueType.NUMBER, "forty", "Invalid number literal"),
        (ValueType.NUMBER, "nan", "Invalid number"),
        (ValueType.BOOLEAN, "yes", "Invalid boolean"),
        (ValueType.NULL, "null", "Editing null not supported"),
        (ValueType.OBJECT, "[1]", "Type change not allowed"),
        (ValueType.ARRAY, "7", "must be an object or array"),
        (ValueType.ARRAY, "[1,", "Parse error"),
    ],
)
def test_validate_edit_rejects(value_type: ValueType, draft: str, message: str) -> None:
    with pytest.raises(EditValidationError, match=message):
        validate_edit(value_type, draft)


def test_parse_number_prefers_int() -> None:
    assert parse_number("42") == 42
    assert isinstance(parse_number("42"), int)
    assert parse_number("4.5") == 4.5


def test_draft_from_raw() -> None:
    assert draft_from_raw(ValueType.STRING, '"hi \\"there\\""') == 'hi "there"'
    assert draft_from_raw(ValueType.NUMBER, "36") == "36"
    assert draft_from_raw(ValueType.OBJECT, '{"a":1}') == '{\n  "a": 1\n}'


@pytest.mark.asyncio
async def test_number_edit_round_trip(engine: FakeEngine, cache: NodeCache, editor: InlineEditor) -> None:
    await cache.fetch_page(ROOT)
    age = _root_node(cache, "/age")

    assert await editor.begin(age)
    assert editor.phase == EditPhase.EDITING
    assert editor.draft == "36"

    assert editor.update("42") is None
    updated = await editor.save()

    assert updated is not None and updated.preview == "42"
    assert editor.phase == EditPhase.IDLE
    assert _root_node(cache, "/age").preview == "42"
    assert engine.document["age"] == 42

    # A fresh page fetch reflects the stored value
    await cache.fetch_page(ROOT)
    assert _root_node(cache, "/age").preview == "42"


@pytest.mark.asyncio
async def test_invalid_draft_blocks_save(engine: FakeEngine, cache: NodeCache, editor: InlineEditor) -> None:
    await cache.fetch_page(ROOT)
    await editor.begin(_root_node(cache, "/active"))

    assert editor.update("maybe") is not None
    assert await editor.save() is None

    assert editor.phase == EditPhase.EDITING
    assert "Invalid boolean" in editor.error
    assert engine.calls_to("set_node_value") == []


@pytest.mark.asyncio
async def test_null_is_not_editable(
    engine: FakeEngine, cache: NodeCache, editor: InlineEditor, notices: NoticeBoard
) -> None:
    await cache.fetch_page(ROOT)

    assert not await editor.begin(_root_node(cache, "/spouse"))
    assert editor.phase == EditPhase.IDLE
    assert notices.has(NoticeKind.INVALID_INPUT)
    assert engine.calls_to("get_node_value") == []


@pytest.mark.asyncio
async def test_engine_rejection_keeps_editing_with_error(
    engine: FakeEngine, cache: NodeCache, editor: InlineEditor
) -> None:
    await cache.fetch_page(ROOT)
    await editor.begin(_root_node(cache, "/name"))
    editor.update("Augusta")
    engine.failures["set_node_value"] = EngineError("read-only document")

    assert await editor.save() is None
    assert editor.phase == EditPhase.EDITING
    assert "read-only document" in editor.error
    assert editor.draft == "Augusta"


@pytest.mark.asyncio
async def test_container_edit_goes_through_set_subtree(
    engine: FakeEngine, cache: NodeCache, editor: InlineEditor
) -> None:
    await cache.fetch_page(ROOT)
    await cache.toggle("/tags")
    await editor.begin(_root_node(cache, "/tags"))
    assert editor.draft.startswith("[\n")

    editor.update('["logic", "music"]')
    updated = await editor.save()

    assert updated is not None and updated.child_count == 2
    assert len(engine.calls_to("set_subtree")) == 1
    assert [n.preview for n in cache.visible_children("/tags")] == ["logic", "music"]


@pytest.mark.asyncio
async def test_save_patches_search_results(
    engine: FakeEngine, cache: NodeCache, orchestrator: SearchOrchestrator, editor: InlineEditor
) -> None:
    await cache.fetch_page(ROOT)
    age = _root_node(cache, "/age")
    engine.search_results["36"] = [
        SearchResult(node=age, match_type=MatchType.VALUE, match_text="36", context="in key: age")
    ]
    await orchestrator.search("36")

    await editor.begin(age)
    editor.update("37")
    await editor.save()

    assert orchestrator.results[0].node.preview == "37"


@pytest.mark.asyncio
async def test_cancel_drops_in_flight_save(engine: FakeEngine, cache: NodeCache, editor: InlineEditor) -> None:
    await cache.fetch_page(ROOT)
    await editor.begin(_root_node(cache, "/age"))
    editor.update("50")
    gate = engine.hold("set_node_value")

    task = asyncio.create_task(editor.save())
    await asyncio.sleep(0)
    assert editor.phase == EditPhase.SAVING
    editor.cancel()
    gate.set()

    assert await task is None
    assert editor.phase == EditPhase.IDLE
    assert _root_node(cache, "/age").preview == "36"


@pytest.mark.asyncio
async def test_parse_stringified_turns_string_into_object(
    engine: FakeEngine, cache: NodeCache, editor: InlineEditor
) -> None:
    await cache.fetch_page(ROOT)

    updated = await editor.parse_stringified(_root_node(cache, "/notes"))

    assert updated is not None
    assert updated.value_type == ValueType.OBJECT
    assert engine.document["notes"] == {"draft": True, "pages": [1, 2]}
    assert _root_node(cache, "/notes").has_children


@pytest.mark.asyncio
async def test_parse_stringified_rejects_plain_string(
    cache: NodeCache, editor: InlineEditor, notices: NoticeBoard
) -> None:
    await cache.fetch_page(ROOT)

    assert await editor.parse_stringified(_root_node(cache, "/name")) is None
    assert notices.has(NoticeKind.INVALID_INPUT)


@pytest.mark.asyncio
async def test_edit_pointer_without_cached_node(engine: FakeEngine, editor: InlineEditor) -> None:
    updated = await editor.edit_pointer("/address/street/number", "14")

    assert updated is not None and updated.preview == "14"
    assert engine.document["address"]["street"]["number"] == 14

    assert await editor.edit_pointer("/spouse", "x") is None
    assert "null" in editor.error
