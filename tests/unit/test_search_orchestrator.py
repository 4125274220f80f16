"""Tests for the search orchestrator."""

import asyncio

import pytest

from json_navigator.core.notices import NoticeBoard, NoticeKind
from json_navigator.core.search.orchestrator import SearchOrchestrator
from json_navigator.errors import EngineError
from json_navigator.models.node import MatchType, Node, SearchOptions, SearchPhase, SearchResult, ValueType
from tests.unit.fakes import FakeEngine

NO_TARGETS = SearchOptions(search_keys=False, search_values=False, search_paths=False)


def _results(prefix: str, count: int, match_type: MatchType = MatchType.KEY) -> list[SearchResult]:
    return [
        SearchResult(
            node=Node(pointer=f"/{prefix}{i}", key=f"{prefix}{i}", value_type=ValueType.NUMBER, preview=str(i)),
            match_type=match_type,
            match_text=f"{prefix}{i}",
        )
        for i in range(count)
    ]


def _pointers(orchestrator: SearchOrchestrator) -> list[str]:
    return [r.node.pointer for r in orchestrator.results]


@pytest.mark.asyncio
async def test_blank_query_clears_without_engine_call(
    engine: FakeEngine, orchestrator: SearchOrchestrator
) -> None:
    engine.search_results["ada"] = _results("ada", 3)
    await orchestrator.search("ada")
    assert orchestrator.phase == SearchPhase.DONE

    await orchestrator.search("   ")

    assert orchestrator.phase == SearchPhase.IDLE
    assert orchestrator.results == []
    assert not orchestrator.is_active
    assert len(engine.calls_to("run_search")) == 1


@pytest.mark.asyncio
async def test_no_target_posts_notice_and_keeps_state(
    engine: FakeEngine, orchestrator: SearchOrchestrator, notices: NoticeBoard
) -> None:
    engine.search_results["ada"] = _results("ada", 3)
    await orchestrator.search("ada")

    await orchestrator.search("lovelace", NO_TARGETS)

    assert notices.has(NoticeKind.NO_SEARCH_TARGET)
    assert len(engine.calls_to("run_search")) == 1
    assert orchestrator.query == "ada"
    assert len(orchestrator.results) == 3


@pytest.mark.asyncio
async def test_selecting_a_target_dismisses_the_notice(
    orchestrator: SearchOrchestrator, notices: NoticeBoard
) -> None:
    orchestrator.set_options(NO_TARGETS)
    await orchestrator.search("ada")
    assert notices.has(NoticeKind.NO_SEARCH_TARGET)

    orchestrator.set_option("search_keys", True)
    assert not notices.has(NoticeKind.NO_SEARCH_TARGET)


@pytest.mark.asyncio
async def test_first_page_replaces_and_next_page_appends(
    engine: FakeEngine, orchestrator: SearchOrchestrator
) -> None:
    engine.search_results["k"] = _results("k", 120)

    await orchestrator.search("k", page_size=50)
    assert len(orchestrator.results) == 50
    assert orchestrator.total_count == 120
    assert orchestrator.has_more

    await orchestrator.load_next_page()
    await orchestrator.load_next_page()
    assert len(orchestrator.results) == 120
    assert not orchestrator.has_more
    assert orchestrator.page == 3

    offsets = [args[2] for args in engine.calls_to("run_search")]
    assert offsets == [0, 50, 100]

    # Nothing more to load
    await orchestrator.load_next_page()
    assert len(engine.calls_to("run_search")) == 3

    engine.search_results["j"] = _results("j", 2)
    await orchestrator.search("j")
    assert _pointers(orchestrator) == ["/j0", "/j1"]


@pytest.mark.asyncio
async def test_appended_pages_skip_duplicate_results(
    engine: FakeEngine, orchestrator: SearchOrchestrator
) -> None:
    results = _results("k", 4)
    # Page two repeats the last hit of page one
    engine.search_results["k"] = [*results[:2], results[1], results[2]]

    await orchestrator.search("k", page_size=2)
    await orchestrator.load_next_page()

    assert _pointers(orchestrator) == ["/k0", "/k1", "/k2"]


@pytest.mark.asyncio
async def test_stale_response_is_discarded(engine: FakeEngine, orchestrator: SearchOrchestrator) -> None:
    engine.search_results["old"] = _results("old", 2)
    engine.search_results["new"] = _results("new", 1)
    gate = engine.hold("run_search")

    slow = asyncio.create_task(orchestrator.search("old"))
    await asyncio.sleep(0)
    await orchestrator.search("new")
    gate.set()
    await slow

    assert orchestrator.query == "new"
    assert _pointers(orchestrator) == ["/new0"]
    assert orchestrator.phase == SearchPhase.DONE


@pytest.mark.asyncio
async def test_stale_failure_is_ignored(
    engine: FakeEngine, orchestrator: SearchOrchestrator, notices: NoticeBoard
) -> None:
    engine.search_results["new"] = _results("new", 1)
    gate = engine.hold("run_search")
    slow = asyncio.create_task(orchestrator.search("old"))
    await asyncio.sleep(0)

    await orchestrator.search("new")
    engine.failures["run_search"] = EngineError("boom")
    gate.set()
    await slow

    assert orchestrator.phase == SearchPhase.DONE
    assert not notices.has(NoticeKind.SEARCH_FAILED)


@pytest.mark.asyncio
async def test_failure_sets_error_phase_and_posts_notice(
    engine: FakeEngine, orchestrator: SearchOrchestrator, notices: NoticeBoard
) -> None:
    engine.failures["run_search"] = EngineError("engine offline")

    await orchestrator.search("ada")

    assert orchestrator.phase == SearchPhase.ERROR
    assert "engine offline" in orchestrator.error
    assert orchestrator.results == []
    assert notices.has(NoticeKind.SEARCH_FAILED)


@pytest.mark.asyncio
async def test_append_failure_keeps_earlier_pages(
    engine: FakeEngine, orchestrator: SearchOrchestrator
) -> None:
    engine.search_results["k"] = _results("k", 10)
    await orchestrator.search("k", page_size=5)

    engine.failures["run_search"] = EngineError("lost")
    await orchestrator.load_next_page()

    assert orchestrator.phase == SearchPhase.ERROR
    assert len(orchestrator.results) == 5


@pytest.mark.asyncio
async def test_invalid_regex_is_reported_without_engine_call(
    engine: FakeEngine, orchestrator: SearchOrchestrator, notices: NoticeBoard
) -> None:
    await orchestrator.search("(oops", SearchOptions(regex=True))

    assert orchestrator.phase == SearchPhase.ERROR
    assert orchestrator.error.startswith("Invalid regular expression")
    assert engine.calls_to("run_search") == []
    assert not notices.has(NoticeKind.SEARCH_FAILED)


@pytest.mark.asyncio
async def test_debounce_coalesces_keystrokes_into_one_search(
    engine: FakeEngine, orchestrator: SearchOrchestrator
) -> None:
    engine.search_results["ada"] = _results("ada", 1)

    for text in ("a", "ad", "ada"):
        orchestrator.set_query(text)
    await orchestrator.flush()

    assert [args[0] for args in engine.calls_to("run_search")] == ["ada"]
    assert _pointers(orchestrator) == ["/ada0"]


@pytest.mark.asyncio
async def test_option_change_reruns_current_input(
    engine: FakeEngine, orchestrator: SearchOrchestrator
) -> None:
    orchestrator.set_option("regex", True)
    await orchestrator.flush()
    assert engine.calls_to("run_search") == []

    orchestrator.set_query("ad.")
    await orchestrator.flush()
    orchestrator.set_option("whole_word", True)
    await orchestrator.flush()

    calls = engine.calls_to("run_search")
    assert len(calls) == 2
    assert calls[0][1].regex
    assert calls[1][1].whole_word and not calls[1][1].regex


@pytest.mark.asyncio
async def test_option_toggle_during_debounce_coalesces_with_query(
    engine: FakeEngine, orchestrator: SearchOrchestrator
) -> None:
    orchestrator.set_query("foo")
    orchestrator.set_option("case_sensitive", True)
    await orchestrator.flush()

    calls = engine.calls_to("run_search")
    assert len(calls) == 1
    assert calls[0][0] == "foo"
    assert calls[0][1].case_sensitive


@pytest.mark.asyncio
async def test_streaming_collects_batches(engine: FakeEngine, notices: NoticeBoard) -> None:
    engine.search_results["k"] = _results("k", 25)
    orchestrator = SearchOrchestrator(engine, notices, streaming=True)

    await orchestrator.search("k")

    assert orchestrator.phase == SearchPhase.DONE
    assert orchestrator.total_count == 25
    assert len(orchestrator.results) == 25
    assert engine.calls_to("run_search") == []


@pytest.mark.asyncio
async def test_superseded_stream_is_dropped(engine: FakeEngine, notices: NoticeBoard) -> None:
    engine.search_results["old"] = _results("old", 30)
    engine.search_results["new"] = _results("new", 3)
    orchestrator = SearchOrchestrator(engine, notices, streaming=True)
    gate = engine.hold("run_search_stream")

    slow = asyncio.create_task(orchestrator.search("old"))
    await asyncio.sleep(0)
    await orchestrator.search("new")
    gate.set()
    await slow

    assert _pointers(orchestrator) == ["/new0", "/new1", "/new2"]


@pytest.mark.asyncio
async def test_stream_error_event_fails_search(engine: FakeEngine, notices: NoticeBoard) -> None:
    engine.failures["run_search_stream"] = EngineError("index missing")
    orchestrator = SearchOrchestrator(engine, notices, streaming=True)

    await orchestrator.search("k")

    assert orchestrator.phase == SearchPhase.ERROR
    assert "index missing" in orchestrator.error


@pytest.mark.asyncio
async def test_set_page_size_restarts_from_first_page(
    engine: FakeEngine, orchestrator: SearchOrchestrator
) -> None:
    engine.search_results["k"] = _results("k", 60)
    await orchestrator.search("k", page_size=25)
    await orchestrator.load_next_page()

    await orchestrator.set_page_size(100)

    assert orchestrator.page == 1
    assert len(orchestrator.results) == 60
    assert engine.calls_to("run_search")[-1][2:] == (0, 100)

    with pytest.raises(ValueError, match="page_size"):
        await orchestrator.set_page_size(0)
    with pytest.raises(ValueError, match="page_size"):
        await orchestrator.set_page_size(30)
    assert orchestrator.page_size == 100


@pytest.mark.asyncio
async def test_patch_node_updates_matching_results(
    engine: FakeEngine, orchestrator: SearchOrchestrator
) -> None:
    engine.search_results["k"] = _results("k", 2)
    await orchestrator.search("k")

    orchestrator.patch_node(Node(pointer="/k1", key="k1", value_type=ValueType.NUMBER, preview="99"))

    assert [r.node.preview for r in orchestrator.results] == ["0", "99"]
    assert orchestrator.results[1].match_text == "k1"


@pytest.mark.asyncio
async def test_full_preview_toggle(engine: FakeEngine, orchestrator: SearchOrchestrator) -> None:
    node = Node(pointer="/bio", key="bio", value_type=ValueType.STRING, preview="long text")
    hit = SearchResult(node=node, match_type=MatchType.VALUE, match_text="long text", context="in key: bio")
    engine.search_results["text"] = [hit]
    await orchestrator.search("text")

    assert orchestrator.can_toggle_preview(hit)
    assert orchestrator.toggle_full_preview("/bio") is True
    assert orchestrator.shows_full("/bio")
    assert orchestrator.toggle_full_preview("/bio") is False


@pytest.mark.asyncio
async def test_reset_makes_in_flight_search_stale(
    engine: FakeEngine, orchestrator: SearchOrchestrator
) -> None:
    engine.search_results["ada"] = _results("ada", 1)
    gate = engine.hold("run_search")
    task = asyncio.create_task(orchestrator.search("ada"))
    await asyncio.sleep(0)

    orchestrator.reset()
    gate.set()
    await task

    assert orchestrator.phase == SearchPhase.IDLE
    assert orchestrator.results == []
