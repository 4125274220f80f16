"""Shared test fixtures."""

import copy
import json
from pathlib import Path
from typing import Any

import pytest

from json_navigator.core.notices import NoticeBoard
from json_navigator.core.search.orchestrator import SearchOrchestrator
from json_navigator.core.session.controller import DocumentSessionController
from json_navigator.core.tree.cache import NodeCache
from tests.unit.fakes import FakeClock, FakeEngine, FakeStateStore

SAMPLE_DOCUMENT: dict[str, Any] = {
    "name": "Ada Lovelace",
    "age": 36,
    "active": True,
    "spouse": None,
    "tags": ["math", "engines", "poetry"],
    "address": {
        "city": "London",
        "street": {"name": "St James's Square", "number": 12},
    },
    "notes": '{"draft": true, "pages": [1, 2]}',
    "empty": {},
    "a/b": "slash key",
}


def make_wide_document(count: int) -> dict[str, Any]:
    """A root object with ``count`` keys (``k000``, ``k001``, ...)."""
    return {f"k{i:03d}": i for i in range(count)}


@pytest.fixture
def sample_document() -> dict[str, Any]:
    return copy.deepcopy(SAMPLE_DOCUMENT)


@pytest.fixture
def engine(sample_document: dict[str, Any]) -> FakeEngine:
    return FakeEngine(sample_document)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def notices(clock: FakeClock) -> NoticeBoard:
    return NoticeBoard(clock=clock)


@pytest.fixture
def cache(engine: FakeEngine, notices: NoticeBoard) -> NodeCache:
    return NodeCache(engine, notices)


@pytest.fixture
def orchestrator(engine: FakeEngine, notices: NoticeBoard) -> SearchOrchestrator:
    return SearchOrchestrator(engine, notices, debounce_seconds=0.01)


@pytest.fixture
def state_store() -> FakeStateStore:
    return FakeStateStore()


@pytest.fixture
def controller(engine: FakeEngine, state_store: FakeStateStore) -> DocumentSessionController:
    return DocumentSessionController(engine, state_store=state_store, debounce_seconds=0.01)


@pytest.fixture
def sample_file(tmp_path: Path) -> Path:
    """SAMPLE_DOCUMENT written to disk."""
    path = tmp_path / "sample.json"
    path.write_text(json.dumps(SAMPLE_DOCUMENT), encoding="utf-8")
    return path
