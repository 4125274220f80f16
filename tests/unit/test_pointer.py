"""Tests for JSON pointer helpers."""

import pytest

from json_navigator.core.tree.pointer import (
    ROOT,
    child_pointer,
    depth,
    is_descendant_or_self,
    last_token,
    parent_pointer,
    split_pointer,
)


def test_child_pointer_escapes_tilde_and_slash() -> None:
    assert child_pointer(ROOT, "a/b") == "/a~1b"
    assert child_pointer("/x", "m~n") == "/x/m~0n"
    assert child_pointer("/list", 3) == "/list/3"


def test_split_pointer_unescapes_tokens() -> None:
    assert split_pointer("/a~1b/m~0n/0") == ["a/b", "m~n", "0"]
    assert split_pointer(ROOT) == []


def test_split_pointer_rejects_relative_pointer() -> None:
    with pytest.raises(ValueError, match="Invalid JSON pointer"):
        split_pointer("a/b")


def test_parent_and_last_token() -> None:
    assert parent_pointer("/a/b") == "/a"
    assert parent_pointer("/a") == ROOT
    assert parent_pointer(ROOT) is None
    assert last_token("/a/x~1y") == "x/y"
    assert last_token(ROOT) is None


def test_is_descendant_or_self_respects_token_boundaries() -> None:
    assert is_descendant_or_self("/a/b", "/a")
    assert is_descendant_or_self("/a", "/a")
    assert not is_descendant_or_self("/ab", "/a")
    assert is_descendant_or_self("/anything", ROOT)


def test_depth() -> None:
    assert depth(ROOT) == 0
    assert depth("/a/b/c") == 3
