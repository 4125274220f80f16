"""Query matching and highlighting shared by the local engine and renderers.

One compiled pattern per (query, options) gives the engine and the highlighter
identical semantics: plain substring, case-sensitive substring, whole word, or
user regex. Matching is case-insensitive unless ``case_sensitive`` is set.
"""

import re

from json_navigator.config import CONTEXT_RADIUS
from json_navigator.errors import InvalidQueryError
from json_navigator.models.node import MatchType, SearchOptions, SearchResult, ValueType

ELLIPSIS = "…"

Span = tuple[int, int]


def build_pattern(query: str, options: SearchOptions) -> re.Pattern[str] | None:
    """Compile ``query`` for the selected match mode.

    Returns None for a blank query.

    Raises:
        InvalidQueryError: if regex mode is on and the pattern does not compile.
    """
    if not query.strip():
        return None
    flags = 0 if options.case_sensitive else re.IGNORECASE
    if options.regex:
        try:
            return re.compile(query, flags)
        except re.error as e:
            msg = f"Invalid regular expression: {e}"
            raise InvalidQueryError(msg) from e
    escaped = re.escape(query)
    if options.whole_word:
        return re.compile(rf"\b{escaped}\b", flags)
    return re.compile(escaped, flags)


def validate_query(query: str, options: SearchOptions) -> str | None:
    """Return an error message when ``query`` cannot be used, else None."""
    try:
        build_pattern(query, options)
    except InvalidQueryError as e:
        return str(e)
    return None


def text_matches(text: str, pattern: re.Pattern[str] | None) -> bool:
    return pattern is not None and pattern.search(text) is not None


def highlight_spans(text: str, query: str, options: SearchOptions) -> list[Span]:
    """Disjoint ``(start, end)`` spans of every match in ``text``.

    An invalid user regex degrades to no highlighting. Zero-length matches are
    ignored.
    """
    try:
        pattern = build_pattern(query, options)
    except InvalidQueryError:
        return []
    if pattern is None:
        return []
    return [m.span() for m in pattern.finditer(text) if m.end() > m.start()]


def highlight_segments(
    text: str, query: str, options: SearchOptions
) -> list[tuple[str, bool]]:
    """Split ``text`` into ``(segment, is_match)`` pairs for rendering."""
    return split_segments(text, highlight_spans(text, query, options))


def split_segments(text: str, spans: list[Span]) -> list[tuple[str, bool]]:
    segments: list[tuple[str, bool]] = []
    last = 0
    for start, end in spans:
        if start > last:
            segments.append((text[last:start], False))
        segments.append((text[start:end], True))
        last = end
    if last < len(text) or not segments:
        segments.append((text[last:], False))
    return segments


def context_window(
    text: str, spans: list[Span], *, radius: int = CONTEXT_RADIUS
) -> tuple[str, list[Span]]:
    """Clip ``text`` to ``radius`` characters around the first match.

    Returns the clipped text (with ``…`` markers where it was cut) and the
    spans that fall inside it, re-based to the clipped text. Text without
    matches is cut after ``2 * radius`` characters.
    """
    if not spans:
        if len(text) <= 2 * radius:
            return text, []
        return text[: 2 * radius] + ELLIPSIS, []

    first_start, first_end = spans[0]
    start = max(0, first_start - radius)
    end = min(len(text), first_end + radius)
    prefix = ELLIPSIS if start > 0 else ""
    suffix = ELLIPSIS if end < len(text) else ""
    shift = len(prefix) - start
    inside = [
        (max(s, start) + shift, min(e, end) + shift) for s, e in spans if s < end and e > start
    ]
    return prefix + text[start:end] + suffix, inside


def render_result_preview(
    result: SearchResult,
    query: str,
    options: SearchOptions,
    *,
    show_full: bool = False,
    radius: int = CONTEXT_RADIUS,
) -> tuple[str, list[Span]]:
    """Text and highlight spans to display for a search result's value.

    String values matched by value show a window around the first match unless
    ``show_full`` is set; the full text stays highlighted.
    """
    if result.node.value_type == ValueType.STRING and result.match_type == MatchType.VALUE:
        text = result.match_text
    else:
        text = result.node.preview
    spans = highlight_spans(text, query, options)
    if show_full or len(text) <= 2 * radius:
        return text, spans
    return context_window(text, spans, radius=radius)
