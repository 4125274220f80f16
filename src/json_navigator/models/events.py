"""Engine events: a tagged union keyed by the session id that requested them."""

from dataclasses import dataclass
from typing import Any

from json_navigator.errors import EventError
from json_navigator.models.node import SearchResult


@dataclass(frozen=True)
class ProgressEvent:
    """Open-document progress."""

    session_id: int
    percent: float
    done: bool = False
    canceled: bool = False
    read_bytes: int = 0
    total_bytes: int = 0


@dataclass(frozen=True)
class BatchEvent:
    """Incremental batch of streaming search results."""

    session_id: int
    batch: tuple[SearchResult, ...]
    total_so_far: int
    elapsed_ms: int = 0


@dataclass(frozen=True)
class DoneEvent:
    """Streaming search finished."""

    session_id: int
    total: int
    elapsed_ms: int = 0


@dataclass(frozen=True)
class ErrorEvent:
    """Engine-side failure of a streaming operation."""

    session_id: int
    message: str


EngineEvent = ProgressEvent | BatchEvent | DoneEvent | ErrorEvent


def _require(payload: dict[str, Any], key: str, kind: type | tuple[type, ...]) -> Any:
    if key not in payload:
        msg = f"Event {payload.get('type')!r} missing field {key!r}"
        raise EventError(msg)
    value = payload[key]
    # bool is an int subclass; never accept it for numeric fields
    if isinstance(value, bool) and bool not in (kind if isinstance(kind, tuple) else (kind,)):
        msg = f"Event field {key!r} has wrong type: {value!r}"
        raise EventError(msg)
    if not isinstance(value, kind):
        msg = f"Event field {key!r} has wrong type: {value!r}"
        raise EventError(msg)
    return value


def parse_event(payload: Any) -> EngineEvent:
    """Validate a raw event payload and build the matching event.

    Raises:
        EventError: if the payload is not a dict, has an unknown ``type`` or
            lacks required fields.
    """
    if not isinstance(payload, dict):
        msg = f"Event payload must be an object, got {type(payload).__name__}"
        raise EventError(msg)

    kind = payload.get("type")
    session_id = _require(payload, "session_id", int)

    if kind == "progress":
        return ProgressEvent(
            session_id=session_id,
            percent=float(_require(payload, "percent", (int, float))),
            done=bool(payload.get("done", False)),
            canceled=bool(payload.get("canceled", False)),
            read_bytes=int(payload.get("read_bytes", 0)),
            total_bytes=int(payload.get("total_bytes", 0)),
        )
    if kind == "batch":
        raw_batch = _require(payload, "batch", list)
        try:
            batch = tuple(SearchResult.from_dict(item) for item in raw_batch)
        except (KeyError, TypeError, ValueError) as e:
            msg = f"Malformed search result in batch: {e}"
            raise EventError(msg) from e
        return BatchEvent(
            session_id=session_id,
            batch=batch,
            total_so_far=_require(payload, "total_so_far", int),
            elapsed_ms=int(payload.get("elapsed_ms", 0)),
        )
    if kind == "done":
        return DoneEvent(
            session_id=session_id,
            total=_require(payload, "total", int),
            elapsed_ms=int(payload.get("elapsed_ms", 0)),
        )
    if kind == "error":
        return ErrorEvent(session_id=session_id, message=str(payload.get("message", "")))

    msg = f"Unknown event type: {kind!r}"
    raise EventError(msg)


def event_to_dict(event: EngineEvent) -> dict[str, Any]:
    """Serialize an event to its wire payload."""
    if isinstance(event, ProgressEvent):
        return {
            "type": "progress",
            "session_id": event.session_id,
            "percent": event.percent,
            "done": event.done,
            "canceled": event.canceled,
            "read_bytes": event.read_bytes,
            "total_bytes": event.total_bytes,
        }
    if isinstance(event, BatchEvent):
        return {
            "type": "batch",
            "session_id": event.session_id,
            "batch": [r.to_dict() for r in event.batch],
            "total_so_far": event.total_so_far,
            "elapsed_ms": event.elapsed_ms,
        }
    if isinstance(event, DoneEvent):
        return {
            "type": "done",
            "session_id": event.session_id,
            "total": event.total,
            "elapsed_ms": event.elapsed_ms,
        }
    return {"type": "error", "session_id": event.session_id, "message": event.message}
