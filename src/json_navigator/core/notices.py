"""Transient, dismissable user-facing notices."""

import itertools
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from loguru import logger

from json_navigator.config import NOTICE_SECONDS


class NoticeKind(str, Enum):
    FETCH_FAILED = "fetch_failed"
    SEARCH_FAILED = "search_failed"
    NO_SEARCH_TARGET = "no_search_target"
    OPEN_FAILED = "open_failed"
    INVALID_INPUT = "invalid_input"


@dataclass(frozen=True)
class Notice:
    id: int
    kind: NoticeKind
    message: str
    expires_at: float | None = None


class NoticeBoard:
    """Collects notices for one document session.

    Notices with an expiry vanish from ``active()`` once the clock passes it;
    the others stay until dismissed.
    """

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._ids = itertools.count(1)
        self._notices: list[Notice] = []

    def post(self, kind: NoticeKind, message: str, *, ttl: float | None = None) -> Notice:
        expires_at = self._clock() + ttl if ttl is not None else None
        notice = Notice(id=next(self._ids), kind=kind, message=message, expires_at=expires_at)
        self._notices.append(notice)
        logger.debug("Notice [{}] {}", kind.value, message)
        return notice

    def post_transient(self, kind: NoticeKind, message: str) -> Notice:
        """Post a notice that dismisses itself after ``NOTICE_SECONDS``."""
        # Only one live notice per transient kind
        self.dismiss_kind(kind)
        return self.post(kind, message, ttl=NOTICE_SECONDS)

    def active(self) -> list[Notice]:
        now = self._clock()
        self._notices = [n for n in self._notices if n.expires_at is None or n.expires_at > now]
        return list(self._notices)

    def has(self, kind: NoticeKind) -> bool:
        return any(n.kind == kind for n in self.active())

    def dismiss(self, notice_id: int) -> None:
        self._notices = [n for n in self._notices if n.id != notice_id]

    def dismiss_kind(self, kind: NoticeKind) -> None:
        self._notices = [n for n in self._notices if n.kind != kind]

    def clear(self) -> None:
        self._notices.clear()
