from __future__ import annotations

from collections import deque
from dataclasses import dataclass
import logging
from threading import Lock
from typing import Callable, Literal

from casebundle_api.schemas import NoticeLevel


LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notice:
    level: NoticeLevel
    message: str
    description: str | None = None
    action: Literal["undo"] | None = None
    expires_at: float | None = None
    container_id: str | None = None


Notifier = Callable[[Notice], None]


class NoticeLog:
    """Bounded log of the notices a composition surfaced, newest last."""

    def __init__(self, *, max_notices: int = 50, notifier: Notifier | None = None) -> None:
        if max_notices < 1:
            raise ValueError("max_notices must be >= 1")
        self._lock = Lock()
        self._notices: deque[Notice] = deque(maxlen=max_notices)
        self._notifier = notifier

    def publish(self, notice: Notice) -> Notice:
        with self._lock:
            self._notices.append(notice)
        if self._notifier is not None:
            try:
                self._notifier(notice)
            except Exception:
                LOGGER.warning(
                    "Notice callback failed",
                    exc_info=True,
                    extra={"container_id": notice.container_id, "level": notice.level},
                )
        return notice

    def recent(self, limit: int | None = None) -> tuple[Notice, ...]:
        with self._lock:
            notices = tuple(self._notices)
        if limit is None:
            return notices
        if limit <= 0:
            return ()
        return notices[-limit:]

    def clear(self) -> None:
        with self._lock:
            self._notices.clear()


__all__ = ["Notice", "NoticeLog", "Notifier"]
