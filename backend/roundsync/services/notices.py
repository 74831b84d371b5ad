"""User-facing feedback raised by the engine."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)


class NoticeLevel(str, Enum):
    SUCCESS = "success"
    INFO = "info"
    ERROR = "error"


@dataclass(frozen=True)
class Notice:
    level: NoticeLevel
    title: str
    message: str = ""


NoticeListener = Callable[[Notice], None]


class Notifier:
    def __init__(self) -> None:
        self._listeners: set[NoticeListener] = set()

    def subscribe(self, listener: NoticeListener) -> Callable[[], None]:
        self._listeners.add(listener)
        return lambda: self._listeners.discard(listener)

    def emit(self, level: NoticeLevel, title: str, message: str = "") -> Notice:
        notice = Notice(NoticeLevel(level), title, message)
        for listener in list(self._listeners):
            try:
                listener(notice)
            except Exception:
                logger.exception("Notice listener failed")
        return notice

    def success(self, title: str, message: str = "") -> Notice:
        return self.emit(NoticeLevel.SUCCESS, title, message)

    def info(self, title: str, message: str = "") -> Notice:
        return self.emit(NoticeLevel.INFO, title, message)

    def error(self, title: str, message: str = "") -> Notice:
        return self.emit(NoticeLevel.ERROR, title, message)
