"""User-facing notifications (the toast layer).

Low-level code raises; the layer that owns a user action catches, logs and
reports the outcome here. Consumers (a UI bridge, an HTTP response, a test)
read ``history`` or register a listener.
"""

import enum
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, List, Optional

from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger

logger = get_logger(__name__)


class NotificationLevel(str, enum.Enum):
    SUCCESS = "success"
    INFO = "info"
    ERROR = "error"


@dataclass
class Notification:
    level: NotificationLevel
    message: str
    created_at: object = field(default_factory=utc_now)


Listener = Callable[[Notification], None]


class Notifier:
    def __init__(self, max_history: int = 50):
        self._history: Deque[Notification] = deque(maxlen=max_history)
        self._listeners: List[Listener] = []

    @property
    def history(self) -> List[Notification]:
        return list(self._history)

    @property
    def last_error(self) -> Optional[Notification]:
        for notification in reversed(self._history):
            if notification.level is NotificationLevel.ERROR:
                return notification
        return None

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def success(self, message: str) -> None:
        self._emit(NotificationLevel.SUCCESS, message)

    def info(self, message: str) -> None:
        self._emit(NotificationLevel.INFO, message)

    def error(self, message: str) -> None:
        self._emit(NotificationLevel.ERROR, message)

    def _emit(self, level: NotificationLevel, message: str) -> None:
        notification = Notification(level=level, message=message)
        self._history.append(notification)
        if level is NotificationLevel.ERROR:
            logger.warning("Notify user: %s", message)
        else:
            logger.info("Notify user: %s", message)
        for listener in list(self._listeners):
            try:
                listener(notification)
            except Exception:
                logger.exception("Notification listener failed")
