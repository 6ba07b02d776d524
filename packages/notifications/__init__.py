"""User-facing notifications.

Trading guard decisions and failed trades are reported as short
notifications (the dashboard renders them as toasts). The
``NotificationCenter`` keeps a bounded feed of recent notifications and
logs each one.

Usage:
    from packages.notifications import NotificationCenter, NotificationType

    center = NotificationCenter()
    center.notify(NotificationType.ERROR, "Trading Blocked", "Kill switch is active.")
"""

from collections import deque
from datetime import datetime, timezone
from enum import Enum
from threading import Lock
from typing import Protocol

from pydantic import BaseModel, Field

from packages.structured_logging import get_logger

__all__ = ["Notification", "NotificationCenter", "NotificationType", "Notifier"]


logger = get_logger(__name__)


class NotificationType(str, Enum):
    """Notification severity, as rendered by the dashboard."""
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    SUCCESS = "success"


class Notification(BaseModel):
    """A single user-facing notification."""

    type: NotificationType
    title: str
    message: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"frozen": True}


class Notifier(Protocol):
    """Anything that can show a notification to the user."""

    def notify(self, type: NotificationType, title: str, message: str) -> Notification:
        ...


class NotificationCenter:
    """In-memory notification feed (newest last)."""

    def __init__(self, max_items: int = 100):
        self._items: deque[Notification] = deque(maxlen=max_items)
        self._lock = Lock()

    def notify(self, type: NotificationType, title: str, message: str) -> Notification:
        """Record a notification.

        Args:
            type: Severity
            title: Short headline
            message: Detail shown to the user

        Returns:
            The recorded notification
        """
        notification = Notification(type=NotificationType(type), title=title, message=message)
        with self._lock:
            self._items.append(notification)

        log = logger.error if notification.type == NotificationType.ERROR else logger.info
        log("notification", type=notification.type.value, title=title, message=message)
        return notification

    def recent(self, limit: int = 20) -> list[Notification]:
        """Most recent notifications, newest first."""
        with self._lock:
            items = list(self._items)
        return list(reversed(items))[:limit]

    def clear(self) -> None:
        with self._lock:
            self._items.clear()
