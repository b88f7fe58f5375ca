"""
User-facing notifications.

Toast-style messages raised by the trigger points ("Linking your profile
data...", sign-out confirmation, auth failures). Delivery never blocks or
fails the flow that raised the notification.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from .models import utc_now

logger = logging.getLogger(__name__)


class NotificationLevel(str, Enum):
    """Notification severity levels."""
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class Notification:
    """A single toast."""
    level: NotificationLevel
    title: str
    description: str = ""
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "level": self.level.value,
            "title": self.title,
            "description": self.description,
            "timestamp": self.timestamp.isoformat(),
        }


class Notifier(ABC):
    """Abstract base class for notification sinks."""

    @abstractmethod
    def send(self, notification: Notification) -> bool:
        """
        Deliver a notification.

        Returns:
            True if delivered, False otherwise
        """
        pass

    def notify(self, level: NotificationLevel, title: str, description: str = "") -> bool:
        """Build and send a notification, swallowing sink errors."""
        try:
            return self.send(Notification(level=level, title=title, description=description))
        except Exception as e:
            logger.error(f"Failed to deliver notification '{title}': {e}")
            return False


class LoggingNotifier(Notifier):
    """Writes notifications to the logger."""

    def __init__(self, logger_instance: Optional[logging.Logger] = None):
        self._logger = logger_instance or logger

    def send(self, notification: Notification) -> bool:
        level_map = {
            NotificationLevel.INFO: logging.INFO,
            NotificationLevel.SUCCESS: logging.INFO,
            NotificationLevel.WARNING: logging.WARNING,
            NotificationLevel.ERROR: logging.ERROR,
        }
        message = f"[TOAST:{notification.level.value.upper()}] {notification.title}"
        if notification.description:
            message = f"{message} - {notification.description}"
        self._logger.log(level_map.get(notification.level, logging.INFO), message)
        return True


class ToastQueue(Notifier):
    """Buffers notifications until the UI drains them."""

    def __init__(self, max_size: int = 50):
        self._max_size = max_size
        self._items: List[Notification] = []

    def send(self, notification: Notification) -> bool:
        self._items.append(notification)
        if len(self._items) > self._max_size:
            self._items = self._items[-self._max_size:]
        return True

    def drain(self) -> List[Notification]:
        """Return and remove all pending notifications."""
        items, self._items = self._items, []
        return items

    def __len__(self) -> int:
        return len(self._items)
