"""
User notifications.

The host application supplies a sink; notifying is fire-and-forget and a
failing sink never reaches the caller.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class NotificationKind(Enum):
    INFO = "info"
    ERROR = "error"


NotificationSink = Callable[[NotificationKind, str], None]


def log_sink(kind: NotificationKind, message: str) -> None:
    """Default sink: route notifications to the package logger."""
    if kind == NotificationKind.ERROR:
        logger.error(message)
    else:
        logger.info(message)


class NotificationService:
    """Formats engine events and forwards them to the sink."""

    def __init__(self, sink: Optional[NotificationSink] = None, show_notifications: bool = True) -> None:
        self._sink = sink or log_sink
        self._show = show_notifications

    def set_show_notifications(self, show: bool) -> None:
        self._show = show

    def notify(self, kind: NotificationKind, message: str) -> None:
        try:
            self._sink(kind, message)
        except Exception as e:
            logger.warning("Notification sink failed: %s", e)

    def profile_started(self, profile_name: str, entity_name: str, action_count: int) -> None:
        if not self._show:
            return
        self.notify(
            NotificationKind.INFO,
            f"Profile '{profile_name}' started for {entity_name}\n{action_count} action(s) running...",
        )

    def profile_completed(self, profile_name: str, ok_count: int, fail_count: int, elapsed_seconds: float) -> None:
        if not self._show:
            return
        message = (
            f"Profile '{profile_name}' completed\n"
            f"Actions: {ok_count} OK, {fail_count} failed\n"
            f"Time: {elapsed_seconds:.1f}s"
        )
        self.notify(NotificationKind.INFO if fail_count == 0 else NotificationKind.ERROR, message)

    def action_result(self, action_name: str, success: bool, message: str) -> None:
        if not self._show:
            return
        self.notify(NotificationKind.INFO if success else NotificationKind.ERROR, f"{action_name}: {message}")

    def error(self, title: str, message: str) -> None:
        # errors are shown even when notifications are switched off
        self.notify(NotificationKind.ERROR, f"{title}: {message}")

    def backup_completed(self, backup_path: str) -> None:
        if not self._show:
            return
        self.notify(NotificationKind.INFO, f"Configuration backup written:\n{backup_path}")
