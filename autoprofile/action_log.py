"""
Action log - append-only record of every action the engine dispatched.

Entries are kept oldest-first and trimmed from the front once the configured
maximum is exceeded.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from .models import Action, ActionLogEntry

logger = logging.getLogger(__name__)


class ActionLog:
    """
    Capped ring buffer of ActionLogEntry records.

    Optionally mirrors every entry as a text line to ``log_file``.
    """

    def __init__(
        self,
        entries: Optional[List[ActionLogEntry]] = None,
        max_entries: int = 100,
        log_file: Optional[Path] = None,
    ):
        """
        Initialize the log.

        Args:
            entries: Previously persisted entries (oldest first)
            max_entries: Maximum number of entries to keep in memory
            log_file: Text file every new entry is appended to, if any
        """
        self._entries: List[ActionLogEntry] = list(entries or [])
        self._max_entries = max(1, max_entries)
        self._log_file = log_file
        self._lock = threading.Lock()
        self._trim()

    @property
    def max_entries(self) -> int:
        return self._max_entries

    def log(
        self,
        action: Action,
        success: bool,
        exit_code: int,
        message: str,
        dry_run: bool = False,
    ) -> ActionLogEntry:
        """Record the outcome of one action and return the new entry."""
        entry = ActionLogEntry(
            action_id=action.id,
            action_name=action.name,
            timestamp=datetime.now(),
            success=success,
            exit_code=exit_code,
            message=message,
            dry_run=dry_run,
        )
        with self._lock:
            self._entries.append(entry)
            self._trim()
        if self._log_file is not None:
            self._append_to_file(entry)
        return entry

    def recent(self, count: int = 50) -> List[ActionLogEntry]:
        """
        Get the most recent log entries.

        Args:
            count: Number of recent entries to return

        Returns:
            List of recent log entries, oldest first
        """
        with self._lock:
            return self._entries[-count:] if count > 0 else []

    def last_for_action(self, action_id: str) -> Optional[ActionLogEntry]:
        with self._lock:
            for entry in reversed(self._entries):
                if entry.action_id == action_id:
                    return entry
        return None

    def entries(self) -> List[ActionLogEntry]:
        """Returns a copy of all entries."""
        with self._lock:
            return self._entries.copy()

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def export_to_file(self, filepath: str) -> bool:
        """
        Export all entries to a text file.

        Args:
            filepath: Path where the log file should be saved

        Returns:
            bool: True if export was successful
        """
        try:
            with open(filepath, "w", encoding="utf-8") as f:
                f.write("autoprofile - Action Log Export\n")
                f.write(f"Generated: {datetime.now()}\n")
                f.write("=" * 50 + "\n\n")
                for entry in self.entries():
                    f.write(f"{entry}\n")
            return True
        except OSError as e:
            logger.error("Failed to export action log to %s: %s", filepath, e)
            return False

    def _trim(self) -> None:
        overflow = len(self._entries) - self._max_entries
        if overflow > 0:
            del self._entries[:overflow]

    def _append_to_file(self, entry: ActionLogEntry) -> None:
        try:
            self._log_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self._log_file, "a", encoding="utf-8") as f:
                f.write(f"{entry}\n")
        except OSError as e:
            logger.warning("Failed to append to action log file %s: %s", self._log_file, e)
