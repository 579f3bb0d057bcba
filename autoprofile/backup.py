"""Timestamped whole-document backups with count-limited retention."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from .data_store import DocumentError, parse_document, serialize_document
from .models import Document, Settings
from .notifications import NotificationService

logger = logging.getLogger(__name__)

BACKUP_PATTERN = "backup_*.json"


class BackupService:
    def __init__(self, backup_dir: Path, notifications: Optional[NotificationService] = None) -> None:
        self._backup_dir = Path(backup_dir)
        self._notifications = notifications

    @property
    def backup_dir(self) -> Path:
        return self._backup_dir

    def should_backup(self, settings: Settings, now: Optional[datetime] = None) -> bool:
        if not settings.auto_backup_enabled:
            return False
        if settings.last_backup_date is None:
            return True
        elapsed_days = ((now or datetime.now()) - settings.last_backup_date).total_seconds() / 86400
        return elapsed_days >= settings.backup_interval_days

    def create_backup(self, document: Document, now: Optional[datetime] = None) -> Optional[Path]:
        """Write a backup file and prune old ones; returns its path or None on failure."""
        timestamp = (now or datetime.now()).strftime("%Y-%m-%d_%H-%M-%S")
        file_path = self._backup_dir / f"backup_{timestamp}.json"
        try:
            self._backup_dir.mkdir(parents=True, exist_ok=True)
            file_path.write_text(serialize_document(document), encoding="utf-8")
        except OSError as e:
            logger.error("Failed to create backup: %s", e)
            return None

        logger.info("Created backup: %s", file_path)
        self._cleanup(document.settings.max_backup_count)
        if self._notifications is not None:
            self._notifications.backup_completed(str(file_path))
        return file_path

    def available_backups(self) -> List[Path]:
        """Backup files, newest first."""
        if not self._backup_dir.is_dir():
            return []
        return sorted(self._backup_dir.glob(BACKUP_PATTERN), reverse=True)

    def restore_from_backup(self, backup_file: Path) -> Optional[Document]:
        backup_file = Path(backup_file)
        if not backup_file.exists():
            logger.warning("Backup file not found: %s", backup_file)
            return None
        try:
            document = parse_document(backup_file.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, DocumentError) as e:
            logger.error("Failed to restore from backup %s: %s", backup_file, e)
            return None
        logger.info("Restored from backup: %s", backup_file)
        return document

    def _cleanup(self, max_count: int) -> None:
        for old in self.available_backups()[max(1, max_count):]:
            try:
                old.unlink()
                logger.info("Deleted old backup: %s", old)
            except OSError as e:
                logger.warning("Failed to delete old backup %s: %s", old, e)
