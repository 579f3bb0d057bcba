"""Persistence for the autoprofile data document."""

from __future__ import annotations

import copy
import json
import logging
import os
import shutil
import threading
from pathlib import Path
from typing import Callable, Optional, TypeVar

from .models import Document
from .notifications import NotificationService

logger = logging.getLogger(__name__)

DATA_FILE_NAME = "automation_data.json"
DATA_PATH_ENV = "AUTOPROFILE_DATA"

T = TypeVar("T")


class DocumentError(ValueError):
    """The data file exists but does not hold a valid document."""


def default_data_path() -> Path:
    override = os.environ.get(DATA_PATH_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".autoprofile" / DATA_FILE_NAME


class DataStore:
    """Handles loading and saving the data document to disk."""

    def __init__(self, storage_path: Optional[Path] = None, notifications: Optional[NotificationService] = None) -> None:
        self._storage_path = Path(storage_path) if storage_path else default_data_path()
        self._notifications = notifications
        self.last_error: Optional[str] = None

    @property
    def storage_path(self) -> Path:
        """Absolute path to the data file."""
        return self._storage_path

    def load(self) -> Document:
        """Load the document, returning an empty one if the file is missing or corrupt."""
        path = self.storage_path
        self.last_error = None
        if not path.exists():
            return Document()

        try:
            document = parse_document(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, DocumentError) as e:
            self.last_error = str(e)
            logger.error("Failed to load data from %s: %s", path, e)
            # Keep the unreadable file for inspection.
            backup_path = path.with_suffix(".bak")
            try:
                path.replace(backup_path)
            except OSError:
                logger.warning("Could not move corrupt data file to %s", backup_path)
            if self._notifications is not None:
                self._notifications.error("Failed to load data", str(e))
            return Document()

        if document.load_warnings:
            self.last_error = "; ".join(document.load_warnings)
            logger.error("Skipped %d unreadable entries in %s", len(document.load_warnings), path)
            # The next save drops those entries; keep the file as it was.
            try:
                shutil.copyfile(path, path.with_suffix(".bak"))
            except OSError:
                logger.warning("Could not copy data file to %s", path.with_suffix(".bak"))
            if self._notifications is not None:
                self._notifications.error(
                    "Some entries could not be loaded",
                    f"{len(document.load_warnings)} skipped: {self.last_error}",
                )
        return document

    def save(self, document: Document) -> bool:
        """Persist the document atomically; returns False when writing failed."""
        path = self.storage_path
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_suffix(".tmp")
            tmp_path.write_text(serialize_document(document), encoding="utf-8")
            tmp_path.replace(path)
            return True
        except OSError as e:
            logger.error("Failed to save data to %s: %s", path, e)
            if self._notifications is not None:
                self._notifications.error("Failed to save data", str(e))
            return False


def serialize_document(document: Document) -> str:
    return json.dumps(document.to_dict(), indent=2, ensure_ascii=False)


def parse_document(content: str) -> Document:
    """Parse JSON text into a Document, raising DocumentError on any defect."""
    try:
        raw_data = json.loads(content)
        if not isinstance(raw_data, dict):
            raise DocumentError("Data file has invalid structure")
        return Document.from_dict(raw_data)
    except DocumentError:
        raise
    except (ValueError, TypeError, KeyError) as e:
        raise DocumentError(f"Malformed data file: {e}") from e


class DocumentService:
    """
    Single owner of the in-memory document.

    Readers get detached snapshots; writers submit a mutation function that
    runs under the lock and is persisted right after.
    """

    def __init__(self, store: DataStore) -> None:
        self._store = store
        self._lock = threading.RLock()
        self._document = store.load()

    @property
    def store(self) -> DataStore:
        return self._store

    def snapshot(self) -> Document:
        with self._lock:
            return copy.deepcopy(self._document)

    def apply(self, mutation: Callable[[Document], T], save: bool = True) -> T:
        with self._lock:
            result = mutation(self._document)
            if save:
                self._store.save(self._document)
            return result

    def replace(self, document: Document) -> None:
        with self._lock:
            self._document = document
            self._store.save(self._document)

    def save(self) -> bool:
        with self._lock:
            return self._store.save(self._document)
