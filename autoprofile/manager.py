"""
Host-facing entry point.

The host application calls the lifecycle hooks with the identity of the
entity (game) that is starting or stopping; the manager resolves the
assigned profile and runs the matching phase. Each entity activation gets
its own MirrorTracker, created at start and dropped after stop.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional, TypeVar

from .action_log import ActionLog
from .automation.actions import ActionExecutor, RunContext
from .automation.engine import AutomationEngine, PhaseReport, actions_for_phase
from .automation.mirror import MirrorTracker
from .backup import BackupService
from .data_store import DataStore, DocumentService
from .models import ActionKind, Document, ExecutionPhase, Profile
from .notifications import NotificationService, NotificationSink
from .resolver import has_dangling_mapping, resolve_profile
from .statistics import StatisticsService
from .transfer import ExportBundle, export_profiles, import_from_file

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AutomationProfileManager:
    def __init__(
        self,
        data_path: Optional[Path] = None,
        ctx: Optional[RunContext] = None,
        notification_sink: Optional[NotificationSink] = None,
        backup_dir: Optional[Path] = None,
        executors: Optional[Dict[ActionKind, ActionExecutor]] = None,
    ) -> None:
        self._notifications = NotificationService(notification_sink)
        self._documents = DocumentService(DataStore(data_path, self._notifications))
        storage_dir = self._documents.store.storage_path.parent

        document = self._documents.snapshot()
        settings = document.settings
        self._notifications.set_show_notifications(settings.show_notifications)

        log_file: Optional[Path] = None
        if settings.log_actions_to_file:
            log_file = Path(settings.action_log_file) if settings.action_log_file else storage_dir / "action_log.txt"
        self._action_log = ActionLog(document.action_log, settings.max_log_entries, log_file)
        self._statistics = StatisticsService(document.action_statistics, document.profile_statistics)

        self._ctx = ctx or RunContext()
        self._engine = AutomationEngine(self._ctx, self._action_log, self._statistics, executors)
        self._backups = BackupService(backup_dir or storage_dir / "backups", self._notifications)
        self._sessions: Dict[str, MirrorTracker] = {}
        self._sessions_lock = threading.Lock()

    @property
    def engine(self) -> AutomationEngine:
        return self._engine

    @property
    def action_log(self) -> ActionLog:
        return self._action_log

    @property
    def statistics(self) -> StatisticsService:
        return self._statistics

    @property
    def backups(self) -> BackupService:
        return self._backups

    def snapshot(self) -> Document:
        return self._documents.snapshot()

    def update(self, mutation: Callable[[Document], T]) -> T:
        """Apply an edit to the document and persist it."""
        return self._documents.apply(mutation)

    # Lifecycle hooks

    def on_before_start(self, entity_id: str, entity_name: str = "") -> Optional[PhaseReport]:
        tracker = MirrorTracker(self._ctx.processes.is_running)
        with self._sessions_lock:
            self._sessions[entity_id] = tracker
        self._ctx.audio.begin_session()
        self._ctx.display.begin_session()
        return self._execute(entity_id, entity_name, ExecutionPhase.BEFORE_START, tracker)

    def on_after_start(self, entity_id: str, entity_name: str = "") -> Optional[PhaseReport]:
        return self._execute(entity_id, entity_name, ExecutionPhase.AFTER_START, self._session(entity_id))

    def on_after_stop(self, entity_id: str, entity_name: str = "") -> Optional[PhaseReport]:
        try:
            return self._execute(entity_id, entity_name, ExecutionPhase.AFTER_STOP, self._session(entity_id))
        finally:
            with self._sessions_lock:
                self._sessions.pop(entity_id, None)

    def on_application_started(self, now: Optional[datetime] = None) -> Optional[Path]:
        """Create a backup when automatic backups are due."""
        document = self._documents.snapshot()
        if not self._backups.should_backup(document.settings, now):
            return None
        path = self._backups.create_backup(document, now)
        if path is not None:
            stamp = now or datetime.now()

            def _mark(doc: Document) -> None:
                doc.settings.last_backup_date = stamp

            self._documents.apply(_mark)
        return path

    def on_application_stopped(self) -> None:
        self._flush()

    # Profile assignment and editing

    def assign_profile(self, entity_id: str, profile_id: str, entity_name: str = "") -> bool:
        def _assign(doc: Document) -> bool:
            if doc.find_profile(profile_id) is None:
                return False
            doc.mappings[entity_id] = profile_id
            return True

        assigned = self._documents.apply(_assign)
        if assigned:
            self._notifications.action_result("Profile assigned", True, entity_name or entity_id)
        return assigned

    def remove_assignment(self, entity_id: str, entity_name: str = "") -> bool:
        removed = self._documents.apply(lambda doc: doc.mappings.pop(entity_id, None) is not None)
        if removed:
            self._notifications.action_result("Profile removed", True, entity_name or entity_id)
        return removed

    def add_profile(self, profile: Profile) -> Profile:
        self._documents.apply(lambda doc: doc.profiles.append(profile))
        return profile

    def export_all(self, file_path: Path) -> bool:
        document = self._documents.snapshot()
        return export_profiles(document.profiles, document.action_library, file_path)

    def import_bundle(self, file_path: Path) -> Optional[ExportBundle]:
        bundle = import_from_file(file_path)
        if bundle is None:
            self._notifications.error("Import failed", str(file_path))
            return None

        def _merge(doc: Document) -> None:
            doc.profiles.extend(bundle.profiles)
            doc.action_library.extend(bundle.actions)

        self._documents.apply(_merge)
        return bundle

    def dry_run_profile(self, profile_id: str) -> List[PhaseReport]:
        """Walk every phase of a profile without executing anything."""
        profile = self._documents.snapshot().find_profile(profile_id)
        if profile is None:
            return []
        tracker = MirrorTracker(self._ctx.processes.is_running)
        reports = [self._engine.run(profile, phase, tracker, dry_run=True) for phase in ExecutionPhase]
        self._flush()
        return reports

    # Internals

    def _session(self, entity_id: str) -> MirrorTracker:
        with self._sessions_lock:
            tracker = self._sessions.get(entity_id)
            if tracker is None:
                # started before this manager existed; nothing was observed
                tracker = MirrorTracker(self._ctx.processes.is_running)
                self._sessions[entity_id] = tracker
            return tracker

    def _execute(
        self,
        entity_id: str,
        entity_name: str,
        phase: ExecutionPhase,
        tracker: MirrorTracker,
    ) -> Optional[PhaseReport]:
        document = self._documents.snapshot()
        profile = resolve_profile(document, entity_id)
        if profile is None:
            if has_dangling_mapping(document, entity_id):
                self._notifications.error("Profile not found", f"for {entity_name or entity_id}")
            return None

        actions = actions_for_phase(profile, phase)
        pending_restores = phase == ExecutionPhase.AFTER_STOP and len(tracker) > 0
        if not actions and not pending_restores:
            if phase == ExecutionPhase.BEFORE_START:
                tracker.clear()
            return None

        dry_run = document.settings.enable_dry_run
        logger.info("Running %s of profile '%s' for %s", phase.value, profile.name, entity_name or entity_id)
        self._notifications.profile_started(profile.name, entity_name or entity_id, len(actions))
        report = self._engine.run(profile, phase, tracker, dry_run=dry_run)
        self._statistics.record_profile(profile, report.elapsed_seconds)
        self._notifications.profile_completed(
            profile.name, report.success_count, report.failure_count, report.elapsed_seconds
        )
        self._flush()
        return report

    def _flush(self) -> None:
        entries = self._action_log.entries()
        action_stats = self._statistics.action_statistics()
        profile_stats = self._statistics.profile_statistics()

        def _store(doc: Document) -> None:
            doc.action_log = entries
            doc.action_statistics = action_stats
            doc.profile_statistics = profile_stats

        self._documents.apply(_store)
