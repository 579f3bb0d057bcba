"""
Automation engine: runs one lifecycle phase of a profile.

Actions of the phase run strictly one after another in priority order.
Failures never stop the run; the caller gets a PhaseReport with one result
per eligible action plus any synthesized restore actions.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from ..action_log import ActionLog
from ..models import Action, ActionKind, ExecutionPhase, Profile
from ..statistics import StatisticsService
from .actions import ActionExecutor, ActionResult, RunContext, dispatch
from .conditions import evaluate_condition
from .mirror import MirrorTracker, restore_action_for

logger = logging.getLogger(__name__)


@dataclass
class ExecutedAction:
    action: Action
    result: ActionResult
    restore: bool = False


@dataclass
class PhaseReport:
    phase: ExecutionPhase
    profile_name: str = ""
    dry_run: bool = False
    executed: List[ExecutedAction] = field(default_factory=list)
    elapsed_seconds: float = 0.0
    cancelled: bool = False

    @property
    def dispatched_ids(self) -> List[str]:
        return [e.action.id for e in self.executed if not e.result.skipped]

    @property
    def success_count(self) -> int:
        return sum(1 for e in self.executed if e.result.success and not e.result.skipped)

    @property
    def failure_count(self) -> int:
        return sum(1 for e in self.executed if not e.result.success)

    @property
    def skipped_count(self) -> int:
        return sum(1 for e in self.executed if e.result.skipped and e.result.success)


def actions_for_phase(profile: Profile, phase: ExecutionPhase) -> List[Action]:
    """Actions of ``phase`` by ascending priority; ``sorted`` keeps ties in list order."""
    return sorted((a for a in profile.actions if a.phase == phase), key=lambda a: a.priority)


class AutomationEngine:
    def __init__(
        self,
        ctx: Optional[RunContext] = None,
        action_log: Optional[ActionLog] = None,
        statistics: Optional[StatisticsService] = None,
        executors: Optional[Dict[ActionKind, ActionExecutor]] = None,
    ):
        self._ctx = ctx or RunContext()
        self._action_log = action_log
        self._statistics = statistics
        self._executors = executors
        self._thread: Optional[threading.Thread] = None
        self._on_log: Optional[Callable[[str], None]] = None
        self._on_done: Optional[Callable[[PhaseReport], None]] = None

    @property
    def context(self) -> RunContext:
        return self._ctx

    def on_log(self, cb: Callable[[str], None]) -> None:
        self._on_log = cb

    def on_done(self, cb: Callable[[PhaseReport], None]) -> None:
        self._on_done = cb

    def start(
        self,
        profile: Optional[Profile],
        phase: ExecutionPhase,
        tracker: MirrorTracker,
        dry_run: bool = False,
    ) -> bool:
        """Run the phase on a worker thread; False if a run is already in progress."""
        if self._thread and self._thread.is_alive():
            return False
        self._ctx.cancel_event.clear()
        self._thread = threading.Thread(
            target=self._worker, args=(profile, phase, tracker, dry_run), daemon=True
        )
        self._thread.start()
        return True

    def cancel(self) -> None:
        self._ctx.cancel_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=2.0)

    def is_running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread:
            self._thread.join(timeout)

    def run(
        self,
        profile: Optional[Profile],
        phase: ExecutionPhase,
        tracker: MirrorTracker,
        dry_run: bool = False,
    ) -> PhaseReport:
        """
        Run every eligible action of ``phase`` in ``profile``.

        Args:
            profile: Profile to run; None means nothing to do
            phase: Lifecycle phase being entered
            tracker: Mirror tracking state of the current entity session
            dry_run: Log what would run without evaluating or executing anything
        """
        report = PhaseReport(phase=phase, profile_name=profile.name if profile else "", dry_run=dry_run)
        if phase == ExecutionPhase.BEFORE_START:
            tracker.clear()
        if profile is None:
            return report

        started = time.perf_counter()
        actions = actions_for_phase(profile, phase)
        results: Dict[str, ActionResult] = {}

        for index, action in enumerate(actions):
            if self._ctx.cancelled:
                report.cancelled = True
                self._log("Aborted")
                break
            self._log(f"[{index + 1}/{len(actions)}] {action.name} ({action.kind.value})")
            result = self._run_action(action, phase, tracker, results, dry_run)
            results[action.id] = result
            report.executed.append(ExecutedAction(action, result))

            if phase == ExecutionPhase.AFTER_STOP and action.mirror and not dry_run:
                self._restore_if_needed(action, tracker, report)

        if phase == ExecutionPhase.AFTER_STOP and not dry_run and not report.cancelled:
            # close-type mirrors live in the start phase; undo them now
            for action in actions_for_phase(profile, ExecutionPhase.BEFORE_START):
                if action.mirror:
                    self._restore_if_needed(action, tracker, report)

        report.elapsed_seconds = time.perf_counter() - started
        return report

    def _run_action(
        self,
        action: Action,
        phase: ExecutionPhase,
        tracker: MirrorTracker,
        results: Dict[str, ActionResult],
        dry_run: bool,
    ) -> ActionResult:
        if dry_run:
            result = ActionResult(
                True, 0, f"Would execute: {action.kind.value} - {action.path} {action.arguments}".rstrip()
            )
            self._record(action, result, dry_run=True)
            return result

        if action.requires_previous_success and action.depends_on:
            dependency = results.get(action.depends_on)
            if dependency is not None and not dependency.success:
                result = ActionResult(False, 0, "Skipped: dependency action failed", skipped=True)
                self._record(action, result)
                return result

        if not evaluate_condition(action.condition, self._ctx.processes.is_running):
            kind = action.condition.kind.value if action.condition else "none"
            logger.info("Action '%s' skipped due to condition: %s", action.name, kind)
            result = ActionResult(True, 0, f"Skipped: condition not met ({kind})", skipped=True)
            self._record(action, result)
            return result

        if phase == ExecutionPhase.BEFORE_START and action.mirror:
            tracker.observe_before(action)

        logger.info("Executing action: %s (Type: %s, Phase: %s)", action.name, action.kind.value, phase.value)
        result = dispatch(action, self._ctx, self._executors)
        self._record(action, result)
        if self._statistics is not None:
            self._statistics.record_action(action, result.success, result.elapsed_ms)
        return result

    def _restore_if_needed(self, action: Action, tracker: MirrorTracker, report: PhaseReport) -> None:
        if not tracker.should_restore(action):
            return
        restore = restore_action_for(action)
        self._log(f"restore: {restore.name}")
        result = dispatch(restore, self._ctx, self._executors)
        if not result.success:
            logger.warning("Restore action '%s' failed: %s", restore.name, result.message)
        self._record(restore, result)
        report.executed.append(ExecutedAction(restore, result, restore=True))

    def _record(self, action: Action, result: ActionResult, dry_run: bool = False) -> None:
        self._log(f"{'OK' if result.success else 'FAILED'}: {action.name} - {result.message}")
        if self._action_log is not None:
            self._action_log.log(action, result.success, result.exit_code, result.message, dry_run)

    def _log(self, msg: str) -> None:
        if self._on_log:
            try:
                self._on_log(msg)
            except Exception:
                pass

    def _worker(self, profile: Optional[Profile], phase: ExecutionPhase, tracker: MirrorTracker, dry_run: bool) -> None:
        try:
            report = self.run(profile, phase, tracker, dry_run)
        except Exception as e:  # pragma: no cover - runtime path
            logger.exception("Phase %s aborted: %s", phase.value, e)
            report = PhaseReport(phase=phase, profile_name=profile.name if profile else "", cancelled=True)
        self._finish(report)

    def _finish(self, report: PhaseReport) -> None:
        if self._on_done:
            try:
                self._on_done(report)
            except Exception:
                pass
