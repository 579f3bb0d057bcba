"""
Action executors: one small strategy per action kind.

Every ActionKind has exactly one executor in EXECUTORS; a missing or
duplicate handler fails at import time. Executors return an ActionResult and
own the retry/fallback policy for their kind. ``dispatch`` turns any
exception that escapes an executor into a failed result.
"""

from __future__ import annotations

import logging
import os
import subprocess
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional

from ..models import RESTORE_SENTINEL, Action, ActionKind
from .audio import AudioController
from .display import COMMON_FALLBACK_MODE, ResolutionController, parse_resolution
from .processes import ProcessTable, PsutilProcessTable, bare_process_name
from .shell import (
    IS_WINDOWS,
    expand_path,
    is_script_file,
    run_captured,
    script_invocation,
    split_arguments,
    system_command_invocation,
)

logger = logging.getLogger(__name__)


class ActionError(Exception):
    pass


@dataclass
class ActionResult:
    success: bool
    exit_code: int = 0
    message: str = ""
    output: str = ""
    skipped: bool = False
    timed_out: bool = False
    elapsed_ms: float = 0.0
    action_id: str = ""


class RunContext:
    """Collaborators handed to executors at runtime."""

    def __init__(
        self,
        processes: Optional[ProcessTable] = None,
        display: Optional[ResolutionController] = None,
        audio: Optional[AudioController] = None,
        logger: Optional[Callable[[str], None]] = None,
        sleep_hook: Optional[Callable[[float], None]] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.processes = processes or PsutilProcessTable()
        self._display = display
        self._audio = audio
        self._logger = logger
        self._sleep = sleep_hook
        self.cancel_event = cancel_event or threading.Event()

    @property
    def display(self) -> ResolutionController:
        # created on first use: the platform backend may be unavailable
        if self._display is None:
            self._display = ResolutionController()
        return self._display

    @property
    def audio(self) -> AudioController:
        if self._audio is None:
            self._audio = AudioController()
        return self._audio

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def log(self, msg: str) -> None:
        if self._logger:
            try:
                self._logger(msg)
            except Exception:
                pass

    def sleep(self, seconds: float) -> bool:
        """Sleep, returning True if the run was cancelled meanwhile."""
        if self._sleep:
            self._sleep(seconds)
            return self.cancelled
        return self.cancel_event.wait(max(seconds, 0.0))


class ActionExecutor:
    """Common interface for all executors."""

    kind: ActionKind

    def execute(self, action: Action, ctx: RunContext) -> ActionResult:  # pragma: no cover - interface
        raise NotImplementedError


class LaunchProcessExecutor(ActionExecutor):
    kind = ActionKind.LAUNCH_PROCESS

    def execute(self, action: Action, ctx: RunContext) -> ActionResult:
        path = expand_path(action.path)
        if not path:
            raise ActionError("launch_process: 'path' is required")
        args = split_arguments(action.arguments)
        try:
            subprocess.Popen([path, *args])
        except OSError as e:
            if not IS_WINDOWS:
                return ActionResult(False, -1, f"Failed to start process '{path}': {e}")
            # documents, shortcuts and URLs go through the shell association
            try:
                os.startfile(path, arguments=action.arguments)  # type: ignore[attr-defined]
            except OSError as shell_error:
                return ActionResult(False, -1, f"Failed to start process '{path}': {shell_error}")
        logger.info("Started application: %s", path)
        return ActionResult(True, 0, f"Started: {action.path}")


class TerminateProcessExecutor(ActionExecutor):
    kind = ActionKind.TERMINATE_PROCESS

    def execute(self, action: Action, ctx: RunContext) -> ActionResult:
        name = bare_process_name(action.path)
        if not name:
            raise ActionError("terminate_process: 'path' is required")
        report = ctx.processes.terminate_all(action.path)
        if report.matched == 0:
            logger.info("Process not running: %s", name)
            return ActionResult(True, 0, f"Process not running: {name}")
        return ActionResult(True, 0, f"Closed {report.terminated} of {report.matched} instance(s) of {name}")


class RunScriptExecutor(ActionExecutor):
    kind = ActionKind.RUN_SCRIPT

    def execute(self, action: Action, ctx: RunContext) -> ActionResult:
        if not (action.path or "").strip():
            raise ActionError("run_script: 'path' is required")
        what = "script" if is_script_file(action.path) else "command"
        argv = script_invocation(action.path, action.arguments)
        run = run_captured(argv, timeout=_timeout_of(action))
        if run.timed_out:
            return ActionResult(False, -1, f"Script {what} timed out after {action.timeout_seconds}s",
                                output=run.output, timed_out=True)
        logger.info("Executed %s: %s", what, action.path)
        return ActionResult(
            run.exit_code == 0,
            run.exit_code,
            f"Script {what} completed with exit code {run.exit_code}",
            output=run.output,
        )


class RunSystemCommandExecutor(ActionExecutor):
    kind = ActionKind.RUN_SYSTEM_COMMAND

    def execute(self, action: Action, ctx: RunContext) -> ActionResult:
        if not (action.path or "").strip():
            raise ActionError("run_system_command: 'path' is required")
        run = run_captured(system_command_invocation(action.path, action.arguments), timeout=_timeout_of(action))
        if run.timed_out:
            return ActionResult(False, -1, f"Command timed out after {action.timeout_seconds}s",
                                output=run.output, timed_out=True)
        logger.info("Executed system command: %s", action.path)
        return ActionResult(
            run.exit_code == 0,
            run.exit_code,
            f"Command completed with exit code {run.exit_code}",
            output=run.output,
        )


class WaitExecutor(ActionExecutor):
    kind = ActionKind.WAIT

    def execute(self, action: Action, ctx: RunContext) -> ActionResult:
        seconds = max(1, int(action.wait_seconds or 0))
        ctx.log(f"wait: {seconds}s")
        if ctx.sleep(seconds):
            return ActionResult(False, -1, f"Wait cancelled ({seconds} seconds requested)")
        return ActionResult(True, 0, f"Waited {seconds} seconds")


class SetVolumeExecutor(ActionExecutor):
    kind = ActionKind.SET_VOLUME

    def execute(self, action: Action, ctx: RunContext) -> ActionResult:
        value = (action.path or "").strip()
        if value.upper() == RESTORE_SENTINEL:
            restored = ctx.audio.restore()
            return ActionResult(restored, 0 if restored else 1,
                                "Restored original volume" if restored else "Failed to restore original volume")
        try:
            requested = int(value)
        except ValueError:
            return ActionResult(False, 1, f"Invalid volume value: {value}. Use a number 0-100 or '{RESTORE_SENTINEL}'.")
        target = max(0, min(100, requested))
        changed = ctx.audio.set_volume(target)
        return ActionResult(changed, 0 if changed else 1,
                            f"Set master volume to {target}%" if changed else "Failed to set master volume")


class MuteAppExecutor(ActionExecutor):
    kind = ActionKind.MUTE_APP
    mute = True

    def execute(self, action: Action, ctx: RunContext) -> ActionResult:
        verb = "Muted" if self.mute else "Unmuted"
        if not bare_process_name(action.path):
            raise ActionError(f"{self.kind.value}: 'path' is required")
        done = ctx.audio.set_mute(action.path, self.mute)
        if done:
            return ActionResult(True, 0, f"{verb} process: {action.path}")
        return ActionResult(False, 1, f"Failed to {verb[:-1].lower()} process: {action.path}")


class UnmuteAppExecutor(MuteAppExecutor):
    kind = ActionKind.UNMUTE_APP
    mute = False


class ChangeResolutionExecutor(ActionExecutor):
    kind = ActionKind.CHANGE_RESOLUTION

    def execute(self, action: Action, ctx: RunContext) -> ActionResult:
        value = (action.path or "").strip()
        if value.upper() == RESTORE_SENTINEL:
            restored = ctx.display.restore()
            if restored:
                return ActionResult(True, 0, "Restored original resolution")
            return ActionResult(False, 1, "Failed to restore original resolution (fallback may have been used)")

        try:
            mode = parse_resolution(value)
        except ValueError as e:
            logger.warning("%s, using %s", e, COMMON_FALLBACK_MODE)
            mode = COMMON_FALLBACK_MODE
        changed = ctx.display.change(mode)
        if changed:
            return ActionResult(True, 0, f"Changed resolution to {mode} or a fallback mode")
        return ActionResult(False, 1, f"Failed to change resolution to {mode}")


def _timeout_of(action: Action) -> Optional[float]:
    return float(action.timeout_seconds) if action.timeout_seconds and action.timeout_seconds > 0 else None


def build_registry(executors: Iterable[ActionExecutor]) -> Dict[ActionKind, ActionExecutor]:
    """Map every ActionKind to exactly one executor."""
    registry: Dict[ActionKind, ActionExecutor] = {}
    for executor in executors:
        if executor.kind in registry:
            raise ValueError(f"Duplicate executor for {executor.kind.value}")
        registry[executor.kind] = executor
    missing = [k.value for k in ActionKind if k not in registry]
    if missing:
        raise ValueError(f"No executor for action kind(s): {', '.join(missing)}")
    return registry


EXECUTORS: Dict[ActionKind, ActionExecutor] = build_registry([
    LaunchProcessExecutor(),
    TerminateProcessExecutor(),
    RunScriptExecutor(),
    RunSystemCommandExecutor(),
    WaitExecutor(),
    SetVolumeExecutor(),
    MuteAppExecutor(),
    UnmuteAppExecutor(),
    ChangeResolutionExecutor(),
])


def dispatch(
    action: Action,
    ctx: RunContext,
    executors: Optional[Dict[ActionKind, ActionExecutor]] = None,
) -> ActionResult:
    """Run ``action`` through its executor; never raises for action-level failures."""
    registry = executors if executors is not None else EXECUTORS
    started = time.perf_counter()
    try:
        result = registry[action.kind].execute(action, ctx)
    except Exception as e:
        logger.error("Failed to execute action '%s': %s", action.name, e)
        result = ActionResult(False, -1, str(e))
    result.elapsed_ms = (time.perf_counter() - started) * 1000.0
    result.action_id = action.id
    return result
