"""
Mirror tracking.

A mirror action's effect is undone at the opposite lifecycle boundary, but
only when the engine itself caused it. The tracker remembers, per action,
whether the target was already in the "closed" state before the engine
touched it.
"""

from __future__ import annotations

import threading
from typing import Callable, Dict

from ..models import Action, ActionKind, ExecutionPhase


def is_tracked(action: Action) -> bool:
    return action.mirror and action.kind == ActionKind.TERMINATE_PROCESS


class MirrorTracker:
    """
    Tracking state for one entity session.

    The owner creates one tracker per active session; state is never shared
    between entities.
    """

    def __init__(self, is_running: Callable[[str], bool]) -> None:
        self._is_running = is_running
        self._already_closed: Dict[str, bool] = {}
        self._lock = threading.Lock()

    def observe_before(self, action: Action) -> None:
        """Record whether the action's target is already closed. Call before dispatching it."""
        if not is_tracked(action):
            return
        already_closed = not self._is_running(action.path)
        with self._lock:
            self._already_closed[action.id] = already_closed

    def should_restore(self, action: Action) -> bool:
        if not is_tracked(action):
            return False
        with self._lock:
            if action.id not in self._already_closed:
                return False
            return not self._already_closed[action.id]

    def observed(self, action_id: str) -> bool:
        with self._lock:
            return action_id in self._already_closed

    def clear(self) -> None:
        with self._lock:
            self._already_closed.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._already_closed)


def restore_action_for(action: Action) -> Action:
    """Build the launch action that reverses a close-type mirror action."""
    return Action(
        name=f"Restore: {action.name}",
        kind=ActionKind.LAUNCH_PROCESS,
        path=action.path,
        arguments=action.arguments,
        phase=ExecutionPhase.AFTER_STOP,
        category=action.category,
    )
