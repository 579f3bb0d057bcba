"""
Condition evaluation.

Conditions are advisory: any error while evaluating one is logged and the
condition counts as satisfied.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, time
from typing import Callable, Optional

from ..models import ActionCondition, ConditionKind

logger = logging.getLogger(__name__)


def evaluate_condition(
    condition: Optional[ActionCondition],
    is_running: Callable[[str], bool],
    now: Optional[Callable[[], datetime]] = None,
) -> bool:
    """
    Return True when the action guarded by ``condition`` may run.

    Args:
        condition: The guard, or None for "always"
        is_running: Process lookup taking a process name or path
        now: Clock override for time ranges
    """
    if condition is None or condition.kind == ConditionKind.NONE:
        return True

    try:
        if condition.kind == ConditionKind.PROCESS_RUNNING:
            return _process_running(condition.value, is_running)
        if condition.kind == ConditionKind.PROCESS_NOT_RUNNING:
            return not _process_running(condition.value, is_running)
        if condition.kind == ConditionKind.FILE_EXISTS:
            return _path_exists(condition.value)
        if condition.kind == ConditionKind.FILE_NOT_EXISTS:
            return not _path_exists(condition.value)
        if condition.kind == ConditionKind.TIME_RANGE:
            current = (now or datetime.now)().time()
            return within_time_range(condition.time_start, condition.time_end, current)
    except Exception as e:
        logger.warning("Failed to evaluate condition %s, allowing action: %s", condition.kind.value, e)
        return True
    return True


def within_time_range(start_text: str, end_text: str, current: time) -> bool:
    """Inclusive time-of-day check; ``start > end`` wraps past midnight."""
    if not (start_text or "").strip() or not (end_text or "").strip():
        return True
    try:
        start = parse_time_of_day(start_text)
        end = parse_time_of_day(end_text)
    except ValueError as e:
        logger.warning("Failed to parse time range %r - %r: %s", start_text, end_text, e)
        return True

    if start <= end:
        inside = start <= current <= end
    else:
        inside = current >= start or current <= end
    logger.info("Condition check: time %s within %s-%s = %s", current.strftime("%H:%M"), start_text, end_text, inside)
    return inside


def parse_time_of_day(text: str) -> time:
    """Accepts ``HH:MM`` or ``HH:MM:SS``."""
    parts = text.strip().split(":")
    if len(parts) not in (2, 3):
        raise ValueError(f"invalid time of day: {text!r}")
    numbers = [int(p) for p in parts]
    return time(*numbers)


def _process_running(name: str, is_running: Callable[[str], bool]) -> bool:
    if not (name or "").strip():
        return False
    running = is_running(name)
    logger.info("Condition check: process '%s' running = %s", name, running)
    return running


def _path_exists(path: str) -> bool:
    if not (path or "").strip():
        return False
    expanded = os.path.expandvars(os.path.expanduser(path))
    exists = os.path.exists(expanded)
    logger.info("Condition check: file/directory '%s' exists = %s", expanded, exists)
    return exists
