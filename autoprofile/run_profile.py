"""
Small CLI to run one lifecycle phase for an entity without a host application.

Usage:
    autoprofile-run data.json <entity-id> before_start|after_start|after_stop [--dry-run] [--verbose]
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import List, Optional

from .automation.mirror import MirrorTracker
from .logging_setup import configure_logging
from .manager import AutomationProfileManager
from .models import ExecutionPhase
from .resolver import resolve_profile

USAGE = "Usage: autoprofile-run <data.json> <entity-id> <phase> [--dry-run] [--verbose]"


def main(argv: Optional[List[str]] = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    flags = {a for a in args if a.startswith("--")}
    positional = [a for a in args if not a.startswith("--")]
    if len(positional) != 3:
        print(USAGE)
        return 2

    data_path, entity_id, phase_name = positional
    path = Path(data_path)
    if not path.exists():
        print(f"File not found: {path}")
        return 2
    try:
        phase = ExecutionPhase(phase_name.lower())
    except ValueError:
        print(f"Unknown phase: {phase_name} (use one of: {', '.join(p.value for p in ExecutionPhase)})")
        return 2

    configure_logging(logging.DEBUG if "--verbose" in flags else logging.INFO)
    manager = AutomationProfileManager(data_path=path)
    manager.engine.on_log(lambda m: print(m))

    profile = resolve_profile(manager.snapshot(), entity_id)
    if profile is None:
        print(f"No profile assigned to {entity_id}")
        return 1

    # a single CLI call has no earlier phase to observe mirror state from
    tracker = MirrorTracker(manager.engine.context.processes.is_running)
    report = manager.engine.run(profile, phase, tracker, dry_run="--dry-run" in flags)
    manager.on_application_stopped()
    print(f"DONE: {report.success_count} OK, {report.failure_count} failed, {report.skipped_count} skipped")
    return 0 if report.failure_count == 0 else 1


if __name__ == "__main__":
    raise SystemExit(main())
