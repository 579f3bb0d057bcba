"""
Automation package: the action-execution engine.

Key parts
---------
- actions:    RunContext, ActionResult and one executor per action kind
- conditions: guards evaluated before each action (fail-open)
- mirror:     per-session tracking of close-type mirror actions
- display:    resolution snapshot/change/restore with a fallback ladder
- audio:      master volume snapshot/restore and per-app mute
- processes:  psutil-backed process lookup and termination
- shell:      script and command invocations, captured runs
- engine:     runs the actions of one lifecycle phase in priority order
"""

from .actions import ActionResult, RunContext, dispatch
from .engine import AutomationEngine, PhaseReport
from .mirror import MirrorTracker

__all__ = ["ActionResult", "AutomationEngine", "MirrorTracker", "PhaseReport", "RunContext", "dispatch"]
