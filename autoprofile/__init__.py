"""
autoprofile: run automation profiles around an application's lifecycle.

A profile is an ordered list of system actions (launch/close programs,
scripts, waits, volume and resolution changes) that runs before an entity
starts, after it starts and after it stops.
"""

from .manager import AutomationProfileManager
from .models import (
    Action,
    ActionCondition,
    ActionKind,
    ConditionKind,
    Document,
    ExecutionPhase,
    Profile,
    Settings,
)

__all__ = [
    "Action",
    "ActionCondition",
    "ActionKind",
    "AutomationProfileManager",
    "ConditionKind",
    "Document",
    "ExecutionPhase",
    "Profile",
    "Settings",
]
