"""
Domain models for autoprofile.

Everything here round-trips through plain dictionaries so the whole data
document can be stored as JSON. Fields added after the first release must
default safely when they are missing from older files.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


logger = logging.getLogger(__name__)

RESTORE_SENTINEL = "RESTORE"


def new_id() -> str:
    """Returns a fresh identifier for actions and profiles."""
    return str(uuid.uuid4())


class ActionKind(Enum):
    """Enumeration of supported action kinds."""
    LAUNCH_PROCESS = "launch_process"
    TERMINATE_PROCESS = "terminate_process"
    RUN_SCRIPT = "run_script"
    RUN_SYSTEM_COMMAND = "run_system_command"
    WAIT = "wait"
    SET_VOLUME = "set_volume"
    MUTE_APP = "mute_app"
    UNMUTE_APP = "unmute_app"
    CHANGE_RESOLUTION = "change_resolution"


class ExecutionPhase(Enum):
    """The three lifecycle moments automation can run at."""
    BEFORE_START = "before_start"
    AFTER_START = "after_start"
    AFTER_STOP = "after_stop"


class ConditionKind(Enum):
    NONE = "none"
    PROCESS_RUNNING = "process_running"
    PROCESS_NOT_RUNNING = "process_not_running"
    FILE_EXISTS = "file_exists"
    FILE_NOT_EXISTS = "file_not_exists"
    TIME_RANGE = "time_range"


@dataclass
class ActionCondition:
    """A guard that must evaluate true for an action to run."""
    kind: ConditionKind = ConditionKind.NONE
    value: str = ""
    time_start: str = ""
    time_end: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "value": self.value,
            "time_start": self.time_start,
            "time_end": self.time_end,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "ActionCondition":
        return ActionCondition(
            kind=ConditionKind(str(data.get("kind", ConditionKind.NONE.value) or ConditionKind.NONE.value)),
            value=str(data.get("value", "") or ""),
            time_start=str(data.get("time_start", "") or ""),
            time_end=str(data.get("time_end", "") or ""),
        )


@dataclass
class Action:
    """
    One system-level step of an automation profile.

    ``priority`` orders actions inside a phase (ascending); equal priorities
    keep their list order. ``mirror`` asks the engine to undo the action's
    effect at the opposite lifecycle boundary, but only if the engine caused it.
    """
    name: str
    kind: ActionKind
    path: str = ""
    arguments: str = ""
    phase: ExecutionPhase = ExecutionPhase.BEFORE_START
    mirror: bool = False
    priority: int = 0
    wait_seconds: int = 0
    condition: Optional[ActionCondition] = None
    category: str = "General"
    timeout_seconds: int = 0  # 0 disables the timeout
    depends_on: Optional[str] = None
    requires_previous_success: bool = False
    id: str = field(default_factory=new_id)

    def copy(self, keep_id: bool = False) -> "Action":
        """Returns a detached copy, with a new id unless ``keep_id`` is set."""
        clone = Action.from_dict(self.to_dict())
        if not keep_id:
            clone.id = new_id()
        return clone

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "kind": self.kind.value,
            "path": self.path,
            "arguments": self.arguments,
            "phase": self.phase.value,
            "mirror": self.mirror,
            "priority": self.priority,
            "wait_seconds": self.wait_seconds,
            "condition": self.condition.to_dict() if self.condition else None,
            "category": self.category,
            "timeout_seconds": self.timeout_seconds,
            "depends_on": self.depends_on,
            "requires_previous_success": self.requires_previous_success,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Action":
        condition_raw = data.get("condition")
        depends_raw = data.get("depends_on")
        return Action(
            id=str(data.get("id") or new_id()),
            name=str(data.get("name", "") or ""),
            kind=ActionKind(str(data.get("kind"))),
            path=str(data.get("path", "") or ""),
            arguments=str(data.get("arguments", "") or ""),
            phase=ExecutionPhase(str(data.get("phase", ExecutionPhase.BEFORE_START.value))),
            mirror=bool(data.get("mirror", False)),
            priority=int(data.get("priority", 0) or 0),
            wait_seconds=int(data.get("wait_seconds", 0) or 0),
            condition=ActionCondition.from_dict(condition_raw) if isinstance(condition_raw, dict) else None,
            category=str(data.get("category", "General") or "General"),
            timeout_seconds=int(data.get("timeout_seconds", 0) or 0),
            depends_on=str(depends_raw) if depends_raw not in (None, "") else None,
            requires_previous_success=bool(data.get("requires_previous_success", False)),
        )


@dataclass
class Profile:
    """Named, ordered list of actions assignable to an entity."""
    name: str
    actions: List[Action] = field(default_factory=list)
    id: str = field(default_factory=new_id)

    def attach(self, action: Action) -> Action:
        """Attach a copy of a library action; the profile owns the copy."""
        owned = action.copy()
        self.actions.append(owned)
        return owned

    def renumber_priorities(self, step: int = 10) -> None:
        """Rewrite priorities per phase as 0, step, 2*step... in current order."""
        for phase in ExecutionPhase:
            ordered = sorted(
                (a for a in self.actions if a.phase == phase),
                key=lambda a: a.priority,
            )
            for index, action in enumerate(ordered):
                action.priority = index * step

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "actions": [a.to_dict() for a in self.actions],
        }

    @staticmethod
    def from_dict(data: Dict[str, Any], dropped: Optional[List[str]] = None) -> "Profile":
        return Profile(
            id=str(data.get("id") or new_id()),
            name=str(data.get("name", "") or ""),
            actions=_parse_actions(data.get("actions"), dropped),
        )


@dataclass
class Settings:
    """User preferences stored alongside profiles."""
    show_notifications: bool = True
    log_actions_to_file: bool = False
    action_log_file: str = ""
    max_log_entries: int = 100
    enable_dry_run: bool = False
    auto_backup_enabled: bool = False
    backup_interval_days: int = 7
    max_backup_count: int = 5
    last_backup_date: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "show_notifications": self.show_notifications,
            "log_actions_to_file": self.log_actions_to_file,
            "action_log_file": self.action_log_file,
            "max_log_entries": self.max_log_entries,
            "enable_dry_run": self.enable_dry_run,
            "auto_backup_enabled": self.auto_backup_enabled,
            "backup_interval_days": self.backup_interval_days,
            "max_backup_count": self.max_backup_count,
            "last_backup_date": self.last_backup_date.isoformat() if self.last_backup_date else None,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Settings":
        last_backup_raw = data.get("last_backup_date")
        return Settings(
            show_notifications=bool(data.get("show_notifications", True)),
            log_actions_to_file=bool(data.get("log_actions_to_file", False)),
            action_log_file=str(data.get("action_log_file", "") or ""),
            max_log_entries=max(1, int(data.get("max_log_entries", 100) or 100)),
            enable_dry_run=bool(data.get("enable_dry_run", False)),
            auto_backup_enabled=bool(data.get("auto_backup_enabled", False)),
            backup_interval_days=int(data.get("backup_interval_days", 7) or 7),
            max_backup_count=max(1, int(data.get("max_backup_count", 5) or 5)),
            last_backup_date=datetime.fromisoformat(last_backup_raw) if last_backup_raw else None,
        )


@dataclass
class ActionLogEntry:
    """Structured record of one action execution."""
    action_id: str
    action_name: str
    timestamp: datetime
    success: bool
    exit_code: int = 0
    message: str = ""
    dry_run: bool = False

    def __str__(self) -> str:
        time_str = self.timestamp.strftime("%Y-%m-%d %H:%M:%S")
        status = "OK" if self.success else "FAILED"
        prefix = "[DRY-RUN] " if self.dry_run else ""
        return f"[{time_str}] {prefix}{status} {self.action_name} (exit {self.exit_code}): {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action_id": self.action_id,
            "action_name": self.action_name,
            "timestamp": self.timestamp.isoformat(),
            "success": self.success,
            "exit_code": self.exit_code,
            "message": self.message,
            "dry_run": self.dry_run,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "ActionLogEntry":
        timestamp_raw = data.get("timestamp")
        return ActionLogEntry(
            action_id=str(data.get("action_id", "") or ""),
            action_name=str(data.get("action_name", "") or ""),
            timestamp=datetime.fromisoformat(timestamp_raw) if timestamp_raw else datetime.now(),
            success=bool(data.get("success", False)),
            exit_code=int(data.get("exit_code", 0) or 0),
            message=str(data.get("message", "") or ""),
            dry_run=bool(data.get("dry_run", False)),
        )


@dataclass
class ActionStatistics:
    action_id: str
    action_name: str
    execution_count: int = 0
    success_count: int = 0
    failure_count: int = 0
    total_execution_ms: float = 0.0
    first_execution: Optional[datetime] = None
    last_execution: Optional[datetime] = None

    @property
    def average_execution_ms(self) -> float:
        return self.total_execution_ms / self.execution_count if self.execution_count else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action_id": self.action_id,
            "action_name": self.action_name,
            "execution_count": self.execution_count,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "total_execution_ms": self.total_execution_ms,
            "first_execution": _iso_or_none(self.first_execution),
            "last_execution": _iso_or_none(self.last_execution),
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "ActionStatistics":
        return ActionStatistics(
            action_id=str(data.get("action_id", "") or ""),
            action_name=str(data.get("action_name", "") or ""),
            execution_count=int(data.get("execution_count", 0) or 0),
            success_count=int(data.get("success_count", 0) or 0),
            failure_count=int(data.get("failure_count", 0) or 0),
            total_execution_ms=float(data.get("total_execution_ms", 0.0) or 0.0),
            first_execution=_datetime_or_none(data.get("first_execution")),
            last_execution=_datetime_or_none(data.get("last_execution")),
        )


@dataclass
class ProfileStatistics:
    profile_id: str
    profile_name: str
    execution_count: int = 0
    total_elapsed_seconds: float = 0.0
    last_used: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "profile_id": self.profile_id,
            "profile_name": self.profile_name,
            "execution_count": self.execution_count,
            "total_elapsed_seconds": self.total_elapsed_seconds,
            "last_used": _iso_or_none(self.last_used),
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "ProfileStatistics":
        return ProfileStatistics(
            profile_id=str(data.get("profile_id", "") or ""),
            profile_name=str(data.get("profile_name", "") or ""),
            execution_count=int(data.get("execution_count", 0) or 0),
            total_elapsed_seconds=float(data.get("total_elapsed_seconds", 0.0) or 0.0),
            last_used=_datetime_or_none(data.get("last_used")),
        )


@dataclass
class Document:
    """The whole persisted data file."""
    action_library: List[Action] = field(default_factory=list)
    profiles: List[Profile] = field(default_factory=list)
    mappings: Dict[str, str] = field(default_factory=dict)  # entity id -> profile id
    settings: Settings = field(default_factory=Settings)
    action_log: List[ActionLogEntry] = field(default_factory=list)
    action_statistics: List[ActionStatistics] = field(default_factory=list)
    profile_statistics: List[ProfileStatistics] = field(default_factory=list)
    # Entries skipped while loading; never saved.
    load_warnings: List[str] = field(default_factory=list, compare=False, repr=False)

    def find_profile(self, profile_id: str) -> Optional[Profile]:
        for profile in self.profiles:
            if profile.id == profile_id:
                return profile
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action_library": [a.to_dict() for a in self.action_library],
            "profiles": [p.to_dict() for p in self.profiles],
            "mappings": dict(self.mappings),
            "settings": self.settings.to_dict(),
            "action_log": [e.to_dict() for e in self.action_log],
            "action_statistics": [s.to_dict() for s in self.action_statistics],
            "profile_statistics": [s.to_dict() for s in self.profile_statistics],
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Document":
        dropped: List[str] = []
        profiles_data = data.get("profiles", []) or []
        profiles: List[Profile] = []
        if isinstance(profiles_data, list):
            for raw in profiles_data:
                if isinstance(raw, dict):
                    profiles.append(Profile.from_dict(raw, dropped))

        mappings_data = data.get("mappings", {}) or {}
        mappings: Dict[str, str] = {}
        if isinstance(mappings_data, dict):
            mappings = {str(k): str(v) for k, v in mappings_data.items() if v}

        settings_data = data.get("settings", {}) or {}

        return Document(
            action_library=_parse_actions(data.get("action_library"), dropped),
            profiles=profiles,
            mappings=mappings,
            settings=Settings.from_dict(settings_data if isinstance(settings_data, dict) else {}),
            action_log=_parse_list(data.get("action_log"), ActionLogEntry.from_dict, dropped),
            action_statistics=_parse_list(data.get("action_statistics"), ActionStatistics.from_dict, dropped),
            profile_statistics=_parse_list(data.get("profile_statistics"), ProfileStatistics.from_dict, dropped),
            load_warnings=dropped,
        )


def _parse_actions(raw: Any, dropped: Optional[List[str]] = None) -> List[Action]:
    return _parse_list(raw, Action.from_dict, dropped)


def _parse_list(raw: Any, factory, dropped: Optional[List[str]] = None) -> list:
    """Build each dict entry with factory; unreadable entries are skipped, not fatal."""
    out = []
    if isinstance(raw, list):
        for item in raw:
            if not isinstance(item, dict):
                continue
            try:
                out.append(factory(item))
            except (ValueError, TypeError, KeyError) as e:
                label = item.get("name") or item.get("action_name") or item.get("id") or "?"
                logger.warning("Skipped unreadable entry '%s': %s", label, e)
                if dropped is not None:
                    dropped.append(f"{label}: {e}")
    return out


def _iso_or_none(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _datetime_or_none(value: Any) -> Optional[datetime]:
    return datetime.fromisoformat(str(value)) if value else None
