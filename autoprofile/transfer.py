"""Import and export of profiles and library actions."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from .models import Action, Profile, new_id

logger = logging.getLogger(__name__)

EXPORT_VERSION = "1.0"


@dataclass
class ExportBundle:
    profiles: List[Profile] = field(default_factory=list)
    actions: List[Action] = field(default_factory=list)
    version: str = EXPORT_VERSION
    export_date: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "export_date": self.export_date.isoformat(),
            "profiles": [p.to_dict() for p in self.profiles],
            "actions": [a.to_dict() for a in self.actions],
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "ExportBundle":
        date_raw = data.get("export_date")
        return ExportBundle(
            version=str(data.get("version", EXPORT_VERSION) or EXPORT_VERSION),
            export_date=datetime.fromisoformat(date_raw) if date_raw else datetime.now(),
            profiles=[Profile.from_dict(p) for p in data.get("profiles", []) or [] if isinstance(p, dict)],
            actions=[Action.from_dict(a) for a in data.get("actions", []) or [] if isinstance(a, dict)],
        )


def export_profiles(profiles: List[Profile], actions: List[Action], file_path: Path) -> bool:
    bundle = ExportBundle(profiles=list(profiles), actions=list(actions))
    try:
        Path(file_path).write_text(json.dumps(bundle.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
    except OSError as e:
        logger.error("Failed to export profiles to %s: %s", file_path, e)
        return False
    logger.info("Exported %d profiles and %d actions to %s", len(profiles), len(actions), file_path)
    return True


def export_profile(profile: Profile, file_path: Path) -> bool:
    return export_profiles([profile], [], file_path)


def import_from_file(file_path: Path) -> Optional[ExportBundle]:
    """Read an export file; every imported profile and action gets a fresh id."""
    path = Path(file_path)
    if not path.exists():
        logger.warning("Import file not found: %s", path)
        return None
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(raw, dict):
            raise ValueError("Import file has invalid structure")
        bundle = ExportBundle.from_dict(raw)
    except (OSError, ValueError, TypeError) as e:
        logger.error("Failed to import from %s: %s", path, e)
        return None

    for profile in bundle.profiles:
        profile.id = new_id()
        _reassign_action_ids(profile.actions)
    _reassign_action_ids(bundle.actions)

    logger.info("Imported %d profiles and %d actions from %s", len(bundle.profiles), len(bundle.actions), path)
    return bundle


def _reassign_action_ids(actions: List[Action]) -> None:
    # keep depends_on pointing at the same action after renumbering
    renamed: Dict[str, str] = {}
    for action in actions:
        renamed[action.id] = new_id()
        action.id = renamed[action.id]
    for action in actions:
        if action.depends_on:
            action.depends_on = renamed.get(action.depends_on)
