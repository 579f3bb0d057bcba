"""Tests for the data document: schema round trip and the on-disk store.

Covers:
- Round trip keeps profiles, actions and mappings (empty library included)
- Older files missing newer fields load with defaults
- Unreadable entries are skipped one by one; broken JSON is rejected
- Missing file -> empty document
- Corrupt or non-UTF-8 file -> empty document, .bak kept, error notification
- Atomic save and DocumentService snapshots
"""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path

import pytest

from autoprofile.data_store import DataStore, DocumentError, DocumentService, parse_document, serialize_document
from autoprofile.models import (
    Action,
    ActionCondition,
    ActionKind,
    ConditionKind,
    Document,
    ExecutionPhase,
    Profile,
    Settings,
)
from autoprofile.notifications import NotificationKind, NotificationService


# ============================================================
# Helpers
# ============================================================


def _sample_document() -> Document:
    close = Action(
        name="Close Discord",
        kind=ActionKind.TERMINATE_PROCESS,
        path="Discord.exe",
        mirror=True,
        priority=5,
        condition=ActionCondition(ConditionKind.PROCESS_RUNNING, "Discord.exe"),
        category="Cleanup",
    )
    night = Action(
        name="Quiet hours",
        kind=ActionKind.SET_VOLUME,
        path="20",
        phase=ExecutionPhase.AFTER_START,
        condition=ActionCondition(ConditionKind.TIME_RANGE, time_start="22:00", time_end="06:00"),
        depends_on=close.id,
        requires_previous_success=True,
        timeout_seconds=30,
    )
    profile = Profile("Competitive", [close, night])
    return Document(
        profiles=[profile],
        mappings={"game-1": profile.id},
        settings=Settings(max_log_entries=50, last_backup_date=datetime(2024, 1, 2, 3, 4, 5)),
    )


# ============================================================
# Schema
# ============================================================


class TestSchema:
    def test_round_trip(self) -> None:
        doc = _sample_document()
        loaded = parse_document(serialize_document(doc))
        assert loaded.profiles == doc.profiles
        assert loaded.mappings == doc.mappings
        assert loaded.action_library == []
        assert loaded.settings == doc.settings

    def test_enum_values_are_stable_strings(self) -> None:
        raw = json.loads(serialize_document(_sample_document()))
        action = raw["profiles"][0]["actions"][0]
        assert action["kind"] == "terminate_process"
        assert action["phase"] == "before_start"
        assert action["condition"]["kind"] == "process_running"

    def test_old_file_without_new_fields(self) -> None:
        content = json.dumps({
            "profiles": [{
                "id": "p1",
                "name": "Legacy",
                "actions": [{"id": "a1", "name": "Wait", "kind": "wait", "phase": "after_start"}],
            }],
            "mappings": {"g": "p1"},
        })
        doc = parse_document(content)
        action = doc.profiles[0].actions[0]
        assert action.mirror is False
        assert action.priority == 0
        assert action.condition is None
        assert action.category == "General"
        assert action.timeout_seconds == 0
        assert action.depends_on is None
        assert doc.settings == Settings()
        assert doc.action_log == []

    def test_unknown_kind_drops_only_that_entry(self) -> None:
        content = json.dumps({"action_library": [
            {"name": "x", "kind": "teleport"},
            {"name": "no kind"},
            {"name": "Wait", "kind": "wait"},
        ]})
        doc = parse_document(content)
        assert [a.name for a in doc.action_library] == ["Wait"]
        assert len(doc.load_warnings) == 2
        assert doc.load_warnings[0].startswith("x:")

    def test_non_object_is_rejected(self) -> None:
        with pytest.raises(DocumentError):
            parse_document("[1, 2, 3]")

    def test_action_copy_gets_new_id(self) -> None:
        action = _sample_document().profiles[0].actions[0]
        clone = action.copy()
        assert clone.id != action.id
        assert clone.name == action.name
        assert action.copy(keep_id=True) == action


# ============================================================
# DataStore
# ============================================================


class TestDataStore:
    def test_missing_file_gives_empty_document(self, tmp_path: Path) -> None:
        doc = DataStore(tmp_path / "data.json").load()
        assert doc == Document()

    def test_save_then_load(self, tmp_path: Path) -> None:
        store = DataStore(tmp_path / "nested" / "data.json")
        doc = _sample_document()
        assert store.save(doc) is True
        assert not (tmp_path / "nested" / "data.tmp").exists()
        assert store.load().profiles == doc.profiles

    def test_corrupt_file_is_quarantined(self, tmp_path: Path) -> None:
        seen = []
        path = tmp_path / "data.json"
        path.write_text("{ not json", encoding="utf-8")
        store = DataStore(path, NotificationService(lambda kind, msg: seen.append((kind, msg))))

        doc = store.load()
        assert doc == Document()
        assert store.last_error
        assert not path.exists()
        assert (tmp_path / "data.bak").read_text(encoding="utf-8") == "{ not json"
        assert seen[0][0] == NotificationKind.ERROR
        assert seen[0][1].startswith("Failed to load data")

    def test_non_utf8_file_is_quarantined(self, tmp_path: Path) -> None:
        seen = []
        path = tmp_path / "data.json"
        path.write_bytes(b"\xff\xfe{not json")
        store = DataStore(path, NotificationService(lambda kind, msg: seen.append((kind, msg))))

        assert store.load() == Document()
        assert not path.exists()
        assert (tmp_path / "data.bak").read_bytes() == b"\xff\xfe{not json"
        assert seen[0][0] == NotificationKind.ERROR

    def test_bad_action_keeps_rest_of_document(self, tmp_path: Path) -> None:
        seen = []
        content = json.dumps({
            "profiles": [{
                "id": "p1",
                "name": "Evening",
                "actions": [
                    {"id": "a1", "name": "Beam up", "kind": "teleport"},
                    {"id": "a2", "name": "Wait", "kind": "wait"},
                ],
            }],
            "mappings": {"game-1": "p1"},
        })
        path = tmp_path / "data.json"
        path.write_text(content, encoding="utf-8")
        store = DataStore(path, NotificationService(lambda kind, msg: seen.append((kind, msg))))

        doc = store.load()
        assert [p.name for p in doc.profiles] == ["Evening"]
        assert [a.id for a in doc.profiles[0].actions] == ["a2"]
        assert doc.mappings == {"game-1": "p1"}
        assert path.exists()
        assert (tmp_path / "data.bak").read_text(encoding="utf-8") == content
        assert len(seen) == 1
        assert seen[0][0] == NotificationKind.ERROR
        assert "Beam up" in seen[0][1]

    def test_env_override(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("AUTOPROFILE_DATA", str(tmp_path / "elsewhere.json"))
        assert DataStore().storage_path == tmp_path / "elsewhere.json"


class TestDocumentService:
    def test_snapshot_is_detached(self, tmp_path: Path) -> None:
        service = DocumentService(DataStore(tmp_path / "data.json"))
        snap = service.snapshot()
        snap.mappings["x"] = "y"
        assert service.snapshot().mappings == {}

    def test_apply_persists(self, tmp_path: Path) -> None:
        path = tmp_path / "data.json"
        service = DocumentService(DataStore(path))
        profile = Profile("Saved")
        result = service.apply(lambda doc: doc.profiles.append(profile) or len(doc.profiles))
        assert result == 1
        assert DataStore(path).load().profiles[0].name == "Saved"


# ============================================================
# Profile editing helpers
# ============================================================


class TestProfileEditing:
    def test_attach_copies_library_action(self) -> None:
        library_action = Action(name="Close Steam", kind=ActionKind.TERMINATE_PROCESS, path="steam.exe")
        profile = Profile("p")
        owned = profile.attach(library_action)
        assert owned.id != library_action.id
        assert profile.actions == [owned]
        owned.path = "changed.exe"
        assert library_action.path == "steam.exe"

    def test_renumber_priorities_per_phase(self) -> None:
        a = Action(name="a", kind=ActionKind.WAIT, priority=7)
        b = Action(name="b", kind=ActionKind.WAIT, priority=3)
        c = Action(name="c", kind=ActionKind.WAIT, phase=ExecutionPhase.AFTER_STOP, priority=42)
        profile = Profile("p", [a, b, c])
        profile.renumber_priorities()
        assert (b.priority, a.priority) == (0, 10)
        assert c.priority == 0
