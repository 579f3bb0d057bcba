"""Shared fixtures. Nothing here touches real processes, displays or audio devices."""

from typing import Callable, List

import pytest

from autoprofile.action_log import ActionLog
from autoprofile.automation.actions import RunContext
from autoprofile.automation.audio import AudioController
from autoprofile.automation.display import DisplayMode, ResolutionController
from autoprofile.automation.engine import AutomationEngine
from autoprofile.automation.mirror import MirrorTracker
from autoprofile.models import Action, ActionKind
from tests.fakes import FakeAudioBackend, FakeDisplayBackend, FakeProcessTable, Recorder


@pytest.fixture
def processes() -> FakeProcessTable:
    return FakeProcessTable()


@pytest.fixture
def display_backend() -> FakeDisplayBackend:
    return FakeDisplayBackend(current=DisplayMode(2560, 1440, 144))


@pytest.fixture
def audio_backend() -> FakeAudioBackend:
    return FakeAudioBackend()


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def ctx(processes, display_backend, audio_backend, sleeps) -> RunContext:
    return RunContext(
        processes=processes,
        display=ResolutionController(display_backend),
        audio=AudioController(audio_backend),
        sleep_hook=sleeps.append,
    )


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def action_log() -> ActionLog:
    return ActionLog(max_entries=100)


@pytest.fixture
def engine(ctx, recorder, action_log) -> AutomationEngine:
    return AutomationEngine(ctx, action_log=action_log, executors=recorder.registry)


@pytest.fixture
def tracker(processes) -> MirrorTracker:
    return MirrorTracker(processes.is_running)


@pytest.fixture
def make_action() -> Callable[..., Action]:
    def _make(name: str = "action", kind: ActionKind = ActionKind.RUN_SYSTEM_COMMAND, **kwargs) -> Action:
        kwargs.setdefault("path", name)
        return Action(name=name, kind=kind, **kwargs)

    return _make
