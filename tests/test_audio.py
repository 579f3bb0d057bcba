"""Tests for AudioController snapshot, clamp and mute fallback."""

from __future__ import annotations

from autoprofile.automation.audio import AudioController, MediaKeyAudioBackend, clamp_volume

from tests.fakes import FakeAudioBackend


def test_clamp_volume() -> None:
    assert clamp_volume(-20) == 0
    assert clamp_volume(150) == 100
    assert clamp_volume(55) == 55


class TestSnapshot:
    def test_first_change_captures_original(self) -> None:
        backend = FakeAudioBackend(volume=65)
        audio = AudioController(backend)
        audio.set_volume(10)
        audio.set_volume(20)
        assert audio.original_volume == 65
        assert audio.restore() is True
        assert backend.set_calls == [10, 20, 65]

    def test_restore_keeps_snapshot(self) -> None:
        backend = FakeAudioBackend(volume=65)
        audio = AudioController(backend)
        audio.set_volume(10)
        audio.restore()
        audio.set_volume(30)
        audio.restore()
        assert backend.set_calls == [10, 65, 30, 65]

    def test_new_session_recaptures(self) -> None:
        backend = FakeAudioBackend(volume=65)
        audio = AudioController(backend)
        audio.set_volume(10)
        backend.volume = 50  # user changed it between sessions
        audio.begin_session()
        audio.set_volume(90)
        assert audio.original_volume == 50

    def test_failed_read_in_new_session_drops_old_snapshot(self) -> None:
        backend = FakeAudioBackend(volume=65)
        audio = AudioController(backend)
        audio.set_volume(10)
        audio.begin_session()
        backend.volume = None
        assert audio.set_volume(30) is True
        assert audio.original_volume is None
        assert audio.restore() is False
        assert backend.set_calls == [10, 30]

    def test_unreadable_volume_leaves_no_snapshot(self) -> None:
        backend = FakeAudioBackend(volume=None)
        audio = AudioController(backend)
        assert audio.set_volume(30) is True
        assert audio.original_volume is None
        assert audio.restore() is False

    def test_backend_error_is_a_failure(self) -> None:
        class Broken(FakeAudioBackend):
            def set_master_volume(self, percent):
                raise OSError("no device")

        assert AudioController(Broken()).set_volume(30) is False


class TestMute:
    def test_primary_exception_falls_through(self) -> None:
        class Flaky(FakeAudioBackend):
            def set_process_mute(self, process_name, mute):
                raise RuntimeError("no audio session")

        backend = Flaky()
        assert AudioController(backend).set_mute("game.exe", True) is True
        assert backend.window_calls == ["game.exe"]

    def test_both_strategies_failing_never_raises(self) -> None:
        class Dead(FakeAudioBackend):
            def send_window_mute(self, process_name):
                raise RuntimeError("no window")

        backend = Dead(session_mute=False)
        assert AudioController(backend).set_mute("game.exe", True) is False

    def test_unmute_never_sends_window_toggle(self) -> None:
        backend = FakeAudioBackend(session_mute=False, window_mute=True)
        assert AudioController(backend).set_mute("game.exe", False) is False
        assert backend.mute_calls == [("game.exe", False)]
        assert backend.window_calls == []


def test_media_key_backend_cannot_read_or_mute() -> None:
    backend = MediaKeyAudioBackend()
    assert backend.get_master_volume() is None
    assert backend.set_process_mute("x", True) is False
    assert backend.send_window_mute("x") is False
