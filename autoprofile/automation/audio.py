"""
Volume and per-application mute control.

AudioController keeps the master-volume snapshot and the mute fallback
order; backends do the platform work:

- MediaKeyAudioBackend: sets the master volume by pressing the volume media
  keys (pynput, falling back to pyautogui). It cannot read the volume.
- WindowsAudioBackend: adds reading the volume and per-process muting via
  PowerShell (AudioDeviceCmdlets), plus a window-message mute through
  pywinauto as the secondary strategy.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional, Protocol

from .processes import PsutilProcessTable, bare_process_name
from .shell import powershell_invocation, run_captured

logger = logging.getLogger(__name__)

VOLUME_STEP_PERCENT = 2
_FULL_SWEEP_PRESSES = 50

WM_APPCOMMAND = 0x319
APPCOMMAND_VOLUME_MUTE = 0x80000

_POWERSHELL_TIMEOUT = 15.0


def clamp_volume(percent: int) -> int:
    return max(0, min(100, int(percent)))


class AudioBackend(Protocol):
    def get_master_volume(self) -> Optional[int]: ...

    def set_master_volume(self, percent: int) -> bool: ...

    def set_process_mute(self, process_name: str, mute: bool) -> bool: ...

    def send_window_mute(self, process_name: str) -> bool: ...


class MediaKeyAudioBackend:
    """Master volume through the volume media keys."""

    def get_master_volume(self) -> Optional[int]:
        return None

    def set_master_volume(self, percent: int) -> bool:
        # Sweep to zero, then step up; each key press moves the volume 2%.
        steps_up = clamp_volume(percent) // VOLUME_STEP_PERCENT
        if self._press_with_pynput(_FULL_SWEEP_PRESSES, steps_up):
            return True
        return self._press_with_pyautogui(_FULL_SWEEP_PRESSES, steps_up)

    def set_process_mute(self, process_name: str, mute: bool) -> bool:
        return False

    def send_window_mute(self, process_name: str) -> bool:
        return False

    @staticmethod
    def _press_with_pynput(down: int, up: int) -> bool:
        try:
            from pynput.keyboard import Controller, Key  # type: ignore
        except Exception as e:
            logger.debug("pynput unavailable for volume keys: %s", e)
            return False
        try:
            kb = Controller()
            for _ in range(down):
                kb.press(Key.media_volume_down)
                kb.release(Key.media_volume_down)
            for _ in range(up):
                kb.press(Key.media_volume_up)
                kb.release(Key.media_volume_up)
            return True
        except Exception as e:
            logger.warning("pynput volume keys failed, fallback to pyautogui: %s", e)
            return False

    @staticmethod
    def _press_with_pyautogui(down: int, up: int) -> bool:
        try:
            import pyautogui  # local import to avoid hard dep at import time
            pyautogui.press("volumedown", presses=down)
            if up:
                pyautogui.press("volumeup", presses=up)
            return True
        except Exception as e:
            logger.error("Volume keys failed: %s", e)
            return False


class WindowsAudioBackend(MediaKeyAudioBackend):
    """Windows: PowerShell for reading volume and session mute, pywinauto for window mute."""

    def __init__(self) -> None:
        self._processes = PsutilProcessTable()

    def get_master_volume(self) -> Optional[int]:
        run = run_captured(powershell_invocation("(Get-AudioDevice -PlaybackVolume)"), timeout=_POWERSHELL_TIMEOUT)
        if run.exit_code != 0:
            logger.warning("Reading the master volume failed: %s", run.output)
            return None
        text = run.stdout.strip().rstrip("%").replace(",", ".")
        try:
            return clamp_volume(round(float(text)))
        except ValueError:
            logger.warning("Unexpected volume reading: %r", run.stdout)
            return None

    def set_process_mute(self, process_name: str, mute: bool) -> bool:
        name = bare_process_name(process_name)
        flag = "$true" if mute else "$false"
        script = (
            f"$procs = Get-Process -Name '{name}' -ErrorAction SilentlyContinue; "
            "$done = 0; "
            "foreach ($p in $procs) { "
            "$s = Get-AudioSession -ProcessId $p.Id -ErrorAction SilentlyContinue; "
            f"if ($s) {{ $s | Set-AudioSession -Mute {flag} -ErrorAction Stop; $done++ }} "
            "}; "
            "Write-Output $done"
        )
        run = run_captured(powershell_invocation(script), timeout=_POWERSHELL_TIMEOUT)
        try:
            changed = int(run.stdout.strip() or "0")
        except ValueError:
            changed = 0
        return run.exit_code == 0 and changed > 0

    def send_window_mute(self, process_name: str) -> bool:
        from pywinauto import Application  # type: ignore

        for proc in self._processes.find(process_name):
            try:
                app = Application(backend="win32").connect(process=proc.pid)
                win = app.top_window().wrapper_object()
                win.send_message(WM_APPCOMMAND, win.handle, APPCOMMAND_VOLUME_MUTE)
                return True
            except Exception as e:
                logger.debug("Window mute failed for PID %s: %s", proc.pid, e)
        return False


def default_audio_backend() -> AudioBackend:
    if sys.platform.startswith("win"):
        return WindowsAudioBackend()
    return MediaKeyAudioBackend()


class AudioController:
    """Clamp, snapshot and restore the master volume; mute with fallback."""

    def __init__(self, backend: Optional[AudioBackend] = None) -> None:
        self._backend = backend or default_audio_backend()
        self._original_volume: Optional[int] = None
        self._captured_this_session = False

    @property
    def original_volume(self) -> Optional[int]:
        return self._original_volume

    def begin_session(self) -> None:
        """Drop the previous snapshot; the next volume change captures a fresh one."""
        self._captured_this_session = False
        self._original_volume = None

    def capture_original(self) -> Optional[int]:
        try:
            volume = self._backend.get_master_volume()
        except Exception as e:
            logger.warning("Failed to save current volume: %s", e)
            volume = None
        if volume is not None:
            self._original_volume = clamp_volume(volume)
            self._captured_this_session = True
            logger.info("Saved original volume: %s%%", self._original_volume)
        return volume

    def set_volume(self, percent: int) -> bool:
        target = clamp_volume(percent)
        if not self._captured_this_session:
            self.capture_original()
        try:
            changed = bool(self._backend.set_master_volume(target))
        except Exception as e:
            logger.error("Failed to set master volume: %s", e)
            return False
        if changed:
            logger.info("Set master volume to %s%%", target)
        return changed

    def restore(self) -> bool:
        if self._original_volume is None:
            logger.warning("No original volume saved to restore")
            return False
        try:
            return bool(self._backend.set_master_volume(self._original_volume))
        except Exception as e:
            logger.error("Failed to restore volume: %s", e)
            return False

    def set_mute(self, process_name: str, mute: bool) -> bool:
        """Primary session mute, then the window-message strategy; never raises.

        The window message is a mute toggle, so it is only tried when muting.
        """
        verb = "mute" if mute else "unmute"
        try:
            if self._backend.set_process_mute(process_name, mute):
                return True
        except Exception as e:
            logger.warning("Failed to %s process %s: %s", verb, process_name, e)

        if mute:
            try:
                if self._backend.send_window_mute(process_name):
                    logger.info("Used window message to mute %s", process_name)
                    return True
            except Exception as e:
                logger.warning("Alternative mute failed for %s: %s", process_name, e)

        logger.error("Could not %s process %s", verb, process_name)
        return False
