"""
Display resolution control.

The controller owns the snapshot/restore bookkeeping and the fallback
ladder; backends only read and apply display modes. On Windows the backend
talks to user32 through pywin32; elsewhere screeninfo reports the primary
monitor geometry and mode changes are not supported.
"""

from __future__ import annotations

import logging
import re
import sys
from dataclasses import dataclass, replace
from typing import Optional, Protocol

logger = logging.getLogger(__name__)

_RESOLUTION_RE = re.compile(
    r"^\s*(\d+)\s*[xX]\s*(\d+)\s*(?:@\s*(\d+)\s*(?:[hH][zZ])?)?\s*$"
)

DEFAULT_REFRESH_RATE = 60


@dataclass(frozen=True)
class DisplayMode:
    width: int
    height: int
    refresh_rate: int = DEFAULT_REFRESH_RATE

    def __str__(self) -> str:
        return f"{self.width}x{self.height}@{self.refresh_rate}Hz"


COMMON_FALLBACK_MODE = DisplayMode(1920, 1080, DEFAULT_REFRESH_RATE)


def parse_resolution(text: str) -> DisplayMode:
    """
    Parse ``WIDTHxHEIGHT@REFRESHHz``; the refresh part is optional.

    Raises:
        ValueError: when the text is not a resolution descriptor
    """
    match = _RESOLUTION_RE.match(text or "")
    if not match:
        raise ValueError(f"invalid resolution descriptor: {text!r}")
    width, height, refresh = match.groups()
    mode = DisplayMode(int(width), int(height), int(refresh) if refresh else DEFAULT_REFRESH_RATE)
    if mode.width <= 0 or mode.height <= 0 or mode.refresh_rate <= 0:
        raise ValueError(f"invalid resolution descriptor: {text!r}")
    return mode


class DisplayBackend(Protocol):
    def current_mode(self) -> Optional[DisplayMode]: ...

    def apply_mode(self, mode: DisplayMode) -> bool: ...


class Win32DisplayBackend:
    """Primary display through EnumDisplaySettings / ChangeDisplaySettings."""

    ENUM_CURRENT_SETTINGS = -1

    def current_mode(self) -> Optional[DisplayMode]:
        import win32api  # type: ignore

        devmode = win32api.EnumDisplaySettings(None, self.ENUM_CURRENT_SETTINGS)
        return DisplayMode(int(devmode.PelsWidth), int(devmode.PelsHeight), int(devmode.DisplayFrequency))

    def apply_mode(self, mode: DisplayMode) -> bool:
        import win32api  # type: ignore
        import win32con  # type: ignore

        devmode = win32api.EnumDisplaySettings(None, self.ENUM_CURRENT_SETTINGS)
        devmode.PelsWidth = mode.width
        devmode.PelsHeight = mode.height
        devmode.DisplayFrequency = mode.refresh_rate
        devmode.Fields = win32con.DM_PELSWIDTH | win32con.DM_PELSHEIGHT | win32con.DM_DISPLAYFREQUENCY

        test_result = win32api.ChangeDisplaySettings(devmode, win32con.CDS_TEST)
        if test_result != win32con.DISP_CHANGE_SUCCESSFUL:
            logger.warning("Resolution change test failed: %s (code: %s)", mode, test_result)
            return False

        result = win32api.ChangeDisplaySettings(devmode, win32con.CDS_UPDATEREGISTRY)
        if result in (win32con.DISP_CHANGE_SUCCESSFUL, win32con.DISP_CHANGE_RESTART):
            return True
        logger.error("Failed to change resolution to %s (code: %s)", mode, result)
        return False


class ScreeninfoDisplayBackend:
    """Read-only backend for platforms without a mode-setting API."""

    def current_mode(self) -> Optional[DisplayMode]:
        from screeninfo import get_monitors  # type: ignore

        monitors = get_monitors()
        if not monitors:
            return None
        primary = next((m for m in monitors if getattr(m, "is_primary", False)), monitors[0])
        # screeninfo does not expose the refresh rate
        return DisplayMode(int(primary.width), int(primary.height), DEFAULT_REFRESH_RATE)

    def apply_mode(self, mode: DisplayMode) -> bool:
        logger.warning("Changing the display mode is not supported on %s", sys.platform)
        return False


def default_display_backend() -> DisplayBackend:
    if sys.platform.startswith("win"):
        return Win32DisplayBackend()
    return ScreeninfoDisplayBackend()


class ResolutionController:
    """
    Snapshot, change and restore the display mode.

    The original mode is captured right before the first change and kept for
    the controller's lifetime, so later restores always go back to the mode
    the user had before any automation ran.
    """

    def __init__(self, backend: Optional[DisplayBackend] = None) -> None:
        self._backend = backend or default_display_backend()
        self._original: Optional[DisplayMode] = None
        self._restore_attempted = False

    @property
    def original(self) -> Optional[DisplayMode]:
        return self._original

    @property
    def restore_attempted(self) -> bool:
        return self._restore_attempted

    def begin_session(self) -> None:
        """A new entity session starts; allow one fallback restore again."""
        self._restore_attempted = False

    def capture_original(self) -> Optional[DisplayMode]:
        if self._original is None:
            try:
                self._original = self._backend.current_mode()
            except Exception as e:
                logger.error("Failed to read current display settings: %s", e)
                self._original = None
            if self._original is not None:
                logger.info("Saved original resolution: %s", self._original)
        return self._original

    def change(self, mode: DisplayMode) -> bool:
        """
        Apply ``mode``, walking the fallback ladder on failure.

        Rungs: requested mode, requested size at 60Hz, the common fallback
        mode. Returns True at the first rung that succeeds.
        """
        self.capture_original()
        if self._try_apply(mode):
            return True

        if mode.refresh_rate != DEFAULT_REFRESH_RATE:
            at_default_rate = replace(mode, refresh_rate=DEFAULT_REFRESH_RATE)
            logger.warning("Retrying %s at %sHz", mode, DEFAULT_REFRESH_RATE)
            if self._try_apply(at_default_rate):
                return True

        if (mode.width, mode.height) != (COMMON_FALLBACK_MODE.width, COMMON_FALLBACK_MODE.height):
            logger.warning("Resolution %s rejected, falling back to %s", mode, COMMON_FALLBACK_MODE)
            if self._try_apply(COMMON_FALLBACK_MODE):
                return True

        logger.error("All resolution fallbacks failed for %s", mode)
        return False

    def restore(self) -> bool:
        if self._original is not None:
            restored = self._try_apply(self._original)
            if restored:
                self._restore_attempted = False
                logger.info("Restored original resolution %s", self._original)
            return restored

        if self._restore_attempted:
            logger.warning("No original resolution saved and fallback restore already attempted")
            return False

        self._restore_attempted = True
        logger.warning("No original resolution saved, restoring %s", COMMON_FALLBACK_MODE)
        return self._try_apply(COMMON_FALLBACK_MODE)

    def _try_apply(self, mode: DisplayMode) -> bool:
        try:
            applied = bool(self._backend.apply_mode(mode))
        except Exception as e:
            logger.error("Exception while changing resolution to %s: %s", mode, e)
            return False
        if applied:
            logger.info("Changed resolution to: %s", mode)
        return applied
