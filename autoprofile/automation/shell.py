"""
Building and running shell invocations.

Windows runs scripts through PowerShell and commands through cmd.exe; other
platforms use /bin/sh for both.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import sys
from dataclasses import dataclass
from typing import List, Optional

logger = logging.getLogger(__name__)

IS_WINDOWS = sys.platform.startswith("win")
SCRIPT_EXTENSION = ".ps1" if IS_WINDOWS else ".sh"


@dataclass
class CompletedRun:
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False

    @property
    def output(self) -> str:
        return (self.stdout + self.stderr).strip()


def expand_path(path: str) -> str:
    return os.path.expandvars(os.path.expanduser((path or "").strip()))


def split_arguments(arguments: str) -> List[str]:
    if not (arguments or "").strip():
        return []
    return shlex.split(arguments, posix=not IS_WINDOWS)


def is_script_file(path: str) -> bool:
    """A path is a script file if it exists on disk or carries the script extension."""
    resolved = expand_path(path)
    if not resolved:
        return False
    return resolved.lower().endswith(SCRIPT_EXTENSION) or os.path.isfile(resolved)


def script_invocation(path: str, arguments: str) -> List[str]:
    """argv for running ``path`` either as a script file or as an inline command."""
    resolved = expand_path(path)
    if is_script_file(path):
        if IS_WINDOWS:
            return ["powershell.exe", "-NoProfile", "-ExecutionPolicy", "Bypass", "-File", resolved, *split_arguments(arguments)]
        return ["/bin/sh", resolved, *split_arguments(arguments)]

    command = " ".join(part for part in ((path or "").strip(), (arguments or "").strip()) if part)
    if IS_WINDOWS:
        return ["powershell.exe", "-NoProfile", "-ExecutionPolicy", "Bypass", "-Command", command]
    return ["/bin/sh", "-c", command]


def system_command_invocation(command: str, arguments: str) -> List[str]:
    line = " ".join(part for part in ((command or "").strip(), (arguments or "").strip()) if part)
    if IS_WINDOWS:
        return ["cmd.exe", "/c", line]
    return ["/bin/sh", "-c", line]


def powershell_invocation(script: str) -> List[str]:
    return ["powershell.exe", "-NoProfile", "-ExecutionPolicy", "Bypass", "-Command", script]


def run_captured(argv: List[str], timeout: Optional[float] = None) -> CompletedRun:
    """
    Run ``argv`` to completion with output captured.

    ``timeout`` of None waits indefinitely. OSError from spawning propagates.
    """
    kwargs = {}
    if IS_WINDOWS:
        kwargs["creationflags"] = getattr(subprocess, "CREATE_NO_WINDOW", 0)
    try:
        completed = subprocess.run(
            argv,
            capture_output=True,
            text=True,
            errors="replace",
            timeout=timeout,
            **kwargs,
        )
    except subprocess.TimeoutExpired as e:
        logger.warning("Command timed out after %ss: %s", timeout, argv[0])
        return CompletedRun(
            exit_code=-1,
            stdout=_decode(e.stdout),
            stderr=_decode(e.stderr),
            timed_out=True,
        )
    return CompletedRun(exit_code=completed.returncode, stdout=completed.stdout or "", stderr=completed.stderr or "")


def _decode(raw) -> str:
    if raw is None:
        return ""
    if isinstance(raw, bytes):
        return raw.decode(errors="replace")
    return str(raw)
