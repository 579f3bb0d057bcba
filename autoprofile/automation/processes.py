"""
Process helpers built on psutil.

Process names are compared by base name without extension and without case,
so ``chrome``, ``chrome.exe`` and ``C:\\...\\Chrome.exe`` all match the same
running process.
"""

from __future__ import annotations

import logging
import ntpath
import os
from dataclasses import dataclass
from typing import List, Protocol

import psutil

logger = logging.getLogger(__name__)


def bare_process_name(path_or_name: str) -> str:
    """Strip directories and extension: ``C:\\x\\Discord.exe`` -> ``discord``."""
    text = (path_or_name or "").strip().strip('"')
    # ntpath splits on both separators so Windows paths work everywhere
    base = ntpath.basename(text)
    stem, _ext = os.path.splitext(base)
    return stem.lower()


@dataclass
class TerminateReport:
    name: str
    matched: int
    terminated: int


class ProcessTable(Protocol):
    def is_running(self, name: str) -> bool: ...

    def terminate_all(self, name: str) -> TerminateReport: ...


class PsutilProcessTable:
    """Live process table."""

    def find(self, name: str) -> List[psutil.Process]:
        wanted = bare_process_name(name)
        if not wanted:
            return []
        out: List[psutil.Process] = []
        for proc in psutil.process_iter(["pid", "name"]):
            if bare_process_name(proc.info.get("name") or "") == wanted:
                out.append(proc)
        return out

    def is_running(self, name: str) -> bool:
        running = bool(self.find(name))
        logger.debug("Process '%s' running = %s", bare_process_name(name), running)
        return running

    def terminate_all(self, name: str) -> TerminateReport:
        bare = bare_process_name(name)
        procs = self.find(name)
        terminated = 0
        for proc in procs:
            try:
                proc.kill()
                terminated += 1
                logger.info("Closed process: %s (PID: %s)", bare, proc.pid)
            except psutil.NoSuchProcess:
                # exited between enumeration and kill
                terminated += 1
            except psutil.Error as e:
                logger.warning("Failed to close process: %s (PID: %s): %s", bare, proc.pid, e)
        return TerminateReport(name=bare, matched=len(procs), terminated=terminated)
