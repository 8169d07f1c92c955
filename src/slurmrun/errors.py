# errors.py
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional


@dataclass(eq=False)
class LaunchFailure(Exception):
    """
    The external process could not be started at all
    (missing executable, permission denied, bad working dir, ...).

    Surfaced through the completion signal and never retried here.
    """
    job: str
    command: List[str]
    message: str

    def __str__(self) -> str:
        return f"[{self.job}] could not launch {' '.join(self.command)}: {self.message}"


@dataclass(eq=False)
class NonZeroExit(Exception):
    """The process ran but exited with a non-zero code."""
    job: str
    exit_code: int

    def __str__(self) -> str:
        return f"[{self.job}] exited with code {self.exit_code}"


@dataclass(eq=False)
class TerminationFailure(Exception):
    """
    A forced stop could not be completed.

    Only ever logged: whoever asked for the stop (usually a shutdown
    handler) has nothing left to do about it.
    """
    job: str
    pid: Optional[int]
    message: str

    def __str__(self) -> str:
        return f"[{self.job}] could not terminate pid={self.pid}: {self.message}"


@dataclass(eq=False)
class JobLost(Exception):
    """The process is gone but its result never came back; the poller gave up on it."""
    job: str
    message: str

    def __str__(self) -> str:
        return f"[{self.job}] lost: {self.message}"


class ProcessBusyError(RuntimeError):
    """A second launch was attempted while the controller still owns a process."""
    pass
