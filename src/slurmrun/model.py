# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple


class RunStatus(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    DONE = "DONE"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.DONE, RunStatus.FAILED)


# Forward edges only. Re-asserting the current status is always allowed.
ALLOWED_TRANSITIONS = {
    RunStatus.PENDING: {RunStatus.RUNNING},
    RunStatus.RUNNING: {RunStatus.DONE, RunStatus.FAILED},
    RunStatus.DONE: set(),
    RunStatus.FAILED: set(),
}


@dataclass(frozen=True)
class ResourceRequest:
    """
    What a job asks the scheduler for.

    Every field is optional; anything left as None is simply not requested.
    """
    cores: Optional[int] = None
    memory_gb: Optional[float] = None
    wall_time_hours: Optional[int] = None
    qos: Optional[str] = None
    extra_native_args: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.cores is not None and (not isinstance(self.cores, int) or self.cores < 1):
            raise ValueError(f"cores must be a positive integer, got {self.cores!r}")
        if self.memory_gb is not None and self.memory_gb <= 0:
            raise ValueError(f"memory_gb must be positive, got {self.memory_gb!r}")
        if self.wall_time_hours is not None and (
            not isinstance(self.wall_time_hours, int) or self.wall_time_hours < 1
        ):
            raise ValueError(f"wall_time_hours must be a positive integer, got {self.wall_time_hours!r}")
        # lists are accepted for convenience, stored as a tuple
        object.__setattr__(self, "extra_native_args", tuple(self.extra_native_args))

    @property
    def requested_cores(self) -> int:
        # Only used to decide whether a multi-core flag is needed.
        return self.cores if self.cores is not None else 1


@dataclass(frozen=True)
class JobDescription:
    """A command to run on the cluster plus where its output goes."""
    name: str
    executable: str
    args: Tuple[str, ...] = ()
    resources: ResourceRequest = field(default_factory=ResourceRequest)
    output_file: str = ""
    error_file: Optional[str] = None   # None -> stderr merged into stdout
    working_dir: str = "."
    wait_before_seconds: Optional[int] = None

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("job name must not be empty")
        if not self.executable:
            raise ValueError(f"job {self.name!r} has no executable")
        if not self.output_file:
            raise ValueError(f"job {self.name!r} has no output file")
        if self.wait_before_seconds is not None and self.wait_before_seconds < 0:
            raise ValueError(f"wait_before_seconds must be >= 0, got {self.wait_before_seconds!r}")
        object.__setattr__(self, "args", tuple(str(a) for a in self.args))

    @property
    def command_line(self) -> List[str]:
        return [self.executable, *self.args]

    @property
    def merge_error(self) -> bool:
        return self.error_file is None


@dataclass
class RunInfo:
    """Diagnostics about a single run. Written by the runner only."""
    start_time: Optional[datetime] = None
    done_time: Optional[datetime] = None
    exec_hosts: Optional[str] = None
