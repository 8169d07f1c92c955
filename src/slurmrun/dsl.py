# src/slurmrun/dsl.py
from __future__ import annotations

import runpy
from pathlib import Path
from typing import List, Optional, Sequence

from .model import JobDescription, ResourceRequest


# ---------------------------------------------------------------------
# Functional helper
# ---------------------------------------------------------------------

def job(
    name: str,
    executable: str,
    *args: str,
    cores: Optional[int] = None,
    memory_gb: Optional[float] = None,
    wall_time_hours: Optional[int] = None,
    qos: Optional[str] = None,
    native_args: Optional[Sequence[str]] = None,
    output: Optional[str] = None,
    error: Optional[str] = None,
    cwd: str = ".",
    wait_before: Optional[int] = None,
) -> JobDescription:
    """
    Describe a job in one call:

        job("align", "bwa", "mem", "ref.fa", "reads.fq", cores=4, memory_gb=8)
    """
    return JobDescription(
        name=name,
        executable=executable,
        args=tuple(args),
        resources=ResourceRequest(
            cores=cores,
            memory_gb=memory_gb,
            wall_time_hours=wall_time_hours,
            qos=qos,
            extra_native_args=tuple(native_args or ()),
        ),
        output_file=output or f"{name}.out",
        error_file=error,
        working_dir=cwd,
        wait_before_seconds=wait_before,
    )


# ---------------------------------------------------------------------
# Builder API
# ---------------------------------------------------------------------

class JobBuilder:
    def __init__(self, name: str):
        self.name = name
        self._executable: Optional[str] = None
        self._args: list[str] = []
        self._cores: Optional[int] = None
        self._memory_gb: Optional[float] = None
        self._wall_time_hours: Optional[int] = None
        self._qos: Optional[str] = None
        self._native_args: list[str] = []
        self._output: Optional[str] = None
        self._error: Optional[str] = None
        self._cwd: str = "."
        self._wait_before: Optional[int] = None

    def command(self, executable: str, *args: str):
        self._executable = executable
        self._args = [str(a) for a in args]
        return self

    def cores(self, n: int):
        self._cores = n
        return self

    def memory(self, gb: float):
        self._memory_gb = gb
        return self

    def wall_time(self, hours: int):
        self._wall_time_hours = hours
        return self

    def qos(self, name: str):
        self._qos = name
        return self

    def native_args(self, *args: str):
        self._native_args.extend(args)
        return self

    def output(self, path: str):
        self._output = path
        return self

    def error(self, path: str):
        self._error = path
        return self

    def cwd(self, path: str):
        self._cwd = path
        return self

    def wait_before(self, seconds: int):
        self._wait_before = seconds
        return self

    def build(self) -> JobDescription:
        if not self._executable:
            raise ValueError(f"Job '{self.name}' has no command")

        return job(
            self.name,
            self._executable,
            *self._args,
            cores=self._cores,
            memory_gb=self._memory_gb,
            wall_time_hours=self._wall_time_hours,
            qos=self._qos,
            native_args=self._native_args,
            output=self._output,
            error=self._error,
            cwd=self._cwd,
            wait_before=self._wait_before,
        )


def build(name: str) -> JobBuilder:
    """Convenience: build('align').command('bwa', 'mem').cores(4).build()"""
    return JobBuilder(name)


# ---------------------------------------------------------------------
# Loading job files
# ---------------------------------------------------------------------

def load_jobs(path: str | Path) -> List[JobDescription]:
    """
    Load job descriptions from a python file.

    The file must define either:
      - jobs() -> List[JobDescription]
      - JOBS = [JobDescription, ...]
    """
    jobs_path = Path(path).expanduser().resolve()
    if not jobs_path.exists():
        raise FileNotFoundError(f"Jobs file not found: {jobs_path}")
    if jobs_path.suffix != ".py":
        raise ValueError(f"Jobs file must be a .py file, got: {jobs_path.name}")

    globals_dict = runpy.run_path(str(jobs_path), run_name=f"slurmrun_jobs_{jobs_path.stem}")

    found = None
    if "jobs" in globals_dict and callable(globals_dict["jobs"]):
        found = globals_dict["jobs"]()
    elif "JOBS" in globals_dict:
        found = globals_dict["JOBS"]

    if not isinstance(found, list) or not all(isinstance(j, JobDescription) for j in found):
        raise TypeError(
            "Jobs file must return/define a List[JobDescription]. "
            "Define jobs() -> List[JobDescription] or JOBS = [JobDescription, ...]."
        )

    names = [j.name for j in found]
    dupes = sorted({n for n in names if names.count(n) > 1})
    if dupes:
        raise ValueError(f"Duplicate job name(s): {', '.join(dupes)}")
    return found
