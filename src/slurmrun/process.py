# process.py
from __future__ import annotations

import subprocess
import sys
import threading
from contextlib import ExitStack
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, List, Optional

import structlog

from .errors import LaunchFailure, ProcessBusyError, TerminationFailure

logger = structlog.get_logger(__name__)

# Seconds to keep copying echoed output after the process has exited.
DRAIN_TIMEOUT = 2.0
# Seconds between SIGTERM and SIGKILL on a forced stop.
KILL_GRACE = 5.0


@dataclass(frozen=True)
class OutputStreamSettings:
    """Where one stream goes. Files are always opened in append mode."""
    output_file: Optional[Path] = None
    echo: bool = False   # also copy to the controller's own console


@dataclass(frozen=True)
class ProcessSettings:
    command: List[str]
    working_dir: Path
    stdout: OutputStreamSettings
    stderr: OutputStreamSettings = field(default_factory=OutputStreamSettings)
    merge_error: bool = True
    job_name: str = ""


def _pump(source: IO[bytes], sink: Optional[IO[bytes]], console: IO[str]) -> None:
    """
    Copy a child's stream into its file while echoing it to our console.

    The pump owns `sink` and closes it at EOF, which may come long after the
    child itself has exited if a grandchild inherited the pipe.
    """
    try:
        for line in iter(source.readline, b""):
            if sink is not None:
                sink.write(line)
                sink.flush()
            console.write(line.decode(errors="replace"))
            console.flush()
    finally:
        source.close()
        if sink is not None:
            sink.close()


class ProcessController:
    """
    Owns at most one live external process.

    launch() blocks until the process exits and is meant to be called from a
    worker thread; terminate() may be called from any other thread at any
    time (including a signal handler) and never raises.
    """

    def __init__(self, *, drain_timeout: float = DRAIN_TIMEOUT, kill_grace: float = KILL_GRACE) -> None:
        self.drain_timeout = drain_timeout
        self.kill_grace = kill_grace
        self._lock = threading.Lock()
        self._proc: Optional[subprocess.Popen] = None
        self._stopped = False
        self._started = False
        self._job_name = ""

    @property
    def pid(self) -> Optional[int]:
        with self._lock:
            return self._proc.pid if self._proc is not None else None

    @property
    def started(self) -> bool:
        """True once a process has actually been spawned."""
        return self._started

    def is_running(self) -> bool:
        with self._lock:
            return self._proc is not None and self._proc.poll() is None

    def launch(self, settings: ProcessSettings) -> int:
        """Run one process to completion and return its exit code."""
        cmd = list(settings.command)
        job = settings.job_name or cmd[0]
        cwd = Path(settings.working_dir)
        if not cwd.is_dir():
            raise LaunchFailure(job=job, command=cmd, message=f"working directory not found: {cwd}")

        with ExitStack() as stack:
            try:
                out = stack.enter_context(open(settings.stdout.output_file, "ab"))
                err: Optional[IO[bytes]] = None
                if not settings.merge_error and settings.stderr.output_file is not None:
                    err = stack.enter_context(open(settings.stderr.output_file, "ab"))
            except OSError as e:
                raise LaunchFailure(job=job, command=cmd, message=f"cannot open output: {e}") from e

            echo = settings.stdout.echo or settings.stderr.echo
            stdout_target = subprocess.PIPE if echo else out
            if settings.merge_error:
                stderr_target = subprocess.STDOUT
            elif echo:
                stderr_target = subprocess.PIPE
            else:
                stderr_target = err

            with self._lock:
                if self._stopped:
                    raise LaunchFailure(job=job, command=cmd, message="controller was stopped before launch")
                if self._proc is not None:
                    raise ProcessBusyError(f"controller already owns pid {self._proc.pid}")
                try:
                    self._proc = subprocess.Popen(
                        cmd,
                        cwd=str(cwd),
                        stdin=subprocess.DEVNULL,
                        stdout=stdout_target,
                        stderr=stderr_target,
                    )
                except OSError as e:
                    raise LaunchFailure(job=job, command=cmd, message=str(e)) from e
                proc = self._proc
                self._started = True
                self._job_name = job

            logger.debug("process_started", job=job, pid=proc.pid, command=" ".join(cmd))

            pumps: List[threading.Thread] = []
            if echo:
                pumps.append(threading.Thread(target=_pump, args=(proc.stdout, out, sys.stdout), daemon=True))
                if proc.stderr is not None:
                    pumps.append(threading.Thread(target=_pump, args=(proc.stderr, err, sys.stderr), daemon=True))
                for t in pumps:
                    t.start()
                # the pumps close the output files themselves
                stack.pop_all()

            # no lock held while waiting
            try:
                exit_code = proc.wait()
            finally:
                with self._lock:
                    if self._proc is proc:
                        self._proc = None

        for t in pumps:
            t.join(self.drain_timeout)
        if any(t.is_alive() for t in pumps):
            logger.warning(
                "output_still_open",
                job=job,
                pid=proc.pid,
                detail="a process left behind by the job still holds its output; copying continues in the background",
            )

        logger.debug("process_exited", job=job, pid=proc.pid, exit_code=exit_code)
        return exit_code

    def terminate(self) -> None:
        """
        Best-effort forced stop of the owned process.

        Sends SIGTERM so a launcher like srun can cancel its remote step, and
        SIGKILL if the process is still there after `kill_grace` seconds.
        Idempotent; a no-op when nothing is running. Failures are logged
        and never raised.
        """
        with self._lock:
            self._stopped = True
            proc = self._proc
            if proc is None or proc.poll() is not None:
                return
        try:
            self._kill(proc)
        except TerminationFailure as e:
            logger.error("termination_failed", job=e.job, pid=e.pid, error=e.message)

    def _kill(self, proc: subprocess.Popen) -> None:
        try:
            proc.terminate()
            try:
                proc.wait(timeout=self.kill_grace)
            except subprocess.TimeoutExpired:
                logger.warning("process_ignored_sigterm", job=self._job_name, pid=proc.pid, kill_grace=self.kill_grace)
                proc.kill()
        except OSError as e:
            raise TerminationFailure(job=self._job_name, pid=proc.pid, message=str(e)) from e
        logger.info("process_stopped", job=self._job_name, pid=proc.pid)
