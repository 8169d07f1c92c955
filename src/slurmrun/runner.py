# runner.py
"""
Runs one job on the cluster without blocking the caller.

The caller's thread only ever does non-blocking things (start, query_status,
request_stop). The blocking launch-and-wait happens on a background executor:
a dedicated single-thread pool per job by default, or a shared pool handed
in by whoever tracks many jobs at once.
"""
from __future__ import annotations

import socket
import threading
import time
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import structlog

from .completion import CompletionSignal, Outcome
from .config import Settings
from .errors import JobLost, LaunchFailure, NonZeroExit
from .model import ALLOWED_TRANSITIONS, JobDescription, RunInfo, RunStatus
from .native_spec import srun_command
from .process import DRAIN_TIMEOUT, OutputStreamSettings, ProcessController, ProcessSettings
from .status import MemoryStatusStore, StatusReporter, utcnow

logger = structlog.get_logger(__name__)

# How long reap() waits for a stopped run to finish on its own.
REAP_GRACE = DRAIN_TIMEOUT + 1.0


def resolve_hostname() -> str:
    return socket.gethostname()


class AsyncJobRunner:
    """
    PENDING -> RUNNING -> DONE | FAILED for a single JobDescription.

    The completion signal is created here and written exactly once, by
    whichever thread observes the end of the process first.
    """

    def __init__(
        self,
        job: JobDescription,
        *,
        settings: Optional[Settings] = None,
        status_store: Optional[StatusReporter] = None,
        executor: Optional[Executor] = None,
        controller: Optional[ProcessController] = None,
    ):
        self.job = job
        self.settings = settings or Settings()
        self.status_store: StatusReporter = status_store if status_store is not None else MemoryStatusStore()
        self.controller = controller or ProcessController()
        self.completion = CompletionSignal()
        self.run_info = RunInfo()

        self._shared_executor = executor
        self._own_executor: Optional[ThreadPoolExecutor] = None
        self._lock = threading.Lock()
        self._status = RunStatus.PENDING
        self._alive_at: Optional[datetime] = None
        self._finish_lock = threading.Lock()
        self.process_settings: Optional[ProcessSettings] = None

    # ------------------------------------------------------------------
    # status
    # ------------------------------------------------------------------

    @property
    def status(self) -> RunStatus:
        with self._lock:
            return self._status

    def _update_status(self, new: Optional[RunStatus] = None) -> None:
        """Apply a transition, or re-assert the current status when new is None."""
        with self._lock:
            if new is None:
                new = self._status
            elif new != self._status and new not in ALLOWED_TRANSITIONS[self._status]:
                raise ValueError(f"[{self.job.name}] illegal status change {self._status.value} -> {new.value}")
            self._status = new
            # inside the lock so the store never sees updates out of order
            self.status_store.update_status(self.job.name, new)

    def _status_for(self, outcome: Outcome) -> RunStatus:
        return RunStatus.DONE if outcome.succeeded else RunStatus.FAILED

    # ------------------------------------------------------------------
    # command line
    # ------------------------------------------------------------------

    def command_line(self) -> List[str]:
        if self.settings.launcher == "local":
            return self.job.command_line
        return srun_command(
            self.job,
            dont_request_multiple_cores=self.settings.dont_request_multiple_cores,
        )

    def _process_settings(self) -> ProcessSettings:
        job = self.job
        cwd = Path(job.working_dir)
        echo = self.settings.echo_output
        return ProcessSettings(
            command=self.command_line(),
            working_dir=cwd,
            stdout=OutputStreamSettings(output_file=cwd / job.output_file, echo=echo),
            stderr=OutputStreamSettings(
                output_file=(cwd / job.error_file) if job.error_file else None,
                echo=echo,
            ),
            merge_error=job.merge_error,
            job_name=job.name,
        )

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------

    def start(self) -> Future:
        """
        Mark the job RUNNING and hand the launch to the background executor.

        Returns as soon as the launch is scheduled. The returned future is
        the background task; callers normally watch `completion` instead.
        """
        if self.status != RunStatus.PENDING:
            raise RuntimeError(f"[{self.job.name}] runner already started")

        self.process_settings = self._process_settings()

        self.run_info.start_time = utcnow()
        self.run_info.exec_hosts = resolve_hostname()
        self._alive_at = self.run_info.start_time
        self._update_status(RunStatus.RUNNING)

        executor = self._shared_executor
        if executor is None:
            self._own_executor = ThreadPoolExecutor(
                max_workers=1, thread_name_prefix=f"slurmrun-{self.job.name}"
            )
            executor = self._own_executor

        try:
            fut = executor.submit(self._execute, self.process_settings)
        except Exception as e:
            self._finish(Outcome(error=LaunchFailure(
                job=self.job.name,
                command=self.process_settings.command,
                message=f"could not schedule launch: {e}",
            )))
            if self._own_executor is not None:
                self._own_executor.shutdown(wait=False)
            raise
        fut.add_done_callback(self._on_complete)
        return fut

    def _execute(self, settings: ProcessSettings) -> int:
        if self.job.wait_before_seconds:
            time.sleep(self.job.wait_before_seconds)
        return self.controller.launch(settings)

    def _on_complete(self, fut: Future) -> None:
        cmd = " ".join(self.process_settings.command) if self.process_settings else self.job.name
        if fut.cancelled():
            error: Optional[BaseException] = LaunchFailure(
                job=self.job.name,
                command=self.process_settings.command if self.process_settings else [],
                message="launch was cancelled before it ran",
            )
        else:
            error = fut.exception()
        if error is not None:
            logger.debug(
                "job_failed_to_run",
                job=self.job.name,
                error_type=type(error).__name__,
                error=str(error),
            )
            outcome = Outcome(error=error)
        else:
            outcome = Outcome(exit_code=fut.result())
            logger.debug("job_exited", job=self.job.name, command=cmd, exit_code=outcome.exit_code)
        self._finish(outcome)

        if self._own_executor is not None:
            # runs on the worker thread itself, so don't wait on it
            self._own_executor.shutdown(wait=False)

    def _finish(self, outcome: Outcome) -> bool:
        """
        Record the end of the run. Only the first caller wins; done_time and
        the terminal status are written before the signal so that anyone
        woken by it sees a finished RunInfo.
        """
        with self._finish_lock:
            if self.completion.is_resolved():
                return False
            self.run_info.done_time = utcnow()
            self._update_status(self._status_for(outcome))
            if outcome.error is not None:
                return self.completion.set_failure(outcome.error)
            return self.completion.set_exit_code(outcome.exit_code)

    def query_status(self) -> bool:
        """
        Non-blocking status check.

        Returns True once the run has finished; the terminal status is
        (re)applied every time. While the run is still going the current
        status is re-asserted so pollers that judge staleness by update time
        don't mistake a long job for an abandoned one.
        """
        outcome = self.completion.peek()
        if outcome is not None:
            self._update_status(self._status_for(outcome))
            return True

        if not self.controller.started or self.controller.is_running():
            self._alive_at = utcnow()
        self._update_status()
        return False

    def last_observed_alive_at(self) -> Optional[datetime]:
        """When this runner last saw its job alive (None before start)."""
        return self._alive_at

    def request_stop(self) -> None:
        """
        Forcefully stop the job, possibly from a shutdown thread.

        Best-effort and non-propagating: errors are logged, never raised.
        The FAILED transition comes from the normal completion path once
        the killed process is reaped.
        """
        try:
            self.controller.terminate()
        except Exception as e:
            logger.error("stop_failed", job=self.job.name, error=str(e), exc_info=True)

    def reap(self, grace: float = REAP_GRACE) -> bool:
        """
        Stop a job its poller has given up on and make sure the run ends.

        After the stop the normal completion path gets `grace` seconds to
        resolve the run. If it has not, and the process is already gone,
        the run is finished here as FAILED with JobLost. Returns True when
        the run is finished afterwards.
        """
        self.request_stop()
        if self.completion.wait(grace) is not None:
            return True
        if self.controller.started and not self.controller.is_running():
            lost = JobLost(job=self.job.name, message="process exited but its result was never collected")
            if self._finish(Outcome(error=lost)):
                logger.warning("job_lost", job=self.job.name)
            return True
        return False

    def wait(self, timeout: float | None = None, *, check: bool = False) -> Optional[int]:
        """
        Block until the run completes and return its exit code.

        Returns None on timeout. A launch failure is re-raised; with
        check=True a non-zero exit raises NonZeroExit.
        """
        outcome = self.completion.wait(timeout)
        if outcome is None:
            return None
        if outcome.error is not None:
            raise outcome.error
        if check and outcome.exit_code != 0:
            raise NonZeroExit(job=self.job.name, exit_code=outcome.exit_code)
        return outcome.exit_code


__all__ = ["AsyncJobRunner", "JobLost", "LaunchFailure", "NonZeroExit", "REAP_GRACE", "resolve_hostname"]
