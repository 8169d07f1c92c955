# monitor.py
from __future__ import annotations

import time
from datetime import timedelta
from typing import Callable, Dict, Iterable, List, Optional

import structlog

from .model import RunStatus
from .runner import REAP_GRACE, AsyncJobRunner
from .status import utcnow

logger = structlog.get_logger(__name__)


class StatusMonitor:
    """
    Polls a set of runners until every one of them is finished.

    A runner whose liveness has not been observed for `stale_after` seconds
    is treated as lost and reaped: stopped, and finished as FAILED if its
    process turns out to be gone already.
    """

    def __init__(
        self,
        runners: Iterable[AsyncJobRunner],
        *,
        poll_interval: float = 5.0,
        stale_after: float = 300.0,
        reap_grace: float = REAP_GRACE,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.runners: List[AsyncJobRunner] = list(runners)
        self.poll_interval = poll_interval
        self.stale_after = timedelta(seconds=stale_after)
        self.reap_grace = reap_grace
        self._sleep = sleep
        self._finished: Dict[str, bool] = {r.job.name: False for r in self.runners}
        self.reaped: List[str] = []

    def poll_once(self) -> Dict[str, bool]:
        """Query every unfinished runner once. Returns {job name: finished}."""
        now = utcnow()
        for runner in self.runners:
            name = runner.job.name
            if self._finished[name]:
                continue
            if runner.query_status():
                self._finished[name] = True
                logger.info("job_finished", job=name, status=runner.status.value)
                continue

            alive_at = runner.last_observed_alive_at()
            if alive_at is not None and now - alive_at > self.stale_after and name not in self.reaped:
                logger.warning(
                    "job_stale",
                    job=name,
                    last_alive=alive_at.isoformat(),
                    stale_after=self.stale_after.total_seconds(),
                )
                self.reaped.append(name)
                if runner.reap(self.reap_grace):
                    self._finished[name] = True
                    logger.info("job_finished", job=name, status=runner.status.value)
        return dict(self._finished)

    def all_finished(self) -> bool:
        return all(self._finished.values())

    def run_until_done(self, timeout: Optional[float] = None) -> Dict[str, RunStatus]:
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            self.poll_once()
            if self.all_finished():
                break
            if deadline is not None and time.monotonic() >= deadline:
                logger.warning("monitor_timeout", unfinished=[n for n, f in self._finished.items() if not f])
                break
            self._sleep(self.poll_interval)
        return {r.job.name: r.status for r in self.runners}

    def stop_all(self) -> None:
        """Shutdown hook: stop everything still running."""
        for runner in self.runners:
            if not runner.status.is_terminal:
                runner.request_stop()
