"""Tests for the status-polling monitor."""

import sys
import time
from datetime import timedelta

from structlog.testing import capture_logs

from slurmrun.config import Settings
from slurmrun.dsl import job
from slurmrun.errors import JobLost
from slurmrun.model import RunStatus
from slurmrun.monitor import StatusMonitor
from slurmrun.process import ProcessController
from slurmrun.runner import AsyncJobRunner
from slurmrun.status import MemoryStatusStore, utcnow


def _short_sleep(_seconds):
    time.sleep(0.01)


class TestStatusMonitor:
    def test_runs_until_everything_finishes(self, py_job, local_settings, store):
        runners = [
            AsyncJobRunner(py_job("good", "pass"), settings=local_settings, status_store=store),
            AsyncJobRunner(py_job("bad", "import sys; sys.exit(2)"), settings=local_settings, status_store=store),
        ]
        for r in runners:
            r.start()

        results = StatusMonitor(runners, sleep=_short_sleep).run_until_done(timeout=30)

        assert results == {"good": RunStatus.DONE, "bad": RunStatus.FAILED}
        assert store.snapshot() == results

    def test_poll_once_reports_progress(self, py_job, local_settings):
        runner = AsyncJobRunner(py_job("slow", "import time; time.sleep(30)"), settings=local_settings)
        runner.start()
        monitor = StatusMonitor([runner], sleep=_short_sleep)
        try:
            assert monitor.poll_once() == {"slow": False}
            assert not monitor.all_finished()
        finally:
            monitor.stop_all()
        monitor.run_until_done(timeout=30)
        assert monitor.all_finished()
        assert runner.status == RunStatus.FAILED

    def test_stale_runner_is_reaped(self, py_job, local_settings):
        runner = AsyncJobRunner(py_job("stuck", "import time; time.sleep(30)"), settings=local_settings)
        runner.start()
        long_ago = utcnow() - timedelta(hours=1)
        runner.last_observed_alive_at = lambda: long_ago

        monitor = StatusMonitor([runner], stale_after=60, sleep=_short_sleep)
        with capture_logs() as logs:
            monitor.poll_once()

        assert monitor.reaped == ["stuck"]
        assert any(e["event"] == "job_stale" and e["log_level"] == "warning" for e in logs)

        results = monitor.run_until_done(timeout=30)
        assert results == {"stuck": RunStatus.FAILED}
        assert monitor.reaped == ["stuck"]

    def test_leftover_output_holder_does_not_stall_monitor(self, tmp_path):
        code = (
            "import subprocess, sys; "
            "subprocess.Popen([sys.executable, '-c', 'import time; time.sleep(10)']); "
            "print('parent done', flush=True)"
        )
        description = job("leaky", sys.executable, "-c", code, cwd=str(tmp_path))
        settings = Settings(launcher="local", echo_output=True, poll_interval=0.02)
        runner = AsyncJobRunner(description, settings=settings, controller=ProcessController(drain_timeout=0.2))
        monitor = StatusMonitor([runner], stale_after=0.05, reap_grace=2, sleep=_short_sleep)

        started = time.monotonic()
        runner.start()
        results = monitor.run_until_done(timeout=8)

        assert results == {"leaky": RunStatus.DONE}
        assert time.monotonic() - started < 8

    def test_stale_runner_with_lost_result_is_failed(self, py_job, local_settings, hung_controller):
        runner = AsyncJobRunner(py_job("lost", "pass"), settings=local_settings, controller=hung_controller)
        monitor = StatusMonitor([runner], stale_after=0.05, reap_grace=0.05, sleep=_short_sleep)

        runner.start()
        with capture_logs() as logs:
            results = monitor.run_until_done(timeout=10)

        assert results == {"lost": RunStatus.FAILED}
        assert monitor.reaped == ["lost"]
        assert isinstance(runner.completion.peek().error, JobLost)
        events = [e["event"] for e in logs]
        assert events.index("job_stale") < events.index("job_lost")

    def test_fresh_runner_is_left_alone(self, py_job, local_settings):
        runner = AsyncJobRunner(py_job("busy", "import time; time.sleep(30)"), settings=local_settings)
        runner.start()
        monitor = StatusMonitor([runner], stale_after=60, sleep=_short_sleep)
        try:
            monitor.poll_once()
            monitor.poll_once()
            assert monitor.reaped == []
            assert runner.status == RunStatus.RUNNING
        finally:
            monitor.stop_all()
        monitor.run_until_done(timeout=30)

    def test_timeout_leaves_jobs_running(self, py_job, local_settings):
        runner = AsyncJobRunner(py_job("endless", "import time; time.sleep(30)"), settings=local_settings)
        runner.start()
        monitor = StatusMonitor([runner], poll_interval=0.01)
        try:
            assert monitor.run_until_done(timeout=0.1) == {"endless": RunStatus.RUNNING}
        finally:
            monitor.stop_all()
        monitor.run_until_done(timeout=30)

    def test_stop_all_skips_finished_runners(self, py_job, local_settings):
        class CountingRunner(AsyncJobRunner):
            stops = 0

            def request_stop(self):
                type(self).stops += 1
                super().request_stop()

        runner = CountingRunner(py_job("done-already", "pass"), settings=local_settings)
        runner.start()
        runner.wait(timeout=10)

        StatusMonitor([runner]).stop_all()
        assert CountingRunner.stops == 0


class TestMemoryStatusStore:
    def test_history_only_records_changes(self):
        store = MemoryStatusStore()
        store.update_status("j", RunStatus.RUNNING)
        first = store.updated_at("j")
        store.update_status("j", RunStatus.RUNNING)
        store.update_status("j", RunStatus.DONE)

        assert store.history("j") == [RunStatus.RUNNING, RunStatus.DONE]
        assert store.status("j") == RunStatus.DONE
        assert store.updated_at("j") >= first

    def test_unknown_job(self):
        store = MemoryStatusStore()
        assert store.status("nope") is None
        assert store.updated_at("nope") is None
        assert store.history("nope") == []
