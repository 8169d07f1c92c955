"""Shared fixtures for slurmrun tests."""
from __future__ import annotations

import sys
import threading
from pathlib import Path

import pytest
import structlog

from slurmrun.config import Settings
from slurmrun.dsl import job
from slurmrun.status import MemoryStatusStore


@pytest.fixture(autouse=True)
def _reset_structlog():
    yield
    structlog.reset_defaults()


@pytest.fixture
def local_settings() -> Settings:
    """Run commands directly instead of through srun."""
    return Settings(launcher="local", poll_interval=0.02)


@pytest.fixture
def store() -> MemoryStatusStore:
    return MemoryStatusStore()


@pytest.fixture
def py_job(tmp_path: Path):
    """Build a JobDescription that runs a python snippet inside tmp_path."""

    def _make(name: str, code: str, **kwargs):
        return job(name, sys.executable, "-c", code, cwd=str(tmp_path), **kwargs)

    return _make


class HungController:
    """A process that has exited, but whose launch() only returns once released."""

    def __init__(self):
        self.started = False
        self._release = threading.Event()

    def launch(self, settings):
        self.started = True
        self._release.wait(30)
        return 0

    def is_running(self):
        return False

    def terminate(self):
        pass

    def release(self):
        self._release.set()


@pytest.fixture
def hung_controller():
    controller = HungController()
    yield controller
    controller.release()
