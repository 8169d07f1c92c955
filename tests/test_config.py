"""Tests for environment-driven settings."""

import json

import pytest
import structlog

from slurmrun.config import Settings, load_settings
from slurmrun.logging import setup_logging


class TestLoadSettings:
    def test_defaults(self):
        settings = load_settings({})
        assert settings.launcher == "srun"
        assert settings.dont_request_multiple_cores is False
        assert settings.default_native_spec == ""
        assert settings.echo_output is False
        assert settings.poll_interval == 5.0
        assert settings.stale_after == 300.0
        assert settings.max_workers >= 1

    def test_from_environment(self):
        settings = load_settings({
            "SLURMRUN_LAUNCHER": " Local ",
            "SLURMRUN_DONT_REQUEST_MULTIPLE_CORES": "yes",
            "SLURMRUN_DEFAULT_NATIVE_SPEC": "--account=lab",
            "SLURMRUN_DEBUG_ECHO": "1",
            "SLURMRUN_POLL_INTERVAL": "0.5",
            "SLURMRUN_STALE_AFTER": "60",
            "SLURMRUN_MAX_WORKERS": "3",
        })
        assert settings == Settings(
            launcher="local",
            dont_request_multiple_cores=True,
            default_native_spec="--account=lab",
            echo_output=True,
            poll_interval=0.5,
            stale_after=60.0,
            max_workers=3,
        )

    def test_false_flag(self):
        assert load_settings({"SLURMRUN_DEBUG_ECHO": "off"}).echo_output is False

    def test_reads_os_environ_by_default(self, monkeypatch):
        monkeypatch.setenv("SLURMRUN_LAUNCHER", "local")
        assert load_settings().launcher == "local"


class TestSettings:
    @pytest.mark.parametrize(
        "kwargs",
        [{"launcher": "sbatch"}, {"poll_interval": 0}, {"stale_after": -1}, {"max_workers": 0}],
    )
    def test_rejects_invalid(self, kwargs):
        with pytest.raises(ValueError):
            Settings(**kwargs)

    def test_default_workers_match_environment_default(self):
        assert Settings().max_workers == load_settings({}).max_workers
        assert Settings().max_workers >= 1

    def test_overrides_skip_none(self):
        base = Settings(launcher="srun", poll_interval=2.0)
        changed = base.with_overrides(launcher="local", poll_interval=None)
        assert changed.launcher == "local"
        assert changed.poll_interval == 2.0
        assert base.launcher == "srun"


class TestSetupLogging:
    def test_json_output_respects_level(self, capsys):
        setup_logging(level="warning", fmt="json")
        log = structlog.get_logger("slurmrun.test")
        log.info("hidden", job="j")
        log.warning("shown", job="j")

        lines = [line for line in capsys.readouterr().err.splitlines() if line.strip()]
        assert len(lines) == 1
        record = json.loads(lines[0])
        assert record["event"] == "shown"
        assert record["job"] == "j"
        assert record["level"] == "warning"
        assert "timestamp" in record

    def test_level_and_format_from_environment(self, capsys, monkeypatch):
        monkeypatch.setenv("SLURMRUN_LOG_LEVEL", "debug")
        monkeypatch.setenv("SLURMRUN_LOG_FORMAT", "console")
        setup_logging()
        structlog.get_logger("slurmrun.test").debug("process_started", pid=1)
        assert "process_started" in capsys.readouterr().err
