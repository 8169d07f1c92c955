# config.py
from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from typing import Mapping, Optional

LAUNCHERS = ("srun", "local")

_TRUE = {"1", "true", "yes", "on"}


def _flag(env: Mapping[str, str], key: str, default: bool) -> bool:
    raw = env.get(key)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUE


def _default_workers() -> int:
    c = os.cpu_count() or 2
    return max(1, c - 1)


@dataclass(frozen=True)
class Settings:
    launcher: str = "srun"
    dont_request_multiple_cores: bool = False
    default_native_spec: str = ""
    echo_output: bool = False
    poll_interval: float = 5.0
    stale_after: float = 300.0   # seconds without a liveness observation
    max_workers: int = field(default_factory=_default_workers)

    def __post_init__(self) -> None:
        if self.launcher not in LAUNCHERS:
            raise ValueError(f"launcher must be one of {LAUNCHERS}, got {self.launcher!r}")
        if self.poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        if self.stale_after <= 0:
            raise ValueError("stale_after must be positive")
        if self.max_workers < 1:
            raise ValueError("max_workers must be >= 1")

    def with_overrides(self, **changes) -> Settings:
        """Copy with the given fields replaced; None values are ignored."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    env = os.environ if env is None else env
    return Settings(
        launcher=env.get("SLURMRUN_LAUNCHER", "srun").strip().lower(),
        dont_request_multiple_cores=_flag(env, "SLURMRUN_DONT_REQUEST_MULTIPLE_CORES", False),
        default_native_spec=env.get("SLURMRUN_DEFAULT_NATIVE_SPEC", ""),
        echo_output=_flag(env, "SLURMRUN_DEBUG_ECHO", False),
        poll_interval=float(env.get("SLURMRUN_POLL_INTERVAL", "5")),
        stale_after=float(env.get("SLURMRUN_STALE_AFTER", "300")),
        max_workers=int(env.get("SLURMRUN_MAX_WORKERS", str(_default_workers()))),
    )
