# status.py
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Protocol, Tuple

from .model import RunStatus


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StatusReporter(Protocol):
    """Whatever the surrounding engine uses to track job status."""

    def update_status(self, job_name: str, status: RunStatus) -> None:
        ...


@dataclass
class _Entry:
    status: RunStatus
    updated_at: datetime
    history: List[Tuple[RunStatus, datetime]] = field(default_factory=list)


class MemoryStatusStore:
    """
    Thread-safe in-process status store.

    Every update (including re-asserting the same status) bumps
    `updated_at`, which is what a staleness-based poller looks at.
    History only records actual changes.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: Dict[str, _Entry] = {}

    def update_status(self, job_name: str, status: RunStatus) -> None:
        now = utcnow()
        with self._lock:
            entry = self._entries.get(job_name)
            if entry is None:
                self._entries[job_name] = _Entry(status=status, updated_at=now, history=[(status, now)])
                return
            if entry.status != status:
                entry.history.append((status, now))
            entry.status = status
            entry.updated_at = now

    def status(self, job_name: str) -> Optional[RunStatus]:
        with self._lock:
            entry = self._entries.get(job_name)
            return entry.status if entry else None

    def updated_at(self, job_name: str) -> Optional[datetime]:
        with self._lock:
            entry = self._entries.get(job_name)
            return entry.updated_at if entry else None

    def history(self, job_name: str) -> List[RunStatus]:
        with self._lock:
            entry = self._entries.get(job_name)
            return [s for s, _ in entry.history] if entry else []

    def snapshot(self) -> Dict[str, RunStatus]:
        with self._lock:
            return {name: e.status for name, e in self._entries.items()}
