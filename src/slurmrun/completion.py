# completion.py
from __future__ import annotations

from concurrent.futures import Future, InvalidStateError
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Outcome:
    """What a resolved CompletionSignal holds: an exit code or a launch error."""
    exit_code: Optional[int] = None
    error: Optional[BaseException] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.exit_code == 0


class CompletionSignal:
    """
    Single-assignment result cell for one run.

    The first write wins; any later write is ignored and reported as such
    by returning False. Reads never block unless wait() is used.
    """

    def __init__(self) -> None:
        self._future: Future = Future()

    def set_exit_code(self, exit_code: int) -> bool:
        try:
            self._future.set_result(exit_code)
        except InvalidStateError:
            return False
        return True

    def set_failure(self, error: BaseException) -> bool:
        try:
            self._future.set_exception(error)
        except InvalidStateError:
            return False
        return True

    def is_resolved(self) -> bool:
        return self._future.done()

    def peek(self) -> Optional[Outcome]:
        """Non-blocking read. None means "not complete yet"."""
        if not self._future.done():
            return None
        return self._outcome()

    def wait(self, timeout: float | None = None) -> Optional[Outcome]:
        """Blocking read. None means the timeout elapsed first."""
        try:
            self._future.exception(timeout=timeout)
        except FutureTimeout:
            return None
        return self._outcome()

    def _outcome(self) -> Outcome:
        error = self._future.exception()
        if error is not None:
            return Outcome(error=error)
        return Outcome(exit_code=self._future.result())
