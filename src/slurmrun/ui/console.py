"""Console output formatting utilities for slurmrun."""

from __future__ import annotations

import sys
from typing import Optional

from slurmrun.model import RunInfo, RunStatus


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
        """
        self.debug = debug

    def print_run_started(self, source: str, job_count: int, launcher: str) -> None:
        """Print run start information."""
        print("\nRUN STARTED")
        print(f"Jobs from: {source}")
        print(f"Jobs: {job_count}")
        print(f"Launcher: {launcher}")
        print()

    def print_job_start(self, name: str, command: list[str]) -> None:
        print(f"\nJOB STARTED: {name}")
        print(f"Command: {' '.join(command)}")

    def print_native_spec(self, spec: str) -> None:
        print(spec)

    def print_job_finished(self, name: str, status: RunStatus, info: RunInfo, exit_code: Optional[int] = None) -> None:
        """Print the terminal state of one job."""
        print(f"\nJOB {status.value}: {name}")
        if exit_code is not None:
            print(f"Exit code: {exit_code}")
        if info.exec_hosts:
            print(f"Host: {info.exec_hosts}")
        if info.start_time and info.done_time:
            print(f"Duration: {(info.done_time - info.start_time).total_seconds():.1f}s")

    def print_results(self, results: dict[str, RunStatus]) -> None:
        """Print final results summary."""
        print("\n" + "=" * 40)
        print("RESULTS")
        print("=" * 40)
        for name, status in results.items():
            print(f"  {name}: {status.value}")

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        print(f"\nERROR: {title}", file=sys.stderr)
        print(f"{message}", file=sys.stderr)
        if details:
            for detail in details:
                print(f"  {detail}", file=sys.stderr)
        if suggestion:
            print(f"\n{suggestion}", file=sys.stderr)

    def print_exception(self, exc: BaseException) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exception(type(exc), exc, exc.__traceback__)
        else:
            print(f"Error: {exc}", file=sys.stderr)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        print(message)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
