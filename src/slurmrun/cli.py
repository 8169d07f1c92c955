# cli.py
from __future__ import annotations

import signal
import sys
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from pathlib import Path

import click

from slurmrun.config import LAUNCHERS, load_settings
from slurmrun.dsl import job as make_job, load_jobs
from slurmrun.errors import LaunchFailure
from slurmrun.logging import setup_logging
from slurmrun.model import RunStatus
from slurmrun.monitor import StatusMonitor
from slurmrun.native_spec import NATIVE_SPEC_STYLES
from slurmrun.runner import AsyncJobRunner
from slurmrun.status import MemoryStatusStore
from slurmrun.ui.console import Console, get_console, set_console

DEFAULT_JOBS_FILE = "slurmrun_jobs.py"


def find_jobs_files() -> list[Path]:
    """Job files in the current directory: slurmrun_jobs.py first, then *_jobs.py."""
    current_dir = Path(".")
    found = []
    default = current_dir / DEFAULT_JOBS_FILE
    if default.exists():
        found.append(default)
    for path in current_dir.glob("*_jobs.py"):
        if path != default:
            found.append(path)
    return sorted(found)


def discover_jobs_file(jobs_arg: str | None) -> Path:
    console = get_console()

    if jobs_arg:
        jobs_path = Path(jobs_arg)
        if not jobs_path.exists() and jobs_path.suffix != ".py":
            jobs_path = Path(str(jobs_path) + ".py")
        if not jobs_path.exists():
            console.print_error(
                "Jobs file not found",
                f"Could not find jobs file: {jobs_arg}",
                suggestion="Create a jobs file or specify a different path:\n  slurmrun run --jobs my_jobs.py",
            )
            sys.exit(1)
        return jobs_path

    files = find_jobs_files()
    if len(files) == 0:
        console.print_error(
            "No jobs file found",
            "Could not find any jobs files.",
            details=["Looked for:", f"  {DEFAULT_JOBS_FILE}", "  *_jobs.py"],
            suggestion=f"Create {DEFAULT_JOBS_FILE} or specify one:\n  slurmrun run --jobs my_jobs.py",
        )
        sys.exit(1)
    if len(files) > 1:
        console.print_error(
            "Multiple jobs files found",
            "Found multiple jobs files. Please specify which one to use:",
            details=["\n".join(f"  {f}" for f in files)],
            suggestion=f"Specify one explicitly:\n  slurmrun run --jobs {DEFAULT_JOBS_FILE}",
        )
        sys.exit(1)
    return files[0]


@contextmanager
def stop_on_signal(monitor: StatusMonitor):
    """Stop every runner on SIGINT/SIGTERM, restoring the old handlers afterwards."""
    console = get_console()

    def _handler(signum, frame):
        console.print_info(f"\nReceived signal {signum}, stopping jobs...")
        monitor.stop_all()

    previous = {sig: signal.signal(sig, _handler) for sig in (signal.SIGINT, signal.SIGTERM)}
    try:
        yield
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


def resource_options(f):
    """Options shared by every command that describes a job."""
    f = click.option("--cores", type=int, default=None, help="Number of cores to request")(f)
    f = click.option("--mem", "memory_gb", type=float, default=None, help="Memory limit in GB")(f)
    f = click.option("--time", "wall_time_hours", type=int, default=None, help="Wall time limit in hours")(f)
    f = click.option("--qos", default=None, help="Quality-of-service tag")(f)
    f = click.option("--native-arg", "native_args", multiple=True, help="Extra raw scheduler argument(s)")(f)
    f = click.option(
        "--no-multicore-request",
        "dont_request_multiple_cores",
        is_flag=True,
        default=False,
        help="Do not ask the scheduler for multiple cores",
    )(f)
    return f


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (echo job output, show stack traces and debug logs)",
)
@click.pass_context
def cli(ctx, debug):
    """slurmrun: run commands on a SLURM cluster without blocking."""
    console = Console(debug=debug)
    set_console(console)
    setup_logging(level="DEBUG" if debug else None)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@click.argument("name")
@click.option("--style", type=click.Choice(sorted(NATIVE_SPEC_STYLES)), default="drmaa", show_default=True)
@resource_options
@click.pass_context
def spec(ctx, name, style, cores, memory_gb, wall_time_hours, qos, native_args, dont_request_multiple_cores):
    """Print the scheduler arguments a job would be submitted with."""
    console = get_console()
    settings = load_settings().with_overrides(dont_request_multiple_cores=dont_request_multiple_cores or None)
    try:
        description = make_job(
            name, "true",
            cores=cores, memory_gb=memory_gb, wall_time_hours=wall_time_hours,
            qos=qos, native_args=native_args,
        )
    except ValueError as e:
        console.print_error("Invalid job", str(e))
        sys.exit(2)

    build_spec = NATIVE_SPEC_STYLES[style]
    console.print_native_spec(build_spec(
        description,
        dont_request_multiple_cores=settings.dont_request_multiple_cores,
        default_native_spec=settings.default_native_spec,
    ))


@cli.command(name="exec", context_settings={"ignore_unknown_options": True})
@click.argument("name")
@click.argument("command", nargs=-1, required=True, type=click.UNPROCESSED)
@resource_options
@click.option("--output", default=None, help="Output file (appended). Defaults to NAME.out")
@click.option("--error", default=None, help="Error file (appended). Merged into output if omitted")
@click.option("--cwd", default=".", help="Working directory")
@click.option("--wait-before", type=int, default=None, help="Seconds to wait before launching")
@click.option("--launcher", type=click.Choice(LAUNCHERS), default=None, help="srun or local")
@click.option("--poll-interval", type=float, default=None, help="Seconds between status polls")
@click.pass_context
def exec_(ctx, name, command, cores, memory_gb, wall_time_hours, qos, native_args,
          dont_request_multiple_cores, output, error, cwd, wait_before, launcher, poll_interval):
    """Run one command as a job and wait for it."""
    console = get_console()
    settings = load_settings().with_overrides(
        launcher=launcher,
        dont_request_multiple_cores=dont_request_multiple_cores or None,
        poll_interval=poll_interval,
        echo_output=True if ctx.obj.get("debug") else None,
    )
    try:
        description = make_job(
            name, command[0], *command[1:],
            cores=cores, memory_gb=memory_gb, wall_time_hours=wall_time_hours,
            qos=qos, native_args=native_args,
            output=output, error=error, cwd=cwd, wait_before=wait_before,
        )
    except ValueError as e:
        console.print_error("Invalid job", str(e))
        sys.exit(2)

    runner = AsyncJobRunner(description, settings=settings)
    monitor = StatusMonitor([runner], poll_interval=settings.poll_interval, stale_after=settings.stale_after)

    console.print_job_start(name, runner.command_line())
    with stop_on_signal(monitor):
        runner.start()
        results = monitor.run_until_done()

    outcome = runner.completion.peek()
    if outcome is not None and isinstance(outcome.error, LaunchFailure):
        console.print_error("Launch failed", str(outcome.error), suggestion="Check the executable and working directory.")
    elif outcome is not None and outcome.error is not None:
        console.print_exception(outcome.error)
    console.print_job_finished(
        name, results[name], runner.run_info, exit_code=outcome.exit_code if outcome else None,
    )
    if results[name] != RunStatus.DONE:
        sys.exit(1)


@cli.command()
@click.option("--jobs", "jobs_file", default=None, help=f"Jobs file path (defaults to {DEFAULT_JOBS_FILE} if present)")
@click.option("--workers", default=None, type=int, help="Number of jobs running at once")
@click.option("--launcher", type=click.Choice(LAUNCHERS), default=None, help="srun or local")
@click.option("--poll-interval", type=float, default=None, help="Seconds between status polls")
@click.pass_context
def run(ctx, jobs_file, workers, launcher, poll_interval):
    """Run every job in a jobs file on a shared worker pool."""
    console = get_console()
    jobs_path = discover_jobs_file(jobs_file)

    try:
        jobs = load_jobs(jobs_path)
    except Exception as e:
        console.print_error("Failed to load jobs", f"Could not load jobs from {jobs_path}", details=[str(e)])
        if ctx.obj.get("debug", False):
            console.print_exception(e)
        sys.exit(1)

    settings = load_settings().with_overrides(
        launcher=launcher,
        max_workers=workers,
        poll_interval=poll_interval,
        echo_output=True if ctx.obj.get("debug") else None,
    )
    console.print_run_started(source=jobs_path.name, job_count=len(jobs), launcher=settings.launcher)

    store = MemoryStatusStore()
    with ThreadPoolExecutor(max_workers=settings.max_workers, thread_name_prefix="slurmrun") as pool:
        runners = [AsyncJobRunner(j, settings=settings, status_store=store, executor=pool) for j in jobs]
        monitor = StatusMonitor(runners, poll_interval=settings.poll_interval, stale_after=settings.stale_after)
        with stop_on_signal(monitor):
            for r in runners:
                r.start()
            results = monitor.run_until_done()

    console.print_results(results)
    if any(s != RunStatus.DONE for s in results.values()):
        sys.exit(1)


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
