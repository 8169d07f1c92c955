from .dsl import job, build, JobBuilder, load_jobs
from .model import JobDescription, ResourceRequest, RunInfo, RunStatus
from .native_spec import drmaa_native_spec, srun_arguments, srun_command, srun_native_spec, sanitize_job_name
from .runner import AsyncJobRunner
from .monitor import StatusMonitor

__all__ = [
    "job", "build", "JobBuilder", "load_jobs",
    "JobDescription", "ResourceRequest", "RunInfo", "RunStatus",
    "drmaa_native_spec", "srun_arguments", "srun_command", "srun_native_spec", "sanitize_job_name",
    "AsyncJobRunner", "StatusMonitor",
]
