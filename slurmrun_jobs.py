# slurmrun_jobs.py
# Example pipeline: align two samples, then collect stats on a bigger node
from __future__ import annotations
from slurmrun.dsl import build, job

SAMPLES = ["sample_a", "sample_b"]


def jobs():
    align = [
        job(
            f"align-{s}",
            "bwa", "mem", "-t", "4", "ref.fa", f"{s}.fq",
            cores=4,
            memory_gb=8,
            wall_time_hours=6,
            qos="normal",
            output=f"logs/align-{s}.out",
        )
        for s in SAMPLES
    ]

    stats = (
        build("collect-stats")
        .command("samtools", "stats", *[f"{s}.bam" for s in SAMPLES])
        .memory(1.5)
        .wall_time(1)
        .native_args("--partition=short", "--account=genomics")
        .output("logs/stats.out")
        .error("logs/stats.err")
        .wait_before(10)
        .build()
    )

    return [*align, stats]
