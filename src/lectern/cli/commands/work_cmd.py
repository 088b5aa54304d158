from __future__ import annotations

import argparse

from rich.table import Table

from lectern.cli.context import CLIContext
from lectern.domain.models.ingestion import JOB_FAILED


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("work", help="Run queued ingestion jobs in the foreground")
    parser.add_argument("--max-jobs", type=int, default=None)
    parser.set_defaults(handler=run)


def run(args: argparse.Namespace, ctx: CLIContext) -> int:
    services = ctx.services()
    # Stalls left behind by a crashed process become PAUSED before new work starts.
    services.reaper.reap_once()
    services.reaper.start()

    table = Table(title="Ingestion Work")
    table.add_column("Job", overflow="fold")
    table.add_column("Status")
    table.add_column("Chunks", justify="right")
    table.add_column("Error", overflow="fold")

    processed = 0
    exit_code = 0
    try:
        with ctx.console.status("Ingesting...") as status:
            while args.max_jobs is None or processed < args.max_jobs:
                job = services.job_repo.claim_next()
                if job is None:
                    break
                status.update(f"Ingesting job {job.id}")
                services.runner.run(job.id)
                processed += 1
                finished = services.job_repo.get_by_id(job.id)
                if finished is None:
                    continue
                if finished.status == JOB_FAILED:
                    exit_code = 1
                table.add_row(
                    finished.id,
                    finished.status,
                    f"{finished.chunks_done}/{finished.total_chunks or 0}",
                    finished.error_message or "",
                )
    finally:
        services.reaper.shutdown()

    if processed == 0:
        ctx.console.print("[yellow]No queued jobs[/yellow]")
        return 0
    ctx.console.print(table)
    return exit_code
