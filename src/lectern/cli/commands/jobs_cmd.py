from __future__ import annotations

import argparse

from rich.table import Table

from lectern.cli.context import CLIContext
from lectern.core.errors import JobNotFoundError, ValidationError
from lectern.domain.models.ingestion import JOB_STATUSES


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("jobs", help="Inspect and control ingestion jobs")
    job_subparsers = parser.add_subparsers(dest="jobs_command", required=True)

    list_parser = job_subparsers.add_parser("list", help="List ingestion jobs")
    list_parser.add_argument("--limit", type=int, default=100)
    list_parser.add_argument("--status", choices=sorted(JOB_STATUSES))
    list_parser.set_defaults(handler=run_list)

    dispatch = job_subparsers.add_parser("dispatch", help="Claim the next queued job and run the queue")
    dispatch.set_defaults(handler=run_dispatch)

    requeue = job_subparsers.add_parser("requeue", help="Requeue a PAUSED or FAILED job")
    requeue.add_argument("job_id")
    requeue.set_defaults(handler=run_requeue)

    reap = job_subparsers.add_parser("reap", help="Pause RUNNING jobs whose heartbeat is stale")
    reap.add_argument("--timeout-seconds", type=float, default=None)
    reap.set_defaults(handler=run_reap)


def run_list(args: argparse.Namespace, ctx: CLIContext) -> int:
    job_repo = ctx.services().job_repo
    jobs = job_repo.list(limit=args.limit, status=args.status)
    counts = job_repo.count_by_status()

    table = Table(title="Ingestion Jobs " + " ".join(f"{k}={v}" for k, v in counts.items()))
    table.add_column("ID", overflow="fold")
    table.add_column("Document", overflow="fold")
    table.add_column("Status")
    table.add_column("Chunks", justify="right")
    table.add_column("Progress", justify="right")
    table.add_column("Heartbeat")
    table.add_column("Error", overflow="fold")
    for job in jobs:
        total = "?" if job.total_chunks is None else str(job.total_chunks)
        table.add_row(
            job.id,
            job.document_id,
            job.status,
            f"{job.chunks_done}/{total}",
            f"{job.progress_percent:.1f}%",
            job.last_heartbeat_at or "-",
            job.error_message or "",
        )
    ctx.console.print(table)
    return 0


def run_dispatch(args: argparse.Namespace, ctx: CLIContext) -> int:
    dispatcher = ctx.services().dispatcher
    job = dispatcher.dispatch_next()
    if job is None:
        ctx.console.print("[yellow]No queued jobs[/yellow]")
        return 0
    ctx.console.print(f"[green]Dispatched[/green] {job.id}")
    # The process owns the worker threads; wait for the chain to drain.
    dispatcher.join()
    return 0


def run_requeue(args: argparse.Namespace, ctx: CLIContext) -> int:
    job_repo = ctx.services().job_repo
    current = job_repo.get_by_id(args.job_id)
    if current is None:
        raise JobNotFoundError(f"Ingestion job not found: {args.job_id}")
    job = job_repo.requeue(args.job_id)
    if job is None:
        raise ValidationError(f"Job {args.job_id} is {current.status}; only PAUSED or FAILED jobs can be requeued.")
    ctx.console.print(f"[green]Requeued[/green] {job.id} (resumes at chunk {job.next_chunk_index})")
    return 0


def run_reap(args: argparse.Namespace, ctx: CLIContext) -> int:
    services = ctx.services()
    timeout = args.timeout_seconds or services.settings.stall_timeout_seconds
    stalled = services.job_repo.mark_stalled(timeout)
    ctx.console.print(f"Paused {stalled} stalled job(s)")
    return 0
