from __future__ import annotations

import argparse
from pathlib import Path

from rich.progress import BarColumn, Progress, TextColumn, TimeElapsedColumn
from rich.table import Table

from lectern.cli.commands._metadata import add_metadata_arguments, metadata_from_args
from lectern.cli.context import CLIContext
from lectern.core.errors import StorageError, ValidationError


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("upload", help="Upload PDF textbooks and queue them for ingestion")
    parser.add_argument("paths", nargs="+", help="Local PDF files")
    add_metadata_arguments(parser)
    parser.add_argument("--dispatch", action="store_true", help="Start ingesting right away")
    parser.set_defaults(handler=run)


def run(args: argparse.Namespace, ctx: CLIContext) -> int:
    services = ctx.services()
    metadata = metadata_from_args(args)

    table = Table(title="Upload Results")
    table.add_column("File", overflow="fold")
    table.add_column("Status")
    table.add_column("Document", overflow="fold")
    table.add_column("Job", overflow="fold")

    exit_code = 0
    paths = [Path(p) for p in args.paths]
    progress = Progress(
        TextColumn("{task.description}"),
        BarColumn(),
        TextColumn("{task.completed}/{task.total}"),
        TimeElapsedColumn(),
        console=ctx.console,
    )

    with progress:
        task = progress.add_task("Uploading", total=len(paths))
        for path in paths:
            try:
                content = path.expanduser().read_bytes()
                result = services.documents.upload(content=content, filename=path.name, **metadata)
                table.add_row(
                    str(path),
                    result.status,
                    result.document.id,
                    result.job.id if result.job else "-",
                )
            except (OSError, ValidationError, StorageError) as exc:
                table.add_row(str(path), "error", str(exc), "-")
                exit_code = 1
            finally:
                progress.advance(task, 1)

    ctx.console.print(table)
    if args.dispatch:
        job = services.dispatcher.dispatch_next()
        if job is not None:
            ctx.console.print(f"[green]Dispatched[/green] {job.id}")
            services.dispatcher.join()
    return exit_code
