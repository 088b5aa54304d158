from __future__ import annotations

import argparse

from rich.panel import Panel

from lectern.cli.commands._metadata import add_metadata_arguments, metadata_from_args
from lectern.cli.context import CLIContext


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("import-url", help="Download a PDF by URL and queue it for ingestion")
    parser.add_argument("url")
    add_metadata_arguments(parser)
    parser.set_defaults(handler=run)


def run(args: argparse.Namespace, ctx: CLIContext) -> int:
    result = ctx.services().documents.import_from_url(args.url, **metadata_from_args(args))
    ctx.console.print(
        Panel(
            "\n".join(
                [
                    f"status: {result.status}",
                    f"document: {result.document.id}",
                    f"title: {result.document.title}",
                    f"job: {result.job.id if result.job else '-'}",
                ]
            ),
            title="Import",
        )
    )
    return 0
