from __future__ import annotations

import argparse

from rich.markup import escape
from rich.table import Table

from lectern.cli.context import CLIContext
from lectern.domain.models.document import EDUCATION_LEVELS


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("search", help="Semantic search over READY documents")
    parser.add_argument("--query", required=True)
    parser.add_argument("--limit", type=int, default=8)
    parser.add_argument("--document-id")
    parser.add_argument("--page-start", type=int)
    parser.add_argument("--page-end", type=int)
    parser.add_argument("--education-level", choices=EDUCATION_LEVELS)
    parser.set_defaults(handler=run)


def run(args: argparse.Namespace, ctx: CLIContext) -> int:
    results = ctx.services().retrieval.search(
        args.query,
        limit=args.limit,
        document_id=args.document_id,
        page_start=args.page_start,
        page_end=args.page_end,
        education_level=args.education_level,
    )
    if not results:
        ctx.console.print("[yellow]No matching chunks[/yellow]")
        return 0

    table = Table(title=f"Results for {escape(args.query)!r}")
    table.add_column("Score", justify="right")
    table.add_column("Source", overflow="fold")
    table.add_column("Text", overflow="fold")
    for item in results:
        snippet = item.text if len(item.text) <= 240 else item.text[:237] + "..."
        table.add_row(f"{item.score:.3f}", escape(item.source_ref), escape(snippet))
    ctx.console.print(table)
    return 0
