from __future__ import annotations

import argparse

from rich.panel import Panel
from rich.table import Table

from lectern.cli.context import CLIContext
from lectern.core.errors import DocumentNotFoundError
from lectern.domain.models.document import DOCUMENT_STATUSES


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("documents", help="Inspect and delete uploaded documents")
    doc_subparsers = parser.add_subparsers(dest="documents_command", required=True)

    list_parser = doc_subparsers.add_parser("list", help="List documents")
    list_parser.add_argument("--limit", type=int, default=100)
    list_parser.add_argument("--status", choices=sorted(DOCUMENT_STATUSES))
    list_parser.set_defaults(handler=run_list)

    show = doc_subparsers.add_parser("show", help="Show one document with its jobs")
    show.add_argument("document_id")
    show.set_defaults(handler=run_show)

    delete = doc_subparsers.add_parser("delete", help="Delete a document, its chunks and its blob")
    delete.add_argument("document_id")
    delete.set_defaults(handler=run_delete)


def run_list(args: argparse.Namespace, ctx: CLIContext) -> int:
    documents = ctx.services().documents.list_documents(args.limit, status=args.status)
    table = Table(title=f"Documents ({len(documents)})")
    table.add_column("ID", overflow="fold")
    table.add_column("Title", overflow="fold")
    table.add_column("Level")
    table.add_column("Status")
    table.add_column("Pages", justify="right")
    for doc in documents:
        table.add_row(
            doc.id,
            doc.title,
            doc.education_level or "-",
            doc.status,
            str(doc.page_count) if doc.page_count is not None else "-",
        )
    ctx.console.print(table)
    return 0


def run_show(args: argparse.Namespace, ctx: CLIContext) -> int:
    detail = ctx.services().documents.get_document_detail(args.document_id)
    doc = detail.document
    lines = [
        f"id: {doc.id}",
        f"title: {doc.title}",
        f"status: {doc.status}",
        f"subject: {doc.subject or '-'}",
        f"education_level: {doc.education_level or '-'}",
        f"year_number: {doc.year_number if doc.year_number is not None else '-'}",
        f"specialization: {doc.specialization or '-'}",
        f"edition: {doc.edition or '-'}",
        f"source_url: {doc.source_url or '-'}",
        f"pages: {doc.page_count if doc.page_count is not None else '-'}",
        f"chunks: {detail.chunk_count}",
    ]
    ctx.console.print(Panel("\n".join(lines), title="Document"))

    table = Table(title="Jobs")
    table.add_column("ID", overflow="fold")
    table.add_column("Status")
    table.add_column("Progress", justify="right")
    table.add_column("Error", overflow="fold")
    for job in detail.jobs:
        table.add_row(job.id, job.status, f"{job.progress_percent:.1f}%", job.error_message or "")
    ctx.console.print(table)
    return 0


def run_delete(args: argparse.Namespace, ctx: CLIContext) -> int:
    if not ctx.services().documents.delete_document(args.document_id):
        raise DocumentNotFoundError(f"Document not found: {args.document_id}")
    ctx.console.print(f"[green]Deleted[/green] {args.document_id}")
    return 0
