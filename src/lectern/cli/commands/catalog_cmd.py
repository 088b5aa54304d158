from __future__ import annotations

import argparse

from rich.table import Table

from lectern.cli.context import CLIContext
from lectern.core.errors import FetchError, StorageError, ValidationError
from lectern.infrastructure.importers.textbook_catalog import DEFAULT_BASE_URL, TextbookCatalog


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("catalog", help="Discover public textbooks to import")
    catalog_subparsers = parser.add_subparsers(dest="catalog_command", required=True)

    discover = catalog_subparsers.add_parser("discover", help="Scrape the koutoubi.mr catalog")
    discover.add_argument("--base-url", default=DEFAULT_BASE_URL)
    discover.add_argument("--limit", type=int, default=None)
    discover.add_argument("--import", dest="do_import", action="store_true", help="Queue every discovered book")
    discover.set_defaults(handler=run_discover)


def run_discover(args: argparse.Namespace, ctx: CLIContext) -> int:
    catalog = TextbookCatalog(args.base_url)
    with ctx.console.status("Discovering textbooks..."):
        books = catalog.discover(limit=args.limit)

    table = Table(title=f"Discovered Books ({len(books)})")
    table.add_column("Title", overflow="fold")
    table.add_column("Level")
    table.add_column("Year", justify="right")
    table.add_column("Subject")
    table.add_column("Spec.")
    table.add_column("Edition")
    if args.do_import:
        table.add_column("Import")

    documents = ctx.services().documents if args.do_import else None
    exit_code = 0
    for book in books:
        row = [
            book.title,
            book.education_level,
            str(book.year_number),
            book.subject,
            book.specialization or "-",
            book.edition or "-",
        ]
        if documents is not None:
            try:
                result = documents.import_from_url(book.pdf_url, **book.import_metadata())
                row.append(result.status)
            except (FetchError, StorageError, ValidationError) as exc:
                row.append(f"error: {exc}")
                exit_code = 1
        table.add_row(*row)
    ctx.console.print(table)
    return exit_code
