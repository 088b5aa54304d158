from __future__ import annotations

import argparse
import logging
from pathlib import Path

from rich.console import Console

from lectern.cli.commands import (
    catalog_cmd,
    documents_cmd,
    import_url_cmd,
    init_cmd,
    jobs_cmd,
    search_cmd,
    upload_cmd,
    web_cmd,
    work_cmd,
)
from lectern.cli.context import CLIContext
from lectern.core.config import load_paths
from lectern.core.errors import LecternError
from lectern.core.logging import configure_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lectern",
        description="Lectern textbook ingestion and retrieval CLI",
    )
    parser.add_argument(
        "--project-root",
        type=Path,
        default=Path.cwd(),
        help="Project root to use for .lectern data (default: current working directory)",
    )
    parser.add_argument("-v", "--verbose", action="count", default=0)

    subparsers = parser.add_subparsers(dest="command", required=True)
    init_cmd.register(subparsers)
    upload_cmd.register(subparsers)
    import_url_cmd.register(subparsers)
    documents_cmd.register(subparsers)
    jobs_cmd.register(subparsers)
    work_cmd.register(subparsers)
    search_cmd.register(subparsers)
    catalog_cmd.register(subparsers)
    web_cmd.register(subparsers)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(args.verbose)
    console = Console()

    paths = load_paths(args.project_root)
    ctx = CLIContext(paths=paths, console=console)

    handler = getattr(args, "handler", None)
    if handler is None:
        parser.print_help()
        return 2

    try:
        return handler(args, ctx)
    except LecternError as exc:
        logger.error(str(exc))
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
