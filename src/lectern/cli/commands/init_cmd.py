from __future__ import annotations

import argparse

from lectern.application.services.project_service import ProjectService
from lectern.cli.context import CLIContext


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("init", help="Create the .lectern workspace and database")
    parser.set_defaults(handler=run)


def run(args: argparse.Namespace, ctx: CLIContext) -> int:
    result = ProjectService(ctx.paths).init_project()

    for path in result.paths_created:
        ctx.console.print(f"[green]Created[/green] {path}")
    if not result.paths_created:
        ctx.console.print("[yellow]Workspace already existed[/yellow]")

    ctx.console.print(f"[green]Database ready[/green] {result.db_path}")
    return 0
