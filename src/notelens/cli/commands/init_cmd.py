from __future__ import annotations

import argparse

from notelens.application.services.project_service import ProjectService
from notelens.cli.context import CLIContext


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("init", help="Create the .notelens data directory and database")
    parser.set_defaults(handler=run)


def run(args: argparse.Namespace, ctx: CLIContext) -> int:
    result = ProjectService(ctx.paths).init_project()

    for directory in result.created_dirs:
        ctx.console.print(f"[green]Created[/green] {directory}")
    if not result.created_dirs:
        ctx.console.print("[yellow]Data directory already existed[/yellow]")

    ctx.console.print(f"Database: {result.db_path}")
    if result.config_created:
        ctx.console.print(f"[green]Wrote default provider config[/green] {result.config_path}")
    else:
        ctx.console.print(f"Provider config kept: {result.config_path}")
    ctx.console.print(f"Notes directory: {ctx.paths.documents_dir}")
    return 0
