from __future__ import annotations

import argparse

from rich.panel import Panel

from notelens.cli.context import CLIContext


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("status", help="Show index statistics")
    parser.set_defaults(handler=run)


def run(args: argparse.Namespace, ctx: CLIContext) -> int:
    service = ctx.service()
    stats = service.stats()
    settings = service.get_config()
    ctx.console.print(
        Panel.fit(
            "\n".join(
                [
                    f"Provider: {settings.provider} ({settings.model})",
                    f"Dimension: {stats.dimension if stats.dimension is not None else 'n/a'}",
                    f"Chunks: {stats.total_vectors}",
                    f"Documents: {stats.document_count}",
                    f"Bookmarks: {stats.bookmark_count}",
                    f"Files: {stats.file_count}",
                    f"Folders: {stats.folder_count}",
                    f"Data directory: {ctx.paths.data_dir}",
                ]
            ),
            title="Index Status",
        )
    )
    return 0
