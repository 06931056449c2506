from __future__ import annotations

import argparse

from rich.panel import Panel

from notelens.application.services.external_indexing_service import ExternalIndexSummary
from notelens.cli.context import EXIT_UNRECOVERABLE, CLIContext
from notelens.core.errors import ExternalContentError
from notelens.domain.models.blocks import EXTERNAL_KINDS


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("external", help="Index bookmarks, files and folders attached to notes")
    external_subparsers = parser.add_subparsers(dest="external_command", required=True)

    bookmark = external_subparsers.add_parser("bookmark", help="Fetch a web page and index its text")
    bookmark.add_argument("url")
    _add_block_selectors(bookmark)
    bookmark.set_defaults(handler=run_bookmark)

    file = external_subparsers.add_parser("file", help="Extract a file's text and index it")
    file.add_argument("path", help="Absolute, or relative to the data directory")
    _add_block_selectors(file)
    file.set_defaults(handler=run_file)

    folder = external_subparsers.add_parser("folder", help="Index every supported file under a folder")
    folder.add_argument("path")
    _add_block_selectors(folder)
    folder.add_argument("--max-depth", type=int, default=0, help="Directory depth limit (default: 10)")
    folder.set_defaults(handler=run_folder)

    show = external_subparsers.add_parser("show", help="Show the stored raw text of an external block")
    _add_block_selectors(show)
    show.set_defaults(handler=run_show)

    delete = external_subparsers.add_parser("delete", help="Remove an external block's chunks")
    _add_block_selectors(delete)
    delete.add_argument("--kind", choices=EXTERNAL_KINDS, required=True)
    delete.set_defaults(handler=run_delete)

    reindex = external_subparsers.add_parser("reindex", help="Re-index every external block of every note")
    reindex.set_defaults(handler=run_reindex)


def _add_block_selectors(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--doc-id", required=True)
    parser.add_argument("--block-id", required=True)


def _print_summary(ctx: CLIContext, summary: ExternalIndexSummary) -> int:
    ctx.console.print(
        Panel.fit(
            "\n".join(
                [
                    f"Document: {summary.doc_id}",
                    f"Block: {summary.block_id}",
                    f"Status: {summary.status}",
                    f"Chunks embedded: {summary.embedded}/{summary.chunks_total}",
                    f"Failed: {summary.failed}",
                    f"Error: {summary.error or 'none'}",
                ]
            ),
            title=summary.kind.capitalize(),
        )
    )
    if summary.unrecoverable:
        return EXIT_UNRECOVERABLE
    return 0 if summary.status == "success" else 1


def run_bookmark(args: argparse.Namespace, ctx: CLIContext) -> int:
    return _print_summary(ctx, ctx.service().index_bookmark(args.url, args.doc_id, args.block_id))


def run_file(args: argparse.Namespace, ctx: CLIContext) -> int:
    return _print_summary(ctx, ctx.service().index_file(args.path, args.doc_id, args.block_id))


def run_folder(args: argparse.Namespace, ctx: CLIContext) -> int:
    result = ctx.service().index_folder(args.path, args.doc_id, args.block_id, max_depth=args.max_depth)
    lines = [
        f"Files found: {result.total_files}",
        f"Indexed: {result.success_count}",
        f"Failed: {result.failed_count}",
    ]
    if result.failed_files:
        lines.append(f"Failed files: {', '.join(result.failed_files)}")
    ctx.console.print(Panel.fit("\n".join(lines), title="Folder"))
    if result.unrecoverable:
        return EXIT_UNRECOVERABLE
    return 0 if result.failed_count == 0 else 1


def run_show(args: argparse.Namespace, ctx: CLIContext) -> int:
    content = ctx.service().get_external_content(args.doc_id, args.block_id)
    if content is None:
        raise ExternalContentError(f"No stored content for block {args.block_id} in {args.doc_id}")
    ctx.console.print(
        Panel.fit(
            "\n".join(
                [
                    f"Type: {content.block_type}",
                    f"Title: {content.title}",
                    f"Source: {content.url or content.file_path or ''}",
                    f"Extracted at: {content.extracted_at}",
                ]
            ),
            title="External Content",
        )
    )
    ctx.console.print(content.raw_content, markup=False, highlight=False)
    return 0


def run_delete(args: argparse.Namespace, ctx: CLIContext) -> int:
    removed = ctx.service().delete_external(args.doc_id, args.block_id, args.kind)
    ctx.console.print(f"[green]Removed[/green] {removed} chunks")
    return 0


def run_reindex(args: argparse.Namespace, ctx: CLIContext) -> int:
    summary = ctx.service().reindex_external()
    lines = [
        f"External blocks: {summary.total}",
        f"Succeeded: {summary.succeeded}",
        f"Failed: {summary.failed}",
    ]
    if summary.failed_blocks:
        lines.append(f"Failed blocks: {', '.join(summary.failed_blocks)}")
    ctx.console.print(Panel.fit("\n".join(lines), title="External Reindex"))
    if summary.unrecoverable:
        return EXIT_UNRECOVERABLE
    return 0 if summary.failed == 0 else 1
