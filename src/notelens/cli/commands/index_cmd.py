from __future__ import annotations

import argparse

from rich.panel import Panel
from rich.progress import BarColumn, Progress, TextColumn, TimeElapsedColumn

from notelens.application.services.indexing_service import DocumentIndexSummary
from notelens.cli.context import EXIT_UNRECOVERABLE, CLIContext


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    index = subparsers.add_parser("index", help="Index one note, re-embedding only changed chunks")
    index.add_argument("doc_id")
    index.add_argument("--force", action="store_true", help="Drop the note's chunks and rebuild them")
    index.set_defaults(handler=run_index)

    reindex = subparsers.add_parser("reindex", help="Rebuild the index for every note")
    reindex.add_argument(
        "--external",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Also re-fetch bookmarks and re-read files and folders.",
    )
    reindex.set_defaults(handler=run_reindex)

    delete = subparsers.add_parser("delete", help="Remove every indexed chunk of a note")
    delete.add_argument("doc_id")
    delete.set_defaults(handler=run_delete)


def _exit_code(summary: DocumentIndexSummary) -> int:
    if summary.unrecoverable:
        return EXIT_UNRECOVERABLE
    return 0 if summary.status in {"success", "skipped"} else 1


def run_index(args: argparse.Namespace, ctx: CLIContext) -> int:
    service = ctx.service()
    if args.force:
        summary = service.force_reindex_document(args.doc_id)
    else:
        summary = service.index_document(args.doc_id)

    ctx.console.print(
        Panel.fit(
            "\n".join(
                [
                    f"Document: {summary.doc_id}",
                    f"Status: {summary.status}",
                    f"Chunks: {summary.chunks_total}",
                    f"Embedded: {summary.embedded}",
                    f"Unchanged: {summary.unchanged}",
                    f"Deleted: {summary.deleted}",
                    f"Failed: {summary.failed}",
                    f"Error: {summary.error or 'none'}",
                ]
            ),
            title="Index",
        )
    )
    return _exit_code(summary)


def _progress(ctx: CLIContext) -> Progress:
    return Progress(
        TextColumn("{task.description}"),
        BarColumn(),
        TextColumn("{task.completed}/{task.total}"),
        TimeElapsedColumn(),
        console=ctx.console,
    )


def run_reindex(args: argparse.Namespace, ctx: CLIContext) -> int:
    service = ctx.service()

    progress = _progress(ctx)
    with progress:
        task = progress.add_task("Notes", total=None)
        summary = service.reindex_all(
            progress_callback=lambda current, total: progress.update(task, completed=current, total=total)
        )

    lines = [
        f"Documents: {summary.total}",
        f"Succeeded: {summary.succeeded}",
        f"Failed: {summary.failed}",
        f"Purged (deleted notes): {len(summary.purged_doc_ids)}",
    ]
    if summary.failed_doc_ids:
        lines.append(f"Failed IDs: {', '.join(summary.failed_doc_ids)}")
    unrecoverable = summary.unrecoverable
    failed = summary.failed

    if args.external:
        progress = _progress(ctx)
        with progress:
            task = progress.add_task("External", total=None)
            external = service.reindex_external(
                progress_callback=lambda current, total: progress.update(task, completed=current, total=total)
            )
        lines.extend(
            [
                f"External blocks: {external.total}",
                f"External succeeded: {external.succeeded}",
                f"External failed: {external.failed}",
            ]
        )
        unrecoverable = unrecoverable or external.unrecoverable
        failed += external.failed

    ctx.console.print(Panel.fit("\n".join(lines), title="Reindex"))
    if unrecoverable:
        return EXIT_UNRECOVERABLE
    return 0 if failed == 0 else 1


def run_delete(args: argparse.Namespace, ctx: CLIContext) -> int:
    removed = ctx.service().delete_document(args.doc_id)
    ctx.console.print(f"[green]Removed[/green] {removed} chunks of {args.doc_id}")
    return 0
