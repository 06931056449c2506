from __future__ import annotations

import argparse

from rich.table import Table

from notelens.cli.context import CLIContext
from notelens.domain.models.vector import DocumentSearchResult, SearchFilter

SNIPPET_CHARS = 220


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    search = subparsers.add_parser("search", help="Semantic search over indexed notes")
    search.add_argument("query")
    search.add_argument("--limit", type=int, default=10)
    search.add_argument("--chunks", action="store_true", help="List matching chunks instead of documents")
    search.add_argument("--doc-id", help="Only search chunks of this note (with --chunks)")
    search.set_defaults(handler=run_search)

    related = subparsers.add_parser("related", help="Notes similar to a given note")
    related.add_argument("doc_id")
    related.add_argument("--limit", type=int, default=5)
    related.set_defaults(handler=run_related)


def _snippet(text: str) -> str:
    return text[:SNIPPET_CHARS] + ("..." if len(text) > SNIPPET_CHARS else "")


def _print_documents(ctx: CLIContext, title: str, results: list[DocumentSearchResult]) -> None:
    table = Table(title=f"{title} ({len(results)})")
    table.add_column("Score")
    table.add_column("Document")
    table.add_column("Title", overflow="fold")
    table.add_column("Best match", overflow="fold")
    for result in results:
        best = result.matched_chunks[0].content if result.matched_chunks else ""
        table.add_row(f"{result.max_score:.4f}", result.doc_id, result.doc_title, _snippet(best))
    ctx.console.print(table)


def run_search(args: argparse.Namespace, ctx: CLIContext) -> int:
    service = ctx.service()
    if not args.chunks:
        _print_documents(ctx, "Documents", service.search_documents(args.query, limit=args.limit))
        return 0

    hits = service.search(args.query, limit=args.limit, search_filter=SearchFilter(doc_id=args.doc_id))
    table = Table(title=f"Chunk Hits ({len(hits)})")
    table.add_column("Score")
    table.add_column("Document")
    table.add_column("Source")
    table.add_column("Heading", overflow="fold")
    table.add_column("Text", overflow="fold")
    for hit in hits:
        table.add_row(
            f"{hit.similarity:.4f}",
            hit.doc_id,
            f"{hit.source_type}:{hit.source_block_id or '-'}",
            hit.heading_context,
            _snippet(hit.content),
        )
    ctx.console.print(table)
    return 0


def run_related(args: argparse.Namespace, ctx: CLIContext) -> int:
    results = ctx.service().related_documents(args.doc_id, limit=args.limit)
    _print_documents(ctx, f"Related to {args.doc_id}", results)
    return 0
