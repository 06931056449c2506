from __future__ import annotations

import argparse
import json
from dataclasses import asdict
from pathlib import Path

from rich.panel import Panel
from rich.table import Table

from notelens.application.services.graph_service import DEFAULT_GRAPH_THRESHOLD
from notelens.cli.context import CLIContext
from notelens.core.files import write_text_atomic


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("graph", help="Similarity graph across notes and external content")
    parser.add_argument("--threshold", type=float, default=DEFAULT_GRAPH_THRESHOLD)
    parser.add_argument(
        "--external",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Include bookmark, file and folder nodes (default: enabled).",
    )
    parser.add_argument("--output", type=Path, help="Write the graph as JSON to this path")
    parser.set_defaults(handler=run)


def run(args: argparse.Namespace, ctx: CLIContext) -> int:
    graph = ctx.service().build_graph(args.threshold, include_external=args.external)

    if args.output:
        write_text_atomic(args.output, json.dumps(asdict(graph), ensure_ascii=False, indent=2))
        ctx.console.print(f"[green]Wrote[/green] {args.output}")

    titles = {node.id: node.title or node.id for node in graph.nodes}
    table = Table(title=f"Links ({len(graph.links)})")
    table.add_column("Similarity")
    table.add_column("Source", overflow="fold")
    table.add_column("Target", overflow="fold")
    table.add_column("Why")
    for link in sorted(graph.links, key=lambda item: item.similarity, reverse=True):
        reasons = [name for name, flag in (("semantic", link.has_semantic), ("tags", link.has_tags)) if flag]
        table.add_row(
            f"{link.similarity:.4f}",
            titles.get(link.source, link.source),
            titles.get(link.target, link.target),
            "+".join(reasons),
        )
    ctx.console.print(table)
    ctx.console.print(Panel.fit(f"Nodes: {len(graph.nodes)}\nLinks: {len(graph.links)}", title="Graph"))
    return 0
