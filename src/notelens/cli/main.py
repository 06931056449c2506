from __future__ import annotations

import argparse
import logging
from pathlib import Path

from rich.console import Console

from notelens.cli.commands import (
    config_cmd,
    external_cmd,
    graph_cmd,
    index_cmd,
    init_cmd,
    search_cmd,
    status_cmd,
    web_cmd,
)
from notelens.cli.context import EXIT_UNRECOVERABLE, CLIContext
from notelens.core.config import load_paths
from notelens.core.errors import EmbeddingServiceError, NotelensError
from notelens.core.logging import configure_logging
from notelens.domain.models.blocks import ChunkConfig

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    defaults = ChunkConfig()
    parser = argparse.ArgumentParser(
        prog="notelens",
        description="Semantic search over notes, bookmarks and files",
    )
    parser.add_argument(
        "--project-root",
        type=Path,
        default=Path.cwd(),
        help="Project root to use for .notelens data (default: current working directory)",
    )
    parser.add_argument("-v", "--verbose", action="count", default=0)
    parser.add_argument("--max-chunk-size", type=int, default=defaults.max_chunk_size)
    parser.add_argument("--chunk-overlap", type=int, default=defaults.overlap)
    parser.add_argument("--short-block-threshold", type=int, default=defaults.short_block_threshold)
    parser.add_argument("--max-merged-length", type=int, default=defaults.max_merged_length)

    subparsers = parser.add_subparsers(dest="command", required=True)
    init_cmd.register(subparsers)
    index_cmd.register(subparsers)
    search_cmd.register(subparsers)
    graph_cmd.register(subparsers)
    external_cmd.register(subparsers)
    config_cmd.register(subparsers)
    status_cmd.register(subparsers)
    web_cmd.register(subparsers)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(args.verbose)
    console = Console()

    paths = load_paths(args.project_root)
    ctx = CLIContext(
        paths=paths,
        console=console,
        chunk_config=ChunkConfig(
            max_chunk_size=args.max_chunk_size,
            overlap=args.chunk_overlap,
            short_block_threshold=args.short_block_threshold,
            max_merged_length=args.max_merged_length,
        ),
    )

    handler = getattr(args, "handler", None)
    if handler is None:
        parser.print_help()
        return 2

    try:
        return handler(args, ctx)
    except EmbeddingServiceError as exc:
        logger.error(str(exc))
        return EXIT_UNRECOVERABLE if exc.is_unrecoverable() else 1
    except NotelensError as exc:
        logger.error(str(exc))
        return 1
    finally:
        ctx.close()


if __name__ == "__main__":
    raise SystemExit(main())
