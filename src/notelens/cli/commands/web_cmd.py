from __future__ import annotations

import argparse

from notelens.cli.context import CLIContext
from notelens.web.app import create_app


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("web", help="Serve the search HTTP API")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8765)
    parser.set_defaults(handler=run)


def run(args: argparse.Namespace, ctx: CLIContext) -> int:
    try:
        import uvicorn
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("uvicorn is required for web mode. Install project dependencies.") from exc

    # The app shares the CLI's service so the Qdrant directory is opened once.
    app = create_app(ctx.paths, service=ctx.service())
    ctx.console.print(f"Serving notelens API for {ctx.paths.data_dir} on http://{args.host}:{args.port}/api")
    uvicorn.run(app, host=args.host, port=args.port, log_level="info" if args.verbose else "warning")
    return 0
