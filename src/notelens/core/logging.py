from __future__ import annotations

import logging

from rich.logging import RichHandler

_LEVELS = {0: logging.WARNING, 1: logging.INFO}


def configure_logging(verbose: int = 0) -> None:
    level = _LEVELS.get(verbose, logging.DEBUG)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=verbose >= 2, show_path=verbose >= 2)],
        force=True,
    )
    # urllib3/httpx chatter from qdrant-client drowns the indexing logs.
    for noisy in ("httpx", "urllib3"):
        logging.getLogger(noisy).setLevel(max(level, logging.WARNING))
