from __future__ import annotations

import os
import tempfile
from pathlib import Path


def ensure_directory(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def write_text_atomic(dst: Path, text: str) -> None:
    """Write ``text`` next to ``dst`` and rename it into place.

    Each call gets its own temp file, so concurrent writers never share one.
    """
    ensure_directory(dst.parent)
    fd, temp_name = tempfile.mkstemp(prefix=f".{dst.name}.", suffix=".tmp", dir=dst.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
        os.replace(temp_name, dst)
    except BaseException:
        Path(temp_name).unlink(missing_ok=True)
        raise
