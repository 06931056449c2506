from __future__ import annotations

import sqlite3
from pathlib import Path

from notelens.core.config import read_float_env

DEFAULT_SQLITE_CONNECT_TIMEOUT_SECONDS = 30.0
DEFAULT_SQLITE_BUSY_TIMEOUT_MS = 30_000
SCHEMA_PATH = Path(__file__).resolve().parent / "schema.sql"

# (table, column, definition) added after the first release of the schema.
_ADDED_COLUMNS: tuple[tuple[str, str, str], ...] = (
    ("block_vectors", "source_block_id", "TEXT NOT NULL DEFAULT ''"),
    ("block_vectors", "file_path", "TEXT"),
)


def get_connection(db_path: Path) -> sqlite3.Connection:
    """Open a WAL-mode connection that waits on locks instead of failing.

    Connections may be handed between threads by the web server, so the
    same-thread check is off; callers still use one connection per call.
    """
    timeout = read_float_env("NOTELENS_SQLITE_CONNECT_TIMEOUT_SECONDS", DEFAULT_SQLITE_CONNECT_TIMEOUT_SECONDS)
    busy_ms = int(read_float_env("NOTELENS_SQLITE_BUSY_TIMEOUT_MS", DEFAULT_SQLITE_BUSY_TIMEOUT_MS))
    conn = sqlite3.connect(db_path, timeout=timeout, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode = WAL;")
    conn.execute("PRAGMA synchronous = NORMAL;")
    conn.execute(f"PRAGMA busy_timeout = {busy_ms};")
    return conn


def initialize_schema(db_path: Path, schema_path: Path = SCHEMA_PATH) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    with get_connection(db_path) as conn:
        conn.executescript(schema_path.read_text(encoding="utf-8"))
        for table, column, definition in _ADDED_COLUMNS:
            existing = {row["name"] for row in conn.execute(f"PRAGMA table_info({table})")}
            if column not in existing:
                conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")
        conn.commit()
