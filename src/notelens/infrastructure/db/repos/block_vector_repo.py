from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from notelens.domain.models.blocks import EXTERNAL_KINDS
from notelens.domain.models.vector import BlockVector
from notelens.infrastructure.db.sqlite import get_connection

DIMENSION_KEY = "embedding_dimension"

_EXTERNAL_PLACEHOLDERS = ", ".join("?" for _ in EXTERNAL_KINDS)


class BlockVectorRepo:
    """Chunk metadata rows; the vectors themselves live in the Qdrant collection."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        conn = get_connection(self.db_path)
        try:
            yield conn
            conn.commit()
        except BaseException:
            conn.rollback()
            raise
        finally:
            conn.close()

    @staticmethod
    def write_row(conn: sqlite3.Connection, vector: BlockVector, *, point_id: str, updated_at: str) -> None:
        conn.execute(
            """
            INSERT OR REPLACE INTO block_vectors (
                id,
                source_block_id,
                doc_id,
                content,
                content_hash,
                block_type,
                heading_context,
                file_path,
                point_id,
                updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                vector.id,
                vector.source_block_id,
                vector.doc_id,
                vector.content,
                vector.content_hash,
                vector.block_type,
                vector.heading_context,
                vector.file_path,
                point_id,
                updated_at,
            ),
        )

    @staticmethod
    def delete_rows(conn: sqlite3.Connection, ids: list[str]) -> None:
        conn.executemany("DELETE FROM block_vectors WHERE id = ?", [(i,) for i in ids])

    @staticmethod
    def clear(conn: sqlite3.Connection) -> None:
        conn.execute("DELETE FROM block_vectors")

    def get_dimension(self) -> int | None:
        with get_connection(self.db_path) as conn:
            row = conn.execute("SELECT value FROM vector_config WHERE key = ?", (DIMENSION_KEY,)).fetchone()
        return int(row["value"]) if row is not None else None

    @staticmethod
    def set_dimension(conn: sqlite3.Connection, dimension: int) -> None:
        conn.execute(
            "INSERT OR REPLACE INTO vector_config (key, value) VALUES (?, ?)",
            (DIMENSION_KEY, str(dimension)),
        )

    def get_block_hashes(self, doc_id: str) -> dict[str, str]:
        with get_connection(self.db_path) as conn:
            rows = conn.execute(
                f"""
                SELECT id, content_hash FROM block_vectors
                WHERE doc_id = ? AND block_type NOT IN ({_EXTERNAL_PLACEHOLDERS})
                """,
                (doc_id, *EXTERNAL_KINDS),
            ).fetchall()
        return {row["id"]: row["content_hash"] for row in rows}

    def get_rows_by_point_ids(self, point_ids: list[str]) -> dict[str, sqlite3.Row]:
        if not point_ids:
            return {}
        placeholders = ", ".join("?" for _ in point_ids)
        with get_connection(self.db_path) as conn:
            rows = conn.execute(
                f"SELECT * FROM block_vectors WHERE point_id IN ({placeholders})",
                tuple(point_ids),
            ).fetchall()
        return {row["point_id"]: row for row in rows}

    def list_point_ids(
        self,
        *,
        doc_id: str | None = None,
        id_prefix: str | None = None,
        ids: list[str] | None = None,
        non_external_only: bool = False,
    ) -> list[tuple[str, str]]:
        """Return ``(id, point_id)`` pairs matching every given selector."""
        clauses: list[str] = []
        params: list[object] = []
        if doc_id is not None:
            clauses.append("doc_id = ?")
            params.append(doc_id)
        if id_prefix is not None:
            # substr() instead of LIKE: IDs contain "_", which LIKE treats as a wildcard.
            clauses.append("substr(id, 1, ?) = ?")
            params.extend([len(id_prefix), id_prefix])
        if ids is not None:
            if not ids:
                return []
            clauses.append(f"id IN ({', '.join('?' for _ in ids)})")
            params.extend(ids)
        if non_external_only:
            clauses.append(f"block_type NOT IN ({_EXTERNAL_PLACEHOLDERS})")
            params.extend(EXTERNAL_KINDS)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with get_connection(self.db_path) as conn:
            rows = conn.execute(f"SELECT id, point_id FROM block_vectors {where} ORDER BY id", tuple(params)).fetchall()
        return [(row["id"], row["point_id"]) for row in rows]

    def list_external_rows(self, doc_id: str, kind: str) -> list[tuple[str, str, str]]:
        """Return ``(id, source_block_id, point_id)`` for one external kind in a document."""
        with get_connection(self.db_path) as conn:
            rows = conn.execute(
                """
                SELECT id, source_block_id, point_id FROM block_vectors
                WHERE doc_id = ? AND block_type = ?
                ORDER BY id
                """,
                (doc_id, kind),
            ).fetchall()
        return [(row["id"], row["source_block_id"], row["point_id"]) for row in rows]

    def list_doc_ids(self) -> list[str]:
        with get_connection(self.db_path) as conn:
            rows = conn.execute("SELECT DISTINCT doc_id FROM block_vectors ORDER BY doc_id").fetchall()
        return [row["doc_id"] for row in rows]

    def list_document_points(self) -> dict[str, list[str]]:
        """Point IDs of in-document chunks, grouped by document."""
        with get_connection(self.db_path) as conn:
            rows = conn.execute(
                f"""
                SELECT doc_id, point_id FROM block_vectors
                WHERE block_type NOT IN ({_EXTERNAL_PLACEHOLDERS})
                ORDER BY doc_id, id
                """,
                EXTERNAL_KINDS,
            ).fetchall()
        out: dict[str, list[str]] = {}
        for row in rows:
            out.setdefault(row["doc_id"], []).append(row["point_id"])
        return out

    def list_external_points(self) -> dict[tuple[str, str, str], dict[str, object]]:
        """Point IDs of external chunks keyed by ``(doc_id, block_id, kind)``.

        Each value carries the point IDs and the first chunk's heading
        context, which holds the bookmark/file/folder display title.
        """
        with get_connection(self.db_path) as conn:
            rows = conn.execute(
                f"""
                SELECT doc_id, source_block_id, block_type, heading_context, point_id
                FROM block_vectors
                WHERE block_type IN ({_EXTERNAL_PLACEHOLDERS})
                ORDER BY doc_id, source_block_id, id
                """,
                EXTERNAL_KINDS,
            ).fetchall()
        out: dict[tuple[str, str, str], dict[str, object]] = {}
        for row in rows:
            key = (row["doc_id"], row["source_block_id"], row["block_type"])
            entry = out.setdefault(key, {"title": row["heading_context"], "point_ids": []})
            entry["point_ids"].append(row["point_id"])  # type: ignore[union-attr]
        return out

    def count_rows(self) -> int:
        with get_connection(self.db_path) as conn:
            row = conn.execute("SELECT COUNT(*) AS n FROM block_vectors").fetchone()
        return int(row["n"])

    def count_documents(self) -> int:
        with get_connection(self.db_path) as conn:
            row = conn.execute(
                f"""
                SELECT COUNT(DISTINCT doc_id) AS n FROM block_vectors
                WHERE block_type NOT IN ({_EXTERNAL_PLACEHOLDERS})
                """,
                EXTERNAL_KINDS,
            ).fetchone()
        return int(row["n"])

    def count_external_blocks(self, kind: str) -> int:
        with get_connection(self.db_path) as conn:
            row = conn.execute(
                """
                SELECT COUNT(*) AS n FROM (
                    SELECT DISTINCT doc_id, source_block_id FROM block_vectors WHERE block_type = ?
                )
                """,
                (kind,),
            ).fetchone()
        return int(row["n"])
