from __future__ import annotations

from pathlib import Path

from notelens.domain.models.vector import ExternalBlockContent
from notelens.infrastructure.db.sqlite import get_connection


class ExternalContentRepo:
    """Raw, pre-chunking snapshots of bookmark/file/folder content."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path

    def save(self, content: ExternalBlockContent) -> None:
        with get_connection(self.db_path) as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO external_block_contents (
                    id,
                    doc_id,
                    block_id,
                    block_type,
                    url,
                    file_path,
                    title,
                    raw_content,
                    extracted_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    content.id,
                    content.doc_id,
                    content.block_id,
                    content.block_type,
                    content.url,
                    content.file_path,
                    content.title,
                    content.raw_content,
                    content.extracted_at,
                ),
            )
            conn.commit()

    def get(self, doc_id: str, block_id: str) -> ExternalBlockContent | None:
        with get_connection(self.db_path) as conn:
            row = conn.execute(
                "SELECT * FROM external_block_contents WHERE doc_id = ? AND block_id = ?",
                (doc_id, block_id),
            ).fetchone()
        if row is None:
            return None
        return ExternalBlockContent(
            id=row["id"],
            doc_id=row["doc_id"],
            block_id=row["block_id"],
            block_type=row["block_type"],
            url=row["url"],
            file_path=row["file_path"],
            title=row["title"],
            raw_content=row["raw_content"],
            extracted_at=row["extracted_at"],
        )

    def delete(self, doc_id: str, block_id: str) -> None:
        with get_connection(self.db_path) as conn:
            conn.execute(
                "DELETE FROM external_block_contents WHERE doc_id = ? AND block_id = ?",
                (doc_id, block_id),
            )
            conn.commit()

    def delete_for_document(self, doc_id: str) -> None:
        with get_connection(self.db_path) as conn:
            conn.execute("DELETE FROM external_block_contents WHERE doc_id = ?", (doc_id,))
            conn.commit()
