from __future__ import annotations

import json
import threading
from pathlib import Path

from notelens.core.errors import DocumentNotFoundError, DocumentRepositoryError
from notelens.core.files import ensure_directory, write_text_atomic
from notelens.domain.models.documents import DocumentMeta


class JsonDocumentRepository:
    """Notes stored as ``index.json`` plus one ``documents/<id>.json`` per note.

    The index holds ``{"documents": [{"id", "title", "tags"}]}``; each
    document file holds the editor's serialized block array.
    """

    def __init__(self, root: Path) -> None:
        self.root = root
        self.index_path = root / "index.json"
        self.documents_dir = root / "documents"
        self._lock = threading.Lock()

    def get_all(self) -> list[DocumentMeta]:
        if not self.index_path.exists():
            return []
        try:
            payload = json.loads(self.index_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise DocumentRepositoryError(f"Unable to read document index {self.index_path}: {exc}") from exc
        entries = payload.get("documents") if isinstance(payload, dict) else None
        out: list[DocumentMeta] = []
        for entry in entries or []:
            if not isinstance(entry, dict) or not entry.get("id"):
                continue
            tags = entry.get("tags")
            out.append(
                DocumentMeta(
                    id=str(entry["id"]),
                    title=str(entry.get("title") or ""),
                    tags=[str(t) for t in tags] if isinstance(tags, list) else [],
                )
            )
        return out

    def get(self, doc_id: str) -> DocumentMeta | None:
        for meta in self.get_all():
            if meta.id == doc_id:
                return meta
        return None

    def load(self, doc_id: str) -> str:
        path = self._document_path(doc_id)
        if not path.exists():
            raise DocumentNotFoundError(f"Document not found: {doc_id}")
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise DocumentRepositoryError(f"Unable to read document {doc_id}: {exc}") from exc

    def save(self, meta: DocumentMeta, content: str) -> None:
        with self._lock:
            ensure_directory(self.documents_dir)
            write_text_atomic(self._document_path(meta.id), content)
            entries = [m for m in self.get_all() if m.id != meta.id]
            entries.append(meta)
            self._write_index(entries)

    def delete(self, doc_id: str) -> None:
        with self._lock:
            path = self._document_path(doc_id)
            if path.exists():
                path.unlink()
            entries = [m for m in self.get_all() if m.id != doc_id]
            self._write_index(entries)

    def _write_index(self, entries: list[DocumentMeta]) -> None:
        payload = {"documents": [{"id": m.id, "title": m.title, "tags": m.tags} for m in entries]}
        write_text_atomic(self.index_path, json.dumps(payload, ensure_ascii=False, indent=2))

    def _document_path(self, doc_id: str) -> Path:
        if not doc_id or "/" in doc_id or "\\" in doc_id or doc_id in {".", ".."}:
            raise DocumentNotFoundError(f"Invalid document id: {doc_id!r}")
        return self.documents_dir / f"{doc_id}.json"
