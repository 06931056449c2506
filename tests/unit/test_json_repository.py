from __future__ import annotations

import json
from pathlib import Path

import pytest

from notelens.core.errors import DocumentNotFoundError, DocumentRepositoryError
from notelens.domain.models.documents import DocumentMeta
from notelens.infrastructure.documents.json_repository import JsonDocumentRepository


def test_save_load_and_list(tmp_path: Path) -> None:
    repo = JsonDocumentRepository(tmp_path / "notes")

    repo.save(DocumentMeta(id="doc-1", title="Garden", tags=["outdoor"]), '[{"id": "p1"}]')
    repo.save(DocumentMeta(id="doc-2", title="Kitchen"), "[]")
    repo.save(DocumentMeta(id="doc-1", title="Garden v2", tags=["outdoor", "plants"]), "[]")

    assert [m.id for m in repo.get_all()] == ["doc-2", "doc-1"]
    assert repo.get("doc-1") == DocumentMeta(id="doc-1", title="Garden v2", tags=["outdoor", "plants"])
    assert repo.get("missing") is None
    assert repo.load("doc-1") == "[]"
    assert (tmp_path / "notes" / "documents" / "doc-1.json").exists()


def test_delete_removes_file_and_index_entry(tmp_path: Path) -> None:
    repo = JsonDocumentRepository(tmp_path / "notes")
    repo.save(DocumentMeta(id="doc-1", title="Garden"), "[]")

    repo.delete("doc-1")

    assert repo.get_all() == []
    with pytest.raises(DocumentNotFoundError):
        repo.load("doc-1")


def test_empty_repository(tmp_path: Path) -> None:
    repo = JsonDocumentRepository(tmp_path / "notes")

    assert repo.get_all() == []
    with pytest.raises(DocumentNotFoundError):
        repo.load("doc-1")


@pytest.mark.parametrize("doc_id", ["", "../escape", "a/b", ".."])
def test_path_like_ids_are_rejected(tmp_path: Path, doc_id: str) -> None:
    repo = JsonDocumentRepository(tmp_path / "notes")

    with pytest.raises(DocumentNotFoundError):
        repo.load(doc_id)


def test_index_tolerates_bad_entries_and_rejects_bad_json(tmp_path: Path) -> None:
    root = tmp_path / "notes"
    root.mkdir()
    (root / "index.json").write_text(
        json.dumps({"documents": [{"id": "ok", "title": "Fine", "tags": "not-a-list"}, {"title": "no id"}, "junk"]}),
        encoding="utf-8",
    )
    repo = JsonDocumentRepository(root)

    assert repo.get_all() == [DocumentMeta(id="ok", title="Fine", tags=[])]

    (root / "index.json").write_text("{broken", encoding="utf-8")
    with pytest.raises(DocumentRepositoryError):
        repo.get_all()


def test_undecodable_document_raises_repository_error(tmp_path: Path) -> None:
    repo = JsonDocumentRepository(tmp_path / "notes")
    repo.save(DocumentMeta(id="doc-1", title="Garden"), "[]")
    (tmp_path / "notes" / "documents" / "doc-1.json").write_bytes(b"[\xff]")

    with pytest.raises(DocumentRepositoryError):
        repo.load("doc-1")
