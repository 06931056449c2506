from __future__ import annotations

import json
from pathlib import Path

import pytest

from notelens.application.services.search_service import SearchService, resolve_source_block_id
from notelens.core.errors import DocumentNotFoundError
from notelens.domain.models.documents import DocumentMeta
from notelens.domain.models.vector import ChunkMatch, SearchFilter
from notelens.infrastructure.documents.json_repository import JsonDocumentRepository

DOC_UUID = "3f2a1b4c-5d6e-4f70-8a9b-0c1d2e3f4a5b"
BLOCK_UUID = "9e8d7c6b-5a49-4837-a261-50f4e3d2c1b0"


class _FakeEmbedder:
    provider_name = "fake"
    model_name = "fake-model"

    def __init__(self) -> None:
        self.texts: list[str] = []

    def embed(self, text: str) -> list[float]:
        self.texts.append(text)
        return [1.0, 0.0]

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        return [self.embed(t) for t in texts]

    def dimension(self) -> int:
        return 2

    def detect_dimension(self) -> int:
        return 2


class _FakeStore:
    def __init__(self, matches: list[ChunkMatch]) -> None:
        self.matches = matches
        self.calls: list[tuple[int, SearchFilter | None]] = []

    def search(self, query_vector: list[float], limit: int, search_filter: SearchFilter | None = None) -> list[ChunkMatch]:
        self.calls.append((limit, search_filter))
        out = list(self.matches)
        if search_filter and search_filter.exclude_doc_id:
            out = [m for m in out if m.doc_id != search_filter.exclude_doc_id]
        return out[:limit]


def _match(block_id: str, doc_id: str, similarity: float, source_block_id: str | None = None) -> ChunkMatch:
    return ChunkMatch(
        block_id=block_id,
        doc_id=doc_id,
        content=f"text of {block_id}",
        block_type="paragraph",
        heading_context="",
        similarity=similarity,
        distance=1.0 - similarity,
        source_block_id=source_block_id,
    )


def _service(tmp_path: Path, matches: list[ChunkMatch]) -> tuple[SearchService, _FakeStore, _FakeEmbedder, JsonDocumentRepository]:
    documents = JsonDocumentRepository(tmp_path / "notes")
    store = _FakeStore(matches)
    embedder = _FakeEmbedder()
    return SearchService(documents=documents, store=store, embedder=embedder), store, embedder, documents


def test_document_search_groups_chunks_and_caps_per_document(tmp_path: Path) -> None:
    # 30 hits spread over 12 documents, scores descending.
    matches = [_match(f"c{i}", f"doc-{i % 12}", 1.0 - i * 0.01) for i in range(30)]
    service, store, _, documents = _service(tmp_path, matches)
    for i in range(12):
        documents.save(DocumentMeta(id=f"doc-{i}", title=f"Title {i}"), "[]")

    results = service.search_documents("query", limit=10)

    assert store.calls[0][0] == 50
    assert len(results) == 10
    assert [r.doc_id for r in results] == [f"doc-{i}" for i in range(10)]
    assert results[0].doc_title == "Title 0"
    assert results[0].max_score == pytest.approx(1.0)
    assert all(len(r.matched_chunks) <= 3 for r in results)
    assert [m.block_id for m in results[0].matched_chunks] == ["c0", "c12", "c24"]
    scores = [r.max_score for r in results]
    assert scores == sorted(scores, reverse=True)


def test_document_search_with_limit_five_over_twelve_documents(tmp_path: Path) -> None:
    matches = [_match(f"c{i}", f"doc-{i % 12}", 1.0 - i * 0.01) for i in range(30)]
    service, store, _, _ = _service(tmp_path, matches)

    results = service.search_documents("query", limit=5)

    assert store.calls[0][0] == 25
    assert [r.doc_id for r in results] == ["doc-0", "doc-1", "doc-2", "doc-3", "doc-4"]
    for result in results:
        scores = [m.similarity for m in result.matched_chunks]
        assert 1 <= len(scores) <= 3
        assert scores == sorted(scores, reverse=True)
        assert result.max_score == scores[0]
    assert [m.block_id for m in results[4].matched_chunks] == ["c4", "c16"]
    max_scores = [r.max_score for r in results]
    assert max_scores == sorted(max_scores, reverse=True)


def test_unknown_document_titles_are_empty(tmp_path: Path) -> None:
    service, _, _, _ = _service(tmp_path, [_match("c1", "orphan", 0.9)])

    (result,) = service.search_documents("query", limit=5)

    assert result.doc_title == ""
    assert service.search_documents("query", limit=0) == []


def test_blank_query_skips_the_provider(tmp_path: Path) -> None:
    service, store, embedder, _ = _service(tmp_path, [_match("c1", "d", 0.5)])

    assert service.search_chunks("   ") == []
    assert service.search_chunks("query", limit=0) == []
    assert embedder.texts == []
    assert store.calls == []


def test_search_chunks_fills_in_source_block_ids(tmp_path: Path) -> None:
    matches = [
        _match(BLOCK_UUID, "d", 0.9),
        _match(f"{BLOCK_UUID}_chunk_2", "d", 0.8),
        _match("agg_0123456789abcdef", "d", 0.7),
        _match("custom", "d", 0.6, source_block_id="stored-block"),
    ]
    service, _, embedder, _ = _service(tmp_path, matches)

    hits = service.search_chunks("  query  ", limit=10)

    assert embedder.texts == ["query"]
    assert [h.source_block_id for h in hits] == [BLOCK_UUID, BLOCK_UUID, None, "stored-block"]


def test_related_documents_seed_from_text_and_exclude_self(tmp_path: Path) -> None:
    matches = [_match("self-chunk", "doc-a", 0.99), _match("other-chunk", "doc-b", 0.8)]
    service, store, embedder, documents = _service(tmp_path, matches)
    long_text = "word " * 200
    blocks = [
        {"id": "p1", "type": "paragraph", "content": [{"type": "text", "text": "Opening line"}]},
        {"id": "p2", "type": "paragraph", "content": [{"type": "text", "text": long_text}]},
    ]
    documents.save(DocumentMeta(id="doc-a", title="A"), json.dumps(blocks))
    documents.save(DocumentMeta(id="doc-b", title="B"), "[]")

    results = service.related_documents("doc-a", limit=5)

    assert [r.doc_id for r in results] == ["doc-b"]
    assert store.calls[0] == (40, SearchFilter(exclude_doc_id="doc-a"))
    assert len(embedder.texts[0]) <= 500
    assert embedder.texts[0].startswith("Opening line\nword")


def test_related_documents_for_empty_note_is_empty(tmp_path: Path) -> None:
    service, store, _, documents = _service(tmp_path, [_match("c", "doc-b", 0.8)])
    documents.save(DocumentMeta(id="doc-a", title="A"), "[]")

    assert service.related_documents("doc-a") == []
    assert store.calls == []


def test_related_documents_for_missing_note_raises(tmp_path: Path) -> None:
    service, _, _, _ = _service(tmp_path, [])

    with pytest.raises(DocumentNotFoundError):
        service.related_documents("missing")


def test_related_to_content_uses_minimum_fetch(tmp_path: Path) -> None:
    service, store, _, _ = _service(tmp_path, [_match("c", "doc-b", 0.8)])

    service.related_to_content("free text", limit=2)

    assert store.calls[0][0] == 30


@pytest.mark.parametrize(
    ("chunk_id", "stored", "expected"),
    [
        (BLOCK_UUID, None, BLOCK_UUID),
        (f"{BLOCK_UUID}_chunk_0", None, BLOCK_UUID),
        ("agg_0123456789abcdef", None, None),
        (f"{DOC_UUID}_{BLOCK_UUID}_bookmark_chunk_1", None, BLOCK_UUID),
        (f"{DOC_UUID}_{BLOCK_UUID}_file_chunk_0", None, BLOCK_UUID),
        (f"{DOC_UUID}_{BLOCK_UUID}_folder_3_chunk_0", None, BLOCK_UUID),
        ("plain-id", None, None),
        ("anything", "explicit", "explicit"),
    ],
)
def test_resolve_source_block_id(chunk_id: str, stored: str | None, expected: str | None) -> None:
    assert resolve_source_block_id(chunk_id, stored) == expected
