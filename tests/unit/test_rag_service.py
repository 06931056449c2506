from __future__ import annotations

import json
import threading
from pathlib import Path

import pytest

from notelens.application.services.rag_service import RagService
from notelens.core.config import EmbeddingSettings, load_embedding_settings, load_paths
from notelens.core.errors import ServiceNotReadyError
from notelens.domain.models.documents import DocumentMeta


class _SizedEmbedder:
    provider_name = "fake"

    def __init__(self, model: str, size: int) -> None:
        self.model_name = model
        self.size = size

    def embed(self, text: str) -> list[float]:
        vector = [0.0] * self.size
        for i, ch in enumerate(text.lower()):
            vector[(ord(ch) + i) % self.size] += 1.0
        vector[0] += 0.1
        return vector

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        return [self.embed(t) for t in texts]

    def dimension(self) -> int:
        return self.size

    def detect_dimension(self) -> int:
        return self.size


def _factory(settings: EmbeddingSettings) -> _SizedEmbedder:
    # The model name picks the vector size so a model switch can change dimension.
    return _SizedEmbedder(settings.model, 8 if settings.model == "wide" else 4)


def _service(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> RagService:
    monkeypatch.delenv("NOTELENS_HOME", raising=False)
    return RagService(load_paths(tmp_path), embedder_factory=_factory)


def _paragraphs(*texts: str) -> str:
    return json.dumps(
        [{"id": f"p{i}", "type": "paragraph", "content": [{"type": "text", "text": t}]} for i, t in enumerate(texts)]
    )


def test_lazy_build_indexes_and_searches(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    service = _service(tmp_path, monkeypatch)
    try:
        service.documents.save(DocumentMeta(id="doc-1", title="Garden"), _paragraphs("Tomatoes need sun."))

        summary = service.index_document("doc-1")
        hits = service.search("Tomatoes need sun.", limit=3)
        stats = service.stats()

        assert summary.status == "success"
        assert hits[0].doc_id == "doc-1"
        assert hits[0].similarity == pytest.approx(1.0, abs=1e-5)
        assert stats.total_vectors == 1
        assert stats.dimension == 4
        assert service.paths.db_path.exists()
    finally:
        service.close()


def test_update_config_with_new_dimension_rebuilds_store(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    service = _service(tmp_path, monkeypatch)
    try:
        service.documents.save(DocumentMeta(id="doc-1", title="Garden"), _paragraphs("Tomatoes need sun."))
        service.index_document("doc-1")

        same = service.update_config(EmbeddingSettings(model="narrow"))
        assert same.rebuilt is False
        assert service.stats().total_vectors == 1

        result = service.update_config(EmbeddingSettings(model="wide"))

        assert result.rebuilt is True
        assert result.dimension == 8
        assert service.stats().total_vectors == 0
        assert load_embedding_settings(service.paths.config_path).model == "wide"

        service.reindex_all()
        assert service.stats().total_vectors == 1
        assert service.stats().dimension == 8
    finally:
        service.close()


def test_operations_after_close_are_rejected(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    service = _service(tmp_path, monkeypatch)
    service.stats()
    service.close()

    with pytest.raises(ServiceNotReadyError):
        service.stats()

    service.reinitialize()
    try:
        assert service.stats().total_vectors == 0
    finally:
        service.close()


def test_reinitialize_waits_for_running_operations(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    service = _service(tmp_path, monkeypatch)
    try:
        service.stats()
        entered = threading.Event()
        release = threading.Event()
        order: list[str] = []

        def slow_operation() -> None:
            with service._operation():
                entered.set()
                release.wait(timeout=5)
                order.append("operation")

        def swap() -> None:
            service.reinitialize()
            order.append("reinitialize")

        worker = threading.Thread(target=slow_operation)
        worker.start()
        assert entered.wait(timeout=5)
        swapper = threading.Thread(target=swap)
        swapper.start()
        swapper.join(timeout=0.2)
        assert swapper.is_alive()

        release.set()
        worker.join(timeout=5)
        swapper.join(timeout=10)

        assert order == ["operation", "reinitialize"]
    finally:
        service.close()


def test_external_reindex_and_graph_through_facade(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    service = _service(tmp_path, monkeypatch)
    try:
        data_dir = service.paths.data_dir
        (data_dir / "files").mkdir(parents=True)
        (data_dir / "files" / "notes.md").write_text("Compost the leaves in autumn.", encoding="utf-8")
        blocks = [
            {"id": "p0", "type": "paragraph", "content": [{"type": "text", "text": "Garden chores for the year."}]},
            {"id": "file-1", "type": "file", "props": {"filePath": "files/notes.md", "fileName": "notes.md"}},
        ]
        service.documents.save(DocumentMeta(id="doc-1", title="Garden"), json.dumps(blocks))
        service.documents.save(DocumentMeta(id="doc-2", title="Garden copy"), json.dumps(blocks))

        service.reindex_all()
        external = service.reindex_external()
        graph = service.build_graph(0.5)

        assert external.total == 2
        assert external.succeeded == 2
        assert service.stats().file_count == 2
        node_ids = {n.id for n in graph.nodes}
        assert {"doc-1", "doc-2", "doc-1_file-1", "doc-2_file-1"} <= node_ids
        assert any({l.source, l.target} == {"doc-1", "doc-2"} for l in graph.links)
        assert service.get_external_content("doc-1", "file-1") is not None
    finally:
        service.close()
