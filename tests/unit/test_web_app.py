import json
from pathlib import Path

from fastapi.testclient import TestClient

from notelens.application.services.rag_service import RagService
from notelens.core.config import AppPaths, EmbeddingSettings
from notelens.core.errors import EmbeddingServiceError, ExternalContentError
from notelens.domain.models.documents import DocumentMeta
from notelens.infrastructure.extractors.web_content import WebContent
from notelens.web.app import create_app


class _FakeEmbedder:
    provider_name = "fake"

    def __init__(self, model: str) -> None:
        self.model_name = model
        self.size = 16 if model == "wide" else 6

    def embed(self, text: str) -> list[float]:
        if self.model_name == "broken":
            raise EmbeddingServiceError("fake", 401, "invalid api key")
        if self.model_name == "flaky":
            raise EmbeddingServiceError("fake", 429, "rate limited")
        vector = [0.0] * self.size
        for word in text.lower().split():
            vector[sum(map(ord, word)) % self.size] += 1.0
        vector[-1] += 0.05
        return vector

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        return [self.embed(t) for t in texts]

    def dimension(self) -> int:
        return self.size

    def detect_dimension(self) -> int:
        return self.size


class _FakeFetcher:
    def fetch(self, url: str) -> WebContent:
        if "missing" in url:
            raise ExternalContentError(f"Fetching {url} failed with status 404")
        return WebContent(title="Pruning roses", site_name="Garden Weekly", text_content="Cut above an outward bud.")


def _paths(tmp_path: Path) -> AppPaths:
    data_dir = tmp_path / "proj" / ".notelens"
    return AppPaths(
        project_root=tmp_path / "proj",
        data_dir=data_dir,
        db_path=data_dir / "notelens.db",
        qdrant_dir=data_dir / "vector" / "qdrant",
        documents_dir=data_dir / "notes",
        config_path=data_dir / "rag_config.json",
    )


def _client(tmp_path: Path) -> tuple[TestClient, RagService]:
    paths = _paths(tmp_path)
    service = RagService(
        paths,
        embedder_factory=lambda settings: _FakeEmbedder(settings.model),
        fetcher=_FakeFetcher(),
    )
    return TestClient(create_app(paths, service=service)), service


def _save(service: RagService, doc_id: str, title: str, *texts: str) -> None:
    blocks = [
        {"id": f"{doc_id}-p{i}", "type": "paragraph", "content": [{"type": "text", "text": text}]}
        for i, text in enumerate(texts)
    ]
    service.documents.save(DocumentMeta(id=doc_id, title=title), json.dumps(blocks))


def test_web_app_end_to_end_smoke(tmp_path: Path) -> None:
    client, service = _client(tmp_path)
    try:
        _save(service, "roses", "Roses", "Prune roses in early spring.")
        _save(service, "tulips", "Tulips", "Plant tulip bulbs in autumn.")

        r = client.get("/api/status")
        assert r.status_code == 200
        assert r.json()["stats"]["total_vectors"] == 0

        r = client.post("/api/index/roses")
        assert r.status_code == 200
        assert r.json()["summary"]["status"] == "success"

        r = client.post("/api/reindex", json={"external": False})
        assert r.status_code == 200
        assert r.json()["summary"]["succeeded"] == 2

        r = client.post("/api/search", json={"query": "Prune roses in early spring.", "limit": 5})
        assert r.status_code == 200
        payload = r.json()
        assert payload["count"] >= 1
        assert payload["hits"][0]["doc_id"] == "roses"
        assert payload["hits"][0]["source_block_id"] == "roses-p0"

        r = client.post("/api/search/documents", json={"query": "tulip bulbs", "limit": 5})
        assert r.status_code == 200
        assert {row["doc_id"] for row in r.json()["results"]} <= {"roses", "tulips"}

        r = client.get("/api/related/roses", params={"limit": 3})
        assert r.status_code == 200
        assert all(row["doc_id"] != "roses" for row in r.json()["results"])

        r = client.get("/api/graph", params={"threshold": 0.0})
        assert r.status_code == 200
        assert {node["id"] for node in r.json()["nodes"]} == {"roses", "tulips"}

        r = client.delete("/api/index/tulips")
        assert r.status_code == 200
        assert r.json()["removed"] == 1
    finally:
        service.close()


def test_external_endpoints(tmp_path: Path) -> None:
    client, service = _client(tmp_path)
    try:
        r = client.post(
            "/api/external/bookmark",
            json={"url": "https://example.com/roses", "doc_id": "roses", "block_id": "bm-1"},
        )
        assert r.status_code == 200
        assert r.json()["summary"]["embedded"] == 1

        r = client.get("/api/external/roses/bm-1")
        assert r.status_code == 200
        assert r.json()["content"]["title"] == "Pruning roses"

        r = client.post(
            "/api/external/bookmark",
            json={"url": "https://example.com/missing", "doc_id": "roses", "block_id": "bm-2"},
        )
        assert r.status_code == 400

        folder = tmp_path / "library"
        folder.mkdir()
        (folder / "care.txt").write_text("Water deeply once a week.", encoding="utf-8")
        r = client.post(
            "/api/external/folder",
            json={"path": str(folder), "doc_id": "roses", "block_id": "dir-1"},
        )
        assert r.status_code == 200
        assert r.json()["result"]["success_count"] == 1

        r = client.delete("/api/external/roses/bm-1", params={"kind": "bookmark"})
        assert r.status_code == 200
        assert r.json()["removed"] == 1

        r = client.delete("/api/external/roses/bm-1", params={"kind": "video"})
        assert r.status_code == 400

        r = client.get("/api/external/roses/bm-1")
        assert r.status_code == 404
    finally:
        service.close()


def test_missing_document_maps_to_404(tmp_path: Path) -> None:
    client, service = _client(tmp_path)
    try:
        r = client.get("/api/related/nope")
        assert r.status_code == 404
    finally:
        service.close()


def test_config_update_rebuilds_and_reindexes_in_background(tmp_path: Path) -> None:
    client, service = _client(tmp_path)
    try:
        _save(service, "roses", "Roses", "Prune roses in early spring.")
        assert client.post("/api/index/roses").status_code == 200

        r = client.get("/api/config")
        assert r.status_code == 200
        assert r.json()["config"]["provider"] == "ollama"

        r = client.put("/api/config", json={"provider": "ollama", "model": "wide"})
        assert r.status_code == 200
        body = r.json()
        assert body["rebuilt"] is True
        assert body["dimension"] == 16

        # TestClient runs background tasks before returning the response.
        r = client.get("/api/status")
        assert r.json()["stats"]["total_vectors"] == 1
        assert r.json()["stats"]["dimension"] == 16
        assert service.get_config() == EmbeddingSettings(model="wide")
    finally:
        service.close()


def test_unrecoverable_provider_error_maps_to_502(tmp_path: Path) -> None:
    client, service = _client(tmp_path)
    try:
        _save(service, "roses", "Roses", "Prune roses in early spring.")
        service.reinitialize(EmbeddingSettings(model="broken"))

        r = client.post("/api/index/roses")
        assert r.status_code == 502
        assert "invalid api key" in r.json()["detail"]

        r = client.post("/api/search", json={"query": "roses"})
        assert r.status_code == 502
    finally:
        service.close()


def test_transient_provider_error_maps_to_503(tmp_path: Path) -> None:
    client, service = _client(tmp_path)
    try:
        service.reinitialize(EmbeddingSettings(model="flaky"))

        r = client.post("/api/search", json={"query": "roses"})
        assert r.status_code == 503
        assert "rate limited" in r.json()["detail"]
    finally:
        service.close()


def test_config_endpoints_mask_the_api_key(tmp_path: Path) -> None:
    client, service = _client(tmp_path)
    secret = "sk-abcdefghijklmnop"
    try:
        service.update_config(EmbeddingSettings(provider="openai", model="small", api_key=secret))

        r = client.get("/api/config")
        assert r.status_code == 200
        assert secret not in r.text
        assert r.json()["config"]["apiKey"] == "sk-...mnop"
        assert r.json()["config"]["hasApiKey"] is True

        r = client.put("/api/config", json={"provider": "openai", "model": "small", "api_key": "sk-...mnop"})
        assert r.status_code == 200
        assert secret not in r.text
        assert service.get_config().api_key == secret
    finally:
        service.close()
