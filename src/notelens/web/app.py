from __future__ import annotations

import logging
from dataclasses import asdict, is_dataclass
from typing import Any, Callable, TypeVar

from fastapi import BackgroundTasks, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from notelens import __version__
from notelens.application.services.graph_service import DEFAULT_GRAPH_THRESHOLD
from notelens.application.services.rag_service import RagService
from notelens.core.config import AppPaths, EmbeddingSettings
from notelens.core.errors import (
    DocumentNotFoundError,
    EmbeddingServiceError,
    NotelensError,
    ServiceNotReadyError,
)
from notelens.domain.models.blocks import EXTERNAL_KINDS
from notelens.domain.models.vector import SearchFilter

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SearchRequest(BaseModel):
    query: str
    limit: int = 10
    doc_id: str | None = None
    source_block_id: str | None = None
    exclude_doc_id: str | None = None


class DocumentSearchRequest(BaseModel):
    query: str
    limit: int = 10


class ReindexRequest(BaseModel):
    external: bool = False


class BookmarkRequest(BaseModel):
    url: str
    doc_id: str
    block_id: str


class FileRequest(BaseModel):
    path: str
    doc_id: str
    block_id: str


class FolderRequest(BaseModel):
    path: str
    doc_id: str
    block_id: str
    max_depth: int = 0


class ConfigRequest(BaseModel):
    provider: str
    base_url: str | None = None
    model: str | None = None
    api_key: str | None = None

    def to_settings(self) -> EmbeddingSettings:
        return EmbeddingSettings.from_json(
            {
                "provider": self.provider,
                "baseUrl": self.base_url,
                "model": self.model,
                "apiKey": self.api_key,
            }
        )


def _jsonable(value: Any) -> Any:
    if is_dataclass(value):
        return asdict(value)
    if isinstance(value, list):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    return value


def _status_code(exc: NotelensError) -> int:
    if isinstance(exc, DocumentNotFoundError):
        return 404
    if isinstance(exc, EmbeddingServiceError):
        # 503 when a retry may succeed, 502 when the provider is dead or misconfigured.
        return 502 if exc.is_unrecoverable() else 503
    if isinstance(exc, ServiceNotReadyError):
        return 503
    return 400


def create_app(paths: AppPaths, *, service: RagService | None = None) -> FastAPI:
    app = FastAPI(title="notelens", version=__version__)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    rag_service_cache: RagService | None = service

    def get_service() -> RagService:
        nonlocal rag_service_cache
        if rag_service_cache is None:
            rag_service_cache = RagService(paths)
        return rag_service_cache

    def call(fn: Callable[[], T]) -> T:
        try:
            return fn()
        except NotelensError as exc:
            raise HTTPException(status_code=_status_code(exc), detail=str(exc)) from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    def requested_settings(req: ConfigRequest) -> EmbeddingSettings:
        settings = req.to_settings()
        current = get_service().get_config()
        # Clients echo back the masked key they were shown.
        if current.api_key and settings.api_key == current.masked_api_key():
            settings.api_key = current.api_key
        return settings

    def reindex_everything() -> None:
        summary = get_service().reindex_all()
        external = get_service().reindex_external()
        logger.info(
            "Background reindex finished: %s/%s documents, %s/%s external blocks",
            summary.succeeded,
            summary.total,
            external.succeeded,
            external.total,
        )

    @app.get("/api/status")
    def api_status() -> dict[str, Any]:
        stats = call(lambda: get_service().stats())
        settings = call(lambda: get_service().get_config())
        return {
            "ok": True,
            "stats": _jsonable(stats),
            "provider": settings.provider,
            "model": settings.model,
        }

    @app.post("/api/search")
    def api_search(req: SearchRequest) -> dict[str, Any]:
        search_filter = SearchFilter(
            doc_id=req.doc_id,
            source_block_id=req.source_block_id,
            exclude_doc_id=req.exclude_doc_id,
        )
        hits = call(lambda: get_service().search(req.query, limit=req.limit, search_filter=search_filter))
        return {"ok": True, "count": len(hits), "hits": _jsonable(hits)}

    @app.post("/api/search/documents")
    def api_search_documents(req: DocumentSearchRequest) -> dict[str, Any]:
        results = call(lambda: get_service().search_documents(req.query, limit=req.limit))
        return {"ok": True, "count": len(results), "results": _jsonable(results)}

    @app.get("/api/related/{doc_id}")
    def api_related(doc_id: str, limit: int = Query(default=5, ge=1, le=100)) -> dict[str, Any]:
        results = call(lambda: get_service().related_documents(doc_id, limit=limit))
        return {"ok": True, "count": len(results), "results": _jsonable(results)}

    @app.get("/api/graph")
    def api_graph(
        threshold: float = Query(default=DEFAULT_GRAPH_THRESHOLD, ge=0.0, le=1.0),
        include_external: bool = True,
    ) -> dict[str, Any]:
        graph = call(lambda: get_service().build_graph(threshold, include_external=include_external))
        return {"ok": True, **_jsonable(graph)}

    @app.post("/api/index/{doc_id}")
    def api_index(doc_id: str, force: bool = False) -> dict[str, Any]:
        if force:
            summary = call(lambda: get_service().force_reindex_document(doc_id))
        else:
            summary = call(lambda: get_service().index_document(doc_id))
        if summary.unrecoverable:
            raise HTTPException(status_code=502, detail=summary.error or "Embedding provider unavailable")
        return {"ok": summary.status != "failed", "summary": _jsonable(summary)}

    @app.delete("/api/index/{doc_id}")
    def api_delete_document(doc_id: str) -> dict[str, Any]:
        removed = call(lambda: get_service().delete_document(doc_id))
        return {"ok": True, "removed": removed}

    @app.post("/api/reindex")
    def api_reindex(req: ReindexRequest) -> dict[str, Any]:
        summary = call(lambda: get_service().reindex_all())
        payload: dict[str, Any] = {"ok": True, "summary": _jsonable(summary)}
        if req.external:
            payload["external"] = _jsonable(call(lambda: get_service().reindex_external()))
        return payload

    @app.post("/api/external/bookmark")
    def api_external_bookmark(req: BookmarkRequest) -> dict[str, Any]:
        summary = call(lambda: get_service().index_bookmark(req.url, req.doc_id, req.block_id))
        if summary.unrecoverable:
            raise HTTPException(status_code=502, detail=summary.error or "Embedding provider unavailable")
        return {"ok": summary.status == "success", "summary": _jsonable(summary)}

    @app.post("/api/external/file")
    def api_external_file(req: FileRequest) -> dict[str, Any]:
        summary = call(lambda: get_service().index_file(req.path, req.doc_id, req.block_id))
        if summary.unrecoverable:
            raise HTTPException(status_code=502, detail=summary.error or "Embedding provider unavailable")
        return {"ok": summary.status == "success", "summary": _jsonable(summary)}

    @app.post("/api/external/folder")
    def api_external_folder(req: FolderRequest) -> dict[str, Any]:
        result = call(
            lambda: get_service().index_folder(req.path, req.doc_id, req.block_id, max_depth=req.max_depth)
        )
        if result.unrecoverable:
            raise HTTPException(status_code=502, detail="Embedding provider unavailable")
        return {"ok": True, "result": _jsonable(result)}

    @app.post("/api/external/reindex")
    def api_external_reindex() -> dict[str, Any]:
        summary = call(lambda: get_service().reindex_external())
        return {"ok": True, "summary": _jsonable(summary)}

    @app.get("/api/external/{doc_id}/{block_id}")
    def api_external_content(doc_id: str, block_id: str) -> dict[str, Any]:
        content = call(lambda: get_service().get_external_content(doc_id, block_id))
        if content is None:
            raise HTTPException(status_code=404, detail=f"No stored content for block {block_id}")
        return {"ok": True, "content": _jsonable(content)}

    @app.delete("/api/external/{doc_id}/{block_id}")
    def api_external_delete(doc_id: str, block_id: str, kind: str = Query(...)) -> dict[str, Any]:
        if kind not in EXTERNAL_KINDS:
            raise HTTPException(status_code=400, detail=f"kind must be one of {', '.join(EXTERNAL_KINDS)}")
        removed = call(lambda: get_service().delete_external(doc_id, block_id, kind))
        return {"ok": True, "removed": removed}

    @app.get("/api/config")
    def api_get_config() -> dict[str, Any]:
        settings = call(lambda: get_service().get_config())
        return {"ok": True, "config": settings.to_public_json()}

    @app.put("/api/config")
    def api_update_config(req: ConfigRequest, background_tasks: BackgroundTasks) -> dict[str, Any]:
        result = call(lambda: get_service().update_config(requested_settings(req)))
        if result.rebuilt:
            background_tasks.add_task(reindex_everything)
        return {
            "ok": True,
            "config": result.settings.to_public_json(),
            "dimension": result.dimension,
            "rebuilt": result.rebuilt,
        }

    @app.post("/api/config/test")
    def api_test_config(req: ConfigRequest) -> dict[str, Any]:
        result = call(lambda: get_service().test_connection(requested_settings(req)))
        return {"ok": True, **_jsonable(result)}

    @app.post("/api/config/models")
    def api_list_models(req: ConfigRequest) -> dict[str, Any]:
        models = call(lambda: get_service().list_models(requested_settings(req)))
        return {"ok": True, "models": models}

    return app

