from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterator

from notelens.application.services.external_indexing_service import (
    ExternalIndexingService,
    ExternalIndexSummary,
    ExternalReindexSummary,
)
from notelens.application.services.graph_service import DEFAULT_GRAPH_THRESHOLD, GraphService
from notelens.application.services.indexing_service import (
    DocumentIndexingService,
    DocumentIndexSummary,
    ProgressCallback,
    ReindexSummary,
)
from notelens.application.services.project_service import ProjectService
from notelens.application.services.search_service import SearchService
from notelens.core.config import AppPaths, EmbeddingSettings, load_embedding_settings, save_embedding_settings
from notelens.core.errors import ServiceNotReadyError
from notelens.domain.models.blocks import ChunkConfig
from notelens.domain.models.graph import GraphData
from notelens.domain.models.vector import (
    ChunkMatch,
    DocumentSearchResult,
    ExternalBlockContent,
    FolderIndexResult,
    IndexStats,
    SearchFilter,
)
from notelens.infrastructure.db.repos.block_vector_repo import BlockVectorRepo
from notelens.infrastructure.db.repos.external_content_repo import ExternalContentRepo
from notelens.infrastructure.documents.json_repository import JsonDocumentRepository
from notelens.infrastructure.extractors.file_text import FileTextExtractor
from notelens.infrastructure.extractors.web_content import WebContentFetcher
from notelens.infrastructure.vector.chunking import BlockChunker, TextChunker
from notelens.infrastructure.vector.embeddings import (
    ConnectionTestResult,
    Embedder,
    check_connection,
    create_embedder,
    list_models,
)
from notelens.infrastructure.vector.qdrant_store import QdrantLocalStore
from notelens.infrastructure.vector.vector_store import VectorStore

logger = logging.getLogger(__name__)

EmbedderFactory = Callable[[EmbeddingSettings], Embedder]


@dataclass(slots=True)
class RagComponents:
    settings: EmbeddingSettings
    embedder: Embedder
    store: VectorStore
    indexer: DocumentIndexingService
    external: ExternalIndexingService
    searcher: SearchService
    graph: GraphService
    rebuilt: bool


@dataclass(slots=True)
class ConfigUpdateResult:
    settings: EmbeddingSettings
    dimension: int
    rebuilt: bool


class RagService:
    """Owns the store, indexers, searcher and graph builder of one data directory.

    Components are built lazily from ``rag_config.json``. ``reinitialize``
    waits for in-flight operations to finish, closes the old store and swaps
    in components built from the new configuration; operations started
    meanwhile wait for the swap.
    """

    def __init__(
        self,
        paths: AppPaths,
        *,
        chunk_config: ChunkConfig | None = None,
        embedder_factory: EmbedderFactory = create_embedder,
        fetcher: WebContentFetcher | None = None,
        extractor: FileTextExtractor | None = None,
    ) -> None:
        self.paths = paths
        self.chunk_config = chunk_config or ChunkConfig()
        self.documents = JsonDocumentRepository(paths.documents_dir)
        self._embedder_factory = embedder_factory
        self._fetcher = fetcher or WebContentFetcher()
        self._extractor = extractor or FileTextExtractor()
        self._components: RagComponents | None = None
        self._cond = threading.Condition()
        self._active = 0
        self._swapping = False
        self._closed = False

    @contextmanager
    def _operation(self) -> Iterator[RagComponents]:
        with self._cond:
            while self._swapping:
                self._cond.wait()
            if self._closed:
                raise ServiceNotReadyError("RAG service is closed")
            if self._components is None:
                self._components = self._build(self.get_config())
            components = self._components
            self._active += 1
        try:
            yield components
        finally:
            with self._cond:
                self._active -= 1
                self._cond.notify_all()

    def _build(self, settings: EmbeddingSettings) -> RagComponents:
        ProjectService(self.paths).init_project()
        embedder = self._embedder_factory(settings)
        dimension = embedder.detect_dimension()
        store = VectorStore(
            repo=BlockVectorRepo(self.paths.db_path),
            index=QdrantLocalStore(storage_path=self.paths.qdrant_dir),
            content_repo=ExternalContentRepo(self.paths.db_path),
            dimension=dimension,
        )
        try:
            rebuilt = store.open()
        except Exception:
            store.close()
            raise
        logger.info(
            "RAG ready: provider=%s model=%s dimension=%s%s",
            settings.provider,
            embedder.model_name,
            dimension,
            " (store rebuilt)" if rebuilt else "",
        )
        return RagComponents(
            settings=settings,
            embedder=embedder,
            store=store,
            indexer=DocumentIndexingService(
                documents=self.documents,
                store=store,
                embedder=embedder,
                chunker=BlockChunker(self.chunk_config),
            ),
            external=ExternalIndexingService(
                documents=self.documents,
                store=store,
                embedder=embedder,
                chunker=TextChunker(self.chunk_config),
                fetcher=self._fetcher,
                extractor=self._extractor,
                files_root=self.paths.data_dir,
            ),
            searcher=SearchService(documents=self.documents, store=store, embedder=embedder),
            graph=GraphService(documents=self.documents, store=store),
            rebuilt=rebuilt,
        )

    def reinitialize(self, settings: EmbeddingSettings | None = None) -> RagComponents:
        with self._cond:
            while self._swapping:
                self._cond.wait()
            self._swapping = True
            while self._active:
                self._cond.wait()
        try:
            old = self._components
            self._components = None
            if old is not None:
                old.store.close()
            self._components = self._build(settings or self.get_config())
            self._closed = False
            return self._components
        finally:
            with self._cond:
                self._swapping = False
                self._cond.notify_all()

    def close(self) -> None:
        with self._cond:
            while self._swapping or self._active:
                self._cond.wait()
            self._closed = True
            if self._components is not None:
                self._components.store.close()
                self._components = None

    def get_config(self) -> EmbeddingSettings:
        return load_embedding_settings(self.paths.config_path)

    def update_config(self, settings: EmbeddingSettings) -> ConfigUpdateResult:
        """Persist ``settings`` and rebuild the components from them.

        A provider with a different embedding size clears the store; the
        result says so, and a full reindex is then up to the caller.
        """
        save_embedding_settings(self.paths.config_path, settings)
        components = self.reinitialize(settings)
        return ConfigUpdateResult(
            settings=settings,
            dimension=components.store.dimension,
            rebuilt=components.rebuilt,
        )

    def test_connection(self, settings: EmbeddingSettings) -> ConnectionTestResult:
        return check_connection(settings)

    def list_models(self, settings: EmbeddingSettings) -> list[str]:
        return list_models(settings)

    def search(
        self,
        query: str,
        *,
        limit: int = 10,
        search_filter: SearchFilter | None = None,
    ) -> list[ChunkMatch]:
        with self._operation() as c:
            return c.searcher.search_chunks(query, limit=limit, search_filter=search_filter)

    def search_documents(self, query: str, *, limit: int = 10) -> list[DocumentSearchResult]:
        with self._operation() as c:
            return c.searcher.search_documents(query, limit=limit)

    def related_documents(self, doc_id: str, *, limit: int = 5) -> list[DocumentSearchResult]:
        with self._operation() as c:
            return c.searcher.related_documents(doc_id, limit=limit)

    def build_graph(self, threshold: float = DEFAULT_GRAPH_THRESHOLD, *, include_external: bool = True) -> GraphData:
        with self._operation() as c:
            return c.graph.build_graph(threshold, include_external=include_external)

    def index_document(self, doc_id: str) -> DocumentIndexSummary:
        with self._operation() as c:
            return c.indexer.index_document(doc_id)

    def force_reindex_document(self, doc_id: str) -> DocumentIndexSummary:
        with self._operation() as c:
            return c.indexer.force_reindex_document(doc_id)

    def reindex_all(self, *, progress_callback: ProgressCallback | None = None) -> ReindexSummary:
        with self._operation() as c:
            return c.indexer.reindex_all(progress_callback=progress_callback)

    def reindex_external(self, *, progress_callback: ProgressCallback | None = None) -> ExternalReindexSummary:
        with self._operation() as c:
            return c.external.reindex_all(progress_callback=progress_callback)

    def delete_document(self, doc_id: str) -> int:
        with self._operation() as c:
            return c.indexer.delete_document(doc_id)

    def index_bookmark(self, url: str, doc_id: str, block_id: str) -> ExternalIndexSummary:
        with self._operation() as c:
            return c.external.index_bookmark(url, doc_id, block_id)

    def index_file(self, file_path: str, doc_id: str, block_id: str) -> ExternalIndexSummary:
        with self._operation() as c:
            return c.external.index_file(file_path, doc_id, block_id)

    def index_folder(self, folder_path: str, doc_id: str, block_id: str, *, max_depth: int = 0) -> FolderIndexResult:
        with self._operation() as c:
            return c.external.index_folder(folder_path, doc_id, block_id, max_depth=max_depth)

    def delete_external(self, doc_id: str, block_id: str, kind: str) -> int:
        with self._operation() as c:
            return c.external.delete_external(doc_id, block_id, kind)

    def get_external_content(self, doc_id: str, block_id: str) -> ExternalBlockContent | None:
        with self._operation() as c:
            return c.external.get_external_content(doc_id, block_id)

    def stats(self) -> IndexStats:
        with self._operation() as c:
            return c.store.stats()
