from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

from notelens.core.errors import VectorStoreError
from notelens.core.ids import deterministic_uuid, external_base_id
from notelens.core.time import utc_timestamp
from notelens.domain.models.blocks import EXTERNAL_KINDS
from notelens.domain.models.vector import (
    BlockVector,
    ChunkMatch,
    ExternalBlockContent,
    IndexStats,
    SearchFilter,
)
from notelens.infrastructure.db.repos.block_vector_repo import BlockVectorRepo
from notelens.infrastructure.db.repos.external_content_repo import ExternalContentRepo
from notelens.infrastructure.vector.qdrant_store import QdrantLocalStore, VectorPoint

logger = logging.getLogger(__name__)

RETRIEVE_BATCH_SIZE = 256


@dataclass(slots=True)
class EntityVectors:
    doc_id: str
    block_id: str | None
    kind: str
    title: str
    vectors: list[list[float]]


class VectorStore:
    """Chunk metadata (sqlite) and chunk vectors (Qdrant) kept in step.

    Every write touches both sides inside one sqlite transaction: the index
    call happens before the commit, so an index failure rolls the metadata
    back. Writes are serialised per instance.
    """

    def __init__(
        self,
        *,
        repo: BlockVectorRepo,
        index: QdrantLocalStore,
        content_repo: ExternalContentRepo,
        dimension: int,
    ) -> None:
        if dimension <= 0:
            raise VectorStoreError("Embedding dimension must be positive")
        self.repo = repo
        self.index = index
        self.content_repo = content_repo
        self.dimension = dimension
        self._write_lock = threading.RLock()

    def open(self) -> bool:
        """Prepare the index for ``self.dimension``.

        Returns True when a stored dimension mismatch forced the index to be
        dropped and all chunk metadata to be cleared.
        """
        with self._write_lock:
            try:
                configured = self.index.collection_vector_size()
                stored = self.repo.get_dimension()
                rebuild = (
                    (configured is not None and configured != self.dimension)
                    or (stored is not None and stored != self.dimension)
                    or (configured is None and self.repo.count_rows() > 0)
                )
                if rebuild:
                    logger.warning(
                        "Embedding dimension changed (stored=%s, index=%s, provider=%s); clearing vector store.",
                        stored,
                        configured,
                        self.dimension,
                    )
                    self.index.drop_collection()
                self.index.ensure_collection(self.dimension)
                with self.repo.transaction() as conn:
                    if rebuild:
                        self.repo.clear(conn)
                    self.repo.set_dimension(conn, self.dimension)
            except VectorStoreError:
                raise
            except Exception as exc:
                raise VectorStoreError(f"Unable to open vector store: {exc}") from exc
            return rebuild

    def close(self) -> None:
        self.index.close()

    def upsert(self, vector: BlockVector) -> None:
        embedding = vector.embedding
        if not embedding:
            raise VectorStoreError(f"Chunk {vector.id} has no embedding")
        if len(embedding) != self.dimension:
            raise VectorStoreError(
                f"Chunk {vector.id} has {len(embedding)} dimensions, store expects {self.dimension}"
            )
        point_id = deterministic_uuid(vector.id)
        with self._write_lock:
            try:
                with self.repo.transaction() as conn:
                    self.repo.write_row(conn, vector, point_id=point_id, updated_at=utc_timestamp())
                    self.index.upsert_points(
                        [
                            VectorPoint(
                                point_id=point_id,
                                vector=list(embedding),
                                payload={
                                    "chunk_id": vector.id,
                                    "doc_id": vector.doc_id,
                                    "source_block_id": vector.source_block_id,
                                    "block_type": vector.block_type,
                                },
                            )
                        ]
                    )
            except Exception as exc:
                raise VectorStoreError(f"Failed to store chunk {vector.id}: {exc}") from exc

    def delete_by_id(self, chunk_id: str) -> int:
        return self._delete(self.repo.list_point_ids(ids=[chunk_id]))

    def delete_by_ids(self, chunk_ids: list[str]) -> int:
        return self._delete(self.repo.list_point_ids(ids=list(chunk_ids)))

    def delete_by_id_prefix(self, prefix: str) -> int:
        if not prefix:
            raise VectorStoreError("Refusing to delete with an empty ID prefix")
        return self._delete(self.repo.list_point_ids(id_prefix=prefix))

    def delete_by_doc_id(self, doc_id: str) -> int:
        removed = self._delete(self.repo.list_point_ids(doc_id=doc_id))
        self.content_repo.delete_for_document(doc_id)
        return removed

    def delete_non_external_by_doc_id(self, doc_id: str) -> int:
        return self._delete(self.repo.list_point_ids(doc_id=doc_id, non_external_only=True))

    def delete_orphan_external(self, doc_id: str, kind: str, present_block_ids: list[str]) -> int:
        """Remove ``kind`` chunks of blocks that are no longer in the document."""
        prefixes = tuple(external_base_id(doc_id, block_id, kind) for block_id in present_block_ids)
        orphans: list[tuple[str, str]] = []
        orphan_blocks: set[str] = set()
        for chunk_id, source_block_id, point_id in self.repo.list_external_rows(doc_id, kind):
            if prefixes and chunk_id.startswith(prefixes):
                continue
            orphans.append((chunk_id, point_id))
            if source_block_id:
                orphan_blocks.add(source_block_id)
        removed = self._delete(orphans)
        for block_id in sorted(orphan_blocks):
            self.content_repo.delete(doc_id, block_id)
        return removed

    def _delete(self, pairs: list[tuple[str, str]]) -> int:
        if not pairs:
            return 0
        with self._write_lock:
            try:
                with self.repo.transaction() as conn:
                    self.repo.delete_rows(conn, [chunk_id for chunk_id, _ in pairs])
                    self.index.delete_points([point_id for _, point_id in pairs])
            except Exception as exc:
                raise VectorStoreError(f"Failed to delete {len(pairs)} chunks: {exc}") from exc
        return len(pairs)

    def get_block_hashes(self, doc_id: str) -> dict[str, str]:
        return self.repo.get_block_hashes(doc_id)

    def get_indexed_doc_ids(self) -> list[str]:
        return self.repo.list_doc_ids()

    def search(
        self,
        query_vector: list[float],
        limit: int,
        search_filter: SearchFilter | None = None,
    ) -> list[ChunkMatch]:
        search_filter = search_filter or SearchFilter()
        try:
            hits = self.index.search(
                query_vector=query_vector,
                limit=limit,
                must={
                    "doc_id": search_filter.doc_id or "",
                    "source_block_id": search_filter.source_block_id or "",
                },
                must_not={"doc_id": search_filter.exclude_doc_id or ""},
            )
            rows = self.repo.get_rows_by_point_ids([hit["id"] for hit in hits])
        except Exception as exc:
            raise VectorStoreError(f"Vector search failed: {exc}") from exc

        matches: list[ChunkMatch] = []
        for hit in hits:
            row = rows.get(hit["id"])
            if row is None:
                # Point without metadata: a write whose commit never landed.
                continue
            score = float(hit["score"])
            block_type = row["block_type"]
            matches.append(
                ChunkMatch(
                    block_id=row["id"],
                    doc_id=row["doc_id"],
                    content=row["content"],
                    block_type=block_type,
                    heading_context=row["heading_context"],
                    similarity=score,
                    distance=1.0 - score,
                    source_block_id=row["source_block_id"] or None,
                    source_type=block_type if block_type in EXTERNAL_KINDS else "document",
                    file_path=row["file_path"],
                )
            )
        return matches

    def get_document_vectors(self, doc_id: str) -> list[list[float]]:
        point_ids = [point_id for _, point_id in self.repo.list_point_ids(doc_id=doc_id, non_external_only=True)]
        vectors = self._retrieve(point_ids)
        return [vectors[p] for p in point_ids if p in vectors]

    def list_entity_vectors(self, *, include_external: bool = True) -> list[EntityVectors]:
        """Chunk vectors grouped per document and, optionally, per external block."""
        entities: list[EntityVectors] = []
        for doc_id, point_ids in self.repo.list_document_points().items():
            vectors = self._retrieve(point_ids)
            entities.append(
                EntityVectors(
                    doc_id=doc_id,
                    block_id=None,
                    kind="document",
                    title="",
                    vectors=[vectors[p] for p in point_ids if p in vectors],
                )
            )
        if include_external:
            for (doc_id, block_id, kind), entry in self.repo.list_external_points().items():
                point_ids = list(entry["point_ids"])  # type: ignore[arg-type]
                vectors = self._retrieve(point_ids)
                entities.append(
                    EntityVectors(
                        doc_id=doc_id,
                        block_id=block_id,
                        kind=kind,
                        title=str(entry["title"] or ""),
                        vectors=[vectors[p] for p in point_ids if p in vectors],
                    )
                )
        return [entity for entity in entities if entity.vectors]

    def _retrieve(self, point_ids: list[str]) -> dict[str, list[float]]:
        out: dict[str, list[float]] = {}
        for offset in range(0, len(point_ids), RETRIEVE_BATCH_SIZE):
            out.update(self.index.retrieve_vectors(point_ids[offset : offset + RETRIEVE_BATCH_SIZE]))
        return out

    def stats(self) -> IndexStats:
        return IndexStats(
            total_vectors=self.repo.count_rows(),
            document_count=self.repo.count_documents(),
            bookmark_count=self.repo.count_external_blocks("bookmark"),
            file_count=self.repo.count_external_blocks("file"),
            folder_count=self.repo.count_external_blocks("folder"),
            dimension=self.dimension,
        )

    def save_external_content(self, content: ExternalBlockContent) -> None:
        self.content_repo.save(content)

    def get_external_content(self, doc_id: str, block_id: str) -> ExternalBlockContent | None:
        return self.content_repo.get(doc_id, block_id)

    def delete_external_content(self, doc_id: str, block_id: str) -> None:
        self.content_repo.delete(doc_id, block_id)
