from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

from notelens.core.errors import EmbeddingServiceError, NotelensError, VectorStoreError
from notelens.core.hashing import compute_content_hash
from notelens.domain.models.blocks import EXTERNAL_KINDS, Block, ExtractedBlock
from notelens.domain.models.vector import BlockVector
from notelens.infrastructure.documents.block_parser import extract_external_blocks, parse_blocks
from notelens.infrastructure.documents.json_repository import JsonDocumentRepository
from notelens.infrastructure.vector.chunking import BlockChunker
from notelens.infrastructure.vector.embeddings import Embedder
from notelens.infrastructure.vector.vector_store import VectorStore

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


@dataclass(slots=True)
class DocumentIndexSummary:
    doc_id: str
    status: str
    chunks_total: int = 0
    embedded: int = 0
    unchanged: int = 0
    deleted: int = 0
    failed: int = 0
    unrecoverable: bool = False
    error: str | None = None


@dataclass(slots=True)
class ReindexSummary:
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    purged_doc_ids: list[str] = field(default_factory=list)
    failed_doc_ids: list[str] = field(default_factory=list)
    unrecoverable: bool = False


@dataclass(slots=True)
class EmbedOutcome:
    """Result of embedding and storing a list of chunks for one unit."""

    embedded: int = 0
    failed: int = 0
    unrecoverable: bool = False
    error: str | None = None


def embed_and_store(
    *,
    chunks: list[ExtractedBlock],
    embedder: Embedder,
    store: VectorStore,
    build_vector: Callable[[ExtractedBlock, str, list[float]], BlockVector],
) -> EmbedOutcome:
    """Embed each chunk and upsert it.

    A failed chunk is counted and skipped. Once the provider reports an
    unrecoverable error the remaining chunks are counted as failed without
    further calls.
    """
    outcome = EmbedOutcome()
    for chunk in chunks:
        if outcome.unrecoverable:
            outcome.failed += 1
            continue
        content_hash = compute_content_hash(chunk.content, chunk.heading_context)
        try:
            embedding = embedder.embed(chunk.content)
            store.upsert(build_vector(chunk, content_hash, embedding))
        except EmbeddingServiceError as exc:
            outcome.failed += 1
            outcome.error = str(exc)
            if exc.is_unrecoverable():
                outcome.unrecoverable = True
                logger.warning("Stopping after unrecoverable provider error on chunk %s: %s", chunk.id, exc)
            else:
                logger.warning("Skipping chunk %s: %s", chunk.id, exc)
            continue
        except VectorStoreError as exc:
            outcome.failed += 1
            outcome.error = str(exc)
            logger.warning("Skipping chunk %s: %s", chunk.id, exc)
            continue
        outcome.embedded += 1
    return outcome


class DocumentIndexingService:
    def __init__(
        self,
        *,
        documents: JsonDocumentRepository,
        store: VectorStore,
        embedder: Embedder,
        chunker: BlockChunker,
    ) -> None:
        self.documents = documents
        self.store = store
        self.embedder = embedder
        self.chunker = chunker

    def index_document(self, doc_id: str) -> DocumentIndexSummary:
        """Re-embed only the chunks whose content hash changed."""
        return self._index(doc_id, force=False)

    def force_reindex_document(self, doc_id: str) -> DocumentIndexSummary:
        return self._index(doc_id, force=True)

    def reindex_all(self, *, progress_callback: ProgressCallback | None = None) -> ReindexSummary:
        summary = ReindexSummary()
        known = [meta.id for meta in self.documents.get_all()]
        known_ids = set(known)

        for doc_id in self.store.get_indexed_doc_ids():
            if doc_id in known_ids:
                continue
            try:
                self.store.delete_by_doc_id(doc_id)
            except VectorStoreError as exc:
                logger.warning("Failed to purge chunks of deleted document %s: %s", doc_id, exc)
                continue
            summary.purged_doc_ids.append(doc_id)

        summary.total = len(known)
        for position, doc_id in enumerate(known, start=1):
            try:
                result = self.force_reindex_document(doc_id)
            except NotelensError as exc:
                logger.warning("Failed to reindex %s: %s", doc_id, exc)
                result = DocumentIndexSummary(doc_id=doc_id, status="failed", error=str(exc))
            if result.status == "failed":
                summary.failed += 1
                summary.failed_doc_ids.append(doc_id)
            else:
                summary.succeeded += 1
            summary.unrecoverable = summary.unrecoverable or result.unrecoverable
            if progress_callback is not None:
                progress_callback(position, summary.total)

        logger.info(
            "Reindexed %s/%s documents (%s failed, %s purged)",
            summary.succeeded,
            summary.total,
            summary.failed,
            len(summary.purged_doc_ids),
        )
        return summary

    def delete_document(self, doc_id: str) -> int:
        return self.store.delete_by_doc_id(doc_id)

    def _index(self, doc_id: str, *, force: bool) -> DocumentIndexSummary:
        try:
            raw = self.documents.load(doc_id)
        except NotelensError as exc:
            logger.warning("Skipping %s: %s", doc_id, exc)
            return DocumentIndexSummary(doc_id=doc_id, status="failed", error=str(exc))

        blocks = parse_blocks(raw)
        chunks = [chunk for chunk in self.chunker.extract(blocks) if chunk.content]
        summary = DocumentIndexSummary(doc_id=doc_id, status="success", chunks_total=len(chunks))

        try:
            if force:
                summary.deleted += self.store.delete_non_external_by_doc_id(doc_id)
                existing: dict[str, str] = {}
            else:
                existing = self.store.get_block_hashes(doc_id)
            summary.deleted += self._delete_orphan_external(doc_id, blocks)
        except VectorStoreError as exc:
            logger.warning("Failed to prepare %s for indexing: %s", doc_id, exc)
            summary.status = "failed"
            summary.error = str(exc)
            return summary

        changed: list[ExtractedBlock] = []
        for chunk in chunks:
            if existing.get(chunk.id) == compute_content_hash(chunk.content, chunk.heading_context):
                summary.unchanged += 1
            else:
                changed.append(chunk)

        outcome = embed_and_store(
            chunks=changed,
            embedder=self.embedder,
            store=self.store,
            build_vector=lambda chunk, content_hash, embedding: BlockVector(
                id=chunk.id,
                source_block_id=chunk.source_block_id or chunk.id,
                doc_id=doc_id,
                content=chunk.content,
                content_hash=content_hash,
                block_type=chunk.type,
                heading_context=chunk.heading_context,
                embedding=embedding,
            ),
        )
        summary.embedded = outcome.embedded
        summary.failed = outcome.failed
        summary.unrecoverable = outcome.unrecoverable
        summary.error = outcome.error

        current_ids = {chunk.id for chunk in chunks}
        stale = sorted(chunk_id for chunk_id in existing if chunk_id not in current_ids)
        if stale:
            try:
                summary.deleted += self.store.delete_by_ids(stale)
            except VectorStoreError as exc:
                logger.warning("Failed to delete stale chunks of %s: %s", doc_id, exc)
                summary.error = summary.error or str(exc)

        if summary.failed and summary.embedded == 0:
            summary.status = "failed"
        elif not changed and not summary.deleted:
            summary.status = "skipped"

        if summary.status == "failed":
            logger.warning("Indexing %s failed: %s", doc_id, summary.error)
        else:
            logger.info(
                "Indexed %s: %s embedded, %s unchanged, %s deleted, %s failed",
                doc_id,
                summary.embedded,
                summary.unchanged,
                summary.deleted,
                summary.failed,
            )
        return summary

    def _delete_orphan_external(self, doc_id: str, blocks: list[Block]) -> int:
        refs = extract_external_blocks(blocks)
        deleted = 0
        for kind in EXTERNAL_KINDS:
            present = [ref.block_id for ref in refs if ref.kind == kind]
            deleted += self.store.delete_orphan_external(doc_id, kind, present)
        return deleted

