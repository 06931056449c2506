from __future__ import annotations

import logging
import re

from notelens.core.hashing import AGGREGATE_ID_PREFIX
from notelens.domain.models.vector import ChunkMatch, DocumentSearchResult, SearchFilter
from notelens.infrastructure.documents.block_parser import parse_blocks, plain_text
from notelens.infrastructure.documents.json_repository import JsonDocumentRepository
from notelens.infrastructure.vector.embeddings import Embedder
from notelens.infrastructure.vector.vector_store import VectorStore

logger = logging.getLogger(__name__)

MAX_CHUNKS_PER_DOCUMENT = 3
RELATED_SEED_CHARS = 500

_UUID_PATTERN = re.compile(r"[a-f0-9]{8}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{12}", re.IGNORECASE)
_EXTERNAL_SUFFIX = re.compile(r"_(?:bookmark|file|folder)(?:_\d+)?$")


def resolve_source_block_id(chunk_id: str, stored: str | None = None) -> str | None:
    """Best-effort editor block ID for a chunk, for scrolling to a hit.

    A stored value always wins. Rows written before the column existed fall
    back to parsing the chunk ID; aggregate IDs carry no block identity.
    """
    if stored:
        return stored
    if chunk_id.startswith(AGGREGATE_ID_PREFIX):
        return None

    base = chunk_id.split("_chunk_", 1)[0]
    if _EXTERNAL_SUFFIX.search(base):
        uuids = _UUID_PATTERN.findall(_EXTERNAL_SUFFIX.sub("", base))
        return uuids[1] if len(uuids) >= 2 else None
    if _UUID_PATTERN.search(base):
        return base
    return None


class SearchService:
    def __init__(
        self,
        *,
        documents: JsonDocumentRepository,
        store: VectorStore,
        embedder: Embedder,
    ) -> None:
        self.documents = documents
        self.store = store
        self.embedder = embedder

    def search_chunks(
        self,
        query: str,
        *,
        limit: int = 10,
        search_filter: SearchFilter | None = None,
    ) -> list[ChunkMatch]:
        text = query.strip()
        if not text or limit <= 0:
            return []
        vector = self.embedder.embed(text)
        matches = self.store.search(vector, limit, search_filter)
        for match in matches:
            match.source_block_id = resolve_source_block_id(match.block_id, match.source_block_id)
        return matches

    def search_documents(self, query: str, *, limit: int = 10) -> list[DocumentSearchResult]:
        return self._search_grouped(query, limit=limit, fetch_limit=max(limit * 5, 20))

    def related_documents(self, doc_id: str, *, limit: int = 5) -> list[DocumentSearchResult]:
        """Documents similar to ``doc_id``, seeded from the start of its text."""
        raw = self.documents.load(doc_id)
        seed = plain_text(parse_blocks(raw))[:RELATED_SEED_CHARS]
        if not seed.strip():
            logger.info("Document %s has no text to seed a related search", doc_id)
            return []
        return self.related_to_content(seed, limit=limit, exclude_doc_id=doc_id)

    def related_to_content(
        self,
        content: str,
        *,
        limit: int = 5,
        exclude_doc_id: str | None = None,
    ) -> list[DocumentSearchResult]:
        return self._search_grouped(
            content,
            limit=limit,
            fetch_limit=max(limit * 8, 30),
            exclude_doc_id=exclude_doc_id,
        )

    def _search_grouped(
        self,
        query: str,
        *,
        limit: int,
        fetch_limit: int,
        exclude_doc_id: str | None = None,
    ) -> list[DocumentSearchResult]:
        if limit <= 0:
            return []
        matches = self.search_chunks(
            query,
            limit=fetch_limit,
            search_filter=SearchFilter(exclude_doc_id=exclude_doc_id),
        )
        if not matches:
            return []

        titles = {meta.id: meta.title for meta in self.documents.get_all()}
        grouped: dict[str, DocumentSearchResult] = {}
        for match in matches:
            if exclude_doc_id and match.doc_id == exclude_doc_id:
                continue
            result = grouped.get(match.doc_id)
            if result is None:
                result = DocumentSearchResult(
                    doc_id=match.doc_id,
                    doc_title=titles.get(match.doc_id, ""),
                    max_score=match.similarity,
                )
                grouped[match.doc_id] = result
            result.matched_chunks.append(match)
            result.max_score = max(result.max_score, match.similarity)

        output = list(grouped.values())
        for result in output:
            result.matched_chunks.sort(key=lambda m: m.similarity, reverse=True)
            del result.matched_chunks[MAX_CHUNKS_PER_DOCUMENT:]
        output.sort(key=lambda r: r.max_score, reverse=True)
        return output[:limit]
