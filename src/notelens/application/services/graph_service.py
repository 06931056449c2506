from __future__ import annotations

import logging
import math

from notelens.core.ids import external_content_id
from notelens.domain.models.graph import GraphData, GraphLink, GraphNode
from notelens.infrastructure.documents.json_repository import JsonDocumentRepository
from notelens.infrastructure.vector.vector_store import EntityVectors, VectorStore

logger = logging.getLogger(__name__)

DEFAULT_GRAPH_THRESHOLD = 0.7


def mean_vector(vectors: list[list[float]]) -> list[float]:
    if not vectors:
        return []
    dim = len(vectors[0])
    total = [0.0] * dim
    for vector in vectors:
        for i in range(dim):
            total[i] += vector[i]
    return [value / len(vectors) for value in total]


def cosine_similarity(a: list[float], b: list[float]) -> float:
    if len(a) != len(b) or not a:
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


def jaccard(a: list[str], b: list[str]) -> float:
    left, right = set(a), set(b)
    union = left | right
    if not union:
        return 0.0
    return len(left & right) / len(union)


def tag_boosted_similarity(similarity: float, tag_overlap: float, threshold: float) -> float:
    """Raise a similarity by the shared-tag fraction, scaled by the headroom above the threshold."""
    return min(1.0, similarity * (1.0 + tag_overlap * (1.0 - threshold)))


class GraphService:
    def __init__(self, *, documents: JsonDocumentRepository, store: VectorStore) -> None:
        self.documents = documents
        self.store = store

    def build_graph(self, threshold: float = DEFAULT_GRAPH_THRESHOLD, *, include_external: bool = True) -> GraphData:
        metas = {meta.id: meta for meta in self.documents.get_all()}
        entities = [
            entity
            for entity in self.store.list_entity_vectors(include_external=include_external)
            if entity.doc_id in metas
        ]

        nodes: list[GraphNode] = []
        centroids: list[list[float]] = []
        for entity in entities:
            nodes.append(self._node(entity, metas[entity.doc_id].title, metas[entity.doc_id].tags))
            centroids.append(mean_vector(entity.vectors))

        links: list[GraphLink] = []
        for i in range(len(nodes)):
            for j in range(i + 1, len(nodes)):
                similarity = cosine_similarity(centroids[i], centroids[j])
                has_semantic = similarity >= threshold
                score = similarity
                has_tags = False
                if nodes[i].type == "document" and nodes[j].type == "document":
                    overlap = jaccard(nodes[i].tags, nodes[j].tags)
                    if overlap > 0:
                        score = tag_boosted_similarity(similarity, overlap, threshold)
                        has_tags = score >= threshold
                if has_semantic or has_tags:
                    links.append(
                        GraphLink(
                            source=nodes[i].id,
                            target=nodes[j].id,
                            similarity=score,
                            has_semantic=has_semantic,
                            has_tags=has_tags,
                        )
                    )

        logger.info("Built graph with %s nodes and %s links (threshold %.2f)", len(nodes), len(links), threshold)
        return GraphData(nodes=nodes, links=links)

    @staticmethod
    def _node(entity: EntityVectors, doc_title: str, doc_tags: list[str]) -> GraphNode:
        if entity.block_id is None:
            return GraphNode(
                id=entity.doc_id,
                type="document",
                title=doc_title,
                val=len(entity.vectors),
                tags=list(doc_tags),
            )
        return GraphNode(
            id=external_content_id(entity.doc_id, entity.block_id),
            type=entity.kind,
            title=entity.title or entity.kind,
            val=len(entity.vectors),
            parent_doc_id=entity.doc_id,
            parent_block_id=entity.block_id,
        )
