from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from notelens.core.errors import VectorStoreError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class VectorPoint:
    point_id: str
    vector: list[float]
    payload: dict[str, Any]


class QdrantLocalStore:
    """Cosine-distance nearest-neighbour index in an embedded Qdrant (``QdrantClient(path=...)``).

    Point payloads carry ``doc_id``, ``block_type`` and ``source_block_id`` so
    searches can filter without a round trip to SQLite.
    """

    def __init__(self, *, storage_path: Path, collection_name: str | None = None) -> None:
        self.storage_path = storage_path
        self.collection_name = collection_name or os.getenv("NOTELENS_QDRANT_COLLECTION") or "notelens_chunks"
        self._client = None
        self._models = None

    def collection_vector_size(self) -> int | None:
        """Configured vector size of the collection, or None when it does not exist."""
        client, _ = self._client_and_models()
        if not client.collection_exists(collection_name=self.collection_name):
            return None
        info = client.get_collection(collection_name=self.collection_name)
        params = getattr(getattr(info, "config", None), "params", None)
        configured_dim = getattr(getattr(params, "vectors", None), "size", None)
        return int(configured_dim) if configured_dim is not None else None

    def ensure_collection(self, vector_size: int) -> bool:
        """Create the collection if needed; drop and recreate it on a size mismatch.

        Returns True when an existing collection was dropped.
        """
        if vector_size <= 0:
            raise ValueError("vector_size must be positive")
        client, models = self._client_and_models()

        configured = self.collection_vector_size()
        dropped = False
        if configured is not None and configured != vector_size:
            logger.warning(
                "Qdrant collection '%s' has vector size %s but the embedder produces %s; rebuilding.",
                self.collection_name,
                configured,
                vector_size,
            )
            client.delete_collection(collection_name=self.collection_name)
            configured = None
            dropped = True

        if configured is None:
            client.create_collection(
                collection_name=self.collection_name,
                vectors_config=models.VectorParams(size=vector_size, distance=models.Distance.COSINE),
            )
        return dropped

    def drop_collection(self) -> None:
        client, _ = self._client_and_models()
        if client.collection_exists(collection_name=self.collection_name):
            client.delete_collection(collection_name=self.collection_name)

    def upsert_points(self, points: list[VectorPoint]) -> None:
        if not points:
            return
        client, models = self._client_and_models()
        client.upsert(
            collection_name=self.collection_name,
            wait=True,
            points=[
                models.PointStruct(id=point.point_id, vector=point.vector, payload=point.payload)
                for point in points
            ],
        )

    def delete_points(self, point_ids: list[str]) -> None:
        if not point_ids:
            return
        client, models = self._client_and_models()
        client.delete(
            collection_name=self.collection_name,
            points_selector=models.PointIdsList(points=list(point_ids)),
            wait=True,
        )

    def search(
        self,
        *,
        query_vector: list[float],
        limit: int,
        must: dict[str, str] | None = None,
        must_not: dict[str, str] | None = None,
    ) -> list[dict[str, Any]]:
        client, models = self._client_and_models()

        def conditions(values: dict[str, str] | None) -> list[Any]:
            return [
                models.FieldCondition(key=key, match=models.MatchValue(value=value))
                for key, value in (values or {}).items()
                if value
            ]

        must_clauses = conditions(must)
        must_not_clauses = conditions(must_not)
        query_filter = None
        if must_clauses or must_not_clauses:
            query_filter = models.Filter(must=must_clauses or None, must_not=must_not_clauses or None)

        response = client.query_points(
            collection_name=self.collection_name,
            query=query_vector,
            query_filter=query_filter,
            with_payload=True,
            with_vectors=False,
            limit=max(1, limit),
        )
        return [
            {
                "id": str(getattr(hit, "id", "")),
                "score": float(getattr(hit, "score", 0.0)),
                "payload": dict(getattr(hit, "payload", {}) or {}),
            }
            for hit in list(getattr(response, "points", []) or [])
        ]

    def retrieve_vectors(self, point_ids: list[str]) -> dict[str, list[float]]:
        if not point_ids:
            return {}
        client, _ = self._client_and_models()
        records = client.retrieve(
            collection_name=self.collection_name,
            ids=list(point_ids),
            with_payload=False,
            with_vectors=True,
        )
        out: dict[str, list[float]] = {}
        for record in records:
            vector = getattr(record, "vector", None)
            if isinstance(vector, list):
                out[str(record.id)] = [float(x) for x in vector]
        return out

    def count_points(self) -> int:
        client, _ = self._client_and_models()
        if not client.collection_exists(collection_name=self.collection_name):
            return 0
        result = client.count(collection_name=self.collection_name, exact=True)
        return int(getattr(result, "count", 0))

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
        self._client = None
        self._models = None

    def _client_and_models(self):
        if self._client is not None and self._models is not None:
            return self._client, self._models

        try:
            from qdrant_client import QdrantClient
            from qdrant_client.http import models
        except ImportError as exc:  # pragma: no cover - dependency guard
            raise RuntimeError(
                "Qdrant dependency is missing. Install with `pip install -e .`."
            ) from exc

        target = self.storage_path.expanduser().resolve()
        target.mkdir(parents=True, exist_ok=True)
        try:
            # Web handlers reach the client from worker threads.
            self._client = QdrantClient(path=str(target), force_disable_check_same_thread=True)
        except RuntimeError as exc:
            if "already accessed by another instance" in str(exc).lower():
                raise VectorStoreError(
                    f"Vector index {target} is held by another notelens process; stop it and retry."
                ) from exc
            raise
        self._models = models
        return self._client, self._models
