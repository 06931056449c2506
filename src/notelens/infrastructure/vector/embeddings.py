from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Protocol

from notelens.core.config import (
    DEFAULT_OPENAI_BASE_URL,
    PROVIDER_OLLAMA,
    PROVIDER_OPENAI,
    EmbeddingSettings,
    read_float_env,
)
from notelens.core.errors import MALFORMED_RESPONSE_STATUS, ConfigurationError, EmbeddingServiceError

logger = logging.getLogger(__name__)

DEFAULT_EMBEDDING_TIMEOUT_SECONDS = 30.0
MODEL_LIST_TIMEOUT_SECONDS = 10.0
DIMENSION_CHECK_TEXT = "dimension check"
EMBEDDING_MODEL_MARKERS = ("embed", "bge", "e5", "gte")


class Embedder(Protocol):
    provider_name: str

    @property
    def model_name(self) -> str: ...

    def embed(self, text: str) -> list[float]: ...

    def embed_batch(self, texts: list[str]) -> list[list[float]]: ...

    def dimension(self) -> int: ...

    def detect_dimension(self) -> int: ...


def _timeout_seconds() -> float:
    return read_float_env("NOTELENS_EMBEDDING_TIMEOUT_SECONDS", DEFAULT_EMBEDDING_TIMEOUT_SECONDS)


def _request_json(
    provider: str,
    url: str,
    *,
    body: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
    timeout: float,
) -> Any:
    data = json.dumps(body).encode("utf-8") if body is not None else None
    request = urllib.request.Request(
        url,
        data=data,
        method="POST" if data is not None else "GET",
        headers={"Content-Type": "application/json", **(headers or {})},
    )
    try:
        with urllib.request.urlopen(request, timeout=timeout) as response:
            raw = response.read()
    except urllib.error.HTTPError as exc:
        detail = ""
        try:
            detail = exc.read().decode("utf-8", errors="replace")[:300]
        except OSError:
            pass
        raise EmbeddingServiceError(provider, exc.code, detail or str(exc.reason)) from exc
    except (urllib.error.URLError, TimeoutError, OSError) as exc:
        reason = getattr(exc, "reason", exc)
        raise EmbeddingServiceError(provider, None, str(reason)) from exc

    try:
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise EmbeddingServiceError(provider, MALFORMED_RESPONSE_STATUS, f"invalid JSON response: {exc}") from exc


def _as_vector(provider: str, value: Any) -> list[float]:
    if not isinstance(value, list) or not value:
        raise EmbeddingServiceError(provider, MALFORMED_RESPONSE_STATUS, "response did not contain an embedding")
    try:
        return [float(x) for x in value]
    except (TypeError, ValueError) as exc:
        raise EmbeddingServiceError(provider, MALFORMED_RESPONSE_STATUS, "embedding contains non-numeric values") from exc


class _HttpEmbedder(ABC):
    """Shared request plumbing; subclasses supply ``embed_batch``."""

    provider_name = ""

    def __init__(self, *, base_url: str, model: str, timeout_seconds: float | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout_seconds = timeout_seconds if timeout_seconds is not None else _timeout_seconds()
        self._dimension: int | None = None

    @property
    def model_name(self) -> str:
        return self.model

    def dimension(self) -> int:
        """Last observed vector size, 0 until a call has succeeded."""
        return self._dimension or 0

    def detect_dimension(self) -> int:
        if self._dimension is None:
            self.embed(DIMENSION_CHECK_TEXT)
            logger.info("Detected %s embedding size %s for model %s", self.provider_name, self._dimension, self.model)
        return self.dimension()

    def embed(self, text: str) -> list[float]:
        return self.embed_batch([text])[0]

    @abstractmethod
    def embed_batch(self, texts: list[str]) -> list[list[float]]: ...

    def _remember_dimension(self, vector: list[float]) -> list[float]:
        if self._dimension is None:
            self._dimension = len(vector)
        elif len(vector) != self._dimension:
            raise EmbeddingServiceError(
                self.provider_name,
                MALFORMED_RESPONSE_STATUS,
                f"embedding size changed from {self._dimension} to {len(vector)}",
            )
        return vector


class OllamaEmbedder(_HttpEmbedder):
    """Local Ollama server. It has no batch endpoint, so batches run one text at a time."""

    provider_name = PROVIDER_OLLAMA

    def embed(self, text: str) -> list[float]:
        payload = _request_json(
            self.provider_name,
            f"{self.base_url}/api/embeddings",
            body={"model": self.model, "prompt": text},
            timeout=self.timeout_seconds,
        )
        embedding = payload.get("embedding") if isinstance(payload, dict) else None
        return self._remember_dimension(_as_vector(self.provider_name, embedding))

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        return [self.embed(text) for text in texts]


class OpenAICompatibleEmbedder(_HttpEmbedder):
    """Any ``/embeddings`` endpoint following the OpenAI request shape."""

    provider_name = PROVIDER_OPENAI

    def __init__(
        self,
        *,
        base_url: str,
        model: str,
        api_key: str = "",
        timeout_seconds: float | None = None,
    ) -> None:
        super().__init__(base_url=base_url or DEFAULT_OPENAI_BASE_URL, model=model, timeout_seconds=timeout_seconds)
        self.api_key = api_key

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        payload = _request_json(
            self.provider_name,
            f"{self.base_url}/embeddings",
            body={"model": self.model, "input": texts},
            headers=self._auth_headers(),
            timeout=self.timeout_seconds,
        )
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, list) or len(data) != len(texts):
            raise EmbeddingServiceError(
                self.provider_name,
                MALFORMED_RESPONSE_STATUS,
                f"expected {len(texts)} embeddings in response",
            )
        rows = sorted(
            (row for row in data if isinstance(row, dict)),
            key=lambda row: int(row.get("index", 0)),
        )
        if len(rows) != len(texts):
            raise EmbeddingServiceError(self.provider_name, MALFORMED_RESPONSE_STATUS, "response rows are not objects")
        return [self._remember_dimension(_as_vector(self.provider_name, row.get("embedding"))) for row in rows]

    def _auth_headers(self) -> dict[str, str]:
        if not self.api_key:
            return {}
        return {"Authorization": f"Bearer {self.api_key}"}


def create_embedder(settings: EmbeddingSettings, *, timeout_seconds: float | None = None) -> Embedder:
    if settings.provider == PROVIDER_OLLAMA:
        return OllamaEmbedder(base_url=settings.base_url, model=settings.model, timeout_seconds=timeout_seconds)
    if settings.provider == PROVIDER_OPENAI:
        return OpenAICompatibleEmbedder(
            base_url=settings.base_url,
            model=settings.model,
            api_key=settings.api_key,
            timeout_seconds=timeout_seconds,
        )
    raise ConfigurationError(f"Unsupported embedding provider: {settings.provider}")


@dataclass(slots=True)
class ConnectionTestResult:
    success: bool
    dimension: int = 0
    error: str | None = None


def check_connection(settings: EmbeddingSettings) -> ConnectionTestResult:
    try:
        embedder = create_embedder(settings)
        dimension = embedder.detect_dimension()
    except (ConfigurationError, EmbeddingServiceError) as exc:
        return ConnectionTestResult(success=False, error=str(exc))
    return ConnectionTestResult(success=True, dimension=dimension)


def list_models(settings: EmbeddingSettings) -> list[str]:
    if settings.provider == PROVIDER_OLLAMA:
        payload = _request_json(
            settings.provider,
            f"{settings.base_url.rstrip('/')}/api/tags",
            timeout=MODEL_LIST_TIMEOUT_SECONDS,
        )
        entries = payload.get("models") if isinstance(payload, dict) else None
        names = [str(m.get("name") or "") for m in entries or [] if isinstance(m, dict)]
        return sorted(name.removesuffix(":latest") for name in names if name)

    if settings.provider == PROVIDER_OPENAI:
        base = (settings.base_url or DEFAULT_OPENAI_BASE_URL).rstrip("/")
        payload = _request_json(
            settings.provider,
            f"{base}/models",
            headers={"Authorization": f"Bearer {settings.api_key}"},
            timeout=MODEL_LIST_TIMEOUT_SECONDS,
        )
        entries = payload.get("data") if isinstance(payload, dict) else None
        ids = [str(m.get("id") or "") for m in entries or [] if isinstance(m, dict)]
        ids = [i for i in ids if i]
        embedding_ids = [i for i in ids if any(marker in i.lower() for marker in EMBEDDING_MODEL_MARKERS)]
        # Some compatible servers name their embedding models arbitrarily.
        return sorted(embedding_ids or ids)

    raise ConfigurationError(f"Unsupported embedding provider: {settings.provider}")
