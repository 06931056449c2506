from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

from notelens.core.errors import ConfigurationError
from notelens.core.files import write_text_atomic

DEFAULT_NOTELENS_DIRNAME = ".notelens"

PROVIDER_OLLAMA = "ollama"
PROVIDER_OPENAI = "openai"
SUPPORTED_PROVIDERS = (PROVIDER_OLLAMA, PROVIDER_OPENAI)

DEFAULT_OLLAMA_BASE_URL = "http://localhost:11434"
DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"
DEFAULT_EMBEDDING_MODEL = "nomic-embed-text"


@dataclass(frozen=True)
class AppPaths:
    project_root: Path
    data_dir: Path
    db_path: Path
    qdrant_dir: Path
    documents_dir: Path
    config_path: Path


def load_paths(project_root: Path | None = None) -> AppPaths:
    root = (project_root or Path.cwd()).expanduser().resolve()

    home_raw = os.getenv("NOTELENS_HOME")
    if home_raw:
        data_dir = Path(home_raw).expanduser().resolve()
    else:
        data_dir = root / DEFAULT_NOTELENS_DIRNAME

    return AppPaths(
        project_root=root,
        data_dir=data_dir,
        db_path=data_dir / "notelens.db",
        qdrant_dir=data_dir / "vector" / "qdrant",
        documents_dir=data_dir / "notes",
        config_path=data_dir / "rag_config.json",
    )


@dataclass(slots=True)
class EmbeddingSettings:
    provider: str = PROVIDER_OLLAMA
    base_url: str = DEFAULT_OLLAMA_BASE_URL
    model: str = DEFAULT_EMBEDDING_MODEL
    api_key: str = ""

    def to_json(self) -> dict[str, str]:
        return {
            "provider": self.provider,
            "baseUrl": self.base_url,
            "model": self.model,
            "apiKey": self.api_key,
        }

    def masked_api_key(self) -> str:
        """First three and last four characters of the key, ``""`` when unset."""
        if not self.api_key:
            return ""
        return f"{self.api_key[:3]}...{self.api_key[-4:]}" if len(self.api_key) > 10 else "***"

    def to_public_json(self) -> dict[str, object]:
        payload: dict[str, object] = dict(self.to_json())
        payload["apiKey"] = self.masked_api_key()
        payload["hasApiKey"] = bool(self.api_key)
        return payload

    @classmethod
    def from_json(cls, payload: dict[str, object]) -> EmbeddingSettings:
        defaults = cls()
        provider = str(payload.get("provider") or defaults.provider).strip().lower()
        if provider not in SUPPORTED_PROVIDERS:
            raise ConfigurationError(f"Unsupported embedding provider: {provider}")
        default_url = DEFAULT_OPENAI_BASE_URL if provider == PROVIDER_OPENAI else DEFAULT_OLLAMA_BASE_URL
        return cls(
            provider=provider,
            base_url=str(payload.get("baseUrl") or default_url).strip(),
            model=str(payload.get("model") or defaults.model).strip(),
            api_key=str(payload.get("apiKey") or ""),
        )


def load_embedding_settings(path: Path) -> EmbeddingSettings:
    if not path.exists():
        return EmbeddingSettings()
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"Unable to read embedding config {path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigurationError(f"Embedding config {path} must contain a JSON object")
    return EmbeddingSettings.from_json(payload)


def save_embedding_settings(path: Path, settings: EmbeddingSettings) -> None:
    write_text_atomic(path, json.dumps(settings.to_json(), indent=2) + "\n")


def read_float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value > 0 else default
