from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from notelens.core.config import AppPaths, EmbeddingSettings, save_embedding_settings
from notelens.core.files import ensure_directory
from notelens.infrastructure.db.sqlite import initialize_schema


@dataclass(slots=True)
class InitResult:
    db_path: Path
    config_path: Path
    created_dirs: list[Path] = field(default_factory=list)
    config_created: bool = False


class ProjectService:
    """Lays out a fresh data directory: notes, Qdrant storage, database and provider config."""

    def __init__(self, paths: AppPaths) -> None:
        self.paths = paths

    def init_project(self) -> InitResult:
        result = InitResult(db_path=self.paths.db_path, config_path=self.paths.config_path)

        for directory in (self.paths.data_dir, self.paths.qdrant_dir, self.paths.documents_dir):
            if not directory.exists():
                result.created_dirs.append(directory)
            ensure_directory(directory)

        initialize_schema(self.paths.db_path)

        # An existing config may carry an API key; never overwrite it.
        if not self.paths.config_path.exists():
            save_embedding_settings(self.paths.config_path, EmbeddingSettings())
            result.config_created = True
        return result
