from __future__ import annotations

from dataclasses import dataclass, field

from rich.console import Console

from notelens.application.services.rag_service import RagService
from notelens.core.config import AppPaths
from notelens.domain.models.blocks import ChunkConfig

EXIT_UNRECOVERABLE = 3


@dataclass(slots=True)
class CLIContext:
    paths: AppPaths
    console: Console
    chunk_config: ChunkConfig = field(default_factory=ChunkConfig)
    _service: RagService | None = None

    def service(self) -> RagService:
        if self._service is None:
            self._service = RagService(self.paths, chunk_config=self.chunk_config)
        return self._service

    def close(self) -> None:
        if self._service is not None:
            self._service.close()
            self._service = None
