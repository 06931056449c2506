from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from notelens.application.services.indexing_service import ProgressCallback, embed_and_store
from notelens.core.errors import ExternalContentError, NotelensError
from notelens.core.ids import external_base_id, external_content_id
from notelens.core.time import utc_timestamp
from notelens.domain.models.blocks import KIND_BOOKMARK, KIND_FILE, KIND_FOLDER, ExtractedBlock, ExternalBlockRef
from notelens.domain.models.vector import BlockVector, ExternalBlockContent, FolderIndexResult
from notelens.infrastructure.documents.block_parser import extract_external_blocks, parse_blocks
from notelens.infrastructure.documents.json_repository import JsonDocumentRepository
from notelens.infrastructure.extractors.file_text import FileTextExtractor
from notelens.infrastructure.extractors.web_content import WebContentFetcher
from notelens.infrastructure.vector.chunking import TextChunker
from notelens.infrastructure.vector.embeddings import Embedder
from notelens.infrastructure.vector.vector_store import VectorStore

logger = logging.getLogger(__name__)

DEFAULT_FOLDER_MAX_DEPTH = 10
SKIPPED_DIR_NAMES = frozenset({"node_modules", "vendor", "__pycache__"})


@dataclass(slots=True)
class ExternalIndexSummary:
    doc_id: str
    block_id: str
    kind: str
    status: str
    chunks_total: int = 0
    embedded: int = 0
    failed: int = 0
    unrecoverable: bool = False
    error: str | None = None


@dataclass(slots=True)
class ExternalReindexSummary:
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    failed_blocks: list[str] = field(default_factory=list)
    unrecoverable: bool = False


class ExternalIndexingService:
    """Indexes what bookmark, file and folder blocks point at.

    Chunks are stored under ``{doc_id}_{block_id}_{kind}`` so a re-index of
    one block replaces exactly its own chunks. A raw-text snapshot of the
    extracted content is kept per block for display.
    """

    def __init__(
        self,
        *,
        documents: JsonDocumentRepository,
        store: VectorStore,
        embedder: Embedder,
        chunker: TextChunker,
        fetcher: WebContentFetcher,
        extractor: FileTextExtractor,
        files_root: Path,
    ) -> None:
        self.documents = documents
        self.store = store
        self.embedder = embedder
        self.chunker = chunker
        self.fetcher = fetcher
        self.extractor = extractor
        self.files_root = files_root

    def index_bookmark(self, url: str, doc_id: str, block_id: str) -> ExternalIndexSummary:
        content = self.fetcher.fetch(url)
        text = content.text_content.strip()
        if not text:
            raise ExternalContentError(f"No content extracted from {url}")

        heading_context = content.title
        if content.site_name:
            heading_context = f"{content.title} - {content.site_name}"

        base_id = external_base_id(doc_id, block_id, KIND_BOOKMARK)
        self.store.delete_by_id_prefix(base_id)
        self.store.save_external_content(
            ExternalBlockContent(
                id=external_content_id(doc_id, block_id),
                doc_id=doc_id,
                block_id=block_id,
                block_type=KIND_BOOKMARK,
                url=url,
                file_path=None,
                title=content.title,
                raw_content=text,
                extracted_at=utc_timestamp(),
            )
        )
        chunks = self.chunker.chunk(text, base_id=base_id, heading_context=heading_context)
        return self._store_chunks(doc_id, block_id, KIND_BOOKMARK, chunks, file_path=None)

    def index_file(self, file_path: str, doc_id: str, block_id: str) -> ExternalIndexSummary:
        path = self.resolve_file_path(file_path)
        text = self.extractor.extract_text(path).strip()
        if not text:
            raise ExternalContentError(f"No text content extracted from {path.name}")

        base_id = external_base_id(doc_id, block_id, KIND_FILE)
        self.store.delete_by_id_prefix(base_id)
        self.store.save_external_content(
            ExternalBlockContent(
                id=external_content_id(doc_id, block_id),
                doc_id=doc_id,
                block_id=block_id,
                block_type=KIND_FILE,
                url=None,
                file_path=file_path,
                title=path.name,
                raw_content=text,
                extracted_at=utc_timestamp(),
            )
        )
        chunks = self.chunker.chunk(text, base_id=base_id, heading_context=path.name)
        return self._store_chunks(doc_id, block_id, KIND_FILE, chunks, file_path=file_path)

    def index_folder(
        self,
        folder_path: str,
        doc_id: str,
        block_id: str,
        *,
        max_depth: int = 0,
    ) -> FolderIndexResult:
        if max_depth <= 0:
            max_depth = DEFAULT_FOLDER_MAX_DEPTH
        folder = self.resolve_path(folder_path)
        if not folder.is_dir():
            raise ExternalContentError(f"Folder not found: {folder_path}")

        base_id = external_base_id(doc_id, block_id, KIND_FOLDER)
        self.store.delete_by_id_prefix(base_id)

        files = self.collect_folder_files(folder, max_depth=max_depth)
        logger.info("Found %s supported files under %s", len(files), folder)
        result = FolderIndexResult(total_files=len(files))

        for file_index, path in enumerate(files):
            if result.unrecoverable:
                result.failed_count += 1
                result.failed_files.append(path.name)
                continue
            try:
                text = self.extractor.extract_text(path).strip()
            except NotelensError as exc:
                logger.warning("Failed to extract text from %s: %s", path, exc)
                text = ""
            if not text:
                result.failed_count += 1
                result.failed_files.append(path.name)
                continue

            chunks = self.chunker.chunk(
                text,
                base_id=f"{base_id}_{file_index}",
                heading_context=f"{folder.name}/{path.name}",
            )
            outcome = embed_and_store(
                chunks=chunks,
                embedder=self.embedder,
                store=self.store,
                build_vector=self._vector_builder(doc_id, block_id, KIND_FOLDER, str(path)),
            )
            result.unrecoverable = outcome.unrecoverable
            if outcome.embedded:
                result.success_count += 1
            else:
                result.failed_count += 1
                result.failed_files.append(path.name)

        self.store.save_external_content(
            ExternalBlockContent(
                id=external_content_id(doc_id, block_id),
                doc_id=doc_id,
                block_id=block_id,
                block_type=KIND_FOLDER,
                url=None,
                file_path=folder_path,
                title=folder.name,
                raw_content=(
                    f"Folder: {folder_path}\nTotal files: {result.total_files}\nIndexed: {result.success_count}"
                ),
                extracted_at=utc_timestamp(),
            )
        )
        logger.info("Folder %s: %s/%s files indexed", folder_path, result.success_count, result.total_files)
        return result

    def delete_external(self, doc_id: str, block_id: str, kind: str) -> int:
        removed = self.store.delete_by_id_prefix(external_base_id(doc_id, block_id, kind))
        self.store.delete_external_content(doc_id, block_id)
        return removed

    def get_external_content(self, doc_id: str, block_id: str) -> ExternalBlockContent | None:
        return self.store.get_external_content(doc_id, block_id)

    def reindex_all(self, *, progress_callback: ProgressCallback | None = None) -> ExternalReindexSummary:
        work: list[tuple[str, ExternalBlockRef]] = []
        for meta in self.documents.get_all():
            try:
                raw = self.documents.load(meta.id)
            except NotelensError as exc:
                logger.warning("Skipping external blocks of %s: %s", meta.id, exc)
                continue
            work.extend((meta.id, ref) for ref in extract_external_blocks(parse_blocks(raw)))

        summary = ExternalReindexSummary(total=len(work))
        for position, (doc_id, ref) in enumerate(work, start=1):
            if progress_callback is not None:
                progress_callback(position, summary.total)
            ok, unrecoverable = self._reindex_one(doc_id, ref)
            summary.unrecoverable = summary.unrecoverable or unrecoverable
            if ok:
                summary.succeeded += 1
            else:
                summary.failed += 1
                summary.failed_blocks.append(f"{doc_id}/{ref.block_id}")

        logger.info("Reindexed %s/%s external blocks", summary.succeeded, summary.total)
        return summary

    def _reindex_one(self, doc_id: str, ref: ExternalBlockRef) -> tuple[bool, bool]:
        try:
            if ref.kind == KIND_BOOKMARK:
                result = self.index_bookmark(ref.target, doc_id, ref.block_id)
                return result.status != "failed", result.unrecoverable
            if ref.kind == KIND_FILE:
                result = self.index_file(ref.target, doc_id, ref.block_id)
                return result.status != "failed", result.unrecoverable
            folder = self.index_folder(ref.target, doc_id, ref.block_id)
            return folder.total_files == 0 or folder.success_count > 0, folder.unrecoverable
        except NotelensError as exc:
            logger.warning("Failed to reindex %s %s in %s: %s", ref.kind, ref.block_id, doc_id, exc)
            return False, False

    def resolve_path(self, raw_path: str) -> Path:
        """Absolute paths are used as given; relative ones resolve under ``files_root``."""
        path = Path(raw_path).expanduser()
        if path.is_absolute():
            return path
        return self.files_root / path

    def resolve_file_path(self, raw_path: str) -> Path:
        """File blocks store app paths such as ``/files/report.pdf`` relative to ``files_root``.

        A real absolute path is used only when nothing exists under ``files_root``.
        """
        stored = self.files_root / raw_path.lstrip("/")
        if stored.exists():
            return stored
        raw = Path(raw_path).expanduser()
        if raw.is_absolute() and raw.exists():
            return raw
        return stored

    @staticmethod
    def collect_folder_files(folder: Path, *, max_depth: int) -> list[Path]:
        files: list[Path] = []

        def walk(directory: Path, depth: int) -> None:
            if depth > max_depth:
                return
            try:
                entries = sorted(directory.iterdir(), key=lambda p: p.name)
            except OSError as exc:
                logger.warning("Failed to read %s: %s", directory, exc)
                return
            for entry in entries:
                if entry.is_dir():
                    if entry.name.startswith(".") or entry.name in SKIPPED_DIR_NAMES:
                        continue
                    walk(entry, depth + 1)
                elif FileTextExtractor.supports(entry):
                    files.append(entry)

        walk(folder, 0)
        return files

    def _store_chunks(
        self,
        doc_id: str,
        block_id: str,
        kind: str,
        chunks: list[ExtractedBlock],
        *,
        file_path: str | None,
    ) -> ExternalIndexSummary:
        outcome = embed_and_store(
            chunks=chunks,
            embedder=self.embedder,
            store=self.store,
            build_vector=self._vector_builder(doc_id, block_id, kind, file_path),
        )
        failed = outcome.failed > 0 and outcome.embedded == 0
        summary = ExternalIndexSummary(
            doc_id=doc_id,
            block_id=block_id,
            kind=kind,
            status="failed" if failed else "success",
            chunks_total=len(chunks),
            embedded=outcome.embedded,
            failed=outcome.failed,
            unrecoverable=outcome.unrecoverable,
            error=outcome.error,
        )
        if failed:
            logger.warning("Indexing %s %s in %s failed: %s", kind, block_id, doc_id, outcome.error)
        else:
            logger.info("Indexed %s %s in %s: %s chunks", kind, block_id, doc_id, outcome.embedded)
        return summary

    @staticmethod
    def _vector_builder(doc_id: str, block_id: str, kind: str, file_path: str | None):
        def build(chunk: ExtractedBlock, content_hash: str, embedding: list[float]) -> BlockVector:
            return BlockVector(
                id=chunk.id,
                source_block_id=block_id,
                doc_id=doc_id,
                content=chunk.content,
                content_hash=content_hash,
                block_type=kind,
                heading_context=chunk.heading_context,
                file_path=file_path,
                embedding=embedding,
            )

        return build

