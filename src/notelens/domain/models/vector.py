from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(slots=True)
class BlockVector:
    id: str
    source_block_id: str
    doc_id: str
    content: str
    content_hash: str
    block_type: str
    heading_context: str
    file_path: str | None = None
    embedding: list[float] | None = None


@dataclass(slots=True, frozen=True)
class SearchFilter:
    doc_id: str | None = None
    source_block_id: str | None = None
    exclude_doc_id: str | None = None


@dataclass(slots=True)
class ChunkMatch:
    block_id: str
    doc_id: str
    content: str
    block_type: str
    heading_context: str
    similarity: float
    distance: float
    source_block_id: str | None
    source_type: str = "document"
    file_path: str | None = None


@dataclass(slots=True)
class DocumentSearchResult:
    doc_id: str
    doc_title: str
    max_score: float
    matched_chunks: list[ChunkMatch] = field(default_factory=list)


@dataclass(slots=True)
class IndexStats:
    total_vectors: int
    document_count: int
    bookmark_count: int
    file_count: int
    folder_count: int
    dimension: int | None


@dataclass(slots=True)
class ExternalBlockContent:
    id: str
    doc_id: str
    block_id: str
    block_type: str
    url: str | None
    file_path: str | None
    title: str
    raw_content: str
    extracted_at: str


@dataclass(slots=True)
class FolderIndexResult:
    total_files: int = 0
    success_count: int = 0
    failed_count: int = 0
    failed_files: list[str] = field(default_factory=list)
    unrecoverable: bool = False
