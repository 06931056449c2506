from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

KIND_BOOKMARK = "bookmark"
KIND_FILE = "file"
KIND_FOLDER = "folder"
EXTERNAL_KINDS = (KIND_BOOKMARK, KIND_FILE, KIND_FOLDER)

LIST_ITEM_TYPES = frozenset({"bulletListItem", "numberedListItem", "checkListItem"})


@dataclass(slots=True)
class Block:
    """One node of an editor block tree, decoded with safe defaults."""

    id: str
    type: str
    text: str = ""
    props: dict[str, Any] = field(default_factory=dict)
    children: list[Block] = field(default_factory=list)

    @property
    def is_heading(self) -> bool:
        return is_heading_type(self.type)


@dataclass(slots=True, frozen=True)
class ExternalBlockRef:
    kind: str
    block_id: str
    target: str
    title: str = ""


@dataclass(slots=True, frozen=True)
class ChunkConfig:
    max_chunk_size: int = 800
    overlap: int = 100
    short_block_threshold: int = 150
    max_merged_length: int = 600


@dataclass(slots=True, frozen=True)
class ExtractedBlock:
    id: str
    source_block_id: str
    type: str
    content: str
    heading_context: str = ""


def is_heading_type(block_type: str) -> bool:
    return block_type.startswith("heading")
