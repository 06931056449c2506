from __future__ import annotations

import re
from dataclasses import replace

from notelens.core.hashing import aggregate_block_id
from notelens.domain.models.blocks import (
    LIST_ITEM_TYPES,
    Block,
    ChunkConfig,
    ExtractedBlock,
    is_heading_type,
)

AGGREGATED_TYPE_PREFIX = "aggregated_"
MERGED_SHORT_TYPE = "merged_short_blocks"
TRAILING_HEADINGS_TYPE = "trailing_headings"
EXTERNAL_CHUNK_TYPE = "bookmark_chunk"
SPLIT_TYPE_SUFFIX = "_chunk"
LIST_BULLET = "• "
NEST_INDENT = "  "

_SENTENCE_TERMINATORS = re.compile(r"([。？！.?!]+)")


def split_sentences(text: str) -> list[str]:
    """Split on CJK/Latin terminal punctuation, keeping each terminator."""
    pieces = _SENTENCE_TERMINATORS.split(text)
    sentences: list[str] = []
    for idx in range(0, len(pieces), 2):
        body = pieces[idx]
        if not body:
            continue
        terminator = pieces[idx + 1] if idx + 1 < len(pieces) else ""
        sentences.append(body + terminator)
    return sentences


def split_with_overlap(text: str, *, max_chunk_size: int, overlap: int) -> list[str]:
    """Pack sentences into chunks of at most ``max_chunk_size`` characters.

    Every chunk after the first starts with the last ``overlap`` characters of
    the previous chunk's buffer. A single sentence longer than the limit is
    kept whole.
    """
    parts: list[str] = []
    buffer = ""
    for sentence in split_sentences(text):
        if buffer and len(buffer) + len(sentence) > max_chunk_size:
            parts.append(buffer.strip())
            buffer = buffer[-overlap:] if overlap > 0 else ""
        buffer += sentence
    if buffer:
        parts.append(buffer.strip())
    return parts


class BlockChunker:
    """Turn an editor block tree into ordered, heading-aware chunks.

    The extraction runs four passes, each producing a new list:

    1. flatten the tree while tracking the current heading,
    2. aggregate consecutive same-type list items and split long blocks,
    3. prefix headings onto the next content block,
    4. merge consecutive short blocks under the same heading.
    """

    def __init__(self, config: ChunkConfig | None = None) -> None:
        self.config = config or ChunkConfig()

    def extract(self, blocks: list[Block]) -> list[ExtractedBlock]:
        flat = self._flatten(blocks)
        aggregated = self._aggregate_and_split(flat)
        with_headings = self._merge_headings_forward(aggregated)
        return self._merge_short_blocks(with_headings)

    def _flatten(self, blocks: list[Block]) -> list[ExtractedBlock]:
        out: list[ExtractedBlock] = []
        current_heading = ""
        for block in blocks:
            if block.is_heading:
                current_heading = block.text
            if block.text:
                out.append(
                    ExtractedBlock(
                        id=block.id,
                        source_block_id=block.id,
                        type=block.type,
                        content=block.text,
                        heading_context=current_heading,
                    )
                )
            out.extend(self._flatten_children(block.children, current_heading, depth=1))
        return out

    def _flatten_children(self, children: list[Block], heading: str, *, depth: int) -> list[ExtractedBlock]:
        out: list[ExtractedBlock] = []
        indent = NEST_INDENT * depth
        for child in children:
            if child.text:
                out.append(
                    ExtractedBlock(
                        id=child.id,
                        source_block_id=child.id,
                        type=child.type,
                        content=indent + child.text,
                        heading_context=heading,
                    )
                )
            out.extend(self._flatten_children(child.children, heading, depth=depth + 1))
        return out

    def _aggregate_and_split(self, blocks: list[ExtractedBlock]) -> list[ExtractedBlock]:
        out: list[ExtractedBlock] = []
        idx = 0
        while idx < len(blocks):
            block = blocks[idx]
            if block.type in LIST_ITEM_TYPES:
                end = idx
                while end < len(blocks) and blocks[end].type == block.type:
                    end += 1
                out.append(self._aggregate_list(blocks[idx:end]))
                idx = end
                continue
            if self.config.max_chunk_size > 0 and len(block.content) > self.config.max_chunk_size:
                out.extend(self._split_long_block(block))
            else:
                out.append(block)
            idx += 1
        return out

    @staticmethod
    def _aggregate_list(members: list[ExtractedBlock]) -> ExtractedBlock:
        first = members[0]
        return ExtractedBlock(
            id=aggregate_block_id([m.id for m in members]),
            source_block_id=first.source_block_id,
            type=AGGREGATED_TYPE_PREFIX + first.type,
            content="\n".join(LIST_BULLET + m.content for m in members),
            heading_context=first.heading_context,
        )

    def _split_long_block(self, block: ExtractedBlock) -> list[ExtractedBlock]:
        parts = split_with_overlap(
            block.content,
            max_chunk_size=self.config.max_chunk_size,
            overlap=self.config.overlap,
        )
        if len(parts) <= 1:
            return [block]
        return [
            ExtractedBlock(
                id=f"{block.id}_chunk_{n}",
                source_block_id=block.source_block_id,
                type=block.type + SPLIT_TYPE_SUFFIX,
                content=part,
                heading_context=block.heading_context,
            )
            for n, part in enumerate(parts)
        ]

    @staticmethod
    def _merge_headings_forward(blocks: list[ExtractedBlock]) -> list[ExtractedBlock]:
        out: list[ExtractedBlock] = []
        pending: list[ExtractedBlock] = []
        for block in blocks:
            if is_heading_type(block.type):
                pending.append(block)
                continue
            if pending:
                prefix = "\n".join(h.content for h in pending) + "\n\n"
                block = replace(block, content=prefix + block.content)
                pending = []
            out.append(block)

        if pending:
            out.append(
                ExtractedBlock(
                    id=aggregate_block_id([h.id for h in pending]),
                    source_block_id=pending[0].source_block_id,
                    type=TRAILING_HEADINGS_TYPE,
                    content="\n".join(h.content for h in pending),
                    heading_context=pending[-1].content,
                )
            )
        return out

    def _can_merge(self, block: ExtractedBlock) -> bool:
        if block.type.startswith(AGGREGATED_TYPE_PREFIX):
            return False
        if is_heading_type(block.type):
            return False
        return len(block.content) < self.config.short_block_threshold

    def _merge_short_blocks(self, blocks: list[ExtractedBlock]) -> list[ExtractedBlock]:
        if self.config.short_block_threshold <= 0:
            return list(blocks)
        out: list[ExtractedBlock] = []
        idx = 0
        while idx < len(blocks):
            block = blocks[idx]
            if not self._can_merge(block):
                out.append(block)
                idx += 1
                continue

            members: list[ExtractedBlock] = []
            total = 0
            end = idx
            while end < len(blocks):
                candidate = blocks[end]
                if not self._can_merge(candidate) or candidate.heading_context != block.heading_context:
                    break
                new_total = total + len(candidate.content) + (1 if total > 0 else 0)
                if new_total > self.config.max_merged_length and total > 0:
                    break
                members.append(candidate)
                total = new_total
                end += 1

            if len(members) == 1:
                out.append(block)
            else:
                out.append(
                    ExtractedBlock(
                        id=aggregate_block_id([m.id for m in members]),
                        source_block_id=block.source_block_id or block.id,
                        type=MERGED_SHORT_TYPE,
                        content="\n".join(m.content for m in members),
                        heading_context=block.heading_context,
                    )
                )
            idx = end
        return out


class TextChunker:
    """Paragraph-based chunking for raw external text (bookmarks, files)."""

    def __init__(self, config: ChunkConfig | None = None) -> None:
        self.config = config or ChunkConfig()

    def chunk(self, text: str, *, base_id: str, heading_context: str = "") -> list[ExtractedBlock]:
        paragraphs = [p.strip() for p in text.split("\n\n")]
        paragraphs = [p for p in paragraphs if p]
        if not paragraphs:
            return []

        pieces: list[str] = []
        buffer = ""
        for para in paragraphs:
            if len(para) > self.config.max_chunk_size:
                if buffer:
                    pieces.append(buffer.strip())
                    buffer = ""
                pieces.extend(
                    split_with_overlap(
                        para,
                        max_chunk_size=self.config.max_chunk_size,
                        overlap=self.config.overlap,
                    )
                )
                continue
            new_len = len(buffer) + len(para) + (2 if buffer else 0)
            if not buffer or new_len <= self.config.max_merged_length:
                buffer = f"{buffer}\n\n{para}" if buffer else para
            else:
                pieces.append(buffer.strip())
                buffer = para
        if buffer:
            pieces.append(buffer.strip())

        return [
            ExtractedBlock(
                id=f"{base_id}_chunk_{i}",
                source_block_id=base_id,
                type=EXTERNAL_CHUNK_TYPE,
                content=piece,
                heading_context=heading_context,
            )
            for i, piece in enumerate(pieces)
            if piece
        ]
