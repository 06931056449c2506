from __future__ import annotations

import json
import logging
from typing import Any

from notelens.domain.models.blocks import (
    KIND_BOOKMARK,
    KIND_FILE,
    KIND_FOLDER,
    Block,
    ExternalBlockRef,
)

logger = logging.getLogger(__name__)

# Block type -> (prop holding the external target, prop holding its display title)
_EXTERNAL_PROPS = {
    KIND_BOOKMARK: ("url", "title"),
    KIND_FILE: ("filePath", "fileName"),
    KIND_FOLDER: ("folderPath", "folderName"),
}


def parse_blocks(raw: str | bytes | list[Any] | dict[str, Any] | None) -> list[Block]:
    """Decode a serialized editor document into a list of ``Block`` trees.

    Accepts the raw JSON text, an already-decoded block array, or an object
    wrapping the array under ``"blocks"``. Anything that cannot be decoded
    yields an empty list so callers index zero chunks instead of failing.
    """
    data: Any = raw
    if isinstance(raw, (str, bytes)):
        if not raw.strip():
            return []
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.warning("Ignoring malformed block document: %s", exc)
            return []
    if isinstance(data, dict):
        data = data.get("blocks")
    if not isinstance(data, list):
        return []
    return _decode_blocks(data)


def _decode_blocks(items: list[Any]) -> list[Block]:
    blocks: list[Block] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        children = item.get("children")
        decoded_children = _decode_blocks(children) if isinstance(children, list) else []
        block_id = item.get("id")
        if not isinstance(block_id, str) or not block_id:
            # Chunk and point ids derive from the block id, so the block itself
            # cannot be stored; its children move up one level.
            logger.warning(
                "Dropping %s block without an id, keeping %d child block(s)",
                item.get("type") or "paragraph",
                len(decoded_children),
            )
            blocks.extend(decoded_children)
            continue
        props = item.get("props")
        blocks.append(
            Block(
                id=block_id,
                type=str(item.get("type") or "paragraph"),
                text=_inline_text(item.get("content")).strip(),
                props=dict(props) if isinstance(props, dict) else {},
                children=decoded_children,
            )
        )
    return blocks


def _inline_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, dict):
        # Table blocks carry {"type": "tableContent", "rows": [{"cells": [...]}]}.
        rows = content.get("rows")
        if isinstance(rows, list):
            lines = []
            for row in rows:
                cells = row.get("cells") if isinstance(row, dict) else None
                if not isinstance(cells, list):
                    continue
                values = [_inline_text(cell).strip() for cell in cells]
                lines.append(" | ".join(v for v in values if v))
            return "\n".join(line for line in lines if line)
        return ""
    if not isinstance(content, list):
        return ""
    parts: list[str] = []
    for inline in content:
        if not isinstance(inline, dict):
            continue
        kind = inline.get("type")
        if kind == "text":
            parts.append(str(inline.get("text") or ""))
        elif kind == "link":
            parts.append(_inline_text(inline.get("content")))
    return "".join(parts)


def iter_blocks(blocks: list[Block]):
    for block in blocks:
        yield block
        yield from iter_blocks(block.children)


def extract_external_blocks(blocks: list[Block]) -> list[ExternalBlockRef]:
    """List bookmark, file and folder blocks that point at something indexable."""
    refs: list[ExternalBlockRef] = []
    for block in iter_blocks(blocks):
        prop_names = _EXTERNAL_PROPS.get(block.type)
        if prop_names is None:
            continue
        target_prop, title_prop = prop_names
        target = str(block.props.get(target_prop) or "").strip()
        if not target:
            continue
        refs.append(
            ExternalBlockRef(
                kind=block.type,
                block_id=block.id,
                target=target,
                title=str(block.props.get(title_prop) or ""),
            )
        )
    return refs


def plain_text(blocks: list[Block]) -> str:
    return "\n".join(block.text for block in iter_blocks(blocks) if block.text)
