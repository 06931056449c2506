from __future__ import annotations

import hashlib

CONTENT_HASH_LENGTH = 16
AGGREGATE_ID_PREFIX = "agg_"


def compute_bytes_digest(data: bytes, alg: str = "sha256") -> str:
    h = hashlib.new(alg)
    h.update(data)
    return h.hexdigest()


def compute_content_hash(content: str, heading_context: str) -> str:
    """Short digest used to decide whether a chunk needs re-embedding."""
    digest = compute_bytes_digest((content + heading_context).encode("utf-8"))
    return digest[:CONTENT_HASH_LENGTH]


def aggregate_block_id(member_ids: list[str]) -> str:
    """Content-addressed ID for a chunk built from several source blocks.

    The hash covers the ordered member IDs, so the same members in the same
    order always map to the same chunk ID across indexing runs.
    """
    digest = compute_bytes_digest("|".join(member_ids).encode("utf-8"))
    return AGGREGATE_ID_PREFIX + digest[:CONTENT_HASH_LENGTH]
