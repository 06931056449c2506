import hashlib

from notelens.core.hashing import aggregate_block_id, compute_bytes_digest, compute_content_hash
from notelens.core.ids import deterministic_uuid, external_base_id, external_content_id


def test_compute_bytes_digest_sha256() -> None:
    digest = compute_bytes_digest(b"abc")
    assert digest == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"


def test_content_hash_covers_content_and_heading() -> None:
    assert compute_content_hash("ab", "c") == "ba7816bf8f01cfea"
    assert compute_content_hash("body", "Heading A") != compute_content_hash("body", "Heading B")


def test_aggregate_block_id_is_order_sensitive() -> None:
    expected = "agg_" + hashlib.sha256(b"a|b").hexdigest()[:16]

    assert aggregate_block_id(["a", "b"]) == expected
    assert aggregate_block_id(["a", "b"]) == aggregate_block_id(["a", "b"])
    assert aggregate_block_id(["b", "a"]) != expected


def test_deterministic_uuid_is_stable() -> None:
    assert deterministic_uuid("doc_block_chunk_0") == deterministic_uuid("doc_block_chunk_0")
    assert deterministic_uuid("doc_block_chunk_0") != deterministic_uuid("doc_block_chunk_1")


def test_external_ids() -> None:
    assert external_base_id("doc", "blk", "folder") == "doc_blk_folder"
    assert external_content_id("doc", "blk") == "doc_blk"
