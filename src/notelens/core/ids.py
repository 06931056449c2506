from __future__ import annotations

import uuid


def deterministic_uuid(name: str, namespace: uuid.UUID = uuid.NAMESPACE_URL) -> str:
    """Generate a deterministic UUID5 from a stable name."""
    return str(uuid.uuid5(namespace, name))


def external_base_id(doc_id: str, block_id: str, kind: str) -> str:
    return f"{doc_id}_{block_id}_{kind}"


def external_content_id(doc_id: str, block_id: str) -> str:
    return f"{doc_id}_{block_id}"
