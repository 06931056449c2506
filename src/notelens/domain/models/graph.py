from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(slots=True)
class GraphNode:
    id: str
    type: str
    title: str
    val: int
    tags: list[str] = field(default_factory=list)
    parent_doc_id: str | None = None
    parent_block_id: str | None = None


@dataclass(slots=True)
class GraphLink:
    source: str
    target: str
    similarity: float
    has_semantic: bool
    has_tags: bool


@dataclass(slots=True)
class GraphData:
    nodes: list[GraphNode] = field(default_factory=list)
    links: list[GraphLink] = field(default_factory=list)
