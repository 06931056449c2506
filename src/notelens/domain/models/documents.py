from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(slots=True)
class DocumentMeta:
    id: str
    title: str
    tags: list[str] = field(default_factory=list)
