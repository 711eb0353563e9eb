"""Index records, query matches and answers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal


def record_id(document_id: str, chunk_index: int) -> str:
    """Deterministic id: re-ingesting the same document+position overwrites."""
    return f"{document_id}::{chunk_index}"


@dataclass(frozen=True)
class IndexRecord:
    """Unit persisted in the vector index. metadata: document_id, chunk_index, source, type, text."""

    id: str
    vector: list[float]
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RetrievalMatch:
    id: str
    text: str
    metadata: dict[str, Any]
    score: float  # cosine similarity in [-1, 1]


@dataclass(frozen=True)
class RetrievalResult:
    """Matches ordered by descending score."""

    matches: list[RetrievalMatch] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.matches)

    def __iter__(self):
        return iter(self.matches)


@dataclass(frozen=True)
class Answer:
    """Generated answer. Degraded answers keep the internal reason out of to_dict()."""

    text: str
    sources: list[str] = field(default_factory=list)
    scores: list[float] = field(default_factory=list)
    status: Literal["ok", "degraded"] = "ok"
    reason: str | None = None

    @property
    def degraded(self) -> bool:
        return self.status == "degraded"

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"answer": self.text, "sources": list(self.sources)}
        if self.scores:
            out["scores"] = list(self.scores)
        return out
