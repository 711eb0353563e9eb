"""Ingest domain model: documents submitted for ingestion and the chunks cut from them."""

from dataclasses import dataclass, field
from pathlib import Path
from uuid import uuid4


def new_document_id() -> str:
    return uuid4().hex


@dataclass(frozen=True)
class Document:
    """Logical unit submitted for ingestion. Re-uploading creates a new document_id."""

    source_name: str
    mime_type: str
    content: bytes | None = None  # raw upload bytes; when None, ``path`` is read
    path: Path | None = None
    document_id: str = field(default_factory=new_document_id)


@dataclass(frozen=True)
class Chunk:
    """A contiguous, trimmed slice of a document's normalized text."""

    text: str
    chunk_index: int  # 0-based, defines citation order
    document_id: str = ""


@dataclass(frozen=True)
class IngestResult:
    document_id: str
    chunks_processed: int

    def to_dict(self) -> dict[str, object]:
        return {"document_id": self.document_id, "chunks_processed": self.chunks_processed}
