"""Normalize and chunk text into fixed-size overlapping windows."""

import re

from corpusqa.ingest.models import Chunk
from corpusqa.utils.exceptions import InvalidConfiguration

DEFAULT_CHUNK_SIZE = 1200
DEFAULT_CHUNK_OVERLAP = 200


def validate_chunking(chunk_size: int, overlap: int) -> None:
    """Raise InvalidConfiguration unless chunk_size > overlap >= 0."""
    if isinstance(chunk_size, bool) or not isinstance(chunk_size, int):
        raise InvalidConfiguration(f"chunk_size must be an integer, got {chunk_size!r}", setting="chunk_size")
    if isinstance(overlap, bool) or not isinstance(overlap, int):
        raise InvalidConfiguration(f"overlap must be an integer, got {overlap!r}", setting="chunk_overlap")
    if overlap < 0:
        raise InvalidConfiguration(f"overlap must be >= 0, got {overlap}", setting="chunk_overlap")
    if chunk_size - overlap <= 0:
        # step must be positive or the cursor never advances
        raise InvalidConfiguration(
            f"chunk_size must be greater than overlap (chunk_size={chunk_size}, overlap={overlap})",
            setting="chunk_size",
        )


def normalize_text(text: str) -> str:
    """Drop CRs, strip trailing blanks before newlines, collapse 3+ newlines to 2, trim."""
    text = str(text or "").replace("\r", "")
    text = re.sub(r"[ \t]+\n", "\n", text)
    return re.sub(r"\n{3,}", "\n\n", text).strip()


def chunk_text(
    text: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    overlap: int = DEFAULT_CHUNK_OVERLAP,
    document_id: str = "",
) -> list[Chunk]:
    """Split text into windows of chunk_size advancing by chunk_size - overlap.

    Windows that are empty after trimming are skipped, the cursor still advances.
    """
    validate_chunking(chunk_size, overlap)
    clean = normalize_text(text)
    step = chunk_size - overlap
    chunks: list[Chunk] = []
    i = 0
    while i < len(clean):
        end = min(i + chunk_size, len(clean))
        piece = clean[i:end].strip()
        if piece:
            chunks.append(Chunk(text=piece, chunk_index=len(chunks), document_id=document_id))
        i += step
    return chunks
