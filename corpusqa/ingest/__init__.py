"""Document model, text extraction and chunking."""

from corpusqa.ingest.chunking import chunk_text, normalize_text, validate_chunking
from corpusqa.ingest.extract import extract_text, guess_mime_type
from corpusqa.ingest.models import Chunk, Document, IngestResult

__all__ = [
    "Chunk",
    "Document",
    "IngestResult",
    "chunk_text",
    "extract_text",
    "guess_mime_type",
    "normalize_text",
    "validate_chunking",
]
