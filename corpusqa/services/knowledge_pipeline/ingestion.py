"""Ingest documents into the vector index: extract, chunk, embed once, upsert."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from loguru import logger

from corpusqa.ingest.chunking import DEFAULT_CHUNK_OVERLAP, DEFAULT_CHUNK_SIZE, chunk_text, validate_chunking
from corpusqa.ingest.extract import extract_text, guess_mime_type
from corpusqa.ingest.models import Chunk, Document, IngestResult, new_document_id
from corpusqa.services.retrieval.models import IndexRecord, record_id
from corpusqa.utils.exceptions import IndexWriteError

RAW_TEXT_TYPE = "text/plain"


def build_records(
    chunks: list[Chunk],
    vectors: list[list[float]],
    *,
    source: str,
    doc_type: str,
) -> list[IndexRecord]:
    """Pair each chunk with its vector; chunk text travels in metadata for answer context."""
    records: list[IndexRecord] = []
    for chunk, vector in zip(chunks, vectors):
        records.append(IndexRecord(
            id=record_id(chunk.document_id, chunk.chunk_index),
            vector=vector,
            metadata={
                "document_id": chunk.document_id,
                "chunk_index": chunk.chunk_index,
                "source": source,
                "type": doc_type,
                "text": chunk.text,
            },
        ))
    return records


class IngestionPipeline:
    """
    Turn documents into index records.

    Errors from extraction, embedding and the index propagate to the caller.
    Records already written by a failed upsert stay in the index.
    """

    def __init__(
        self,
        embedder: Any,
        index: Any,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
        namespace: str | None = None,
    ):
        validate_chunking(chunk_size, chunk_overlap)
        self.embedder = embedder
        self.index = index
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.namespace = namespace

    async def _index_text(self, text: str, document_id: str, source: str, doc_type: str) -> IngestResult:
        chunks = chunk_text(text, self.chunk_size, self.chunk_overlap, document_id=document_id)
        if not chunks:
            logger.debug(f"No chunks for {source} ({document_id}); nothing indexed")
            return IngestResult(document_id=document_id, chunks_processed=0)
        vectors = await self.embedder.embed_many([c.text for c in chunks])
        records = build_records(chunks, vectors, source=source, doc_type=doc_type)
        try:
            await self.index.upsert(records, namespace=self.namespace)
        except IndexWriteError as e:
            logger.warning(
                f"Partial ingest of {source} ({document_id}): {e.written}/{e.total} records written before failure"
            )
            raise
        logger.info(f"Ingested {source} -> document_id={document_id} ({len(chunks)} chunks)")
        return IngestResult(document_id=document_id, chunks_processed=len(chunks))

    async def ingest(self, document: Document) -> IngestResult:
        text = extract_text(document)
        return await self._index_text(text, document.document_id, document.source_name, document.mime_type)

    async def ingest_raw_text(self, text: str, source_label: str) -> IngestResult:
        return await self._index_text(text, new_document_id(), source_label, RAW_TEXT_TYPE)

    async def ingest_file(
        self,
        path: str | Path,
        mime_type: str | None = None,
        source_name: str | None = None,
    ) -> IngestResult:
        """Ingest a file from disk; MIME type is guessed from the extension when omitted."""
        path = Path(path).expanduser()
        if not path.is_file():
            raise FileNotFoundError(f"No such file: {path}")
        document = Document(
            source_name=source_name or path.name,
            mime_type=mime_type or guess_mime_type(path),
            path=path,
        )
        return await self.ingest(document)
