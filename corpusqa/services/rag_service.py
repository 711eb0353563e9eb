"""Bootstrap and entry points for ingestion and question answering."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from loguru import logger

from corpusqa.ingest.models import Document, IngestResult
from corpusqa.services.knowledge_pipeline.ingestion import IngestionPipeline
from corpusqa.services.retrieval.answer import RetrievalPipeline
from corpusqa.services.retrieval.models import Answer
from corpusqa.utils.exceptions import InvalidConfiguration


class RagService:
    """Ingestion and answering over one corpus namespace. Build with build_rag_service()."""

    def __init__(self, ingestion: IngestionPipeline, retrieval: RetrievalPipeline, index: Any):
        self.ingestion = ingestion
        self.retrieval = retrieval
        self.index = index

    async def ingest(self, document: Document) -> IngestResult:
        return await self.ingestion.ingest(document)

    async def ingest_raw_text(self, text: str, source_label: str) -> IngestResult:
        return await self.ingestion.ingest_raw_text(text, source_label)

    async def ingest_file(
        self,
        path: str | Path,
        mime_type: str | None = None,
        source_name: str | None = None,
    ) -> IngestResult:
        return await self.ingestion.ingest_file(path, mime_type=mime_type, source_name=source_name)

    async def answer(self, question: str, top_k: Any = None) -> Answer:
        return await self.retrieval.answer(question, top_k)


async def check_embedding_dimension(embedder: Any, expected: int) -> int:
    """Probe the embedder; raise InvalidConfiguration if its vectors are not ``expected`` long."""
    actual = await embedder.probe_dimension()
    if actual != expected:
        raise InvalidConfiguration(
            f"Embedding model produces {actual}-dimensional vectors but embedding.dimension is {expected}",
            setting="embedding.dimension",
        )
    return actual


async def build_rag_service(
    config: Any,
    *,
    embedder: Any = None,
    index: Any = None,
    generator: Any = None,
) -> RagService:
    """
    Wire the pipelines from config; collaborators not passed in are built from config.

    Initializes the index and verifies the embedding dimension before returning.
    """
    if embedder is None:
        from corpusqa.services.retrieval.embedding_provider import LiteLLMEmbeddingProvider
        embedder = LiteLLMEmbeddingProvider.from_config(config)
    if index is None:
        from corpusqa.services.retrieval.chroma_store import ChromaVectorIndex
        index = ChromaVectorIndex.from_config(config)
    if generator is None:
        from corpusqa.providers.litellm_provider import LiteLLMProvider
        generator = LiteLLMProvider.from_config(config)

    ingestion = IngestionPipeline(
        embedder,
        index,
        chunk_size=config.chunking.chunk_size,
        chunk_overlap=config.chunking.chunk_overlap,
        namespace=config.vector_index.namespace,
    )
    await index.initialize()
    dim = await check_embedding_dimension(embedder, config.embedding.dimension)
    logger.debug(f"RAG service ready (dimension={dim}, namespace={config.vector_index.namespace})")
    retrieval = RetrievalPipeline(
        embedder,
        index,
        generator,
        default_top_k=config.retrieval.top_k,
        namespace=config.vector_index.namespace,
    )
    return RagService(ingestion, retrieval, index)
