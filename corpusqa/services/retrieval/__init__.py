"""Retrieval: embeddings, vector index and grounded answers."""

from corpusqa.services.retrieval.answer import RetrievalPipeline
from corpusqa.services.retrieval.chroma_store import ChromaVectorIndex
from corpusqa.services.retrieval.embedding_provider import LiteLLMEmbeddingProvider, normalize_vector
from corpusqa.services.retrieval.models import Answer, IndexRecord, RetrievalMatch, RetrievalResult, record_id

__all__ = [
    "Answer",
    "ChromaVectorIndex",
    "IndexRecord",
    "LiteLLMEmbeddingProvider",
    "RetrievalMatch",
    "RetrievalPipeline",
    "RetrievalResult",
    "normalize_vector",
    "record_id",
]
