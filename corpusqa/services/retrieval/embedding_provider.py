"""Embedding provider using LiteLLM (HuggingFace, OpenAI-compatible and others).

Vectors leave this module unit-normalized on both the ingestion and the
query path, so a plain dot product in the index equals cosine similarity.
"""

from __future__ import annotations

import math
from typing import Any

from loguru import logger

from corpusqa.utils.exceptions import EmbeddingProviderError, sanitize_error_message

DIMENSION_PROBE_TEXT = "dimension probe"


def normalize_vector(vector: list[float]) -> list[float]:
    """v / ||v||; a zero vector is returned unchanged."""
    magnitude = math.sqrt(sum(x * x for x in vector))
    if magnitude == 0:
        return list(vector)
    return [x / magnitude for x in vector]


def _extract_vectors(response: Any) -> list[list[float]]:
    """Pull embedding lists out of a LiteLLM EmbeddingResponse (objects or dicts)."""
    data = getattr(response, "data", None)
    if data is None and isinstance(response, dict):
        data = response.get("data")
    out: list[list[float]] = []
    for item in data or []:
        emb = item.get("embedding") if isinstance(item, dict) else getattr(item, "embedding", None)
        if emb is None:
            continue
        out.append([float(x) for x in emb])
    return out


class LiteLLMEmbeddingProvider:
    """Embed texts via LiteLLM. Failures raise EmbeddingProviderError; no retries here."""

    def __init__(
        self,
        model: str,
        provider: str = "huggingface",
        api_key: str | None = None,
        api_base: str | None = None,
        batch_size: int = 96,
        timeout: float | None = 60.0,
    ):
        self.model = model
        self.provider = (provider or "").strip().lower()
        self._api_key = (api_key or "").strip() or None
        self._api_base = (api_base or "").strip() or None
        self.batch_size = max(1, int(batch_size))
        self.timeout = timeout

    @classmethod
    def from_config(cls, config: Any) -> "LiteLLMEmbeddingProvider":
        emb = config.embedding
        return cls(
            model=emb.model,
            provider=emb.provider,
            api_key=emb.api_key,
            api_base=emb.api_base,
            batch_size=emb.batch_size,
            timeout=emb.timeout,
        )

    @property
    def model_id(self) -> str:
        # LiteLLM model format: huggingface/sentence-transformers/... or openai/text-embedding-3-small
        if self.provider and not self.model.startswith(f"{self.provider}/"):
            return f"{self.provider}/{self.model}"
        return self.model

    async def _embed_batch(self, texts: list[str]) -> list[list[float]]:
        import litellm

        kwargs: dict[str, Any] = {"model": self.model_id, "input": texts}
        if self._api_key:
            kwargs["api_key"] = self._api_key
        if self._api_base:
            kwargs["api_base"] = self._api_base
        if self.timeout:
            kwargs["timeout"] = self.timeout
        try:
            response = await litellm.aembedding(**kwargs)
        except Exception as e:
            raise EmbeddingProviderError(
                f"Embedding request failed: {sanitize_error_message(str(e))}", model=self.model_id
            ) from e
        vectors = _extract_vectors(response)
        if len(vectors) != len(texts):
            raise EmbeddingProviderError(
                f"Embedding provider returned {len(vectors)} vectors for {len(texts)} texts",
                model=self.model_id,
            )
        return vectors

    async def embed_many(self, texts: list[str]) -> list[list[float]]:
        """Embed texts in sequential provider-sized batches; returns normalized vectors."""
        if not texts:
            return []
        out: list[list[float]] = []
        for start in range(0, len(texts), self.batch_size):
            batch = texts[start:start + self.batch_size]
            out.extend(await self._embed_batch(batch))
        logger.debug(f"Embedded {len(texts)} texts with {self.model_id}")
        return [normalize_vector(v) for v in out]

    async def embed_one(self, text: str) -> list[float]:
        """Query path: same normalization as embed_many."""
        vectors = await self._embed_batch([text])
        return normalize_vector(vectors[0])

    async def probe_dimension(self) -> int:
        """Embed a fixed probe string and report the vector length."""
        return len(await self.embed_one(DIMENSION_PROBE_TEXT))
