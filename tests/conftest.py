"""Pytest hooks and in-memory fakes for the embedding, index and generation collaborators."""

from __future__ import annotations

import math
import os
from types import SimpleNamespace

import pytest

from corpusqa.services.retrieval.embedding_provider import normalize_vector
from corpusqa.services.retrieval.models import RetrievalMatch, RetrievalResult


def pytest_configure(config):
    """Register custom markers (also in pyproject.toml)."""
    config.addinivalue_line("markers", "chroma: uses the in-process Chroma client")


@pytest.fixture(autouse=True)
def _isolated_home(tmp_path, monkeypatch):
    """Keep config, index and log files out of the real home directory."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    for key in [k for k in os.environ if k.startswith("CORPUSQA_")]:
        monkeypatch.delenv(key, raising=False)
    yield home


class FakeEmbedder:
    """Deterministic bag-of-letters embedder; vectors are unit-normalized like the real one."""

    def __init__(self, dimension: int = 8, fail: Exception | None = None):
        self.dimension = dimension
        self.fail = fail
        self.many_calls: list[list[str]] = []
        self.one_calls: list[str] = []

    def _vector(self, text: str) -> list[float]:
        vec = [0.0] * self.dimension
        for ch in text.lower():
            if ch.isalpha():
                vec[(ord(ch) - ord("a")) % self.dimension] += 1.0
        return normalize_vector(vec)

    async def embed_many(self, texts: list[str]) -> list[list[float]]:
        self.many_calls.append(list(texts))
        if self.fail:
            raise self.fail
        return [self._vector(t) for t in texts]

    async def embed_one(self, text: str) -> list[float]:
        self.one_calls.append(text)
        if self.fail:
            raise self.fail
        return self._vector(text)

    async def probe_dimension(self) -> int:
        return self.dimension


class FakeIndex:
    """In-memory cosine index keyed by namespace then record id."""

    def __init__(self, fail_upsert: Exception | None = None, fail_query: Exception | None = None):
        self.records: dict[str, dict[str, object]] = {}
        self.upsert_calls: list[tuple[list, str | None]] = []
        self.query_calls: list[tuple[list[float], int, str | None]] = []
        self.fail_upsert = fail_upsert
        self.fail_query = fail_query
        self.initialized = False

    async def initialize(self):
        self.initialized = True
        return self

    async def upsert(self, records, namespace=None):
        self.upsert_calls.append((list(records), namespace))
        if self.fail_upsert:
            raise self.fail_upsert
        ns = self.records.setdefault(namespace or "default", {})
        for rec in records:
            ns[rec.id] = rec

    async def query(self, vector, top_k, namespace=None):
        self.query_calls.append((list(vector), top_k, namespace))
        if self.fail_query:
            raise self.fail_query
        scored = []
        for rec in self.records.get(namespace or "default", {}).values():
            score = sum(a * b for a, b in zip(vector, rec.vector))
            scored.append(RetrievalMatch(
                id=rec.id, text=rec.metadata.get("text", ""), metadata=dict(rec.metadata), score=score
            ))
        scored.sort(key=lambda m: -m.score)
        return RetrievalResult(scored[:top_k])


class FakeGenerator:
    """Records prompts; replies with the insufficient-context line when the prompt has no matches."""

    def __init__(self, reply: str = "The refund window is 30 days.", fail: Exception | None = None):
        self.reply = reply
        self.fail = fail
        self.prompts: list[str] = []

    async def complete(self, prompt: str) -> str:
        from corpusqa.services.retrieval.answer import INSUFFICIENT_CONTEXT_REPLY, NO_CONTEXT_MARKER

        self.prompts.append(prompt)
        if self.fail:
            raise self.fail
        if NO_CONTEXT_MARKER in prompt:
            return INSUFFICIENT_CONTEXT_REPLY
        return self.reply


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def index() -> FakeIndex:
    return FakeIndex()


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()


def fake_embedding_response(vectors: list[list[float]]) -> SimpleNamespace:
    """Shape of litellm.EmbeddingResponse as far as the provider reads it."""
    return SimpleNamespace(data=[{"embedding": v, "index": i} for i, v in enumerate(vectors)])


def norm(vector: list[float]) -> float:
    return math.sqrt(sum(x * x for x in vector))
