"""Tests for the Chroma vector index adapter: fake client for batching/errors, in-process Chroma for search."""

from __future__ import annotations

import asyncio
import threading
import uuid

import pytest

from conftest import FakeEmbedder
from corpusqa.config.schema import Config
from corpusqa.ingest.chunking import chunk_text
from corpusqa.ingest.models import Document
from corpusqa.services.knowledge_pipeline.ingestion import IngestionPipeline
from corpusqa.services.retrieval.chroma_store import ChromaVectorIndex, _sanitize_metadata
from corpusqa.services.retrieval.embedding_provider import normalize_vector
from corpusqa.services.retrieval.models import IndexRecord, record_id
from corpusqa.utils.exceptions import IndexQueryError, IndexWriteError, InvalidConfiguration, ValidationError


class _FakeCollection:
    def __init__(self, name: str, metadata: dict | None):
        self.name = name
        self.metadata = metadata
        self.rows: dict[str, tuple[list[float], dict]] = {}
        self.upsert_sizes: list[int] = []
        self.fail_on_upsert_call: int | None = None
        self.fail_query = False

    def upsert(self, ids, embeddings, metadatas):
        self.upsert_sizes.append(len(ids))
        if self.fail_on_upsert_call == len(self.upsert_sizes):
            raise RuntimeError("server unavailable")
        for i, e, m in zip(ids, embeddings, metadatas):
            self.rows[i] = (e, m)

    def count(self):
        return len(self.rows)

    def query(self, query_embeddings, n_results, include):
        if self.fail_query:
            raise RuntimeError("query timeout")
        q = query_embeddings[0]
        scored = sorted(
            ((1.0 - sum(a * b for a, b in zip(q, e)), rid, m) for rid, (e, m) in self.rows.items()),
            key=lambda row: (row[0], row[1]),
        )[:n_results]
        return {
            "ids": [[rid for _, rid, _ in scored]],
            "distances": [[d for d, _, _ in scored]],
            "metadatas": [[m or None for _, _, m in scored]],
        }


class _FakeClient:
    def __init__(self):
        self.collections: dict[str, _FakeCollection] = {}

    def list_collections(self):
        return list(self.collections)

    def create_collection(self, name, metadata=None, embedding_function=None):
        self.collections[name] = _FakeCollection(name, metadata)
        return self.collections[name]

    def get_collection(self, name, embedding_function=None):
        return self.collections[name]

    def delete_collection(self, name):
        del self.collections[name]


class _RacingClient(_FakeClient):
    """Rejects duplicate creates like Chroma; list_collections can miss a collection another writer just made."""

    def __init__(self):
        super().__init__()
        self.hidden_once: set[str] = set()
        self.create_calls = 0
        self._lock = threading.Lock()

    def list_collections(self):
        with self._lock:
            names = [n for n in self.collections if n not in self.hidden_once]
            self.hidden_once.clear()
        return names

    def create_collection(self, name, metadata=None, embedding_function=None):
        with self._lock:
            self.create_calls += 1
            if name in self.collections:
                raise ValueError(f"Collection {name} already exists")
            return super().create_collection(name, metadata, embedding_function)


def _records(n: int, dim: int = 3, doc: str = "doc") -> list[IndexRecord]:
    return [
        IndexRecord(
            id=record_id(doc, i),
            vector=normalize_vector([1.0, float(i % 3), 0.5]) if dim == 3 else [1.0] * dim,
            metadata={"document_id": doc, "chunk_index": i, "source": "s.txt", "type": "text/plain", "text": f"t{i}"},
        )
        for i in range(n)
    ]


async def _ready(client: _FakeClient | None = None, dim: int = 3) -> ChromaVectorIndex:
    return await ChromaVectorIndex(dimension=dim, client=client or _FakeClient()).initialize()


@pytest.mark.asyncio
async def test_use_before_initialize_raises() -> None:
    index = ChromaVectorIndex(dimension=3, client=_FakeClient())
    assert not index.is_initialized
    with pytest.raises(InvalidConfiguration, match="not initialized"):
        await index.query([1.0, 0.0, 0.0], 4)
    with pytest.raises(InvalidConfiguration):
        await index.upsert(_records(1))


@pytest.mark.asyncio
async def test_initialize_creates_cosine_collection_with_dimension() -> None:
    client = _FakeClient()
    index = await _ready(client)
    assert index.is_initialized
    col = client.collections["corpusqa-default"]
    assert col.metadata == {"hnsw:space": "cosine", "dimension": 3}


@pytest.mark.asyncio
async def test_initialize_rejects_dimension_mismatch() -> None:
    client = _FakeClient()
    client.create_collection("corpusqa-default", {"hnsw:space": "cosine", "dimension": 768})
    with pytest.raises(InvalidConfiguration, match="dimension"):
        await ChromaVectorIndex(dimension=384, client=client).initialize()


@pytest.mark.asyncio
async def test_initialize_rejects_non_cosine_collection() -> None:
    client = _FakeClient()
    client.create_collection("corpusqa-default", {"hnsw:space": "l2"})
    with pytest.raises(InvalidConfiguration, match="cosine"):
        await ChromaVectorIndex(dimension=3, client=client).initialize()


@pytest.mark.asyncio
async def test_upsert_170_records_in_three_sequential_batches() -> None:
    client = _FakeClient()
    index = await _ready(client)
    await index.upsert(_records(170))
    col = client.collections["corpusqa-default"]
    assert col.upsert_sizes == [80, 80, 10]
    assert col.count() == 170


@pytest.mark.asyncio
async def test_upsert_failure_on_second_batch_reports_written() -> None:
    client = _FakeClient()
    index = await _ready(client)
    client.collections["corpusqa-default"].fail_on_upsert_call = 2
    with pytest.raises(IndexWriteError) as exc_info:
        await index.upsert(_records(170))
    assert exc_info.value.written == 80
    assert exc_info.value.total == 170
    # the third batch is never attempted
    assert client.collections["corpusqa-default"].upsert_sizes == [80, 80]


@pytest.mark.asyncio
async def test_upsert_same_id_overwrites() -> None:
    client = _FakeClient()
    index = await _ready(client)
    await index.upsert(_records(2))
    await index.upsert(_records(2))
    assert await index.count() == 2


@pytest.mark.asyncio
async def test_upsert_wrong_dimension_raises_write_error() -> None:
    index = await _ready()
    with pytest.raises(IndexWriteError) as exc_info:
        await index.upsert(_records(1, dim=5))
    assert exc_info.value.written == 0


@pytest.mark.asyncio
async def test_query_orders_by_similarity_and_scores_cosine() -> None:
    index = await _ready()
    await index.upsert(_records(3))
    result = await index.query(normalize_vector([1.0, 2.0, 0.5]), 2)
    assert len(result) == 2
    assert result.matches[0].id == "doc::2"
    assert result.matches[0].score == pytest.approx(1.0)
    assert result.matches[0].score >= result.matches[1].score
    assert result.matches[0].text == "t2"


@pytest.mark.asyncio
async def test_query_empty_namespace_returns_no_matches() -> None:
    index = await _ready()
    assert len(await index.query([1.0, 0.0, 0.0], 4)) == 0


@pytest.mark.asyncio
async def test_query_missing_metadata_gives_empty_text() -> None:
    client = _FakeClient()
    index = await _ready(client)
    client.collections["corpusqa-default"].rows["orphan::0"] = ([1.0, 0.0, 0.0], {})
    result = await index.query([1.0, 0.0, 0.0], 1)
    assert result.matches[0].id == "orphan::0"
    assert result.matches[0].text == ""


@pytest.mark.asyncio
@pytest.mark.parametrize("top_k", [0, -1, True, None, 2.5])
async def test_query_invalid_top_k_raises(top_k) -> None:
    index = await _ready()
    with pytest.raises(ValidationError):
        await index.query([1.0, 0.0, 0.0], top_k)


@pytest.mark.asyncio
async def test_query_failure_raises_index_query_error() -> None:
    client = _FakeClient()
    index = await _ready(client)
    await index.upsert(_records(1))
    client.collections["corpusqa-default"].fail_query = True
    with pytest.raises(IndexQueryError, match="query timeout"):
        await index.query([1.0, 0.0, 0.0], 1)


@pytest.mark.asyncio
async def test_namespaces_do_not_cross_match() -> None:
    index = await _ready()
    await index.upsert(_records(2), namespace="books")
    assert len(await index.query([1.0, 0.0, 0.0], 4)) == 0
    assert len(await index.query([1.0, 0.0, 0.0], 4, namespace="books")) == 2


@pytest.mark.asyncio
async def test_describe_and_reset() -> None:
    client = _FakeClient()
    client.create_collection("other-default", {"hnsw:space": "cosine"})
    index = await _ready(client)
    await index.upsert(_records(5))
    rows = await index.describe()
    assert rows == [{
        "namespace": "default",
        "collection": "corpusqa-default",
        "records": 5,
        "dimension": 3,
        "metric": "cosine",
    }]
    await index.reset()
    assert await index.count() == 0
    assert client.collections["corpusqa-default"].metadata["dimension"] == 3


@pytest.mark.asyncio
async def test_reset_recreates_mismatched_collection() -> None:
    client = _FakeClient()
    client.create_collection("corpusqa-default", {"hnsw:space": "l2", "dimension": 768})
    index = ChromaVectorIndex(dimension=3, client=client)
    await index.reset()
    assert index.is_initialized
    assert client.collections["corpusqa-default"].metadata == {"hnsw:space": "cosine", "dimension": 3}


def test_invalid_namespace_name_rejected() -> None:
    index = ChromaVectorIndex(dimension=3, client=_FakeClient())
    with pytest.raises(InvalidConfiguration):
        index.collection_name("bad name!")


def test_sanitize_metadata_drops_none_and_stringifies() -> None:
    out = _sanitize_metadata({"a": None, "b": 1, "c": True, "d": ["x"], "text": "hi"})
    assert out == {"b": 1, "c": True, "d": "['x']", "text": "hi"}


def test_sanitize_metadata_keeps_long_text_whole() -> None:
    text = "policy clause " * 10_000
    assert _sanitize_metadata({"text": text})["text"] == text


@pytest.mark.asyncio
async def test_long_chunk_text_is_returned_whole() -> None:
    index = await _ready()
    text = "x" * 134_999
    record = IndexRecord(id="big::0", vector=normalize_vector([1.0, 0.0, 0.0]), metadata={"text": text})
    await index.upsert([record])
    result = await index.query([1.0, 0.0, 0.0], 1)
    assert len(result.matches[0].text) == 134_999


@pytest.mark.asyncio
async def test_collection_created_by_another_writer_is_reused() -> None:
    client = _RacingClient()
    index = await _ready(client)
    client.create_collection("corpusqa-fresh", {"hnsw:space": "cosine", "dimension": 3})
    # the listing misses it, so the index tries to create it and gets "already exists"
    client.hidden_once.add("corpusqa-fresh")
    await index.upsert(_records(2), namespace="fresh")
    assert await index.count("fresh") == 2
    assert client.create_calls == 3


@pytest.mark.asyncio
async def test_concurrent_upserts_to_fresh_namespace_all_land() -> None:
    client = _RacingClient()
    index = await _ready(client)
    await asyncio.gather(*(index.upsert(_records(3, doc=f"d{i}"), namespace="fresh") for i in range(4)))
    assert await index.count("fresh") == 12
    assert sorted(client.collections) == ["corpusqa-default", "corpusqa-fresh"]


@pytest.mark.asyncio
async def test_create_failure_for_missing_collection_is_a_write_error() -> None:
    client = _RacingClient()
    index = await _ready(client)

    def _refuse(name, metadata=None, embedding_function=None):
        raise RuntimeError("disk full")

    client.create_collection = _refuse
    with pytest.raises(IndexWriteError, match="disk full") as exc_info:
        await index.upsert(_records(1), namespace="fresh")
    assert exc_info.value.written == 0


@pytest.mark.asyncio
async def test_query_and_count_unknown_namespace_create_nothing() -> None:
    client = _FakeClient()
    index = await _ready(client)
    assert len(await index.query([1.0, 0.0, 0.0], 4, namespace="ghost")) == 0
    assert await index.count("ghost") == 0
    assert "corpusqa-ghost" not in client.collections


@pytest.mark.asyncio
async def test_query_existing_namespace_with_wrong_dimension_raises() -> None:
    client = _FakeClient()
    index = await _ready(client)
    client.create_collection("corpusqa-legacy", {"hnsw:space": "cosine", "dimension": 768})
    with pytest.raises(InvalidConfiguration, match="dimension"):
        await index.query([1.0, 0.0, 0.0], 4, namespace="legacy")


def test_from_config() -> None:
    cfg = Config()
    cfg.embedding.dimension = 384
    cfg.vector_index.namespace = "books"
    index = ChromaVectorIndex.from_config(cfg, client=_FakeClient())
    assert index.dimension == 384
    assert index.collection_name(index.namespace) == "corpusqa-books"
    assert index.upsert_batch_size == 80


@pytest.mark.chroma
@pytest.mark.asyncio
async def test_ephemeral_chroma_round_trip() -> None:
    pytest.importorskip("chromadb")
    index = ChromaVectorIndex(dimension=3, index_name=f"t{uuid.uuid4().hex[:12]}", backend="ephemeral")
    await index.initialize()
    await index.upsert(_records(3))
    result = await index.query(normalize_vector([1.0, 2.0, 0.5]), 2)
    assert [m.id for m in result.matches][0] == "doc::2"
    assert result.matches[0].score == pytest.approx(1.0, abs=1e-4)
    assert result.matches[0].metadata["source"] == "s.txt"
    assert await index.count() == 3


def _ephemeral_index(dimension: int = 3) -> ChromaVectorIndex:
    return ChromaVectorIndex(dimension=dimension, index_name=f"t{uuid.uuid4().hex[:12]}", backend="ephemeral")


@pytest.mark.chroma
@pytest.mark.asyncio
async def test_ephemeral_ingest_then_retrieve_returns_chunk_text() -> None:
    pytest.importorskip("chromadb")
    embedder = FakeEmbedder()
    index = await _ephemeral_index(embedder.dimension).initialize()
    pipeline = IngestionPipeline(embedder, index, chunk_size=40, chunk_overlap=0)
    text = "".join(letter * 40 for letter in "abcdefgh")
    doc = Document(source_name="letters.txt", mime_type="text/plain", content=text.encode())
    result = await pipeline.ingest(doc)
    assert result.chunks_processed == 8

    chunk = chunk_text(text, 40, 0)[3]
    found = await index.query(await embedder.embed_one(chunk.text), 1)
    match = found.matches[0]
    assert match.text == chunk.text
    assert match.id == f"{doc.document_id}::3"
    assert match.metadata["source"] == "letters.txt"
    assert match.score == pytest.approx(1.0, abs=1e-4)


@pytest.mark.chroma
@pytest.mark.asyncio
async def test_ephemeral_long_chunk_text_round_trips() -> None:
    pytest.importorskip("chromadb")
    index = await _ephemeral_index().initialize()
    text = "y" * 134_999
    await index.upsert([IndexRecord(id="big::0", vector=normalize_vector([1.0, 0.0, 0.0]), metadata={"text": text})])
    result = await index.query([1.0, 0.0, 0.0], 1)
    assert result.matches[0].text == text


@pytest.mark.chroma
@pytest.mark.asyncio
async def test_ephemeral_concurrent_upserts_to_fresh_namespace() -> None:
    pytest.importorskip("chromadb")
    index = await _ephemeral_index().initialize()
    await asyncio.gather(*(index.upsert(_records(3, doc=f"d{i}"), namespace="fresh") for i in range(4)))
    assert await index.count("fresh") == 12
