"""Chroma-backed vector index for knowledge chunks.

Each namespace is one Chroma collection (``{index_name}-{namespace}``) created
with the cosine metric and the configured dimension, so records in different
namespaces never cross-match. Chroma's client is synchronous; calls run in a
worker thread so the pipelines suspend cooperatively.
"""

from __future__ import annotations

import asyncio
import re
from pathlib import Path
from typing import Any

from loguru import logger

from corpusqa.services.retrieval.models import IndexRecord, RetrievalMatch, RetrievalResult
from corpusqa.utils.exceptions import (
    IndexQueryError,
    IndexWriteError,
    InvalidConfiguration,
    ValidationError,
    sanitize_error_message,
)
from corpusqa.utils.helpers import ensure_dir, get_data_path

COSINE_SPACE = "cosine"
DEFAULT_UPSERT_BATCH_SIZE = 80
_COLLECTION_NAME_RE = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9._-]{1,510}[a-zA-Z0-9]$")


def _sanitize_metadata(meta: dict[str, Any]) -> dict[str, Any]:
    # Chroma metadata values must be str, int, float or bool; chunk text is stored whole
    out: dict[str, Any] = {}
    for k, v in (meta or {}).items():
        if v is None:
            continue
        if isinstance(v, (bool, int, float)):
            out[str(k)] = v
        else:
            out[str(k)] = str(v)
    return out


def _collection_names(client: Any) -> list[str]:
    # list_collections returns names on some chromadb releases and Collection objects on others
    return [getattr(c, "name", c) for c in client.list_collections()]


class ChromaVectorIndex:
    """Persist and search chunk vectors via Chroma. Call ``initialize()`` before use."""

    def __init__(
        self,
        *,
        dimension: int,
        index_name: str = "corpusqa",
        namespace: str = "default",
        upsert_batch_size: int = DEFAULT_UPSERT_BATCH_SIZE,
        backend: str = "persistent",
        path: str | Path | None = None,
        host: str = "localhost",
        port: int = 8000,
        ssl: bool = False,
        headers: dict[str, str] | None = None,
        client: Any = None,
    ):
        if dimension <= 0:
            raise InvalidConfiguration(f"dimension must be positive, got {dimension}", setting="dimension")
        if upsert_batch_size <= 0:
            raise InvalidConfiguration(
                f"upsert_batch_size must be positive, got {upsert_batch_size}", setting="upsert_batch_size"
            )
        self.dimension = dimension
        self.index_name = index_name
        self.namespace = namespace
        self.upsert_batch_size = upsert_batch_size
        self.backend = backend
        self._path = Path(path).expanduser() if path else get_data_path() / "index"
        self._host = host
        self._port = port
        self._ssl = ssl
        self._headers = dict(headers or {})
        self._client = client
        self._collections: dict[str, Any] = {}
        self._initialized = False

    @classmethod
    def from_config(cls, config: Any, client: Any = None) -> "ChromaVectorIndex":
        vi = config.vector_index
        return cls(
            dimension=config.embedding.dimension,
            index_name=vi.index_name,
            namespace=vi.namespace,
            upsert_batch_size=vi.upsert_batch_size,
            backend=vi.backend,
            path=vi.path or None,
            host=vi.host,
            port=vi.port,
            ssl=vi.ssl,
            headers=vi.headers,
            client=client,
        )

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    # -- setup ---------------------------------------------------------------

    def _make_client(self) -> Any:
        try:
            import chromadb
        except ImportError:
            raise InvalidConfiguration("chromadb is not installed. Install with: pip install chromadb")
        if self.backend == "http":
            return chromadb.HttpClient(host=self._host, port=self._port, ssl=self._ssl, headers=self._headers or None)
        if self.backend == "ephemeral":
            return chromadb.EphemeralClient()
        if self.backend == "persistent":
            ensure_dir(self._path)
            return chromadb.PersistentClient(path=str(self._path))
        raise InvalidConfiguration(f"Unknown vector index backend: {self.backend}", setting="backend")

    def collection_name(self, namespace: str) -> str:
        name = f"{self.index_name}-{namespace}"
        if not _COLLECTION_NAME_RE.match(name):
            raise InvalidConfiguration(
                f"Invalid index/namespace name {name!r}: use letters, digits, '.', '_' or '-'",
                setting="namespace",
            )
        return name

    def _check_collection(self, collection: Any) -> None:
        meta = collection.metadata or {}
        space = meta.get("hnsw:space", "l2")
        if space != COSINE_SPACE:
            raise InvalidConfiguration(
                f"Collection {collection.name} uses metric {space!r}; recreate it with the cosine metric",
                setting="index_name",
            )
        stored = meta.get("dimension")
        if stored is not None and int(stored) != self.dimension:
            raise InvalidConfiguration(
                f"Collection {collection.name} has dimension {stored}, embedding dimension is {self.dimension}",
                setting="dimension",
            )

    def _open_collection(self, namespace: str) -> Any:
        name = self.collection_name(namespace)
        if name in _collection_names(self._client):
            collection = self._client.get_collection(name=name, embedding_function=None)
        else:
            try:
                collection = self._client.create_collection(
                    name=name,
                    metadata={"hnsw:space": COSINE_SPACE, "dimension": self.dimension},
                    embedding_function=None,
                )
                logger.info(f"Created vector collection {name} (dimension={self.dimension}, metric=cosine)")
            except Exception:
                # another writer created it between the listing and the create
                if name not in _collection_names(self._client):
                    raise
                logger.debug(f"Vector collection {name} was created concurrently; opening it")
                collection = self._client.get_collection(name=name, embedding_function=None)
        self._check_collection(collection)
        return collection

    def _initialize_sync(self) -> None:
        if self._client is None:
            self._client = self._make_client()
        self._collections[self.namespace] = self._open_collection(self.namespace)

    async def initialize(self) -> "ChromaVectorIndex":
        """Connect and verify the default namespace collection; returns self ready to use."""
        if not self._initialized:
            await asyncio.to_thread(self._initialize_sync)
            self._initialized = True
            logger.debug(f"Vector index ready: backend={self.backend} index={self.index_name}")
        return self

    def _require_ready(self) -> None:
        if not self._initialized:
            raise InvalidConfiguration("Vector index not initialized; call initialize() first")

    def _collection(self, namespace: str | None) -> Any:
        ns = namespace or self.namespace
        if ns not in self._collections:
            self._collections[ns] = self._open_collection(ns)
        return self._collections[ns]

    def _existing_collection(self, namespace: str) -> Any | None:
        """Like _collection, but never creates: None when the namespace has no collection yet."""
        if namespace in self._collections:
            return self._collections[namespace]
        name = self.collection_name(namespace)
        if name not in _collection_names(self._client):
            return None
        collection = self._client.get_collection(name=name, embedding_function=None)
        self._check_collection(collection)
        self._collections[namespace] = collection
        return collection

    # -- write path ----------------------------------------------------------

    def _upsert_batch(self, collection: Any, batch: list[IndexRecord]) -> None:
        for rec in batch:
            if len(rec.vector) != self.dimension:
                raise ValueError(f"record {rec.id} has dimension {len(rec.vector)}, expected {self.dimension}")
        collection.upsert(
            ids=[r.id for r in batch],
            embeddings=[list(r.vector) for r in batch],
            metadatas=[_sanitize_metadata(r.metadata) for r in batch],
        )

    async def upsert(self, records: list[IndexRecord], namespace: str | None = None) -> None:
        """Write records in sequential batches; existing ids are overwritten whole.

        On failure raises IndexWriteError carrying how many records were already written.
        """
        self._require_ready()
        ns = namespace or self.namespace
        total = len(records)
        if not total:
            return
        written = 0
        try:
            collection = await asyncio.to_thread(self._collection, ns)
        except InvalidConfiguration:
            raise
        except Exception as e:
            raise IndexWriteError(
                f"Could not open namespace {ns}: {sanitize_error_message(str(e))}", written=0, total=total, namespace=ns
            ) from e
        for start in range(0, total, self.upsert_batch_size):
            batch = records[start:start + self.upsert_batch_size]
            try:
                await asyncio.to_thread(self._upsert_batch, collection, batch)
            except Exception as e:
                raise IndexWriteError(
                    f"Upsert failed after {written}/{total} records in namespace {ns}: "
                    f"{sanitize_error_message(str(e))}",
                    written=written,
                    total=total,
                    namespace=ns,
                ) from e
            written += len(batch)
        logger.debug(f"Upserted {total} records into {ns} in batches of {self.upsert_batch_size}")

    # -- read path -----------------------------------------------------------

    def _query_sync(self, vector: list[float], top_k: int, namespace: str) -> RetrievalResult:
        collection = self._existing_collection(namespace)
        if collection is None:
            return RetrievalResult([])
        count = collection.count()
        if count == 0:
            return RetrievalResult([])
        results = collection.query(
            query_embeddings=[list(vector)],
            n_results=min(top_k, count),
            include=["metadatas", "distances"],
        )
        if not results or not results.get("ids"):
            return RetrievalResult([])
        ids = results["ids"][0]
        metadatas = results.get("metadatas") or [[]]
        distances = results.get("distances") or [[]]
        meta_list = metadatas[0] if metadatas else []
        dist_list = distances[0] if distances else []
        matches: list[RetrievalMatch] = []
        for i, rid in enumerate(ids):
            meta = (meta_list[i] if i < len(meta_list) else None) or {}
            d = dist_list[i] if i < len(dist_list) else None
            # cosine space: distance = 1 - cosine similarity
            score = 1.0 - float(d) if d is not None else 0.0
            matches.append(RetrievalMatch(id=rid, text=str(meta.get("text") or ""), metadata=dict(meta), score=score))
        matches.sort(key=lambda m: -m.score)
        return RetrievalResult(matches)

    async def query(self, vector: list[float], top_k: int, namespace: str | None = None) -> RetrievalResult:
        """Top-k nearest neighbours by cosine similarity, best first."""
        self._require_ready()
        if isinstance(top_k, bool) or not isinstance(top_k, int) or top_k <= 0:
            raise ValidationError(f"top_k must be a positive integer, got {top_k!r}", field="top_k")
        ns = namespace or self.namespace
        try:
            return await asyncio.to_thread(self._query_sync, vector, top_k, ns)
        except InvalidConfiguration:
            raise
        except Exception as e:
            raise IndexQueryError(f"Query failed in namespace {ns}: {sanitize_error_message(str(e))}", namespace=ns) from e

    # -- maintenance ---------------------------------------------------------

    async def count(self, namespace: str | None = None) -> int:
        self._require_ready()
        ns = namespace or self.namespace
        collection = await asyncio.to_thread(self._existing_collection, ns)
        if collection is None:
            return 0
        return int(await asyncio.to_thread(collection.count))

    def _describe_sync(self) -> list[dict[str, Any]]:
        prefix = f"{self.index_name}-"
        out: list[dict[str, Any]] = []
        for name in sorted(_collection_names(self._client)):
            if not name.startswith(prefix):
                continue
            collection = self._client.get_collection(name=name, embedding_function=None)
            meta = collection.metadata or {}
            out.append({
                "namespace": name[len(prefix):],
                "collection": name,
                "records": int(collection.count()),
                "dimension": meta.get("dimension"),
                "metric": meta.get("hnsw:space", "l2"),
            })
        return out

    async def describe(self) -> list[dict[str, Any]]:
        """Per-namespace record counts, dimension and metric for this index."""
        self._require_ready()
        return await asyncio.to_thread(self._describe_sync)

    def _reset_sync(self, namespace: str) -> None:
        name = self.collection_name(namespace)
        if name in _collection_names(self._client):
            self._client.delete_collection(name=name)
            logger.info(f"Deleted vector collection {name}")
        self._collections.pop(namespace, None)
        self._collections[namespace] = self._open_collection(namespace)

    async def reset(self, namespace: str | None = None) -> None:
        """Drop and recreate a namespace with the configured dimension and cosine metric."""
        if self._client is None:
            self._client = await asyncio.to_thread(self._make_client)
        await asyncio.to_thread(self._reset_sync, namespace or self.namespace)
        self._initialized = True
