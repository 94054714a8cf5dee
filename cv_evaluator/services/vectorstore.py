# =============================================================================
# Vector Store Abstraction — Pluggable Backend Protocol
# =============================================================================
#
# Stores chunk embeddings and serves nearest-neighbour retrieval for the
# evaluation pipeline, with implementations for Qdrant (REST) and ChromaDB.
#
# The index only supplies retrieval context for scoring; the pipeline must
# still complete when the index is unavailable. Every operation therefore
# swallows index-layer failures (with a warning):
#   - ensure_collection() → returns quietly
#   - upsert()            → returns the caller's point ids unchanged
#   - search()            → returns []
#
# ARCHITECTURE:
#   VectorStore (Protocol)
#   ├── QdrantVectorStore — Qdrant REST API via httpx
#   │   ├── ensure_collection() — GET /collections, PUT /collections/{name}
#   │   ├── upsert()            — PUT /collections/{name}/points?wait=true
#   │   └── search()            — POST /collections/{name}/points/search
#   └── ChromaVectorStore — ChromaDB (in-process or client/server)
#
# Both upserts are idempotent by point id: writing the same points twice
# leaves one copy of each.
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol
from urllib.parse import quote

import chromadb
import httpx

from cv_evaluator.config import Settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class VectorPoint:
    """A vector plus payload to write into the index."""

    id: str
    vector: list[float]
    payload: dict = field(default_factory=dict)
    # payload keys:
    #   text: str, the chunk text
    #   document_id: str, source document
    #   chunk_id: str, human-readable chunk id


@dataclass
class VectorSearchResult:
    """A single nearest-neighbour hit."""

    point_id: str
    score: float  # Cosine similarity, higher = more relevant
    payload: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"id": self.point_id, "score": self.score, "payload": self.payload}


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class VectorStore(Protocol):
    """Interface shared by the Qdrant and Chroma backends."""

    def ensure_collection(self) -> None:
        """Create the target collection if it does not exist yet."""
        ...

    def upsert(self, points: list[VectorPoint]) -> list[str]:
        """Write points; returns their ids (also on failure)."""
        ...

    def search(
        self,
        vector: list[float],
        k: int = 5,
        document_id: str | None = None,
    ) -> list[VectorSearchResult]:
        """Return up to k nearest neighbours with payload ([] on failure).

        When document_id is given, only that document's chunks are searched.
        """
        ...


# ---------------------------------------------------------------------------
# Implementation 1: Qdrant (REST)
# ---------------------------------------------------------------------------


class QdrantVectorStore:
    """
    Qdrant-backed vector store speaking the REST API directly.

    Uses plain HTTP instead of the Qdrant client library so the wire
    format stays under this module's control. Accepts an optional
    httpx.Client for tests (MockTransport).
    """

    def __init__(
        self,
        settings: Settings,
        client: httpx.Client | None = None,
    ) -> None:
        self._base_url = settings.qdrant_url.rstrip("/")
        self._collection = settings.qdrant_collection
        self._vector_size = settings.embedding_dimensions
        self._client = client or httpx.Client(timeout=settings.qdrant_timeout_seconds)

    @property
    def _collection_url(self) -> str:
        return f"{self._base_url}/collections/{quote(self._collection, safe='')}"

    def ensure_collection(self) -> None:
        """Create the collection (cosine distance) only if it is absent."""
        try:
            response = self._client.get(f"{self._base_url}/collections")
            response.raise_for_status()
            existing = {
                c.get("name")
                for c in (response.json().get("result") or {}).get("collections") or []
            }
            if self._collection in existing:
                return

            response = self._client.put(
                self._collection_url,
                json={
                    "vectors": {"size": self._vector_size, "distance": "Cosine"},
                },
            )
            response.raise_for_status()
            logger.info(
                "Created Qdrant collection '%s' (size=%d, distance=Cosine)",
                self._collection, self._vector_size,
            )
        except (httpx.HTTPError, ValueError, TypeError, AttributeError) as exc:
            logger.warning(
                "Qdrant ensure_collection failed (continuing without index): %s", exc,
            )

    def upsert(self, points: list[VectorPoint]) -> list[str]:
        """Upsert points with wait=true; idempotent by point id."""
        ids = [p.id for p in points]
        if not points:
            return ids

        body = {
            "points": [
                {"id": p.id, "vector": p.vector, "payload": p.payload}
                for p in points
            ],
        }
        try:
            response = self._client.put(
                f"{self._collection_url}/points",
                params={"wait": "true"},
                json=body,
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning(
                "Qdrant upsert of %d points failed (continuing): %s", len(points), exc,
            )
            return ids

        logger.info(
            "Upserted %d points into Qdrant collection '%s'",
            len(points), self._collection,
        )
        return ids

    def search(
        self,
        vector: list[float],
        k: int = 5,
        document_id: str | None = None,
    ) -> list[VectorSearchResult]:
        """Cosine nearest-neighbour search with payload."""
        body: dict = {"vector": vector, "limit": k, "with_payload": True}
        if document_id is not None:
            body["filter"] = {
                "must": [{"key": "document_id", "match": {"value": document_id}}],
            }

        try:
            response = self._client.post(
                f"{self._collection_url}/points/search",
                json=body,
            )
            response.raise_for_status()
            data = response.json()

            hits = data.get("result") if isinstance(data, dict) else data
            if not isinstance(hits, list):
                logger.warning("Unexpected Qdrant search response shape: %r", type(hits))
                return []

            return [
                VectorSearchResult(
                    point_id=str(hit.get("id")),
                    score=float(hit.get("score") or 0.0),
                    payload=hit.get("payload") if isinstance(hit.get("payload"), dict) else {},
                )
                for hit in hits[:k]
                if isinstance(hit, dict)
            ]
        except (httpx.HTTPError, ValueError, TypeError) as exc:
            logger.warning("Qdrant search failed (continuing without context): %s", exc)
            return []


# ---------------------------------------------------------------------------
# Implementation 2: ChromaDB
# ---------------------------------------------------------------------------


class ChromaVectorStore:
    """
    ChromaDB-backed vector store.

    - In-process (default, and always in demo mode): no extra infra
    - Client/server: set CHROMA_URL for a Docker deployment

    The chunk text is stored as the Chroma document; the remaining payload
    keys become metadata. Search rebuilds the payload from both.
    """

    def __init__(
        self,
        settings: Settings,
        collection_name: str | None = None,
        client: chromadb.ClientAPI | None = None,
    ) -> None:
        if client is not None:
            self._client = client
        elif settings.chroma_url and not settings.demo_mode:
            self._client = chromadb.HttpClient(host=settings.chroma_url)
        else:
            self._client = chromadb.Client()

        self._collection_name = collection_name or settings.qdrant_collection
        self._collection = None

    def ensure_collection(self) -> None:
        """Get or create the cosine-space collection."""
        try:
            self._collection = self._client.get_or_create_collection(
                name=self._collection_name,
                metadata={"hnsw:space": "cosine"},
            )
        except Exception as exc:
            logger.warning(
                "Chroma ensure_collection failed (continuing without index): %s", exc,
            )

    def upsert(self, points: list[VectorPoint]) -> list[str]:
        """Upsert points; Chroma upsert replaces records with matching ids."""
        ids = [p.id for p in points]
        if not points:
            return ids

        try:
            if self._collection is None:
                self.ensure_collection()
            self._collection.upsert(
                ids=ids,
                embeddings=[p.vector for p in points],
                documents=[p.payload.get("text", "") for p in points],
                metadatas=[_sanitise_chroma_metadata(p.payload) for p in points],
            )
        except Exception as exc:
            logger.warning(
                "Chroma upsert of %d points failed (continuing): %s", len(points), exc,
            )
            return ids

        logger.info(
            "Upserted %d points into Chroma collection '%s'",
            len(points), self._collection_name,
        )
        return ids

    def search(
        self,
        vector: list[float],
        k: int = 5,
        document_id: str | None = None,
    ) -> list[VectorSearchResult]:
        """Similarity search; Chroma cosine distance converted to similarity."""
        query: dict = {
            "query_embeddings": [vector],
            "n_results": k,
            "include": ["documents", "metadatas", "distances"],
        }
        if document_id is not None:
            query["where"] = {"document_id": document_id}

        try:
            if self._collection is None:
                self.ensure_collection()
            results = self._collection.query(**query)
        except Exception as exc:
            logger.warning("Chroma search failed (continuing without context): %s", exc)
            return []

        hits: list[VectorSearchResult] = []
        if not results or not results["ids"] or not results["ids"][0]:
            return hits

        for i, point_id in enumerate(results["ids"][0]):
            distance = results["distances"][0][i] if results["distances"] else 0.0
            metadata = dict(results["metadatas"][0][i] or {}) if results["metadatas"] else {}
            document = results["documents"][0][i] if results["documents"] else ""
            hits.append(VectorSearchResult(
                point_id=point_id,
                score=round(1.0 - distance, 4),
                payload={**metadata, "text": document},
            ))
        return hits

    def count(self) -> int:
        """Number of points in the collection (0 if it does not exist)."""
        if self._collection is None:
            return 0
        return self._collection.count()


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------


def get_vector_store(settings: Settings) -> VectorStore:
    """
    Return the configured vector store backend.

    - demo_mode → in-process ChromaVectorStore
    - "chroma" → ChromaVectorStore
    - anything else → QdrantVectorStore (default)
    """
    if settings.demo_mode or settings.vectorstore_type == "chroma":
        logger.info("Using ChromaDB vector store")
        return ChromaVectorStore(settings)

    logger.info("Using Qdrant vector store at %s", settings.qdrant_url)
    return QdrantVectorStore(settings)


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _sanitise_chroma_metadata(payload: dict) -> dict:
    """
    Drop the text key and coerce values to Chroma's scalar types.

    Chroma metadata values must be str, int, float or bool:
    - None → empty string
    - list → comma-separated string
    """
    sanitised = {}
    for key, value in payload.items():
        if key == "text":
            continue
        if value is None:
            sanitised[key] = ""
        elif isinstance(value, list):
            sanitised[key] = ",".join(str(v) for v in value)
        elif isinstance(value, (str, int, float, bool)):
            sanitised[key] = value
        else:
            sanitised[key] = str(value)
    return sanitised
