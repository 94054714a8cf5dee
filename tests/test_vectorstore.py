# =============================================================================
# Unit Tests — Vector Store (ChromaDB + Qdrant REST)
# =============================================================================
#
# ChromaDB runs in-process; each test gets its own collection. Qdrant is
# exercised against httpx.MockTransport handlers, including the failure
# paths that must degrade quietly.
# =============================================================================

import json
import uuid

import httpx

from cv_evaluator.config import Settings
from cv_evaluator.services.vectorstore import (
    ChromaVectorStore,
    QdrantVectorStore,
    VectorPoint,
    VectorSearchResult,
    get_vector_store,
)

QDRANT = "http://qdrant.test:6333"


def _settings(**overrides) -> Settings:
    values = {
        "_env_file": None,
        "qdrant_url": QDRANT,
        "qdrant_collection": "docs",
        "embedding_dimensions": 3,
    }
    values.update(overrides)
    return Settings(**values)


def _point(
    vector: list[float],
    text: str,
    point_id: str | None = None,
    document_id: str = "file_1",
) -> VectorPoint:
    return VectorPoint(
        id=point_id or str(uuid.uuid4()),
        vector=vector,
        payload={"text": text, "document_id": document_id, "chunk_id": f"cv_0_{text[:4]}"},
    )


class TestChromaVectorStore:
    """Tests for ChromaVectorStore (in-process mode)."""

    def _make_store(self) -> ChromaVectorStore:
        return ChromaVectorStore(
            _settings(), collection_name=f"test_{uuid.uuid4().hex[:12]}",
        )

    def test_search_returns_closest_first(self):
        store = self._make_store()
        store.ensure_collection()
        store.upsert([
            _point([1.0, 0.0, 0.0], "Python backend"),
            _point([0.0, 1.0, 0.0], "Frontend design"),
        ])

        results = store.search([1.0, 0.0, 0.0], k=2)

        assert len(results) == 2
        assert all(isinstance(r, VectorSearchResult) for r in results)
        assert results[0].score >= results[1].score
        assert results[0].payload["text"] == "Python backend"
        assert results[0].payload["document_id"] == "file_1"

    def test_upsert_is_idempotent_by_id(self):
        store = self._make_store()
        store.ensure_collection()
        point = _point([0.2, 0.3, 0.4], "same chunk")

        assert store.upsert([point]) == [point.id]
        assert store.upsert([point]) == [point.id]
        assert store.count() == 1

    def test_ensure_collection_is_idempotent(self):
        store = self._make_store()
        store.ensure_collection()
        store.upsert([_point([0.1, 0.1, 0.1], "keep me")])
        store.ensure_collection()
        assert store.count() == 1

    def test_empty_upsert_is_a_no_op(self):
        store = self._make_store()
        assert store.upsert([]) == []
        assert store.count() == 0

    def test_search_on_empty_collection(self):
        store = self._make_store()
        store.ensure_collection()
        assert store.search([1.0, 0.0, 0.0], k=5) == []

    def test_search_scoped_to_document(self):
        store = self._make_store()
        store.ensure_collection()
        store.upsert([
            _point([1.0, 0.0, 0.0], "Own CV chunk", document_id="file_cv"),
            _point([1.0, 0.0, 0.0], "Someone else", document_id="file_other"),
        ])

        results = store.search([1.0, 0.0, 0.0], k=5, document_id="file_cv")

        assert [r.payload["text"] for r in results] == ["Own CV chunk"]

    def test_to_dict(self):
        hit = VectorSearchResult(point_id="p1", score=0.9, payload={"text": "t"})
        assert hit.to_dict() == {"id": "p1", "score": 0.9, "payload": {"text": "t"}}


class TestQdrantVectorStore:
    """Tests for QdrantVectorStore over a mocked REST API."""

    def _store(self, handler) -> tuple[QdrantVectorStore, list[httpx.Request]]:
        seen: list[httpx.Request] = []

        def recording(request):
            seen.append(request)
            return handler(request)

        client = httpx.Client(transport=httpx.MockTransport(recording))
        return QdrantVectorStore(_settings(), client=client), seen

    def test_ensure_collection_creates_when_absent(self):
        def handler(request):
            if request.method == "GET":
                return httpx.Response(200, json={"result": {"collections": [{"name": "other"}]}})
            return httpx.Response(200, json={"result": True})

        store, seen = self._store(handler)
        store.ensure_collection()

        assert [r.method for r in seen] == ["GET", "PUT"]
        assert seen[1].url.path == "/collections/docs"
        assert json.loads(seen[1].content) == {"vectors": {"size": 3, "distance": "Cosine"}}

    def test_ensure_collection_skips_existing(self):
        store, seen = self._store(
            lambda r: httpx.Response(200, json={"result": {"collections": [{"name": "docs"}]}}),
        )
        store.ensure_collection()
        assert [r.method for r in seen] == ["GET"]

    def test_upsert_wire_format(self):
        store, seen = self._store(lambda r: httpx.Response(200, json={"status": "ok"}))
        point = _point([0.1, 0.2, 0.3], "chunk text")

        assert store.upsert([point]) == [point.id]

        request = seen[0]
        assert request.method == "PUT"
        assert request.url.path == "/collections/docs/points"
        assert request.url.params["wait"] == "true"
        body = json.loads(request.content)
        assert body["points"][0]["id"] == point.id
        assert body["points"][0]["payload"]["text"] == "chunk text"

    def test_search_parses_hits(self):
        reply = {
            "result": [
                {"id": "a", "score": 0.93, "payload": {"text": "Go services"}},
                {"id": "b", "score": 0.41, "payload": {"text": "Design docs"}},
            ],
        }
        store, seen = self._store(lambda r: httpx.Response(200, json=reply))

        results = store.search([0.1, 0.2, 0.3], k=2)

        assert [r.point_id for r in results] == ["a", "b"]
        assert results[0].payload["text"] == "Go services"
        body = json.loads(seen[0].content)
        assert body == {"vector": [0.1, 0.2, 0.3], "limit": 2, "with_payload": True}

    def test_failures_degrade_quietly(self):
        store, _ = self._store(lambda r: httpx.Response(500, text="boom"))
        point = _point([0.1, 0.2, 0.3], "x")

        store.ensure_collection()
        assert store.upsert([point]) == [point.id]
        assert store.search([0.1, 0.2, 0.3]) == []

    def test_unreachable_server_degrades_quietly(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        store, _ = self._store(handler)
        point = _point([0.1, 0.2, 0.3], "x")

        store.ensure_collection()
        assert store.upsert([point]) == [point.id]
        assert store.search([0.1, 0.2, 0.3]) == []

    def test_search_sends_document_filter(self):
        store, seen = self._store(lambda r: httpx.Response(200, json={"result": []}))

        store.search([0.1, 0.2, 0.3], k=3, document_id="file_cv")

        body = json.loads(seen[0].content)
        assert body["filter"] == {
            "must": [{"key": "document_id", "match": {"value": "file_cv"}}],
        }

    def test_malformed_search_hits_do_not_raise(self):
        reply = {"result": [{"id": "a", "score": None, "payload": None}]}
        store, _ = self._store(lambda r: httpx.Response(200, json=reply))

        results = store.search([0.1, 0.2, 0.3])

        assert [(r.point_id, r.score, r.payload) for r in results] == [("a", 0.0, {})]

    def test_unparseable_score_degrades_to_empty(self):
        reply = {"result": [{"id": "a", "score": {"bad": 1}, "payload": {}}]}
        store, _ = self._store(lambda r: httpx.Response(200, json=reply))
        assert store.search([0.1, 0.2, 0.3]) == []

    def test_malformed_collection_listing_degrades_quietly(self):
        store, seen = self._store(
            lambda r: httpx.Response(200, json={"result": {"collections": [None]}}),
        )
        store.ensure_collection()
        assert [r.method for r in seen] == ["GET"]

    def test_null_collection_listing_creates_collection(self):
        def handler(request):
            if request.method == "GET":
                return httpx.Response(200, json={"result": {"collections": None}})
            return httpx.Response(200, json={"result": True})

        store, seen = self._store(handler)
        store.ensure_collection()
        assert [r.method for r in seen] == ["GET", "PUT"]

    def test_empty_upsert_sends_nothing(self):
        store, seen = self._store(lambda r: httpx.Response(200))
        assert store.upsert([]) == []
        assert seen == []


class TestFactory:
    """Tests for get_vector_store()."""

    def test_demo_mode_uses_chroma(self):
        assert isinstance(get_vector_store(_settings(demo_mode=True)), ChromaVectorStore)

    def test_chroma_by_config(self):
        assert isinstance(get_vector_store(_settings(vectorstore_type="chroma")), ChromaVectorStore)

    def test_qdrant_default(self):
        assert isinstance(get_vector_store(_settings()), QdrantVectorStore)
