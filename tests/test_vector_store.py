"""Tests for the collection-oriented vector store client over FAISS."""
import pytest

from docqa.errors import EmbeddingError, VectorBackendError
from docqa.rag.vector_store import QueryResult, VectorStoreClient, vector_id

from conftest import HashEmbedder

CHUNKS = [
    "Apples grow on trees in orchards.",
    "Rust prevents data races at compile time.",
    "The mitochondria is the powerhouse of the cell.",
    "Jazz musicians improvise over chord changes.",
    "Glaciers carve valleys over thousands of years.",
]


class BrokenBackend:
    async def upsert(self, records):
        raise RuntimeError("index unavailable")

    async def query(self, vector, top_k, document_id=None):
        raise RuntimeError("index unavailable")

    async def list_ids(self, prefix):
        raise RuntimeError("index unavailable")

    async def delete(self, ids):
        raise RuntimeError("index unavailable")


class LeakyBackend:
    """Backend that ignores the documentId filter."""

    async def query(self, vector, top_k, document_id=None):
        return [
            {"id": "doc_b_0", "score": 0.99, "metadata": {"documentId": "doc_b", "text": "b"}},
            {"id": "doc_a_0", "score": 0.5, "metadata": {"documentId": "doc_a", "text": "a"}},
        ]


def test_vector_id_is_deterministic():
    assert vector_id("doc_abc", 7) == "doc_abc_7"


def test_distance_is_one_minus_score():
    result = QueryResult(id="x", text="t", score=0.8, metadata={})
    assert result.distance == pytest.approx(0.2)


async def test_upsert_batches_and_ids(faiss_backend, embedder):
    store = VectorStoreClient(backend=faiss_backend, embedder=embedder, batch_size=2)

    ack = await store.upsert("doc_a", CHUNKS)

    assert ack == {"collection_id": "doc_a", "upserted": 5, "batches": 3}
    assert await faiss_backend.list_ids("doc_a_") == [f"doc_a_{i}" for i in range(5)]


async def test_self_query_ranks_chunk_first(vector_store):
    await vector_store.upsert("doc_a", CHUNKS)

    for index, chunk in enumerate(CHUNKS):
        results = await vector_store.query("doc_a", chunk, top_k=3)
        assert results[0].id == f"doc_a_{index}"
        assert results[0].text == chunk
        assert results[0].metadata["chunkIndex"] == index
        assert len(results) == 3
        for result in results:
            assert result.distance == pytest.approx(1 - result.score)
        assert [r.score for r in results] == sorted((r.score for r in results), reverse=True)


async def test_reupsert_overwrites(vector_store, faiss_backend):
    await vector_store.upsert("doc_a", CHUNKS)
    await vector_store.upsert("doc_a", ["Replaced first chunk text."] + CHUNKS[1:])

    assert faiss_backend.index.ntotal == len(CHUNKS)
    results = await vector_store.query("doc_a", "Replaced first chunk text.", top_k=1)
    assert results[0].id == "doc_a_0"
    assert results[0].text == "Replaced first chunk text."


async def test_queries_stay_within_collection(vector_store):
    await vector_store.upsert("doc_a", CHUNKS[:2])
    await vector_store.upsert("doc_b", CHUNKS[2:])

    results = await vector_store.query("doc_a", CHUNKS[3], top_k=5)

    assert {r.metadata["documentId"] for r in results} == {"doc_a"}
    assert len(results) == 2


async def test_metadata_is_merged_under_fixed_fields(vector_store):
    metadatas = [{"title": "Fruit", "documentId": "ignored", "totalPages": 1}]

    await vector_store.upsert("doc_a", CHUNKS[:1], metadatas)
    results = await vector_store.query("doc_a", CHUNKS[0], top_k=1)

    assert results[0].metadata == {
        "title": "Fruit",
        "totalPages": 1,
        "text": CHUNKS[0],
        "documentId": "doc_a",
        "chunkIndex": 0,
    }


async def test_mismatched_metadata_rejected(vector_store):
    with pytest.raises(ValueError):
        await vector_store.upsert("doc_a", CHUNKS[:2], [{}])


async def test_embedding_failure_writes_nothing(faiss_backend):
    store = VectorStoreClient(backend=faiss_backend, embedder=HashEmbedder(fail_on="Jazz"))

    with pytest.raises(EmbeddingError):
        await store.upsert("doc_a", CHUNKS)

    assert await faiss_backend.list_ids("doc_a_") == []


async def test_delete_collection_removes_only_its_records(vector_store, faiss_backend):
    await vector_store.upsert("doc_a", CHUNKS[:3])
    await vector_store.upsert("doc_ab", CHUNKS[3:])

    assert await vector_store.delete_collection("doc_a") == 3
    assert await faiss_backend.list_ids("doc_a_") == []
    assert await faiss_backend.list_ids("doc_ab_") == ["doc_ab_0", "doc_ab_1"]


async def test_backend_failure_maps_to_vector_backend_error(embedder):
    store = VectorStoreClient(backend=BrokenBackend(), embedder=embedder)

    with pytest.raises(VectorBackendError):
        await store.upsert("doc_a", CHUNKS)
    with pytest.raises(VectorBackendError):
        await store.query("doc_a", "anything")


async def test_delete_collection_is_best_effort(embedder):
    store = VectorStoreClient(backend=BrokenBackend(), embedder=embedder)
    assert await store.delete_collection("doc_a") == 0


async def test_foreign_results_are_dropped(embedder):
    store = VectorStoreClient(backend=LeakyBackend(), embedder=embedder)

    results = await store.query("doc_a", "question", top_k=3)

    assert [r.id for r in results] == ["doc_a_0"]
