import asyncio
import uuid

import chromadb
import pytest

from infrastructure.vector_stores import ChromaHybridSearchBackend

QUERY = [1.0, 0.0]


@pytest.fixture
def backend():
    # Ephemeral clients share one in-process system, so each test gets its own collection
    client = chromadb.EphemeralClient()
    backend = ChromaHybridSearchBackend(
        client, collection_name=f"test-{uuid.uuid4().hex[:12]}", fusion="weighted"
    )
    asyncio.run(backend.add(
        ids=["a", "b", "c", "x"],
        texts=["백엔드 결제 시스템 개발", "프론트엔드 화면 개발", "결제 정산 자동화", "결제 결제 결제"],
        embeddings=[[1.0, 0.0], [0.6, 0.8], [0.0, 1.0], [1.0, 0.0]],
        metadatas=[
            {"owner_id": "user-1", "type": "resume"},
            {"owner_id": "user-1", "type": "portfolio"},
            {"owner_id": "user-1", "type": "resume"},
            {"owner_id": "user-2", "type": "resume"},
        ],
    ))
    return backend


def _hybrid(backend, where, vector_weight=0.6, bm25_weight=0.4, query_text="결제"):
    return asyncio.run(backend.hybrid_search(
        query_embedding=QUERY,
        query_text=query_text,
        match_count=10,
        vector_weight=vector_weight,
        bm25_weight=bm25_weight,
        where=where,
    ))


def test_hybrid_search_fuses_weighted_scores_within_owner(backend):
    results = _hybrid(backend, {"owner_id": "user-1"})
    by_id = {r.id: r for r in results}

    assert [r.id for r in results] == ["a", "c", "b"]
    assert by_id["a"].vector_score == pytest.approx(1.0, abs=1e-4)
    assert 0 < by_id["a"].bm25_score < 1
    assert by_id["a"].combined_score == pytest.approx(
        0.6 * by_id["a"].vector_score + 0.4 * by_id["a"].bm25_score
    )
    assert by_id["c"].bm25_score == pytest.approx(1.0)
    assert by_id["b"].bm25_score == 0.0
    assert by_id["b"].combined_score == pytest.approx(0.6 * 0.6, abs=1e-4)
    assert by_id["b"].metadata["owner_id"] == "user-1"
    assert by_id["a"].content == "백엔드 결제 시스템 개발"


def test_hybrid_search_honours_several_filter_keys(backend):
    results = _hybrid(backend, {"owner_id": "user-1", "type": "resume"})
    assert sorted(r.id for r in results) == ["a", "c"]


def test_hybrid_search_for_unknown_owner_is_empty(backend):
    assert _hybrid(backend, {"owner_id": "nobody"}) == []


def test_vector_search_drops_results_below_threshold(backend):
    results = asyncio.run(backend.vector_search(
        query_embedding=QUERY, threshold=0.5, match_count=10, where={"owner_id": "user-1"}
    ))

    assert [r.id for r in results] == ["a", "b"]
    assert results[0].combined_score == pytest.approx(1.0, abs=1e-4)
    assert results[1].combined_score == pytest.approx(0.6, abs=1e-4)
    assert all(r.bm25_score == 0.0 for r in results)


def test_delete_removes_entries(backend):
    asyncio.run(backend.delete(["a", "b"]))

    assert asyncio.run(backend.count({"owner_id": "user-1"})) == 1
    assert asyncio.run(backend.count()) == 2
    assert [r.id for r in _hybrid(backend, {"owner_id": "user-1"})] == ["c"]
