import asyncio

import pytest

from core.domain import (
    DocumentType, EmbeddingError, ErrorCode, InvalidDocumentError, SearchBackendError
)
from services.chunking import KoreanChunker
from services.ingestion import IngestionPipeline, index_metadata
from tests.fakes import FakeBackend, FakeDocumentRepo, FakeEmbedding

LONG_TEXT = " ".join(
    f"저는 {i}번째 프로젝트에서 팀과 함께 중요한 기능을 개발했습니다."
    for i in range(10, 70)
)


class TrackingEmbedding(FakeEmbedding):
    """Counts in-flight requests and optionally fails on the n-th call."""

    def __init__(self, fail_on=None):
        super().__init__()
        self.fail_on = fail_on
        self.in_flight = 0
        self.max_in_flight = 0

    async def embed(self, text):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            if self.fail_on is not None and len(self.calls) + 1 == self.fail_on:
                raise ConnectionError("provider unreachable")
            return await super().embed(text)
        finally:
            self.in_flight -= 1


def _pipeline(embedder=None, repo=None, backend=None, concurrency=2):
    return IngestionPipeline(
        chunker=KoreanChunker(),
        embedder=embedder or FakeEmbedding(),
        document_repo=repo or FakeDocumentRepo(),
        search_backend=backend or FakeBackend(),
        concurrency=concurrency,
    )


def test_short_document_is_stored_as_single_row():
    repo, backend = FakeDocumentRepo(), FakeBackend()
    pipeline = _pipeline(repo=repo, backend=backend)

    doc = asyncio.run(pipeline.ingest(
        "user-1", "resume", "resume.txt", "저는 백엔드 개발자입니다.", {"source": "upload"}
    ))

    assert doc.type == DocumentType.RESUME
    assert doc.parent_document_id is None
    assert doc.metadata["chunk_count"] == 1
    assert doc.metadata["source"] == "upload"
    assert doc.sibling_ids == [doc.id]
    assert [d.id for d in repo.created] == [doc.id]
    assert backend.added == [doc.id]


def test_long_document_chunks_share_parent():
    repo, backend = FakeDocumentRepo(), FakeBackend()
    embedder = TrackingEmbedding()
    pipeline = _pipeline(embedder=embedder, repo=repo, backend=backend, concurrency=2)

    doc = asyncio.run(pipeline.ingest("user-1", "portfolio", "p.txt", LONG_TEXT))

    assert len(repo.created) == 4
    parents = {row.parent_document_id for row in repo.created}
    assert len(parents) == 1 and None not in parents
    assert [row.chunk_index for row in repo.created] == [0, 1, 2, 3]
    assert all(row.metadata["chunk_count"] == 4 for row in repo.created)
    assert doc.sibling_ids == [row.id for row in repo.created]
    assert backend.added == doc.sibling_ids
    assert embedder.max_in_flight <= 2


def test_embedding_failure_persists_nothing():
    repo, backend = FakeDocumentRepo(), FakeBackend()
    pipeline = _pipeline(embedder=TrackingEmbedding(fail_on=3), repo=repo, backend=backend)

    with pytest.raises(EmbeddingError):
        asyncio.run(pipeline.ingest("user-1", "resume", "r.txt", LONG_TEXT))

    assert repo.created == []
    assert backend.added == []


def test_index_failure_removes_stored_rows():
    repo = FakeDocumentRepo()
    backend = FakeBackend(add_error=SearchBackendError("index down"))
    pipeline = _pipeline(repo=repo, backend=backend)

    with pytest.raises(SearchBackendError):
        asyncio.run(pipeline.ingest("user-1", "resume", "r.txt", LONG_TEXT))

    assert sorted(repo.deleted) == sorted(row.id for row in repo.created)
    assert repo.documents == {}


def test_empty_content_rejected():
    with pytest.raises(InvalidDocumentError) as exc:
        asyncio.run(_pipeline().ingest("user-1", "resume", "r.txt", "   "))
    assert exc.value.error_code == ErrorCode.EMPTY_CONTENT


def test_unknown_type_rejected():
    with pytest.raises(InvalidDocumentError) as exc:
        asyncio.run(_pipeline().ingest("user-1", "diary", "r.txt", "내용입니다."))
    assert exc.value.error_code == ErrorCode.INVALID_TYPE


def test_index_metadata_is_filterable():
    repo = FakeDocumentRepo()
    doc = asyncio.run(_pipeline(repo=repo).ingest("user-1", "resume", "r.txt", "짧은 이력서입니다."))

    md = index_metadata(doc)
    assert md["owner_id"] == "user-1"
    assert md["type"] == "resume"
    assert md["document_id"] == doc.id
