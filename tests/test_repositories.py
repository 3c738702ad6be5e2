import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from core.domain import DocumentStoreError, DocumentType, InterviewQuestion
from database.session import Base, DocumentEntity
from infrastructure.repositories import SQLDocumentRepository, SQLQuestionRepository
from tests.fakes import make_document

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _run(work):
    """Run `work(session)` against a fresh in-memory database."""
    async def scenario():
        engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        try:
            async with async_sessionmaker(engine, expire_on_commit=False)() as session:
                return await work(session)
        finally:
            await engine.dispose()

    return asyncio.run(scenario())


def _chunk(doc_id, parent, index, owner_id="user-1", created_at=T0):
    doc = make_document(doc_id, owner_id=owner_id, parent_document_id=parent)
    doc.chunk_index = index
    doc.created_at = created_at
    return doc


def test_create_many_and_read_back():
    async def work(session):
        repo = SQLDocumentRepository(session)
        await repo.create_many([_chunk("d1", "p1", 0), _chunk("d2", "p1", 1)])
        return await repo.get_by_id("d2"), await repo.get_by_id("missing")

    doc, missing = _run(work)

    assert doc.id == "d2"
    assert doc.owner_id == "user-1"
    assert doc.type == DocumentType.RESUME
    assert doc.parent_document_id == "p1"
    assert doc.chunk_index == 1
    assert doc.metadata == {"type": "resume"}
    assert missing is None


def test_create_many_is_one_transaction():
    async def work(session):
        repo = SQLDocumentRepository(session)
        await repo.create_many([_chunk("d1", "p1", 0)])
        with pytest.raises(DocumentStoreError):
            # Second row collides with the stored primary key
            await repo.create_many([_chunk("d2", "p2", 0), _chunk("d1", "p2", 1)])
        return await session.scalar(select(func.count(DocumentEntity.id)))

    assert _run(work) == 1


def test_list_by_owner_newest_first_with_type_filter():
    async def work(session):
        repo = SQLDocumentRepository(session)
        portfolio = _chunk("new", "p2", 0, created_at=T0 + timedelta(days=1))
        portfolio.type = DocumentType.PORTFOLIO
        await repo.create_many([
            _chunk("old-1", "p1", 1),
            _chunk("old-0", "p1", 0),
            portfolio,
            _chunk("foreign", "p3", 0, owner_id="user-2"),
        ])
        everything = await repo.list_by_owner("user-1")
        resumes = await repo.list_by_owner("user-1", DocumentType.RESUME)
        return everything, resumes

    everything, resumes = _run(work)

    assert [d.id for d in everything] == ["new", "old-0", "old-1"]
    assert [d.id for d in resumes] == ["old-0", "old-1"]


def test_list_family_and_delete_many():
    async def work(session):
        repo = SQLDocumentRepository(session)
        await repo.create_many([
            _chunk("c0", "p1", 0), _chunk("c1", "p1", 1), _chunk("c2", "p1", 2),
            _chunk("other", "p2", 0),
        ])
        family = await repo.list_family("c1", "user-1")
        foreign = await repo.list_family("c1", "user-2")
        deleted = await repo.delete_many([d.id for d in family])
        remaining = await repo.list_by_owner("user-1")
        return family, foreign, deleted, remaining

    family, foreign, deleted, remaining = _run(work)

    assert [d.id for d in family] == ["c0", "c1", "c2"]
    assert foreign == []
    assert deleted == 3
    assert [d.id for d in remaining] == ["other"]


def _question(qid, text, job_category="backend"):
    return InterviewQuestion(
        id=qid, job_category=job_category, question_category="기술", question=text,
        metadata={"original_no": 1},
    )


def test_question_repository_roundtrip():
    async def work(session):
        repo = SQLQuestionRepository(session)
        await repo.create_many([
            _question("q1", "REST란?"),
            _question("q2", "캐시란?"),
            _question("f1", "React란?", job_category="frontend"),
        ])
        texts = await repo.list_question_texts("backend")
        recent = await repo.list_recent("backend", 10)
        counts = await repo.count_by_category()
        removed = await repo.delete_many(["q1"])
        after = await repo.count_by_category()
        return texts, recent, counts, removed, after

    texts, recent, counts, removed, after = _run(work)

    assert sorted(texts) == ["REST란?", "캐시란?"]
    assert {q.id for q in recent} == {"q1", "q2"}
    assert recent[0].metadata == {"original_no": 1}
    assert counts == {"backend": 2, "frontend": 1}
    assert removed == 1
    assert after == {"backend": 1, "frontend": 1}
