import asyncio

import pytest

from core.domain import InterviewQuestion, RAGConfig, SearchBackendError
from services.question_bank import QuestionBankService, build_question_query
from services.reranking import RerankerAdapter
from tests.fakes import FakeBackend, FakeEmbedding, FakeQuestionRepo, FakeReranker, make_candidate


def _question_candidate(doc_id, score, category="기술"):
    return make_candidate(
        doc_id, score, content=f"{doc_id} 질문입니다?",
        job_category="backend", question_category=category,
    )


def _service(backend, reranker=None, repo=None, embedding=None):
    return QuestionBankService(
        embedding_service=embedding or FakeEmbedding(),
        search_backend=backend,
        question_repo=repo or FakeQuestionRepo(),
        reranker=RerankerAdapter(reranker),
    )


def test_query_uses_prefixes_and_keywords():
    query = build_question_query("가" * 600, "나" * 400, ["Python", "Django"])
    assert query == "가" * 500 + " " + "나" * 300 + " Python Django"


def test_query_empty_without_context():
    assert build_question_query() == ""
    assert build_question_query(keywords=[]) == ""


def test_empty_query_returns_nothing():
    embedding = FakeEmbedding()
    backend = FakeBackend(hybrid=[_question_candidate("q1", 0.9)])
    service = _service(backend, embedding=embedding)

    assert asyncio.run(service.search_questions("backend")) == []
    assert embedding.calls == []
    assert backend.hybrid_calls == []


def test_search_filters_by_category_without_rerank():
    backend = FakeBackend(hybrid=[_question_candidate("q1", 0.9), _question_candidate("q2", 0.7)])
    service = _service(backend)

    results = asyncio.run(service.search_questions(
        "backend", keywords=["API"], config=RAGConfig(use_reranker=False, top_k=5)
    ))

    assert [r.question.id for r in results] == ["q1", "q2"]
    assert results[0].question.job_category == "backend"
    assert backend.hybrid_calls[0]["where"] == {"job_category": "backend"}
    assert backend.hybrid_calls[0]["match_count"] == 5


def test_hybrid_failure_falls_back_to_vector():
    backend = FakeBackend(
        hybrid_error=SearchBackendError("down"),
        vector=[_question_candidate("v1", 0.8)],
    )
    service = _service(backend)

    results = asyncio.run(service.search_questions("backend", jd_text="백엔드 채용"))

    assert [r.question.id for r in results] == ["v1"]
    assert backend.vector_calls[0]["threshold"] == 0.5


def test_rerank_scores_category_prefixed_text():
    candidates = [
        _question_candidate("q1", 0.9, "기술"),
        _question_candidate("q2", 0.8, "인성"),
        _question_candidate("q3", 0.7, "기술"),
        _question_candidate("q4", 0.6, "경험"),
    ]
    backend = FakeBackend(hybrid=candidates)
    reranker = FakeReranker()
    service = _service(backend, reranker=reranker)

    results = asyncio.run(service.search_questions(
        "backend", resume_text="결제 시스템", config=RAGConfig(use_reranker=True, top_k=2)
    ))

    assert backend.hybrid_calls[0]["match_count"] == 4
    assert reranker.documents[0] == "[기술] q1 질문입니다?"
    assert reranker.documents[1] == "[인성] q2 질문입니다?"
    assert [r.question.id for r in results] == ["q4", "q3"]
    assert results[0].combined_score == pytest.approx(1.0)


def test_ingest_removes_rows_when_index_fails():
    repo = FakeQuestionRepo()
    backend = FakeBackend(add_error=SearchBackendError("down"))
    service = _service(backend, repo=repo)
    questions = [InterviewQuestion(id="q1", job_category="backend",
                                   question_category="기술", question="REST란?")]

    with pytest.raises(SearchBackendError):
        asyncio.run(service.ingest_questions(questions))
    assert repo.deleted == ["q1"]
    assert repo.questions == []


def test_random_questions_and_stats():
    repo = FakeQuestionRepo([
        InterviewQuestion(id=f"q{i}", job_category="backend", question_category="기술",
                          question=f"질문 {i}?")
        for i in range(10)
    ] + [InterviewQuestion(id="f1", job_category="frontend", question_category="기술",
                           question="React?")])
    service = _service(FakeBackend(), repo=repo)

    picked = asyncio.run(service.random_questions("backend", count=2))
    assert len(picked) == 2
    assert all(q.job_category == "backend" for q in picked)
    # Pool is the 3 * count newest questions
    assert {q.id for q in picked} <= {"q9", "q8", "q7", "q6", "q5", "q4"}

    stats = asyncio.run(service.question_stats())
    assert stats == {"total": 11, "by_category": {"backend": 10, "frontend": 1}}


def _question(qid, text, job_category="backend", category="기술"):
    return InterviewQuestion(id=qid, job_category=job_category,
                             question_category=category, question=text)


def test_ingest_skips_questions_already_in_category():
    repo = FakeQuestionRepo()
    backend = FakeBackend()
    service = _service(backend, repo=repo)

    first = asyncio.run(service.ingest_questions([_question("q1", "REST API 설계 원칙을 설명해 주세요?")]))
    second = asyncio.run(service.ingest_questions([
        _question("q2", "  rest api 설계 원칙을 설명해 주세요?  "),
        _question("q3", "REST API 설계 원칙을 설명해 주세요?", job_category="frontend"),
        _question("q4", "캐시 전략을 설명해 주세요?"),
        _question("q5", "캐시 전략을 설명해 주세요?"),
    ]))

    assert first == {"ingested": 1, "skipped": 0}
    assert second == {"ingested": 2, "skipped": 2}
    assert backend.added == ["q1", "q3", "q4"]
    assert asyncio.run(service.question_stats())["total"] == 3


def test_ingest_of_only_duplicates_embeds_nothing():
    repo = FakeQuestionRepo([_question("q1", "REST API 설계 원칙을 설명해 주세요?")])
    embedding = FakeEmbedding()
    service = _service(FakeBackend(), repo=repo, embedding=embedding)

    report = asyncio.run(service.ingest_questions([_question("q2", "REST API 설계 원칙을 설명해 주세요?")]))

    assert report == {"ingested": 0, "skipped": 1}
    assert embedding.calls == []
    assert len(repo.questions) == 1


def test_ingest_embeds_category_prefixed_text():
    embedding = FakeEmbedding()
    service = _service(FakeBackend(), embedding=embedding)

    asyncio.run(service.ingest_questions([_question("q1", "트랜잭션 격리 수준이란?", category="DB")]))

    assert embedding.calls == ["[DB] 트랜잭션 격리 수준이란?"]


def test_ingest_text_parses_and_tags_questions():
    repo = FakeQuestionRepo()
    service = _service(FakeBackend(), repo=repo)
    text = (
        "문제1 기술 REST API의 장점은 무엇인가요?\n"
        "3 | 경험 | 가장 어려웠던 프로젝트는? (출처: 네이버)"
    )

    report = asyncio.run(service.ingest_text(text, "backend"))

    assert report == {"parsed": 2, "ingested": 2, "skipped": 0}
    assert [q.question_category for q in repo.questions] == ["기술", "경험"]
    assert repo.questions[1].source_company == "네이버"
    assert repo.questions[1].metadata == {"original_no": 3}
    assert all(q.job_category == "backend" for q in repo.questions)
