# services/question_bank.py
"""Curated interview-question bank: batch ingestion and contextual retrieval"""
import logging
import random
from typing import Any, Dict, List, Optional, Set

from config import settings
from core.domain import (
    HybridCandidate, InterviewQuestion, QuestionSearchResult, RAGConfig,
    RetrievalError, SearchBackendError, SearchResult
)
from core.interfaces import IEmbeddingService, IQuestionRepository, ISearchBackend
from services.rag_service import default_config
from services.reranking import RerankerAdapter
from utils.common import new_id
from utils.question_parser import extract_questions_from_text, question_key

logger = logging.getLogger(settings.LOGGER_NAME)


def build_question_query(
    resume_text: Optional[str] = None,
    jd_text: Optional[str] = None,
    keywords: Optional[List[str]] = None,
) -> str:
    """Search text from the résumé head, the JD head and user keywords."""
    parts: List[str] = []
    if resume_text:
        parts.append(resume_text[:settings.QUESTION_RESUME_PREFIX])
    if jd_text:
        parts.append(jd_text[:settings.QUESTION_JD_PREFIX])
    if keywords:
        parts.append(" ".join(keywords))
    return " ".join(parts).strip()


def question_embedding_text(question: InterviewQuestion) -> str:
    return f"[{question.question_category}] {question.question}"


def _question_from_candidate(candidate: HybridCandidate) -> InterviewQuestion:
    md = candidate.metadata
    return InterviewQuestion(
        id=candidate.id,
        job_category=md.get("job_category", ""),
        question_category=md.get("question_category", ""),
        question=candidate.content,
        source_company=md.get("source_company"),
    )


class QuestionBankService:
    """Hybrid search over interview questions filtered by job category."""

    def __init__(
        self,
        embedding_service: IEmbeddingService,
        search_backend: ISearchBackend,
        question_repo: IQuestionRepository,
        reranker: RerankerAdapter,
    ):
        self.embedding_service = embedding_service
        self.search_backend = search_backend
        self.question_repo = question_repo
        self.reranker = reranker

    async def ingest_questions(self, questions: List[InterviewQuestion]) -> Dict[str, int]:
        """
        Embed (in provider-sized batches), persist and index new questions.

        A question already stored in its job category (or repeated earlier in
        the batch) is skipped; texts are compared lower-cased and trimmed.
        """
        fresh = await self._drop_duplicates(questions)
        skipped = len(questions) - len(fresh)
        if not fresh:
            if skipped:
                logger.info(f"[QUESTIONS] All {skipped} questions already exist")
            return {"ingested": 0, "skipped": skipped}

        embeddings = await self.embedding_service.embed_batch(
            [question_embedding_text(q) for q in fresh]
        )
        await self.question_repo.create_many(fresh)

        try:
            await self.search_backend.add(
                ids=[q.id for q in fresh],
                texts=[q.question for q in fresh],
                embeddings=embeddings,
                metadatas=[
                    {
                        "job_category": q.job_category,
                        "question_category": q.question_category,
                        "source_company": q.source_company,
                    }
                    for q in fresh
                ],
            )
        except RetrievalError:
            logger.warning(f"[QUESTIONS] Index write failed, removing {len(fresh)} stored questions")
            await self.question_repo.delete_many([q.id for q in fresh])
            raise

        logger.info(f"[QUESTIONS] Ingested {len(fresh)} questions ({skipped} duplicates skipped)")
        return {"ingested": len(fresh), "skipped": skipped}

    async def _drop_duplicates(self, questions: List[InterviewQuestion]) -> List[InterviewQuestion]:
        known: Dict[str, Set[str]] = {}
        fresh = []
        for q in questions:
            if q.job_category not in known:
                stored = await self.question_repo.list_question_texts(q.job_category)
                known[q.job_category] = {question_key(text) for text in stored}

            key = question_key(q.question)
            if key in known[q.job_category]:
                continue
            known[q.job_category].add(key)
            fresh.append(q)
        return fresh

    async def ingest_text(
        self,
        text: str,
        job_category: str,
        source_company: Optional[str] = None,
    ) -> Dict[str, int]:
        """Extract questions from plain text and ingest them under `job_category`."""
        parsed = extract_questions_from_text(text)
        questions = [
            InterviewQuestion(
                id=new_id(),
                job_category=job_category,
                question_category=p.category,
                question=p.question,
                source_company=p.source_company or source_company,
                metadata={"original_no": p.no},
            )
            for p in parsed
        ]
        logger.info(f"[QUESTIONS] Parsed {len(questions)} questions for {job_category}")
        report = await self.ingest_questions(questions)
        return {"parsed": len(questions), **report}

    async def search_questions(
        self,
        job_category: str,
        resume_text: Optional[str] = None,
        jd_text: Optional[str] = None,
        keywords: Optional[List[str]] = None,
        config: Optional[RAGConfig] = None,
    ) -> List[QuestionSearchResult]:
        config = config or default_config()

        query = build_question_query(resume_text, jd_text, keywords)
        if not query:
            logger.warning("[QUESTIONS] Empty search query")
            return []

        embedding = await self.embedding_service.embed(query)
        where = {"job_category": job_category}
        rerank = config.use_reranker and self.reranker.available

        try:
            candidates = await self.search_backend.hybrid_search(
                query_embedding=embedding,
                query_text=query,
                match_count=config.top_k * settings.CANDIDATE_MULTIPLIER if rerank else config.top_k,
                vector_weight=config.vector_weight,
                bm25_weight=config.bm25_weight,
                where=where,
            )
        except SearchBackendError as e:
            logger.warning(f"[QUESTIONS] Hybrid search failed, using vector-only fallback: {e}")
            fallback = await self.search_backend.vector_search(
                query_embedding=embedding,
                threshold=settings.VECTOR_FALLBACK_THRESHOLD,
                match_count=config.top_k,
                where=where,
            )
            return [self._to_result(c, c.combined_score) for c in fallback]

        if not candidates:
            return []

        if rerank and len(candidates) > config.top_k:
            wrapped = [
                SearchResult(
                    id=c.id,
                    content=c.content,
                    metadata=c.metadata,
                    combined_score=c.combined_score,
                    vector_score=c.vector_score,
                    bm25_score=c.bm25_score,
                )
                for c in candidates
            ]
            texts = [f"[{c.metadata.get('question_category', '')}] {c.content}" for c in candidates]
            reranked = (await self.reranker.rerank(query, wrapped, config.top_k, texts=texts)).value
            by_id = {c.id: c for c in candidates}
            return [self._to_result(by_id[r.id], r.score) for r in reranked]

        return [self._to_result(c, c.combined_score) for c in candidates[:config.top_k]]

    @staticmethod
    def _to_result(candidate: HybridCandidate, score: float) -> QuestionSearchResult:
        return QuestionSearchResult(
            question=_question_from_candidate(candidate),
            combined_score=score,
            vector_score=candidate.vector_score,
            bm25_score=candidate.bm25_score,
        )

    async def random_questions(self, job_category: str, count: int = 5) -> List[InterviewQuestion]:
        """Random pick among the 3x`count` newest questions (used when there is no context)."""
        pool = await self.question_repo.list_recent(job_category, count * 3)
        return random.sample(pool, min(count, len(pool)))

    async def question_stats(self) -> Dict[str, Any]:
        by_category = await self.question_repo.count_by_category()
        return {"total": sum(by_category.values()), "by_category": by_category}
