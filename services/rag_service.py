# services/rag_service.py
"""Query-time retrieval: hybrid search, fallback, rerank, highlights, monitoring"""
import logging
from typing import Any, Dict, List, Optional, Sequence

from config import settings
from core.domain import (
    Document, ErrorCode, HybridCandidate, InvalidDocumentError, RAGConfig, Result,
    SearchBackendError, SearchResult
)
from core.interfaces import IDocumentRepository, IEmbeddingService, ISearchBackend
from services.ingestion import IngestionPipeline, parse_document_type
from services.monitor import RetrievalMonitor
from services.reranking import RerankerAdapter
from utils.korean_text import extract_query_terms, split_plain_sentences

logger = logging.getLogger(settings.LOGGER_NAME)


def default_config() -> RAGConfig:
    return RAGConfig(
        vector_weight=settings.DEFAULT_VECTOR_WEIGHT,
        bm25_weight=settings.DEFAULT_BM25_WEIGHT,
        use_reranker=settings.DEFAULT_USE_RERANKER,
        top_k=settings.DEFAULT_TOP_K,
    )


def extract_highlights(query: str, content: str, max_count: int = 3) -> List[str]:
    """Sentences of `content` containing any query term (case-insensitive), first `max_count`."""
    terms = extract_query_terms(query)
    if not terms:
        return []
    highlights = [
        sentence for sentence in split_plain_sentences(content)
        if any(term in sentence.lower() for term in terms)
    ]
    return highlights[:max_count]


def _to_result(candidate: HybridCandidate) -> SearchResult:
    return SearchResult(
        id=candidate.id,
        content=candidate.content,
        metadata=candidate.metadata,
        combined_score=candidate.combined_score,
        vector_score=candidate.vector_score,
        bm25_score=candidate.bm25_score,
    )


class RAGService:
    """
    Retrieval surface for the rest of the application.

    Search flow:
        1. Embed query (EmbeddingError propagates)
        2. Hybrid backend with top_k * CANDIDATE_MULTIPLIER candidates
        3. On backend failure: vector-only search at VECTOR_FALLBACK_THRESHOLD
        4. Type filter applied after retrieval
        5. Optional rerank (falls back to hybrid order on failure)
        6. Highlights, then the score list is logged to the monitor
    """

    def __init__(
        self,
        embedding_service: IEmbeddingService,
        search_backend: ISearchBackend,
        document_repo: IDocumentRepository,
        reranker: RerankerAdapter,
        monitor: RetrievalMonitor,
        ingestion: IngestionPipeline,
    ):
        self.embedding_service = embedding_service
        self.search_backend = search_backend
        self.document_repo = document_repo
        self.reranker = reranker
        self.monitor = monitor
        self.ingestion = ingestion

    # ============= Documents =============

    async def ingest_document(
        self,
        owner_id: str,
        doc_type: Any,
        filename: str,
        content: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Document:
        return await self.ingestion.ingest(owner_id, doc_type, filename, content, metadata)

    async def list_documents(self, owner_id: str, doc_type: Optional[Any] = None) -> List[Document]:
        """Owner's stored rows, newest first."""
        parsed = parse_document_type(doc_type) if doc_type else None
        return await self.document_repo.list_by_owner(owner_id, parsed)

    async def get_document(self, document_id: str, owner_id: str) -> Optional[Document]:
        doc = await self.document_repo.get_by_id(document_id)
        if doc is None or doc.owner_id != owner_id:
            return None
        return doc

    async def delete_document(self, document_id: str, owner_id: str) -> bool:
        """Delete a document row and every chunk sharing its parent. False if not found."""
        family = await self.document_repo.list_family(document_id, owner_id)
        if not family:
            return False

        ids = [doc.id for doc in family]

        # Index entries first so search never returns rows that are gone
        try:
            await self.search_backend.delete(ids)
        except SearchBackendError as e:
            logger.error(f"[DELETE] Index cleanup failed for {document_id}: {e}")

        deleted = await self.document_repo.delete_many(ids)
        logger.info(f"[DELETE] Removed {deleted} row(s) for document {document_id}")
        return deleted > 0

    # ============= Search =============

    async def _retrieve(
        self,
        query: str,
        query_embedding: List[float],
        owner_id: str,
        config: RAGConfig,
    ) -> Result[List[HybridCandidate]]:
        """Hybrid candidates, or vector-only candidates when the hybrid call fails."""
        where = {"owner_id": owner_id}
        try:
            candidates = await self.search_backend.hybrid_search(
                query_embedding=query_embedding,
                query_text=query,
                match_count=config.top_k * settings.CANDIDATE_MULTIPLIER,
                vector_weight=config.vector_weight,
                bm25_weight=config.bm25_weight,
                where=where,
            )
            return Result.success(candidates)
        except SearchBackendError as hybrid_error:
            logger.warning(f"[SEARCH] Hybrid search failed, using vector-only fallback: {hybrid_error}")
            try:
                candidates = await self.search_backend.vector_search(
                    query_embedding=query_embedding,
                    threshold=settings.VECTOR_FALLBACK_THRESHOLD,
                    match_count=config.top_k,
                    where=where,
                )
            except SearchBackendError as vector_error:
                logger.error(f"[SEARCH] Vector-only fallback failed too: {vector_error}")
                raise SearchBackendError(
                    f"Hybrid and vector-only search both failed: {vector_error}"
                ) from vector_error
            return Result.recovered(candidates, hybrid_error)

    async def search(
        self,
        query: str,
        owner_id: str,
        type_filter: Optional[Sequence[Any]] = None,
        config: Optional[RAGConfig] = None,
        record: bool = True,
    ) -> List[SearchResult]:
        """
        Ranked results for `query`, at most config.top_k, best first.
        A blank query raises InvalidDocumentError (EMPTY_CONTENT).

        `record=False` keeps evaluation runs out of the production monitor.
        """
        config = config or default_config()

        query = (query or "").strip()
        if not query:
            raise InvalidDocumentError("Search query is empty", ErrorCode.EMPTY_CONTENT)

        query_embedding = await self.embedding_service.embed(query)
        retrieval = await self._retrieve(query, query_embedding, owner_id, config)

        results = [_to_result(c) for c in retrieval.value]

        if type_filter:
            allowed = {parse_document_type(t).value for t in type_filter}
            results = [r for r in results if r.document_type in allowed]

        if config.use_reranker and self.reranker.available and results:
            results = (await self.reranker.rerank(query, results, config.top_k)).value
        else:
            results = sorted(results, key=lambda r: r.combined_score, reverse=True)[:config.top_k]

        for result in results:
            result.highlights = extract_highlights(query, result.content, settings.MAX_HIGHLIGHTS)

        if record:
            self.monitor.log(query, [r.score for r in results], config)

        logger.info(
            f"[SEARCH] '{query[:50]}' -> {len(results)} results"
            f"{' (vector-only fallback)' if retrieval.fallback_used else ''}"
        )
        return results

    async def get_context_for_query(
        self,
        owner_id: str,
        query: str,
        doc_types: Optional[Sequence[Any]] = None,
    ) -> str:
        """Top highlights of the owner's résumé/portfolio formatted for prompt injection."""
        config = RAGConfig(
            vector_weight=settings.DEFAULT_VECTOR_WEIGHT,
            bm25_weight=settings.DEFAULT_BM25_WEIGHT,
            use_reranker=True,
            top_k=settings.CONTEXT_TOP_K,
        )
        results = await self.search(
            query,
            owner_id,
            type_filter=doc_types or settings.CONTEXT_DOCUMENT_TYPES,
            config=config,
        )
        if not results:
            return ""

        blocks = [
            f"[문서 {i}]\n{' ... '.join(result.highlights)}"
            for i, result in enumerate(results, start=1)
        ]
        return "지원자 정보:\n" + "\n\n".join(blocks)
