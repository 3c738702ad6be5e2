# services/factory.py
import logging
from functools import lru_cache
from typing import Any, Optional

import chromadb
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from core.interfaces import (
    IDocumentRepository, IEmbeddingService, IQuestionRepository, IReranker, ISearchBackend
)
from database.session import get_db
from infrastructure.embedding_services import SentenceTransformerEmbedding
from infrastructure.repositories import SQLDocumentRepository, SQLQuestionRepository
from infrastructure.reranker import CrossEncoderReranker
from infrastructure.vector_stores import ChromaHybridSearchBackend
from services.chunking import KoreanChunker
from services.evaluation import EvaluationHarness
from services.ingestion import IngestionPipeline
from services.monitor import RetrievalMonitor
from services.question_bank import QuestionBankService
from services.rag_service import RAGService
from services.reranking import RerankerAdapter
from services.tuning import WeightTuner

logger = logging.getLogger(settings.LOGGER_NAME)

# Provider functions for each component
@lru_cache(maxsize=1)
def get_vector_client() -> Any:
    """Create the vector store client based on configuration."""
    if settings.VECTOR_STORE_TYPE == "chromadb":
        return chromadb.PersistentClient(path=settings.VECTOR_DB_PATH)
    raise ValueError(f"Unknown vector store type: {settings.VECTOR_STORE_TYPE}")

def get_document_backend() -> ISearchBackend:
    return ChromaHybridSearchBackend(get_vector_client(), settings.DOCUMENT_COLLECTION)

def get_question_backend() -> ISearchBackend:
    return ChromaHybridSearchBackend(get_vector_client(), settings.QUESTION_COLLECTION)

def get_embedding_service() -> IEmbeddingService:
    """Create embedding service based on configuration."""
    return SentenceTransformerEmbedding(settings.EMBEDDING_MODEL_NAME)

@lru_cache(maxsize=1)
def _load_reranker() -> Optional[IReranker]:
    if not settings.RERANK_ENABLED:
        return None
    try:
        return CrossEncoderReranker(settings.RERANK_MODEL_NAME)
    except RuntimeError as e:
        logger.warning(f"[RERANK] Disabled, model unavailable: {e}")
        return None

def get_reranker() -> RerankerAdapter:
    return RerankerAdapter(_load_reranker())

def get_monitor(request: Request) -> RetrievalMonitor:
    """The monitor owned by the running application (created in lifespan)."""
    return request.app.state.monitor

def get_chunker() -> KoreanChunker:
    return KoreanChunker()

def get_document_repository(session: AsyncSession = Depends(get_db)) -> IDocumentRepository:
    """Create document repository with injected session."""
    return SQLDocumentRepository(session)

def get_question_repository(session: AsyncSession = Depends(get_db)) -> IQuestionRepository:
    return SQLQuestionRepository(session)

# Main service providers using FastAPI DI
def get_rag_service(
    embedding_service: IEmbeddingService = Depends(get_embedding_service),
    search_backend: ISearchBackend = Depends(get_document_backend),
    document_repo: IDocumentRepository = Depends(get_document_repository),
    reranker: RerankerAdapter = Depends(get_reranker),
    monitor: RetrievalMonitor = Depends(get_monitor),
    chunker: KoreanChunker = Depends(get_chunker),
) -> RAGService:
    """
    Create RAG service with full dependency injection.

    FastAPI provides all dependencies from their providers, so tests can
    override any single component via app.dependency_overrides.
    """
    ingestion = IngestionPipeline(
        chunker=chunker,
        embedder=embedding_service,
        document_repo=document_repo,
        search_backend=search_backend,
    )
    return RAGService(
        embedding_service=embedding_service,
        search_backend=search_backend,
        document_repo=document_repo,
        reranker=reranker,
        monitor=monitor,
        ingestion=ingestion,
    )

def get_evaluation_harness(
    rag_service: RAGService = Depends(get_rag_service),
    document_repo: IDocumentRepository = Depends(get_document_repository),
) -> EvaluationHarness:
    return EvaluationHarness(rag_service, document_repo)

def get_weight_tuner(harness: EvaluationHarness = Depends(get_evaluation_harness)) -> WeightTuner:
    return WeightTuner(harness)

def get_question_bank(
    embedding_service: IEmbeddingService = Depends(get_embedding_service),
    search_backend: ISearchBackend = Depends(get_question_backend),
    question_repo: IQuestionRepository = Depends(get_question_repository),
    reranker: RerankerAdapter = Depends(get_reranker),
) -> QuestionBankService:
    return QuestionBankService(embedding_service, search_backend, question_repo, reranker)
