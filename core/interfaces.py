# core/interfaces.py
"""Core interfaces for the retrieval system"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from core.domain import (
    Document, DocumentType, HybridCandidate, InterviewQuestion, RerankHit
)

# ============= Embedding Service Interface =============
class IEmbeddingService(ABC):
    """Interface for embedding generation"""

    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        """Generate one fixed-length embedding"""
        pass

    @abstractmethod
    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for many texts.
        Implementations split the input to respect the provider batch ceiling.
        """
        pass

# ============= Search Backend Interface =============
class ISearchBackend(ABC):
    """
    Interface for the dual-signal index (vector similarity + lexical match).

    `where` is an exact-match metadata filter (e.g. {"owner_id": "u1"}).
    Implementations raise SearchBackendError on failure.
    """

    @abstractmethod
    async def add(
        self,
        ids: List[str],
        texts: List[str],
        embeddings: List[List[float]],
        metadatas: List[Dict[str, Any]],
    ) -> None:
        """Index entries with their embeddings and filterable metadata"""
        pass

    @abstractmethod
    async def hybrid_search(
        self,
        query_embedding: List[float],
        query_text: str,
        match_count: int,
        vector_weight: float,
        bm25_weight: float,
        where: Optional[Dict[str, Any]] = None,
    ) -> List[HybridCandidate]:
        """Rank candidates by blended vector and lexical scores"""
        pass

    @abstractmethod
    async def vector_search(
        self,
        query_embedding: List[float],
        threshold: float,
        match_count: int,
        where: Optional[Dict[str, Any]] = None,
    ) -> List[HybridCandidate]:
        """Rank candidates by cosine similarity only, dropping those below threshold"""
        pass

    @abstractmethod
    async def delete(self, ids: List[str]) -> None:
        """Remove entries from the index"""
        pass

    @abstractmethod
    async def count(self, where: Optional[Dict[str, Any]] = None) -> int:
        pass

# ============= Reranking Interface =============
class IReranker(ABC):
    """
    Interface for semantic reranking of candidate texts.
    Allows swapping reranker implementations (cross-encoder, APIs, custom models).
    """

    @abstractmethod
    async def rerank(self, query: str, documents: List[str], top_n: int) -> List[RerankHit]:
        """
        Score documents against the query.

        Returns:
            Up to top_n hits ordered by relevance, each pointing back to
            its position in `documents`.

        Raises:
            RerankError: when the model or service fails
        """
        pass

# ============= Chunking Interface =============
class ISectionMatcher(ABC):
    """Finds section headers so the chunker can split along document structure."""

    @abstractmethod
    def find_boundaries(self, text: str) -> List[Tuple[int, str]]:
        """Return (start offset, header title) pairs sorted by offset"""
        pass

# ============= Repository Interfaces =============
class IDocumentRepository(ABC):
    """
    Interface for document/chunk row persistence.

    Does NOT handle vectors (see ISearchBackend).
    Implementations: SQLDocumentRepository.
    """

    @abstractmethod
    async def create_many(self, documents: List[Document]) -> List[Document]:
        """Persist all rows in one transaction; nothing is written on failure"""
        pass

    @abstractmethod
    async def get_by_id(self, document_id: str) -> Optional[Document]:
        pass

    @abstractmethod
    async def list_by_owner(
        self, owner_id: str, doc_type: Optional[DocumentType] = None
    ) -> List[Document]:
        """List owner's rows, newest first"""
        pass

    @abstractmethod
    async def list_family(self, document_id: str, owner_id: str) -> List[Document]:
        """
        Rows belonging to the same uploaded document as `document_id`
        (shared parent_document_id), or just the row itself.
        Empty when the row is missing or owned by someone else.
        """
        pass

    @abstractmethod
    async def delete_many(self, document_ids: List[str]) -> int:
        """Delete rows, returning how many were removed"""
        pass


class IQuestionRepository(ABC):
    """Interface for the curated interview-question bank"""

    @abstractmethod
    async def create_many(self, questions: List[InterviewQuestion]) -> List[InterviewQuestion]:
        pass

    @abstractmethod
    async def list_recent(self, job_category: str, limit: int) -> List[InterviewQuestion]:
        pass

    @abstractmethod
    async def list_question_texts(self, job_category: str) -> List[str]:
        """Stored question texts of one job category"""
        pass

    @abstractmethod
    async def count_by_category(self) -> Dict[str, int]:
        pass

    @abstractmethod
    async def delete_many(self, question_ids: List[str]) -> int:
        pass
