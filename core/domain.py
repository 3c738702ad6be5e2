# core/domain.py
"""Domain models, enumerations and the retrieval error taxonomy."""
from enum import Enum

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Generic, List, Optional, Set, TypeVar

# ============= Enums =============

class DocumentType(str, Enum):
    """Kinds of user documents that can be ingested."""
    RESUME = "resume"
    PORTFOLIO = "portfolio"
    COMPANY = "company"
    JOB_DESCRIPTION = "job_description"


class ChunkKind(str, Enum):
    """Structural role of a chunk inside its parent document."""
    HEADER = "header"
    CONTENT = "content"
    MIXED = "mixed"


class ErrorCode(str, Enum):
    """Error codes for user-facing error messages."""
    EMPTY_CONTENT = "EMPTY_CONTENT"
    INVALID_TYPE = "INVALID_TYPE"
    INVALID_METADATA = "INVALID_METADATA"
    EMBEDDING_FAILED = "EMBEDDING_FAILED"
    SEARCH_BACKEND_FAILED = "SEARCH_BACKEND_FAILED"
    RERANK_FAILED = "RERANK_FAILED"
    GROUND_TRUTH_MISSING = "GROUND_TRUTH_MISSING"
    STORE_FAILED = "STORE_FAILED"


# ============= Errors =============

class RetrievalError(Exception):
    """Base error for the retrieval core, carries a user-facing error code."""

    default_code = ErrorCode.STORE_FAILED

    def __init__(self, message: str, error_code: Optional[ErrorCode] = None):
        self.message = message
        self.error_code = error_code or self.default_code
        super().__init__(message)

    def __str__(self):
        # Format used for logging
        return f"[{self.error_code.value}] {self.message}"


class EmbeddingError(RetrievalError):
    """Embedding provider unreachable or returned a malformed response."""
    default_code = ErrorCode.EMBEDDING_FAILED


class SearchBackendError(RetrievalError):
    """Hybrid or vector backend call failed."""
    default_code = ErrorCode.SEARCH_BACKEND_FAILED


class RerankError(RetrievalError):
    """Reranking backend failed. Never escapes the reranker adapter."""
    default_code = ErrorCode.RERANK_FAILED


class GroundTruthMissingError(RetrievalError):
    """No documents available to build an evaluation set."""
    default_code = ErrorCode.GROUND_TRUTH_MISSING


class InvalidDocumentError(RetrievalError):
    default_code = ErrorCode.EMPTY_CONTENT


class DocumentStoreError(RetrievalError):
    default_code = ErrorCode.STORE_FAILED


# ============= Result =============

T = TypeVar("T")

@dataclass
class Result(Generic[T]):
    """
    Outcome of an operation that declares its own fallback path.

    `value` is always usable. When the primary path failed and the
    fallback produced the value, `fallback_used` is True and `error`
    holds the primary failure.
    """
    value: T
    error: Optional[Exception] = None
    fallback_used: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def recovered(cls, value: T, error: Exception) -> "Result[T]":
        return cls(value=value, error=error, fallback_used=True)


# ============= Chunking Models =============

@dataclass
class Section:
    """A labeled span of a document found by a section matcher"""
    content: str
    title: Optional[str] = None


@dataclass
class ChunkMetadata:
    chunk_index: int
    total_chunks: int
    char_count: int
    token_estimate: int
    chunk_kind: ChunkKind = ChunkKind.CONTENT
    section: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)  # Caller-supplied document metadata

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = dict(self.extra)
        data.update({
            "chunk_index": self.chunk_index,
            "total_chunks": self.total_chunks,
            "char_count": self.char_count,
            "token_estimate": self.token_estimate,
            "chunk_kind": self.chunk_kind.value,
        })
        if self.section:
            data["section"] = self.section
        return data


@dataclass
class Chunk:
    """Domain model for a retrieval-sized slice of a document"""
    content: str
    metadata: ChunkMetadata


# ============= Document Models =============

@dataclass
class Document:
    """Domain model for a stored document row (one row per chunk)"""
    id: str
    owner_id: str
    type: DocumentType
    filename: str
    content: str
    metadata: Dict[str, Any]
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    parent_document_id: Optional[str] = None
    chunk_index: int = 0
    embedding: Optional[List[float]] = None  # Vector of float numbers
    sibling_ids: List[str] = field(default_factory=list)


@dataclass
class HybridCandidate:
    """A candidate returned by the hybrid or vector-only backend"""
    id: str
    content: str
    metadata: Dict[str, Any]
    combined_score: float
    vector_score: float = 0.0
    bm25_score: float = 0.0


@dataclass
class RerankHit:
    """Reranker output: position in the submitted list plus relevance"""
    index: int
    relevance_score: float


@dataclass
class SearchResult:
    """Domain model for search results"""
    id: str
    content: str
    metadata: Dict[str, Any]
    combined_score: float
    highlights: List[str] = field(default_factory=list)
    vector_score: float = 0.0
    bm25_score: float = 0.0
    relevance_score: Optional[float] = None

    @property
    def score(self) -> float:
        """Relevance from the reranker when present, else the hybrid score."""
        if self.relevance_score is not None:
            return self.relevance_score
        return self.combined_score or 0.0

    @property
    def document_type(self) -> Optional[str]:
        return self.metadata.get("type")


@dataclass
class RAGConfig:
    """Blend weights and reranker toggle for one retrieval run"""
    vector_weight: float = 0.6
    bm25_weight: float = 0.4
    use_reranker: bool = True
    top_k: int = 5

    def __post_init__(self):
        if self.vector_weight < 0 or self.bm25_weight < 0:
            raise ValueError("Blend weights must be non-negative")
        if self.top_k < 1:
            raise ValueError("top_k must be at least 1")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "vector_weight": self.vector_weight,
            "bm25_weight": self.bm25_weight,
            "use_reranker": self.use_reranker,
            "top_k": self.top_k,
        }


# ============= Evaluation Models =============

@dataclass
class EvaluationQuery:
    query: str
    relevant_ids: Set[str]
    context: Optional[str] = None


@dataclass
class EvaluationMetric:
    """Averaged retrieval-quality metrics; the first four lie in [0, 1]"""
    precision: float = 0.0
    recall: float = 0.0
    mrr: float = 0.0
    ndcg: float = 0.0
    avg_relevance_score: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {
            "precision": self.precision,
            "recall": self.recall,
            "mrr": self.mrr,
            "ndcg": self.ndcg,
            "avg_relevance_score": self.avg_relevance_score,
        }


@dataclass
class TuningResult:
    config: RAGConfig
    metrics: EvaluationMetric
    combined_score: float


@dataclass
class TuningReport:
    best_config: RAGConfig
    best_score: float
    results: List[TuningResult]  # Sorted by combined_score, best first


# ============= Monitoring Models =============

@dataclass
class RetrievalLog:
    timestamp: datetime
    query: str
    top_score: float
    avg_score: float
    result_count: int
    config: RAGConfig


@dataclass
class RetrievalMetrics:
    avg_top_score: float = 0.0
    avg_score: float = 0.0
    avg_result_count: float = 0.0
    low_quality_rate: float = 0.0
    sample_size: int = 0


# ============= Question Bank Models =============

@dataclass
class InterviewQuestion:
    id: str
    job_category: str
    question_category: str
    question: str
    source_company: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ParsedQuestion:
    """One question extracted from plain text, before it is assigned an id."""
    no: int
    category: str
    question: str
    source_company: Optional[str] = None


@dataclass
class QuestionSearchResult:
    question: InterviewQuestion
    combined_score: float
    vector_score: float = 0.0
    bm25_score: float = 0.0
