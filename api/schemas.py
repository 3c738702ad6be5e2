from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from core.domain import (
    Document, EvaluationMetric, QuestionSearchResult, RAGConfig, RetrievalMetrics,
    SearchResult, TuningResult
)

# ============= Requests =============

class RAGConfigModel(BaseModel):
    vector_weight: float = Field(0.6, ge=0)
    bm25_weight: float = Field(0.4, ge=0)
    use_reranker: bool = True
    top_k: int = Field(5, ge=1, le=50)

    def to_domain(self) -> RAGConfig:
        return RAGConfig(
            vector_weight=self.vector_weight,
            bm25_weight=self.bm25_weight,
            use_reranker=self.use_reranker,
            top_k=self.top_k,
        )

    @classmethod
    def from_domain(cls, config: RAGConfig) -> "RAGConfigModel":
        return cls(**config.to_dict())


class TextUploadRequest(BaseModel):
    owner_id: str
    type: str
    filename: str
    content: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


class SearchRequest(BaseModel):
    owner_id: str
    query: str = Field(..., min_length=1, max_length=2000)
    doc_types: Optional[List[str]] = None
    config: Optional[RAGConfigModel] = None


class ContextRequest(BaseModel):
    owner_id: str
    query: str = Field(..., min_length=1, max_length=2000)


class EvaluationQueryModel(BaseModel):
    query: str
    relevant_ids: List[str]
    context: Optional[str] = None


class EvaluateRequest(BaseModel):
    owner_id: str
    queries: Optional[List[EvaluationQueryModel]] = None  # Synthesized when omitted
    config: Optional[RAGConfigModel] = None
    doc_types: Optional[List[str]] = None
    sample_size: int = Field(10, ge=1, le=100)


class TuneRequest(BaseModel):
    owner_id: str
    queries: Optional[List[EvaluationQueryModel]] = None
    doc_types: Optional[List[str]] = None
    sample_size: int = Field(20, ge=1, le=100)


class QuestionItem(BaseModel):
    job_category: str
    question_category: str
    question: str = Field(..., min_length=1)
    source_company: Optional[str] = None


class QuestionIngestRequest(BaseModel):
    questions: List[QuestionItem]


class QuestionTextRequest(BaseModel):
    text: str = Field(..., min_length=1)
    job_category: Optional[str] = None  # Detected from `filename` when omitted
    filename: Optional[str] = None
    source_company: Optional[str] = None


class QuestionSearchRequest(BaseModel):
    job_category: str
    resume_text: Optional[str] = None
    jd_text: Optional[str] = None
    keywords: List[str] = Field(default_factory=list)
    config: Optional[RAGConfigModel] = None

# ============= Responses =============

class DocumentModel(BaseModel):
    id: str
    owner_id: str
    type: str
    filename: str
    content: str
    metadata: Dict[str, Any]
    created_at: datetime
    parent_document_id: Optional[str] = None
    sibling_ids: List[str] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, doc: Document) -> "DocumentModel":
        return cls(
            id=doc.id,
            owner_id=doc.owner_id,
            type=doc.type.value,
            filename=doc.filename,
            content=doc.content,
            metadata=doc.metadata,
            created_at=doc.created_at,
            parent_document_id=doc.parent_document_id,
            sibling_ids=doc.sibling_ids,
        )


class UploadResponse(BaseModel):
    success: bool
    document: DocumentModel


class DocumentsListResponse(BaseModel):
    documents: List[DocumentModel]


class SearchResultModel(BaseModel):
    id: str
    content: str
    metadata: Dict[str, Any]
    score: float
    combined_score: float
    vector_score: float
    bm25_score: float
    relevance_score: Optional[float] = None
    highlights: List[str]

    @classmethod
    def from_domain(cls, result: SearchResult) -> "SearchResultModel":
        return cls(
            id=result.id,
            content=result.content,
            metadata=result.metadata,
            score=result.score,
            combined_score=result.combined_score,
            vector_score=result.vector_score,
            bm25_score=result.bm25_score,
            relevance_score=result.relevance_score,
            highlights=result.highlights,
        )


class SearchResponse(BaseModel):
    success: bool
    results: List[SearchResultModel]


class ContextResponse(BaseModel):
    context: str


class DeleteResponse(BaseModel):
    status: str
    message: str


class MetricsModel(BaseModel):
    precision: float
    recall: float
    mrr: float
    ndcg: float
    avg_relevance_score: float

    @classmethod
    def from_domain(cls, metric: EvaluationMetric) -> "MetricsModel":
        return cls(**metric.to_dict())


class EvaluateResponse(BaseModel):
    query_count: int
    metrics: MetricsModel


class TuningResultModel(BaseModel):
    config: RAGConfigModel
    metrics: MetricsModel
    combined_score: float

    @classmethod
    def from_domain(cls, result: TuningResult) -> "TuningResultModel":
        return cls(
            config=RAGConfigModel.from_domain(result.config),
            metrics=MetricsModel.from_domain(result.metrics),
            combined_score=result.combined_score,
        )


class MonitorResponse(BaseModel):
    avg_top_score: float
    avg_score: float
    avg_result_count: float
    low_quality_rate: float
    sample_size: int
    needs_retuning: bool

    @classmethod
    def from_domain(cls, metrics: RetrievalMetrics, needs_retuning: bool) -> "MonitorResponse":
        return cls(
            avg_top_score=metrics.avg_top_score,
            avg_score=metrics.avg_score,
            avg_result_count=metrics.avg_result_count,
            low_quality_rate=metrics.low_quality_rate,
            sample_size=metrics.sample_size,
            needs_retuning=needs_retuning,
        )


class TuneResponse(BaseModel):
    best_config: RAGConfigModel
    best_score: float
    top_configs: List[TuningResultModel]
    evaluated_configs: int
    monitoring: MonitorResponse
    recommendation: str


class QuestionModel(BaseModel):
    id: str
    job_category: str
    question_category: str
    question: str
    source_company: Optional[str] = None


class QuestionResultModel(BaseModel):
    question: QuestionModel
    combined_score: float
    vector_score: float
    bm25_score: float

    @classmethod
    def from_domain(cls, result: QuestionSearchResult) -> "QuestionResultModel":
        q = result.question
        return cls(
            question=QuestionModel(
                id=q.id,
                job_category=q.job_category,
                question_category=q.question_category,
                question=q.question,
                source_company=q.source_company,
            ),
            combined_score=result.combined_score,
            vector_score=result.vector_score,
            bm25_score=result.bm25_score,
        )


class QuestionStatsResponse(BaseModel):
    total: int
    by_category: Dict[str, int]
