# api/endpoints.py
import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile

from api.schemas import (
    ContextRequest, ContextResponse, DeleteResponse, DocumentModel, DocumentsListResponse,
    EvaluateRequest, EvaluateResponse, EvaluationQueryModel, MetricsModel, MonitorResponse,
    QuestionIngestRequest, QuestionModel, QuestionResultModel, QuestionSearchRequest,
    QuestionStatsResponse, QuestionTextRequest, RAGConfigModel, SearchRequest, SearchResponse,
    SearchResultModel, TextUploadRequest, TuneRequest, TuneResponse, TuningResultModel, UploadResponse
)
from config import settings
from core.domain import (
    ErrorCode, EvaluationQuery, InterviewQuestion, InvalidDocumentError, RetrievalError
)
from services.evaluation import EvaluationHarness
from services.factory import (
    get_evaluation_harness, get_monitor, get_question_bank, get_rag_service, get_weight_tuner
)
from services.monitor import RetrievalMonitor
from services.question_bank import QuestionBankService
from services.rag_service import RAGService, default_config
from services.tuning import WeightTuner, recommend
from utils.common import (
    build_upload_metadata, new_id, sanitize_content, sanitize_filename, validate_document_id
)
from utils.question_parser import detect_job_category

logger = logging.getLogger(settings.LOGGER_NAME)

router = APIRouter()

_STATUS_BY_CODE = {
    ErrorCode.EMPTY_CONTENT: 400,
    ErrorCode.INVALID_TYPE: 400,
    ErrorCode.INVALID_METADATA: 400,
    ErrorCode.GROUND_TRUTH_MISSING: 404,
    ErrorCode.EMBEDDING_FAILED: 502,
    ErrorCode.SEARCH_BACKEND_FAILED: 502,
    ErrorCode.RERANK_FAILED: 502,
    ErrorCode.STORE_FAILED: 500,
}

# Utility functions
def to_http_error(error: RetrievalError) -> HTTPException:
    status_code = _STATUS_BY_CODE.get(error.error_code, 500)
    if status_code >= 500:
        logger.error(f"Request failed: {error}")
    return HTTPException(
        status_code=status_code,
        detail={"error": error.message, "error_code": error.error_code.value}
    )


def _to_queries(items: List[EvaluationQueryModel]) -> List[EvaluationQuery]:
    return [
        EvaluationQuery(query=q.query, relevant_ids=set(q.relevant_ids), context=q.context)
        for q in items
    ]


def _check_job_category(job_category: str) -> None:
    if job_category not in settings.JOB_CATEGORIES:
        raise to_http_error(InvalidDocumentError(
            f"Unknown job category '{job_category}'", ErrorCode.INVALID_TYPE
        ))


def _monitor_snapshot(monitor: RetrievalMonitor) -> MonitorResponse:
    return MonitorResponse.from_domain(monitor.recent_metrics(), monitor.needs_retuning())

# ============= Documents =============

@router.post("/documents", response_model=UploadResponse)
async def upload_document(
    file: UploadFile = File(...),
    owner_id: str = Form(...),
    type: str = Form("resume"),
    metadata: Optional[str] = Form(None),
    rag_service: RAGService = Depends(get_rag_service),
) -> UploadResponse:
    if not file.filename:
        raise HTTPException(status_code=400, detail="No filename provided")
    if file.content_type not in settings.ALLOWED_CONTENT_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported file type. Allowed: {', '.join(settings.ALLOWED_CONTENT_TYPES)}"
        )

    raw = await file.read()
    if len(raw) > settings.MAX_FILE_SIZE:
        max_mb = settings.MAX_FILE_SIZE // 1024 // 1024
        raise HTTPException(status_code=413, detail=f"File too large. Max size: {max_mb}MB")

    filename = sanitize_filename(file.filename)
    content = sanitize_content(raw.decode("utf-8", errors="ignore")).strip()
    if not content:
        raise HTTPException(status_code=400, detail="No text could be extracted from the file")

    try:
        doc_metadata = build_upload_metadata(
            metadata, filename, file.content_type, len(raw), type
        )
        document = await rag_service.ingest_document(owner_id, type, filename, content, doc_metadata)
    except RetrievalError as e:
        raise to_http_error(e)

    return UploadResponse(success=True, document=DocumentModel.from_domain(document))


@router.post("/documents/text", response_model=UploadResponse)
async def upload_text_document(
    request: TextUploadRequest,
    rag_service: RAGService = Depends(get_rag_service),
) -> UploadResponse:
    content = sanitize_content(request.content).strip()
    if not content:
        raise HTTPException(status_code=400, detail="Document content is empty")
    if len(content) > settings.MAX_CONTENT_LENGTH:
        raise HTTPException(status_code=413, detail="Document content is too long")

    doc_metadata = {**request.metadata, "filename": request.filename, "type": request.type}

    try:
        document = await rag_service.ingest_document(
            request.owner_id, request.type, request.filename, content, doc_metadata
        )
    except RetrievalError as e:
        raise to_http_error(e)

    return UploadResponse(success=True, document=DocumentModel.from_domain(document))


@router.get("/documents", response_model=DocumentsListResponse)
async def list_documents(
    owner_id: str = Query(...),
    type: Optional[str] = Query(None),
    rag_service: RAGService = Depends(get_rag_service),
) -> DocumentsListResponse:
    try:
        documents = await rag_service.list_documents(owner_id, type)
    except RetrievalError as e:
        raise to_http_error(e)
    return DocumentsListResponse(documents=[DocumentModel.from_domain(d) for d in documents])


@router.get("/documents/{document_id}", response_model=DocumentModel)
async def get_document(
    document_id: str,
    owner_id: str = Query(...),
    rag_service: RAGService = Depends(get_rag_service),
) -> DocumentModel:
    if not validate_document_id(document_id):
        raise HTTPException(status_code=422, detail="Invalid document ID format")

    try:
        document = await rag_service.get_document(document_id, owner_id)
    except RetrievalError as e:
        raise to_http_error(e)

    if document is None:
        raise HTTPException(status_code=404, detail="Document not found")
    return DocumentModel.from_domain(document)


@router.delete("/documents/{document_id}", response_model=DeleteResponse)
async def delete_document(
    document_id: str,
    owner_id: str = Query(...),
    rag_service: RAGService = Depends(get_rag_service),
) -> DeleteResponse:
    if not validate_document_id(document_id):
        raise HTTPException(status_code=422, detail="Invalid document ID format")

    try:
        success = await rag_service.delete_document(document_id, owner_id)
    except RetrievalError as e:
        raise to_http_error(e)

    if not success:
        raise HTTPException(status_code=404, detail="Document not found")

    return DeleteResponse(status="success", message="Document deleted successfully")

# ============= Retrieval =============

@router.post("/search", response_model=SearchResponse)
async def search_endpoint(
    request: SearchRequest,
    rag_service: RAGService = Depends(get_rag_service),
) -> SearchResponse:
    config = request.config.to_domain() if request.config else default_config()
    try:
        results = await rag_service.search(request.query, request.owner_id, request.doc_types, config)
    except RetrievalError as e:
        raise to_http_error(e)
    return SearchResponse(success=True, results=[SearchResultModel.from_domain(r) for r in results])


@router.post("/context", response_model=ContextResponse)
async def context_endpoint(
    request: ContextRequest,
    rag_service: RAGService = Depends(get_rag_service),
) -> ContextResponse:
    try:
        context = await rag_service.get_context_for_query(request.owner_id, request.query)
    except RetrievalError as e:
        raise to_http_error(e)
    return ContextResponse(context=context)

# ============= Evaluation & Tuning =============

@router.post("/evaluate", response_model=EvaluateResponse)
async def evaluate_endpoint(
    request: EvaluateRequest,
    harness: EvaluationHarness = Depends(get_evaluation_harness),
) -> EvaluateResponse:
    config = request.config.to_domain() if request.config else default_config()
    try:
        if request.queries:
            queries = _to_queries(request.queries)
        else:
            queries = await harness.generate_dataset(request.owner_id, request.sample_size)
        metrics = await harness.evaluate(request.owner_id, queries, config, request.doc_types)
    except RetrievalError as e:
        raise to_http_error(e)
    return EvaluateResponse(query_count=len(queries), metrics=MetricsModel.from_domain(metrics))


@router.post("/tune", response_model=TuneResponse)
async def tune_endpoint(
    request: TuneRequest,
    tuner: WeightTuner = Depends(get_weight_tuner),
    monitor: RetrievalMonitor = Depends(get_monitor),
) -> TuneResponse:
    try:
        if request.queries:
            report = await tuner.tune(request.owner_id, _to_queries(request.queries), request.doc_types)
        else:
            report = await tuner.auto_tune(request.owner_id, request.sample_size, request.doc_types)
    except RetrievalError as e:
        raise to_http_error(e)

    return TuneResponse(
        best_config=RAGConfigModel.from_domain(report.best_config),
        best_score=report.best_score,
        top_configs=[
            TuningResultModel.from_domain(r)
            for r in report.results[:settings.TUNING_TOP_RESULTS]
        ],
        evaluated_configs=len(report.results),
        monitoring=_monitor_snapshot(monitor),
        recommendation=recommend(report.best_score),
    )


@router.get("/monitor", response_model=MonitorResponse)
async def monitor_endpoint(
    window_size: int = Query(settings.MONITOR_WINDOW_SIZE, ge=1),
    threshold: float = Query(settings.MONITOR_RETUNE_THRESHOLD, ge=0, le=1),
    monitor: RetrievalMonitor = Depends(get_monitor),
) -> MonitorResponse:
    metrics = monitor.recent_metrics(window_size)
    return MonitorResponse.from_domain(metrics, monitor.needs_retuning(threshold, window_size))

# ============= Question Bank =============

@router.post("/questions")
async def ingest_questions(
    request: QuestionIngestRequest,
    question_bank: QuestionBankService = Depends(get_question_bank),
) -> Dict[str, int]:
    for item in request.questions:
        _check_job_category(item.job_category)

    questions = [
        InterviewQuestion(
            id=new_id(),
            job_category=item.job_category,
            question_category=item.question_category,
            question=sanitize_content(item.question).strip(),
            source_company=item.source_company,
        )
        for item in request.questions
    ]
    try:
        return await question_bank.ingest_questions(questions)
    except RetrievalError as e:
        raise to_http_error(e)


@router.post("/questions/text")
async def ingest_question_text(
    request: QuestionTextRequest,
    question_bank: QuestionBankService = Depends(get_question_bank),
) -> Dict[str, int]:
    job_category = request.job_category or detect_job_category(request.filename or "")
    _check_job_category(job_category)

    try:
        report = await question_bank.ingest_text(
            sanitize_content(request.text), job_category, request.source_company
        )
    except RetrievalError as e:
        raise to_http_error(e)

    if report["parsed"] == 0:
        raise to_http_error(InvalidDocumentError(
            "No interview questions found in the text", ErrorCode.EMPTY_CONTENT
        ))
    return report


@router.post("/questions/search", response_model=List[QuestionResultModel])
async def search_questions(
    request: QuestionSearchRequest,
    question_bank: QuestionBankService = Depends(get_question_bank),
) -> List[QuestionResultModel]:
    config = request.config.to_domain() if request.config else default_config()
    try:
        results = await question_bank.search_questions(
            request.job_category,
            resume_text=request.resume_text,
            jd_text=request.jd_text,
            keywords=request.keywords,
            config=config,
        )
    except RetrievalError as e:
        raise to_http_error(e)
    return [QuestionResultModel.from_domain(r) for r in results]


@router.get("/questions/random", response_model=List[QuestionModel])
async def random_questions(
    job_category: str = Query(...),
    count: int = Query(5, ge=1, le=50),
    question_bank: QuestionBankService = Depends(get_question_bank),
) -> List[QuestionModel]:
    questions = await question_bank.random_questions(job_category, count)
    return [
        QuestionModel(
            id=q.id,
            job_category=q.job_category,
            question_category=q.question_category,
            question=q.question,
            source_company=q.source_company,
        )
        for q in questions
    ]


@router.get("/questions/stats", response_model=QuestionStatsResponse)
async def question_stats(
    question_bank: QuestionBankService = Depends(get_question_bank),
) -> QuestionStatsResponse:
    return QuestionStatsResponse(**await question_bank.question_stats())
