# config.py
"""Application configuration for chunking, retrieval, evaluation and tuning"""
from typing import Dict, List
from pydantic_settings import BaseSettings
from utils.common import get_log_file_path

class Settings(BaseSettings):
    """Application configuration"""

    # Logger configuration
    LOG_FILE_PATH: str = get_log_file_path()
    LOGGER_NAME: str = "candidate_rag"
    LOG_LEVEL: str = "INFO"
    LOG_MAX_BYTES: int = 5 * 1024 * 1024  # 5MB
    LOG_BACKUP_COUNT: int = 5

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./rag.db"
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_RECYCLE: int = 3600  # Recycle connections after 1 hour

    # Vector store
    VECTOR_DB_PATH: str = "./vector_db"
    VECTOR_STORE_TYPE: str = "chromadb"
    DOCUMENT_COLLECTION: str = "user_documents"
    QUESTION_COLLECTION: str = "interview_questions"

    # Embedding model
    EMBEDDING_MODEL_NAME: str = "paraphrase-multilingual-mpnet-base-v2"
    EMBEDDING_BATCH_SIZE: int = 100  # Provider-side ceiling per request
    EMBEDDING_CONCURRENCY: int = 8  # Parallel chunk embeddings per upload

    # ============= Chunking =============
    CHUNK_MAX_SIZE: int = 800
    CHUNK_OVERLAP: int = 100
    CHUNK_MIN_SIZE: int = 200
    CHARS_PER_TOKEN: float = 1.5  # Korean text averages ~1.5 chars per token
    SENTENCE_MIN_LENGTH: int = 10

    # Uploads
    MAX_FILE_SIZE: int = 10 * 1024 * 1024
    ALLOWED_CONTENT_TYPES: List[str] = ["text/plain", "text/markdown"]
    MAX_CONTENT_LENGTH: int = 200_000

    # ============= Search Defaults =============
    DEFAULT_VECTOR_WEIGHT: float = 0.6
    DEFAULT_BM25_WEIGHT: float = 0.4
    DEFAULT_USE_RERANKER: bool = True
    DEFAULT_TOP_K: int = 5
    MAX_TOP_K: int = 50
    CANDIDATE_MULTIPLIER: int = 2  # Over-fetch for reranking headroom
    VECTOR_FALLBACK_THRESHOLD: float = 0.5
    MAX_HIGHLIGHTS: int = 3

    # Hybrid fusion: "weighted" (score blend) or "rrf" (reciprocal rank)
    HYBRID_FUSION: str = "weighted"
    RRF_K: int = 60
    HYBRID_SEARCH_LIMIT_MULTIPLIER: int = 3

    # Reranking configuration
    RERANK_ENABLED: bool = True
    RERANK_MODEL_NAME: str = "cross-encoder/mmarco-mMiniLMv2-L12-H384-v1"

    # Interview context
    CONTEXT_DOCUMENT_TYPES: List[str] = ["resume", "portfolio"]
    CONTEXT_TOP_K: int = 3

    # Question bank
    QUESTION_RESUME_PREFIX: int = 500
    QUESTION_JD_PREFIX: int = 300
    JOB_CATEGORIES: List[str] = ["frontend", "backend", "pm", "data", "marketing"]

    # ============= Evaluation & Tuning =============
    EVAL_SAMPLE_SIZE: int = 10
    AUTO_TUNE_SAMPLE_SIZE: int = 20
    EVAL_QUERY_MAX_LENGTH: int = 100
    EVAL_PARAGRAPH_MIN_LENGTH: int = 20
    EVAL_SENTENCE_MIN_LENGTH: int = 10
    EVAL_PARAGRAPHS_PER_DOCUMENT: int = 2

    TUNING_VECTOR_WEIGHTS: List[float] = [0.3, 0.4, 0.5, 0.6, 0.7, 0.8]
    TUNING_RERANKER_OPTIONS: List[bool] = [True, False]
    TUNING_TOP_K: int = 5
    TUNING_SCORE_WEIGHTS: Dict[str, float] = {
        "precision": 0.3,
        "recall": 0.2,
        "mrr": 0.2,
        "ndcg": 0.3,
    }
    TUNING_TOP_RESULTS: int = 5

    # Recommendation cut-offs for the evaluation report
    QUALITY_GOOD_SCORE: float = 0.7
    QUALITY_FAIR_SCORE: float = 0.5

    # ============= Retrieval Monitor =============
    MONITOR_CAPACITY: int = 1000
    MONITOR_WINDOW_SIZE: int = 100
    MONITOR_LOW_QUALITY_THRESHOLD: float = 0.5
    MONITOR_RETUNE_THRESHOLD: float = 0.3

    # App metadata
    APP_TITLE: str = "Candidate Document RAG"
    APP_VERSION: str = "1.0.0"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

settings = Settings()
