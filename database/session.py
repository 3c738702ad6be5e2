# database/session.py

import logging
import uuid
from datetime import datetime, timezone
from typing import AsyncGenerator

from sqlalchemy import JSON, Column, DateTime, Integer, String, Text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from config import settings

logger = logging.getLogger(settings.LOGGER_NAME)

# Setup SQLAlchemy async engine and session maker
async_engine = create_async_engine(
    settings.DATABASE_URL,
    echo=False,
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=settings.DB_MAX_OVERFLOW,
    pool_recycle=settings.DB_POOL_RECYCLE,
    pool_pre_ping=True  # Check connection health before using
)
AsyncSessionLocal = async_sessionmaker(async_engine, expire_on_commit=False)
Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)

# ============= Models =============

class DocumentEntity(Base):
    """One row per chunk; chunks of one upload share parent_document_id."""
    __tablename__ = "documents"
    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_id = Column(String, nullable=False, index=True)
    type = Column(String, nullable=False, index=True)
    filename = Column(String, nullable=False)
    content = Column(Text, nullable=False)
    meta = Column(JSON, nullable=False, default=dict)
    parent_document_id = Column(String, nullable=True, index=True)
    chunk_index = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=_utcnow, index=True)


class InterviewQuestionEntity(Base):
    __tablename__ = "interview_questions"
    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    job_category = Column(String, nullable=False, index=True)  # frontend, backend, pm, ...
    question_category = Column(String, nullable=False)
    question = Column(Text, nullable=False)
    source_company = Column(String, nullable=True)
    meta = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), default=_utcnow, index=True)


# ============= Dependencies =============

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Provide database session for FastAPI dependency injection"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db() -> None:
    """Create tables if they do not exist."""
    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
