# infrastructure/repositories.py
"""Database repository implementations"""
import logging
from typing import Dict, List, Optional

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.interfaces import IDocumentRepository, IQuestionRepository
from core.domain import Document, DocumentStoreError, DocumentType, InterviewQuestion
from database.session import DocumentEntity, InterviewQuestionEntity
from config import settings

logger = logging.getLogger(settings.LOGGER_NAME)

class SQLDocumentRepository(IDocumentRepository):
    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_domain(self, db_doc: Optional[DocumentEntity]) -> Optional[Document]:
        """Converts an SQLAlchemy entity to a domain model."""
        if db_doc is None:
            return None

        # Prevent accidental mutation of DB entity metadata
        md = dict(db_doc.meta or {})

        return Document(
            id=db_doc.id,  # type: ignore
            owner_id=db_doc.owner_id,  # type: ignore
            type=DocumentType(db_doc.type),
            filename=db_doc.filename,  # type: ignore
            content=db_doc.content,  # type: ignore
            metadata=md,
            created_at=db_doc.created_at,  # type: ignore
            parent_document_id=db_doc.parent_document_id,  # type: ignore
            chunk_index=db_doc.chunk_index,  # type: ignore
        )

    async def create_many(self, documents: List[Document]) -> List[Document]:
        """Insert all rows in a single commit."""
        entities = [
            DocumentEntity(
                id=doc.id,
                owner_id=doc.owner_id,
                type=doc.type.value,
                filename=doc.filename,
                content=doc.content,
                meta=doc.metadata,
                parent_document_id=doc.parent_document_id,
                chunk_index=doc.chunk_index,
                created_at=doc.created_at,
            )
            for doc in documents
        ]
        try:
            self.session.add_all(entities)
            await self.session.commit()
        except Exception as e:
            await self.session.rollback()
            logger.error(f"Failed to persist {len(entities)} document rows: {e}")
            raise DocumentStoreError(f"Could not store document: {e}") from e

        logger.info(f"Created {len(entities)} document rows in database")
        return documents

    async def get_by_id(self, document_id: str) -> Optional[Document]:
        db_doc = await self.session.get(DocumentEntity, document_id)
        return self._to_domain(db_doc)

    async def list_by_owner(
        self, owner_id: str, doc_type: Optional[DocumentType] = None
    ) -> List[Document]:
        stmt = select(DocumentEntity).where(DocumentEntity.owner_id == owner_id)
        if doc_type is not None:
            stmt = stmt.where(DocumentEntity.type == doc_type.value)
        stmt = stmt.order_by(DocumentEntity.created_at.desc(), DocumentEntity.chunk_index.asc())

        result = await self.session.execute(stmt)
        docs = [self._to_domain(doc) for doc in result.scalars().all()]
        return [d for d in docs if d is not None]

    async def list_family(self, document_id: str, owner_id: str) -> List[Document]:
        root = await self.session.get(DocumentEntity, document_id)
        if root is None or root.owner_id != owner_id:
            return []

        parent_id = root.parent_document_id
        if not parent_id:
            doc = self._to_domain(root)
            return [doc] if doc else []

        result = await self.session.execute(
            select(DocumentEntity)
            .where(DocumentEntity.owner_id == owner_id)
            .where(or_(
                DocumentEntity.parent_document_id == parent_id,
                DocumentEntity.id == parent_id,
            ))
            .order_by(DocumentEntity.chunk_index.asc())
        )
        docs = [self._to_domain(doc) for doc in result.scalars().all()]
        return [d for d in docs if d is not None]

    async def delete_many(self, document_ids: List[str]) -> int:
        if not document_ids:
            return 0
        try:
            result = await self.session.execute(
                delete(DocumentEntity).where(DocumentEntity.id.in_(list(document_ids)))
            )
            await self.session.commit()
            return result.rowcount or 0
        except Exception as e:
            await self.session.rollback()
            logger.error(f"Failed to delete documents: {e}")
            raise DocumentStoreError(f"Could not delete documents: {e}") from e


class SQLQuestionRepository(IQuestionRepository):
    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_domain(self, entity: InterviewQuestionEntity) -> InterviewQuestion:
        return InterviewQuestion(
            id=entity.id,  # type: ignore
            job_category=entity.job_category,  # type: ignore
            question_category=entity.question_category,  # type: ignore
            question=entity.question,  # type: ignore
            source_company=entity.source_company,  # type: ignore
            metadata=dict(entity.meta or {}),
        )

    async def create_many(self, questions: List[InterviewQuestion]) -> List[InterviewQuestion]:
        try:
            self.session.add_all([
                InterviewQuestionEntity(
                    id=q.id,
                    job_category=q.job_category,
                    question_category=q.question_category,
                    question=q.question,
                    source_company=q.source_company,
                    meta=q.metadata,
                )
                for q in questions
            ])
            await self.session.commit()
        except Exception as e:
            await self.session.rollback()
            logger.error(f"Failed to persist {len(questions)} questions: {e}")
            raise DocumentStoreError(f"Could not store questions: {e}") from e
        return questions

    async def list_recent(self, job_category: str, limit: int) -> List[InterviewQuestion]:
        result = await self.session.execute(
            select(InterviewQuestionEntity)
            .where(InterviewQuestionEntity.job_category == job_category)
            .order_by(InterviewQuestionEntity.created_at.desc())
            .limit(limit)
        )
        return [self._to_domain(q) for q in result.scalars().all()]

    async def list_question_texts(self, job_category: str) -> List[str]:
        result = await self.session.execute(
            select(InterviewQuestionEntity.question)
            .where(InterviewQuestionEntity.job_category == job_category)
        )
        return list(result.scalars().all())

    async def count_by_category(self) -> Dict[str, int]:
        result = await self.session.execute(
            select(InterviewQuestionEntity.job_category, func.count(InterviewQuestionEntity.id))
            .group_by(InterviewQuestionEntity.job_category)
        )
        return {category: count for category, count in result.all()}

    async def delete_many(self, question_ids: List[str]) -> int:
        if not question_ids:
            return 0
        result = await self.session.execute(
            delete(InterviewQuestionEntity).where(InterviewQuestionEntity.id.in_(list(question_ids)))
        )
        await self.session.commit()
        return result.rowcount or 0
