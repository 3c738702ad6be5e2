# services/ingestion.py
"""Upload -> chunks -> embeddings -> rows + index, all or nothing"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from config import settings
from core.domain import (
    Document, DocumentType, EmbeddingError, ErrorCode, InvalidDocumentError,
    RetrievalError
)
from core.interfaces import IDocumentRepository, IEmbeddingService, ISearchBackend
from services.chunking import KoreanChunker
from utils.common import new_id

logger = logging.getLogger(settings.LOGGER_NAME)


def parse_document_type(value: Any) -> DocumentType:
    try:
        return DocumentType(value)
    except ValueError:
        raise InvalidDocumentError(
            f"Unsupported document type '{value}'", ErrorCode.INVALID_TYPE
        )


def index_metadata(doc: Document) -> Dict[str, Any]:
    """Filterable fields mirrored into the search index."""
    return {
        "owner_id": doc.owner_id,
        "type": doc.type.value,
        "filename": doc.filename,
        "document_id": doc.id,
        "parent_document_id": doc.parent_document_id,
        "chunk_index": doc.chunk_index,
        "section": doc.metadata.get("section"),
        "created_at": doc.created_at.isoformat(),
    }


class IngestionPipeline:
    """
    Turns one uploaded document into embedded, persisted chunk rows.

    Embeddings for every chunk are generated before anything is written.
    Rows are committed in one transaction, then indexed; an index failure
    removes the committed rows again so no partial chunk set survives.
    """

    def __init__(
        self,
        chunker: KoreanChunker,
        embedder: IEmbeddingService,
        document_repo: IDocumentRepository,
        search_backend: ISearchBackend,
        concurrency: Optional[int] = None,
    ):
        self.chunker = chunker
        self.embedder = embedder
        self.document_repo = document_repo
        self.search_backend = search_backend
        self.concurrency = concurrency or settings.EMBEDDING_CONCURRENCY

    async def ingest(
        self,
        owner_id: str,
        doc_type: Any,
        filename: str,
        content: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Document:
        doc_type = parse_document_type(doc_type)
        if not content or not content.strip():
            raise InvalidDocumentError("Document content is empty", ErrorCode.EMPTY_CONTENT)

        base_metadata = dict(metadata or {})
        chunks = self.chunker.chunk(content, base_metadata)
        if not chunks:
            raise InvalidDocumentError("Document has no indexable text", ErrorCode.EMPTY_CONTENT)

        created_at = datetime.now(timezone.utc)

        if len(chunks) == 1:
            embedding = await self.embedder.embed(chunks[0].content)
            rows = [Document(
                id=new_id(),
                owner_id=owner_id,
                type=doc_type,
                filename=filename,
                content=chunks[0].content,
                metadata={**base_metadata, "type": doc_type.value, "chunk_count": 1},
                created_at=created_at,
                embedding=embedding,
            )]
        else:
            embeddings = await self._embed_concurrently([c.content for c in chunks])
            parent_id = new_id()
            rows = [
                Document(
                    id=new_id(),
                    owner_id=owner_id,
                    type=doc_type,
                    filename=filename,
                    content=chunk.content,
                    metadata={
                        **chunk.metadata.to_dict(),
                        "type": doc_type.value,
                        "parent_document_id": parent_id,
                        "chunk_count": len(chunks),
                    },
                    created_at=created_at,
                    parent_document_id=parent_id,
                    chunk_index=chunk.metadata.chunk_index,
                    embedding=embedding,
                )
                for chunk, embedding in zip(chunks, embeddings)
            ]

        await self._persist(rows)

        first = rows[0]
        first.sibling_ids = [row.id for row in rows]
        logger.info(f"[INGEST] Stored '{filename}' for {owner_id} as {len(rows)} chunk(s)")
        return first

    async def _embed_concurrently(self, texts: List[str]) -> List[List[float]]:
        """One embedding request per chunk, at most `concurrency` in flight; order preserved."""
        semaphore = asyncio.Semaphore(self.concurrency)

        async def embed_one(text: str) -> List[float]:
            async with semaphore:
                return await self.embedder.embed(text)

        try:
            return list(await asyncio.gather(*(embed_one(t) for t in texts)))
        except EmbeddingError:
            logger.error(f"[INGEST] Embedding failed for one of {len(texts)} chunks, aborting upload")
            raise
        except Exception as e:
            logger.error(f"[INGEST] Embedding failed for one of {len(texts)} chunks: {e}")
            raise EmbeddingError(f"Embedding request failed: {e}") from e

    async def _persist(self, rows: List[Document]) -> None:
        await self.document_repo.create_many(rows)

        try:
            await self.search_backend.add(
                ids=[row.id for row in rows],
                texts=[row.content for row in rows],
                embeddings=[row.embedding or [] for row in rows],
                metadatas=[index_metadata(row) for row in rows],
            )
        except RetrievalError:
            await self._cleanup_on_failure(rows)
            raise

    async def _cleanup_on_failure(self, rows: List[Document]) -> None:
        ids = [row.id for row in rows]
        logger.warning(f"[INGEST] Index write failed, removing {len(ids)} stored rows")
        try:
            await self.document_repo.delete_many(ids)
        except RetrievalError as e:
            logger.error(f"[INGEST] Cleanup failed, rows left without index entries: {ids} ({e})")
