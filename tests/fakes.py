from typing import Any, Dict, List, Optional

from core.domain import (
    Document, DocumentType, HybridCandidate, InterviewQuestion, RerankHit
)


class FakeEmbedding:
    def __init__(self, dimension: int = 3):
        self.dimension = dimension
        self.calls: List[str] = []

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        return [float(len(text))] + [0.0] * (self.dimension - 1)

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        return [await self.embed(t) for t in texts]


class FakeBackend:
    """Records calls; returns canned candidates or raises the configured errors."""

    def __init__(self, hybrid=None, vector=None, hybrid_error=None, vector_error=None,
                 add_error=None):
        self.hybrid = hybrid or []
        self.vector = vector or []
        self.hybrid_error = hybrid_error
        self.vector_error = vector_error
        self.add_error = add_error
        self.hybrid_calls: List[Dict[str, Any]] = []
        self.vector_calls: List[Dict[str, Any]] = []
        self.added: List[str] = []
        self.deleted: List[str] = []

    async def add(self, ids, texts, embeddings, metadatas):
        if self.add_error:
            raise self.add_error
        self.added.extend(ids)

    async def hybrid_search(self, query_embedding, query_text, match_count,
                            vector_weight, bm25_weight, where=None):
        self.hybrid_calls.append({
            "match_count": match_count,
            "vector_weight": vector_weight,
            "bm25_weight": bm25_weight,
            "where": where,
        })
        if self.hybrid_error:
            raise self.hybrid_error
        return list(self.hybrid)

    async def vector_search(self, query_embedding, threshold, match_count, where=None):
        self.vector_calls.append({"threshold": threshold, "match_count": match_count, "where": where})
        if self.vector_error:
            raise self.vector_error
        return list(self.vector)

    async def delete(self, ids):
        self.deleted.extend(ids)

    async def count(self, where=None):
        return len(self.added)


class FakeDocumentRepo:
    def __init__(self, documents: Optional[List[Document]] = None, create_error=None):
        self.documents: Dict[str, Document] = {d.id: d for d in documents or []}
        self.create_error = create_error
        self.created: List[Document] = []
        self.deleted: List[str] = []

    async def create_many(self, documents):
        if self.create_error:
            raise self.create_error
        self.created.extend(documents)
        for doc in documents:
            self.documents[doc.id] = doc
        return documents

    async def get_by_id(self, document_id):
        return self.documents.get(document_id)

    async def list_by_owner(self, owner_id, doc_type=None):
        return [
            d for d in self.documents.values()
            if d.owner_id == owner_id and (doc_type is None or d.type == doc_type)
        ]

    async def list_family(self, document_id, owner_id):
        target = self.documents.get(document_id)
        if target is None or target.owner_id != owner_id:
            return []
        parent = target.parent_document_id
        if parent is None:
            return [target]
        return [d for d in self.documents.values() if d.parent_document_id == parent]

    async def delete_many(self, document_ids):
        removed = 0
        for doc_id in document_ids:
            self.deleted.append(doc_id)
            if self.documents.pop(doc_id, None) is not None:
                removed += 1
        return removed


class FakeQuestionRepo:
    def __init__(self, questions: Optional[List[InterviewQuestion]] = None):
        self.questions: List[InterviewQuestion] = list(questions or [])
        self.deleted: List[str] = []

    async def create_many(self, questions):
        self.questions.extend(questions)
        return questions

    async def list_recent(self, job_category, limit):
        matching = [q for q in self.questions if q.job_category == job_category]
        return list(reversed(matching))[:limit]

    async def list_question_texts(self, job_category):
        return [q.question for q in self.questions if q.job_category == job_category]

    async def count_by_category(self):
        counts: Dict[str, int] = {}
        for q in self.questions:
            counts[q.job_category] = counts.get(q.job_category, 0) + 1
        return counts

    async def delete_many(self, question_ids):
        self.deleted.extend(question_ids)
        before = len(self.questions)
        self.questions = [q for q in self.questions if q.id not in question_ids]
        return before - len(self.questions)


class FakeReranker:
    """Scores documents in reverse submission order unless told to fail."""

    def __init__(self, error: Optional[Exception] = None, hits: Optional[List[RerankHit]] = None):
        self.error = error
        self.hits = hits
        self.documents: List[str] = []

    async def rerank(self, query, documents, top_n):
        self.documents = list(documents)
        if self.error:
            raise self.error
        if self.hits is not None:
            return self.hits
        n = len(documents)
        hits = [RerankHit(index=i, relevance_score=(i + 1) / n) for i in range(n)]
        hits.sort(key=lambda h: h.relevance_score, reverse=True)
        return hits[:top_n]


def make_candidate(doc_id: str, score: float, content: str = "", doc_type: str = "resume",
                   **metadata) -> HybridCandidate:
    return HybridCandidate(
        id=doc_id,
        content=content or f"{doc_id} 문서 내용입니다.",
        metadata={"type": doc_type, **metadata},
        combined_score=score,
        vector_score=score,
    )


def make_document(doc_id: str, owner_id: str = "user-1", content: str = "내용입니다.",
                  doc_type: DocumentType = DocumentType.RESUME,
                  parent_document_id: Optional[str] = None) -> Document:
    return Document(
        id=doc_id,
        owner_id=owner_id,
        type=doc_type,
        filename=f"{doc_id}.txt",
        content=content,
        metadata={"type": doc_type.value},
        parent_document_id=parent_document_id,
    )


