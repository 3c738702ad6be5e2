# infrastructure/vector_stores.py
"""ChromaDB-backed hybrid index: cosine similarity + BM25 with score fusion"""
import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

from rank_bm25 import BM25Okapi

from config import settings
from core.domain import HybridCandidate, SearchBackendError
from core.interfaces import ISearchBackend
from utils.korean_text import tokenize

logger = logging.getLogger(settings.LOGGER_NAME)

FUSION_WEIGHTED = "weighted"
FUSION_RRF = "rrf"

# ============= Fusion =============

def normalize_by_max(scores: Dict[str, float]) -> Dict[str, float]:
    """Scale scores into [0, 1] by the maximum; all-zero input stays zero."""
    top = max(scores.values(), default=0.0)
    if top <= 0:
        return {key: 0.0 for key in scores}
    return {key: value / top for key, value in scores.items()}


def fuse_scores(
    vector_hits: List[Tuple[str, float]],
    bm25_hits: List[Tuple[str, float]],
    vector_weight: float,
    bm25_weight: float,
    mode: str = FUSION_WEIGHTED,
    rrf_k: int = 60,
) -> List[Tuple[str, float, float, float]]:
    """
    Combine two ranked hit lists into (id, combined, vector_score, bm25_score),
    best first. Hits must be sorted best first; missing signals count as 0.

    weighted: vector_weight * vector_score + bm25_weight * bm25_score
    rrf:      vector_weight / (rrf_k + vector_rank) + bm25_weight / (rrf_k + bm25_rank)
    """
    v_scores = dict(vector_hits)
    b_scores = dict(bm25_hits)
    v_ranks = {doc_id: rank for rank, (doc_id, _) in enumerate(vector_hits, start=1)}
    b_ranks = {doc_id: rank for rank, (doc_id, _) in enumerate(bm25_hits, start=1)}

    fused = []
    for doc_id in list(v_ranks) + [d for d in b_ranks if d not in v_ranks]:
        v = v_scores.get(doc_id, 0.0)
        b = b_scores.get(doc_id, 0.0)
        if mode == FUSION_RRF:
            combined = 0.0
            if doc_id in v_ranks:
                combined += vector_weight / (rrf_k + v_ranks[doc_id])
            if doc_id in b_ranks:
                combined += bm25_weight / (rrf_k + b_ranks[doc_id])
        else:
            combined = vector_weight * v + bm25_weight * b
        fused.append((doc_id, combined, v, b))

    fused.sort(key=lambda item: item[1], reverse=True)
    return fused


def bm25_rank(query_text: str, ids: List[str], texts: List[str], limit: int) -> List[Tuple[str, float]]:
    """BM25Okapi scores normalised by the best hit; non-matching texts are dropped."""
    tokenized_corpus = [tokenize(text) for text in texts]
    query_tokens = tokenize(query_text)
    if not query_tokens or not any(tokenized_corpus):
        return []

    bm25 = BM25Okapi(tokenized_corpus)
    scores = bm25.get_scores(query_tokens)

    raw = {ids[i]: float(score) for i, score in enumerate(scores) if score > 0}
    normalized = normalize_by_max(raw)
    ranked = sorted(normalized.items(), key=lambda item: item[1], reverse=True)
    return ranked[:limit]


def _chroma_where(where: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """ChromaDB accepts one key per filter; several keys go under $and."""
    if not where:
        return None
    if len(where) == 1:
        return dict(where)
    return {"$and": [{key: value} for key, value in where.items()]}


def _flatten_metadata(metadata: Dict[str, Any]) -> Dict[str, Any]:
    """ChromaDB metadata values must be scalars."""
    flat: Dict[str, Any] = {}
    for key, value in metadata.items():
        if value is None:
            continue
        if isinstance(value, (str, int, float, bool)):
            flat[key] = value
        else:
            flat[key] = str(value)
    return flat


# ============= Backend =============

class ChromaHybridSearchBackend(ISearchBackend):
    """
    Hybrid search over one ChromaDB collection.

    Vector signal: cosine similarity (1 - cosine distance) from the HNSW index.
    Lexical signal: BM25Okapi over the metadata-filtered corpus, normalised by max.
    Each signal contributes at most `match_count * HYBRID_SEARCH_LIMIT_MULTIPLIER` hits.
    """

    def __init__(
        self,
        client: Any,
        collection_name: str = "user_documents",
        fusion: Optional[str] = None,
        rrf_k: Optional[int] = None,
    ):
        self._client = client
        self._collection_name = collection_name
        self._collection: Any = None
        self.fusion = fusion or settings.HYBRID_FUSION
        self.rrf_k = rrf_k or settings.RRF_K

    async def _ensure_collection(self):
        """Lazy initialization of collection"""
        if not self._collection:
            self._collection = await asyncio.to_thread(
                self._client.get_or_create_collection,
                name=self._collection_name,
                metadata={"hnsw:space": "cosine"}
            )

    async def add(
        self,
        ids: List[str],
        texts: List[str],
        embeddings: List[List[float]],
        metadatas: List[Dict[str, Any]],
    ) -> None:
        if not ids:
            return
        try:
            await self._ensure_collection()
            await asyncio.to_thread(
                self._collection.upsert,
                ids=ids,
                documents=texts,
                embeddings=embeddings,
                metadatas=[_flatten_metadata(m) for m in metadatas]
            )
        except Exception as e:
            logger.error(f"[INDEX] Failed to add {len(ids)} entries to {self._collection_name}: {e}")
            raise SearchBackendError(f"Index write failed: {e}") from e

    def _load_corpus(self, where: Optional[Dict[str, Any]]) -> Dict[str, Tuple[str, Dict[str, Any]]]:
        data = self._collection.get(
            where=_chroma_where(where),
            include=["documents", "metadatas"]
        )
        return {
            doc_id: (data["documents"][i] or "", data["metadatas"][i] or {})
            for i, doc_id in enumerate(data["ids"])
        }

    def _vector_rank(
        self,
        query_embedding: List[float],
        n_results: int,
        where: Optional[Dict[str, Any]],
    ) -> List[Tuple[str, float]]:
        results = self._collection.query(
            query_embeddings=[query_embedding],
            n_results=n_results,
            where=_chroma_where(where),
            include=["distances"]
        )
        hits = []
        if results["ids"] and results["ids"][0]:
            for doc_id, distance in zip(results["ids"][0], results["distances"][0]):
                similarity = max(0.0, min(1.0, 1.0 - float(distance)))
                hits.append((doc_id, similarity))
        return hits

    def _hybrid_sync(self, query_embedding, query_text, match_count, vector_weight,
                     bm25_weight, where) -> List[HybridCandidate]:
        corpus = self._load_corpus(where)
        if not corpus:
            return []

        search_limit = match_count * settings.HYBRID_SEARCH_LIMIT_MULTIPLIER
        ids = list(corpus)

        vector_hits = self._vector_rank(query_embedding, min(search_limit, len(ids)), where)
        lexical_hits = bm25_rank(query_text, ids, [corpus[i][0] for i in ids], search_limit)

        fused = fuse_scores(
            vector_hits, lexical_hits, vector_weight, bm25_weight,
            mode=self.fusion, rrf_k=self.rrf_k
        )

        return [
            HybridCandidate(
                id=doc_id,
                content=corpus[doc_id][0],
                metadata=dict(corpus[doc_id][1]),
                combined_score=combined,
                vector_score=v,
                bm25_score=b,
            )
            for doc_id, combined, v, b in fused[:match_count]
            if doc_id in corpus
        ]

    async def hybrid_search(
        self,
        query_embedding: List[float],
        query_text: str,
        match_count: int,
        vector_weight: float,
        bm25_weight: float,
        where: Optional[Dict[str, Any]] = None,
    ) -> List[HybridCandidate]:
        try:
            await self._ensure_collection()
            candidates = await asyncio.to_thread(
                self._hybrid_sync, query_embedding, query_text, match_count,
                vector_weight, bm25_weight, where
            )
        except Exception as e:
            logger.error(f"[SEARCH] Hybrid search failed in {self._collection_name}: {e}")
            raise SearchBackendError(f"Hybrid search failed: {e}") from e

        logger.debug(f"[SEARCH] Hybrid search returned {len(candidates)} candidates")
        return candidates

    def _vector_sync(self, query_embedding, threshold, match_count, where) -> List[HybridCandidate]:
        available = len(self._collection.get(where=_chroma_where(where), include=[])["ids"])
        if available == 0:
            return []

        results = self._collection.query(
            query_embeddings=[query_embedding],
            n_results=min(match_count, available),
            where=_chroma_where(where),
            include=["metadatas", "documents", "distances"]
        )

        candidates = []
        if results["ids"] and results["ids"][0]:
            for i, doc_id in enumerate(results["ids"][0]):
                similarity = max(0.0, min(1.0, 1.0 - float(results["distances"][0][i])))
                if similarity < threshold:
                    continue
                candidates.append(HybridCandidate(
                    id=doc_id,
                    content=results["documents"][0][i] or "",
                    metadata=dict(results["metadatas"][0][i] or {}),
                    combined_score=similarity,
                    vector_score=similarity,
                ))
        return candidates

    async def vector_search(
        self,
        query_embedding: List[float],
        threshold: float,
        match_count: int,
        where: Optional[Dict[str, Any]] = None,
    ) -> List[HybridCandidate]:
        try:
            await self._ensure_collection()
            return await asyncio.to_thread(
                self._vector_sync, query_embedding, threshold, match_count, where
            )
        except Exception as e:
            logger.error(f"[SEARCH] Vector search failed in {self._collection_name}: {e}")
            raise SearchBackendError(f"Vector search failed: {e}") from e

    async def delete(self, ids: List[str]) -> None:
        if not ids:
            return
        try:
            await self._ensure_collection()
            await asyncio.to_thread(self._collection.delete, ids=ids)
        except Exception as e:
            logger.error(f"[INDEX] Failed to delete {len(ids)} entries: {e}")
            raise SearchBackendError(f"Index delete failed: {e}") from e

    async def count(self, where: Optional[Dict[str, Any]] = None) -> int:
        """Get entry count"""
        try:
            await self._ensure_collection()
            if not where:
                return await asyncio.to_thread(self._collection.count)
            data = await asyncio.to_thread(
                self._collection.get, where=_chroma_where(where), include=[]
            )
            return len(data["ids"])
        except Exception as e:
            logger.error(f"Failed to get count: {e}")
            return 0
