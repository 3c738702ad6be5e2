# services/chunking.py
"""Section-aware sentence packing for Korean HR documents"""
import logging
import math
from typing import Any, Dict, List, Optional, Tuple

from config import settings
from core.domain import Chunk, ChunkKind, ChunkMetadata, Section
from core.interfaces import ISectionMatcher
from utils.korean_text import KoreanSectionMatcher, normalize_text, split_sentences

logger = logging.getLogger(settings.LOGGER_NAME)

INTRODUCTION_SECTION = "introduction"
FULL_CONTENT_SECTION = "full_content"


class KoreanChunker:
    """
    Splits document text into retrieval-sized chunks.

    Structure first: when the section matcher finds two or more sections,
    each section is chunked on its own and keeps its label. Otherwise the
    whole text is packed sentence by sentence.

    Packing closes a chunk only when the next sentence would push it past
    `max_chunk_size` AND it already holds `min_chunk_size` characters. The
    next chunk is seeded with trailing sentences of the previous one, up to
    `overlap_size` characters.
    """

    def __init__(
        self,
        matcher: Optional[ISectionMatcher] = None,
        max_chunk_size: Optional[int] = None,
        overlap_size: Optional[int] = None,
        min_chunk_size: Optional[int] = None,
        chars_per_token: Optional[float] = None,
        sentence_min_length: Optional[int] = None,
    ):
        self.matcher = matcher or KoreanSectionMatcher()
        self.max_chunk_size = max_chunk_size or settings.CHUNK_MAX_SIZE
        self.overlap_size = settings.CHUNK_OVERLAP if overlap_size is None else overlap_size
        self.min_chunk_size = settings.CHUNK_MIN_SIZE if min_chunk_size is None else min_chunk_size
        self.chars_per_token = chars_per_token or settings.CHARS_PER_TOKEN
        self.sentence_min_length = sentence_min_length or settings.SENTENCE_MIN_LENGTH

    def chunk(self, text: str, metadata: Optional[Dict[str, Any]] = None) -> List[Chunk]:
        """Chunk one document. Empty input yields no chunks."""
        cleaned = normalize_text(text)
        if not cleaned:
            return []

        sections = self.extract_sections(cleaned)

        pieces: List[Tuple[str, Optional[str]]] = []
        if len(sections) > 1:
            for section in sections:
                if len(section.content) <= self.max_chunk_size:
                    pieces.append((section.content, section.title))
                else:
                    sentences = split_sentences(section.content, self.sentence_min_length)
                    pieces.extend((piece, section.title) for piece in self._pack(sentences))
        else:
            sentences = split_sentences(cleaned, self.sentence_min_length)
            pieces = [(piece, None) for piece in self._pack(sentences)]

        total = len(pieces)
        chunks = [
            Chunk(
                content=content,
                metadata=ChunkMetadata(
                    chunk_index=index,
                    total_chunks=total,
                    char_count=len(content),
                    token_estimate=self.estimate_tokens(content),
                    chunk_kind=self._classify(content, title),
                    section=title,
                    extra=dict(metadata or {}),
                ),
            )
            for index, (content, title) in enumerate(pieces)
        ]

        logger.debug(f"[CHUNK] {len(cleaned)} chars -> {total} chunks ({len(sections)} sections)")
        return chunks

    def extract_sections(self, text: str) -> List[Section]:
        """Split text at header boundaries; leading unmatched text becomes the introduction."""
        boundaries = self.matcher.find_boundaries(text)
        if not boundaries:
            return [Section(content=text, title=FULL_CONTENT_SECTION)]

        sections: List[Section] = []

        intro = text[:boundaries[0][0]].strip()
        if intro:
            sections.append(Section(content=intro, title=INTRODUCTION_SECTION))

        for i, (start, title) in enumerate(boundaries):
            end = boundaries[i + 1][0] if i + 1 < len(boundaries) else len(text)
            content = text[start:end].strip()
            if content:
                sections.append(Section(content=content, title=title))

        return sections

    def estimate_tokens(self, text: str) -> int:
        return math.ceil(len(text) / self.chars_per_token)

    def _pack(self, sentences: List[str]) -> List[str]:
        chunks: List[str] = []
        current = ""

        for i, sentence in enumerate(sentences):
            candidate = f"{current} {sentence}" if current else sentence

            if len(candidate) > self.max_chunk_size and len(current) >= self.min_chunk_size:
                chunks.append(current.strip())
                current = self._overlap_prefix(sentences, i) + sentence
            else:
                current = candidate

        if current.strip():
            chunks.append(current.strip())

        return chunks

    def _overlap_prefix(self, sentences: List[str], current_index: int) -> str:
        """Trailing sentences before `current_index` that fit in `overlap_size`."""
        picked: List[str] = []
        char_count = 0

        for i in range(current_index - 1, -1, -1):
            sentence = sentences[i]
            if char_count + len(sentence) > self.overlap_size:
                break
            picked.insert(0, sentence)
            char_count += len(sentence)

        return " ".join(picked) + " " if picked else ""

    @staticmethod
    def _classify(content: str, title: Optional[str]) -> ChunkKind:
        if not title or title in (INTRODUCTION_SECTION, FULL_CONTENT_SECTION):
            return ChunkKind.CONTENT
        if content == title:
            return ChunkKind.HEADER
        if content.startswith(title):
            return ChunkKind.MIXED
        return ChunkKind.CONTENT


# ============= Quality Diagnostics =============

def measure_overlap(previous: str, current: str, window: int = 200, floor: int = 20) -> int:
    """Length of the longest suffix of `previous` that prefixes `current` (0 if <= floor)."""
    search_length = min(window, len(previous), len(current))
    for length in range(search_length, floor, -1):
        if current.startswith(previous[-length:]):
            return length
    return 0


def chunk_quality_report(chunks: List[Chunk]) -> Dict[str, Any]:
    """Per-chunk sizes plus measured overlap between neighbours."""
    return {
        "chunk_count": len(chunks),
        "chunks": [
            {
                "index": c.metadata.chunk_index,
                "section": c.metadata.section,
                "char_count": c.metadata.char_count,
                "token_estimate": c.metadata.token_estimate,
                "preview": c.content[:80],
            }
            for c in chunks
        ],
        "overlaps": [
            measure_overlap(chunks[i - 1].content, chunks[i].content)
            for i in range(1, len(chunks))
        ],
    }
