# utils/korean_text.py
"""
Structure-aware helpers for Korean HR documents (résumés, cover letters).

Recognizes cover-letter section headers before length-based splitting:
- Motivation (지원동기)
- Growth background / self introduction (성장과정)
- Experience / projects (경력, 경험)
- Aspirations after joining (입사 후 포부)
- Strengths / weaknesses (장단점)

Also provides the normalization and sentence splitting the chunker relies on.
"""
import re
from typing import List, Sequence, Set, Tuple

from core.interfaces import ISectionMatcher

# Bullets accepted in front of any section title
_BULLETS = r"▪|■|\*"
_CIRCLED = "①②③④⑤⑥⑦⑧⑨⑩"

# Other "N." numbers count only when the title sits alone on a short heading line
_HEADING_LINE = r"(?=[^\n]{0,15}(?:\n|\Z))"

# Ordered section topics with their conventional position in a cover letter
KOREAN_SECTION_TOPICS: Tuple[Tuple[int, str], ...] = (
    (1, r"지원\s*동기|지원\s*이유|입사\s*동기"),
    (2, r"성장\s*과정|자기\s*소개|배경"),
    (3, r"경력|경험|주요\s*업무|프로젝트"),
    (4, r"입사\s*후|포부|비전|기여"),
    (5, r"장점|단점|강점|약점|특기"),
)

# True sentence-final forms; guards against "주식회사." or "10.5m" splits
KOREAN_SENTENCE_ENDINGS: Tuple[str, ...] = (
    "다.",
    "요.",
    "습니다.",
    "했습니다.",
    "입니다.",
    "였습니다.",
    "있습니다.",
    "됩니다.",
)

_ZERO_WIDTH = re.compile(r"[\u200B-\u200D\uFEFF]")
_PUNCT_SPLIT = re.compile(r"([.!?]+)")
_PUNCT_ONLY = re.compile(r"[.!?]+")
_SENTENCE_BREAK = re.compile(r"[.!?]+")


def normalize_text(text: str) -> str:
    """Normalize line breaks, spaces and zero-width characters."""
    text = (text or "").replace("\r\n", "\n")
    text = re.sub(r"\n{3,}", "\n\n", text)  # Max 2 consecutive newlines
    text = re.sub(r"[ \t]+", " ", text)  # Collapse spaces
    text = _ZERO_WIDTH.sub("", text)
    return text.strip()


def is_sentence_end(fragment: str, min_length: int = 10,
                    endings: Sequence[str] = KOREAN_SENTENCE_ENDINGS) -> bool:
    """A fragment ends a sentence only if it is long enough and ends in a true final form."""
    if len(fragment) < min_length:
        return False
    return any(fragment.endswith(ending) for ending in endings)


def split_sentences(text: str, min_length: int = 10) -> List[str]:
    """
    Split Korean text into sentences.

    Punctuation only terminates a sentence when the accumulated fragment
    passes `is_sentence_end`; otherwise the fragment keeps growing.
    """
    sentences: List[str] = []
    current = ""

    for part in _PUNCT_SPLIT.split(text):
        if not part.strip():
            continue

        current += part

        if _PUNCT_ONLY.fullmatch(part):
            trimmed = current.strip()
            if trimmed and is_sentence_end(trimmed, min_length):
                sentences.append(trimmed)
                current = ""

    if current.strip():
        sentences.append(current.strip())

    return sentences


def split_plain_sentences(text: str) -> List[str]:
    """Split on any run of sentence punctuation, dropping blanks."""
    return [s.strip() for s in _SENTENCE_BREAK.split(text or "") if s.strip()]


def extract_query_terms(query: str) -> Set[str]:
    """Lower-cased whitespace tokens of a query."""
    return {term for term in (query or "").lower().split() if term}


def tokenize(text: str) -> List[str]:
    """Lexical tokens for BM25: lower-cased words with punctuation removed."""
    return re.sub(r"[^\w\s]", " ", (text or "").lower()).split()


def section_pattern(position: int, topic: str) -> re.Pattern:
    """
    Header pattern for one topic.

    Matches the topic's own number or circled numeral ("3." / "③" for 경력),
    any bullet, or another "N." when the title stands alone on its line.
    """
    own = rf"(?:{position}\.|{_CIRCLED[position - 1]}|{_BULLETS})\s*(?:{topic})"
    heading = rf"\d{{1,2}}\.\s*(?:{topic}){_HEADING_LINE}"
    return re.compile(rf"(?:^|\n)(?:{own}|{heading})", re.IGNORECASE)


class KoreanSectionMatcher(ISectionMatcher):
    """Regex matcher for numbered/bulleted Korean cover-letter headers."""

    def __init__(self, topics: Sequence[Tuple[int, str]] = KOREAN_SECTION_TOPICS):
        self._patterns = [section_pattern(position, topic) for position, topic in topics]

    def find_boundaries(self, text: str) -> List[Tuple[int, str]]:
        found = {}
        for pattern in self._patterns:
            for match in pattern.finditer(text):
                # First pattern wins when two topics share a header line
                found.setdefault(match.start(), match.group(0).strip())
        return sorted(found.items())
