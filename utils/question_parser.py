# utils/question_parser.py
"""
Interview-question extraction from plain text (exam PDFs already converted to text).

Recognized line formats, tried in this order:
- "문제N  카테고리  질문"   exam format, the question may continue on following lines
- "N | 카테고리 | 질문"     table rows
- "N. [카테고리] 질문"      numbered with category
- "N. 질문"                 plain numbered, kept only when it reads like a question

A "(출처: 회사)" or trailing "[출처: 회사]" marker becomes the source company.
"""
import re
from typing import Dict, List, Optional, Tuple

from core.domain import ParsedQuestion

MIN_QUESTION_LENGTH = 10
DEFAULT_CATEGORY = "기타"

_EXAM_LINE = re.compile(r"^문제(\d+)\s+(\S+)\s+(.+)$")
_EXAM_START = re.compile(r"^문제\d+")
_TABLE_ROW = re.compile(r"^(\d+)\s*[|｜]\s*([^|｜]+)\s*[|｜]\s*(.+)$")
_TABLE_START = re.compile(r"^\d+\s*[|｜]")
_NUMBERED_WITH_CATEGORY = re.compile(r"^(\d+)[.)]\s*\[([^\]]+)\]\s*(.+)$")
_NUMBERED = re.compile(r"^(\d+)[.)]\s+(.+)$")
_CATEGORY_HEADER = re.compile(r"^(?:카테고리|분류)[：:]\s*(.+)$")
_SOURCE = re.compile(r"\(출처[：:]\s*([^)]+)\)|\[출처[：:]\s*([^\]]+)\]$")
_COMPLETE = re.compile(r"[?!.。？！]$")

_QUESTION_WORDS = re.compile(r"어떻게|무엇|왜|어디|언제|설명|경험|대처|해결|극복")
_ACTION_WORDS = re.compile(r"하셨|했던|해본|말씀|설명해|알려")

# Page headers, page numbers and converter artifacts
_NOISE = (
    re.compile(r"^(?:PART|Part)"),
    re.compile(r"^(?:페이지|page)", re.IGNORECASE),
    re.compile(r"^-- \d+ of \d+ --$"),
    re.compile(r"^\d+$"),
)

# Exam file names -> job category
_JOB_CATEGORY_BY_FILENAME: Dict[str, str] = {
    "개발자기출": "frontend",
    "프론트엔드기출": "frontend",
    "백엔드기출": "backend",
    "PM기출": "pm",
    "데이터기출": "data",
    "마케팅기출": "marketing",
}


def question_key(text: str) -> str:
    """Duplicate key: lower-cased, trimmed question text."""
    return (text or "").lower().strip()


def detect_job_category(filename: str, default: str = "frontend") -> str:
    name = re.sub(r"\.(pdf|txt)$", "", filename or "", flags=re.IGNORECASE).strip()
    for marker, category in _JOB_CATEGORY_BY_FILENAME.items():
        if marker in name:
            return category
    return default


def clean_question_text(text: str) -> str:
    text = re.sub(r"\s+", " ", text)
    text = re.sub(r"^[-•·]\s*", "", text)
    text = re.sub(r"\?{2,}", "?", text)
    return text.strip()


def is_likely_question(text: str) -> bool:
    if text.endswith("?"):
        return True
    return bool(_QUESTION_WORDS.search(text) or _ACTION_WORDS.search(text))


def _build(no: str, category: str, text: str) -> ParsedQuestion:
    question = clean_question_text(text)
    source = _SOURCE.search(question)
    return ParsedQuestion(
        no=int(no),
        category=category.strip(),
        question=_SOURCE.sub("", question, count=1).strip(),
        source_company=(source.group(1) or source.group(2)).strip() if source else None,
    )


def _is_noise(line: str) -> bool:
    if "카테고리" in line and "문제" in line and "No" in line:
        return True  # table header row
    return any(pattern.search(line) for pattern in _NOISE)


def _is_continuation(line: str) -> bool:
    return not (
        _EXAM_START.match(line) or _TABLE_START.match(line)
        or "No" in line or "카테고리" in line
    )


def dedupe_questions(questions: List[ParsedQuestion]) -> List[ParsedQuestion]:
    seen = set()
    unique = []
    for question in questions:
        key = question_key(question.question)
        if key in seen:
            continue
        seen.add(key)
        unique.append(question)
    return unique


def extract_questions_from_text(text: str) -> List[ParsedQuestion]:
    """Parse every recognizable question line, deduplicated by question text."""
    lines = [line.strip() for line in (text or "").split("\n")]
    lines = [line for line in lines if line]

    questions: List[ParsedQuestion] = []
    current_category = DEFAULT_CATEGORY
    pending: Optional[Tuple[str, str, str]] = None  # (no, category, text so far)

    def flush_pending() -> None:
        nonlocal pending
        if pending is not None:
            parsed = _build(*pending)
            if len(parsed.question) >= MIN_QUESTION_LENGTH:
                questions.append(parsed)
            pending = None

    for i, line in enumerate(lines):
        if _is_noise(line):
            continue

        exam = _EXAM_LINE.match(line)
        if exam:
            flush_pending()
            no, category, body = exam.groups()
            current_category = category.strip()
            if not _COMPLETE.search(body.strip()) and i + 1 < len(lines):
                pending = (no, category, body.strip())
            else:
                questions.append(_build(no, category, body))
            continue

        if pending is not None:
            if _is_continuation(line):
                pending = (pending[0], pending[1], f"{pending[2]} {line}")
                if _COMPLETE.search(line):
                    flush_pending()
                continue
            flush_pending()

        row = _TABLE_ROW.match(line) or _NUMBERED_WITH_CATEGORY.match(line)
        if row:
            no, category, body = row.groups()
            current_category = category.strip()
            questions.append(_build(no, category, body))
            continue

        numbered = _NUMBERED.match(line)
        if numbered:
            no, body = numbered.groups()
            parsed = _build(no, current_category, body)
            if len(parsed.question) >= MIN_QUESTION_LENGTH and is_likely_question(parsed.question):
                questions.append(parsed)
            continue

        header = _CATEGORY_HEADER.match(line)
        if header:
            current_category = header.group(1).strip()

    flush_pending()
    return dedupe_questions(questions)
