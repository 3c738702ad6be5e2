import asyncio

import pytest

from core.domain import ErrorCode, InvalidDocumentError, RerankHit, Result, SearchResult
from services.reranking import RerankerAdapter
from tests.fakes import FakeReranker
from utils.common import build_upload_metadata, sanitize_content, validate_document_id


def test_sanitize_content_strips_control_characters():
    assert sanitize_content("이력서\x00 내용\x07\n\t끝") == "이력서 내용\n\t끝"
    assert sanitize_content(None) == ""


def test_upload_metadata_file_facts_win():
    metadata = build_upload_metadata(
        '{"source": "web", "type": "spoofed"}', "cv.txt", "text/plain", 120, "resume"
    )
    assert metadata == {
        "source": "web",
        "filename": "cv.txt",
        "file_type": "text/plain",
        "file_size": 120,
        "type": "resume",
    }


def test_upload_metadata_optional():
    metadata = build_upload_metadata(None, "cv.txt", "text/plain", 1, "resume")
    assert metadata["filename"] == "cv.txt"


@pytest.mark.parametrize("raw", ["{not json", "[1, 2]"])
def test_upload_metadata_must_be_json_object(raw):
    with pytest.raises(InvalidDocumentError) as exc:
        build_upload_metadata(raw, "cv.txt", "text/plain", 1, "resume")
    assert exc.value.error_code == ErrorCode.INVALID_METADATA


def test_validate_document_id():
    assert validate_document_id("123e4567-e89b-12d3-a456-426614174000")
    assert not validate_document_id("../etc/passwd")


def test_result_helpers():
    ok = Result.success([1])
    assert ok.ok and not ok.fallback_used

    err = ValueError("x")
    recovered = Result.recovered([2], err)
    assert not recovered.ok
    assert recovered.fallback_used
    assert recovered.error is err


def _results():
    return [
        SearchResult(id="a", content="a", metadata={}, combined_score=0.2),
        SearchResult(id="b", content="b", metadata={}, combined_score=0.9),
    ]


def test_adapter_without_reranker_passes_through():
    result = asyncio.run(RerankerAdapter(None).rerank("q", _results(), 1))
    assert result.ok
    assert [r.id for r in result.value] == ["a"]


def test_adapter_rejects_out_of_range_index():
    adapter = RerankerAdapter(FakeReranker(hits=[RerankHit(index=7, relevance_score=0.9)]))
    result = asyncio.run(adapter.rerank("q", _results(), 2))

    assert result.fallback_used
    assert [r.id for r in result.value] == ["b", "a"]
