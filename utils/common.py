"""Common utilities: path management, upload sanitisation and identifiers"""
import json
import os
import re
import uuid
from typing import Any, Dict, Optional

# ⚠️ DO NOT import settings here - causes circular import with config.py


# ============= Path Management =============

def get_project_root() -> str:
    """Returns the absolute path to the project's root directory."""
    return os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))


def get_log_file_path() -> str:
    """Creates the log directory if it doesn't exist and returns the full log file path."""
    project_root = get_project_root()
    log_dir = os.path.join(project_root, 'log')

    if not os.path.exists(log_dir):
        os.makedirs(log_dir)

    return os.path.join(log_dir, 'rag_system.log')


# ============= Upload Utilities =============

# Control characters except \t, \n, \r
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")


def sanitize_content(text: str) -> str:
    """Strip NUL and control characters that break storage and tokenizers."""
    return _CONTROL_CHARS.sub("", text or "")


def sanitize_filename(filename: str) -> str:
    """Remove dangerous characters from filename."""
    safe_name = re.sub(r'[^\w\-_\.]', '_', filename)
    safe_name = os.path.basename(safe_name)
    return safe_name[:100]


def validate_document_id(doc_id: str) -> bool:
    """Validate document ID format."""
    uuid_pattern = r'^[a-f0-9]{8}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{12}$'
    return bool(re.match(uuid_pattern, doc_id, re.IGNORECASE))


def new_id() -> str:
    return str(uuid.uuid4())


def build_upload_metadata(
    raw_metadata: Optional[str],
    filename: str,
    content_type: Optional[str],
    size: int,
    doc_type: str,
) -> Dict[str, Any]:
    """Caller metadata (a JSON object string) merged with file facts; file facts win."""
    from core.domain import ErrorCode, InvalidDocumentError  # Lazy import

    metadata: Dict[str, Any] = {}
    if raw_metadata:
        try:
            metadata = json.loads(raw_metadata)
        except json.JSONDecodeError:
            raise InvalidDocumentError("metadata must be a JSON object", ErrorCode.INVALID_METADATA)
        if not isinstance(metadata, dict):
            raise InvalidDocumentError("metadata must be a JSON object", ErrorCode.INVALID_METADATA)

    return {
        **metadata,
        "filename": filename,
        "file_type": content_type,
        "file_size": size,
        "type": doc_type,
    }
