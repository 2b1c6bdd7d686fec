import hashlib
import json
from typing import Any, Dict, Iterable, Optional, Tuple

from edu_admin.models.papers import PastPaperImportSession, SESSION_IN_PROGRESS

REQUIRED_DOCUMENT_FIELDS = ("exam_board", "qualification", "questions")

TAB_ORDER = ["upload", "structure", "metadata", "questions"]


class InvalidImportDocument(ValueError):
    pass


def parse_import_document(content: bytes) -> Dict[str, Any]:
    """Parse an uploaded past paper JSON file and check its top-level shape."""
    try:
        data = json.loads(content)
    except (UnicodeDecodeError, json.JSONDecodeError):
        raise InvalidImportDocument("Invalid JSON file. Please check the file format.")

    if not isinstance(data, dict) or not all(data.get(field) for field in REQUIRED_DOCUMENT_FIELDS):
        raise InvalidImportDocument(
            "Invalid JSON structure. Missing required fields: exam_board, qualification, or questions."
        )

    if not isinstance(data["questions"], list):
        raise InvalidImportDocument("Invalid JSON structure. questions must be a list.")

    return data


def compute_json_hash(data: Any) -> str:
    """SHA-256 of the compact JSON serialization, keys kept in document order."""
    serialized = json.dumps(data, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()


def paper_identity(raw_json: Optional[Dict[str, Any]]) -> Tuple[Optional[str], Optional[Any]]:
    """paper_code and exam_year, from the top level or from paper_metadata."""
    if not isinstance(raw_json, dict):
        return None, None
    paper_metadata = raw_json.get("paper_metadata") or {}
    paper_code = raw_json.get("paper_code") or paper_metadata.get("paper_code")
    exam_year = raw_json.get("exam_year") or paper_metadata.get("exam_year")
    return paper_code, exam_year


def find_similar_session(
    sessions: Iterable[PastPaperImportSession],
    paper_code: Optional[str],
    exam_year: Optional[Any],
    json_hash: str,
) -> Optional[PastPaperImportSession]:
    """First in-progress session for the same paper and year whose content differs."""
    if not paper_code or not exam_year:
        return None

    for session in sessions:
        if session.status != SESSION_IN_PROGRESS:
            continue
        session_code, session_year = paper_identity(session.raw_json)
        different_content = not session.json_hash or session.json_hash != json_hash
        if session_code == paper_code and str(session_year) == str(exam_year) and different_content:
            return session
    return None


def session_metadata(session: PastPaperImportSession) -> Dict[str, Any]:
    return dict(session.metadata_ or {})


def merge_session_metadata(session: PastPaperImportSession, **updates: Any) -> Dict[str, Any]:
    """Merge keys into the session metadata document (assigned as a new dict so the change is tracked)."""
    metadata = session_metadata(session)
    metadata.update(updates)
    session.metadata_ = metadata
    return metadata


def tab_statuses(session: PastPaperImportSession) -> Dict[str, str]:
    metadata = session_metadata(session)
    statuses = {
        "upload": "completed",
        "structure": "pending",
        "metadata": "pending",
        "questions": "pending",
    }
    if metadata.get("structure_complete"):
        statuses["structure"] = "completed"
    if metadata.get("metadata_complete"):
        statuses["metadata"] = "completed"
    if metadata.get("questions_imported"):
        statuses["questions"] = "completed"

    next_tab = next_tab_for(session)
    if statuses[next_tab] != "completed":
        statuses[next_tab] = "active"
    return statuses


def next_tab_for(session: PastPaperImportSession) -> str:
    metadata = session_metadata(session)
    if metadata.get("questions_imported"):
        return "questions"
    if metadata.get("metadata_complete"):
        return "questions"
    if metadata.get("structure_complete"):
        return "metadata"
    return "structure"


def session_paper_code(session: PastPaperImportSession) -> Optional[str]:
    paper_code, _ = paper_identity(session.raw_json)
    if paper_code:
        return paper_code
    if session.paper is not None:
        return session.paper.paper_code
    return None
