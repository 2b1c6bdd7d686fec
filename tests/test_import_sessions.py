"""
Tests for past paper import session helpers.
"""

import json

import pytest

from edu_admin.models.papers import PastPaperImportSession, SESSION_COMPLETED, SESSION_IN_PROGRESS
from edu_admin.services.import_sessions import (
    InvalidImportDocument,
    compute_json_hash,
    find_similar_session,
    merge_session_metadata,
    next_tab_for,
    paper_identity,
    parse_import_document,
    session_paper_code,
    tab_statuses,
)

DOCUMENT = {
    "exam_board": "Cambridge",
    "qualification": "IGCSE",
    "paper_code": "0620/12",
    "exam_year": 2023,
    "questions": [{"question_number": "1", "question_text": "Name a gas"}],
}


def make_session(raw_json=None, json_hash=None, status=SESSION_IN_PROGRESS, metadata=None, id=1):
    return PastPaperImportSession(
        id=id,
        raw_json=raw_json,
        json_hash=json_hash,
        status=status,
        metadata_=metadata or {},
    )


class TestParseImportDocument:

    def test_valid_document(self):
        assert parse_import_document(json.dumps(DOCUMENT).encode()) == DOCUMENT

    def test_invalid_json(self):
        with pytest.raises(InvalidImportDocument, match="Invalid JSON file"):
            parse_import_document(b"{not json")

    @pytest.mark.parametrize("missing", ["exam_board", "qualification", "questions"])
    def test_missing_required_field(self, missing):
        document = {k: v for k, v in DOCUMENT.items() if k != missing}
        with pytest.raises(InvalidImportDocument, match="Missing required fields"):
            parse_import_document(json.dumps(document).encode())

    def test_questions_must_be_list(self):
        document = dict(DOCUMENT, questions={"1": "x"})
        with pytest.raises(InvalidImportDocument, match="questions must be a list"):
            parse_import_document(json.dumps(document).encode())

    def test_top_level_array(self):
        with pytest.raises(InvalidImportDocument):
            parse_import_document(b"[1, 2]")


class TestHashing:

    def test_hash_is_stable_and_content_sensitive(self):
        assert compute_json_hash(DOCUMENT) == compute_json_hash(dict(DOCUMENT))
        assert compute_json_hash(DOCUMENT) != compute_json_hash(dict(DOCUMENT, exam_year=2024))
        assert len(compute_json_hash(DOCUMENT)) == 64


class TestSimilarSessions:

    def test_paper_identity_from_metadata_block(self):
        raw = {"paper_metadata": {"paper_code": "9709/11", "exam_year": "2022"}}
        assert paper_identity(raw) == ("9709/11", "2022")
        assert paper_identity(None) == (None, None)

    def test_finds_same_paper_with_different_content(self):
        other = make_session(raw_json=dict(DOCUMENT, exam_year="2023"), json_hash="abc", id=7)
        found = find_similar_session([other], "0620/12", 2023, compute_json_hash(DOCUMENT))
        assert found is other

    def test_identical_content_is_not_similar(self):
        digest = compute_json_hash(DOCUMENT)
        session = make_session(raw_json=DOCUMENT, json_hash=digest)
        assert find_similar_session([session], "0620/12", 2023, digest) is None

    def test_ignores_finished_and_other_papers(self):
        finished = make_session(raw_json=DOCUMENT, json_hash="abc", status=SESSION_COMPLETED)
        other_paper = make_session(raw_json=dict(DOCUMENT, paper_code="0620/22"), json_hash="abc")
        assert find_similar_session([finished, other_paper], "0620/12", 2023, "def") is None

    def test_requires_code_and_year(self):
        session = make_session(raw_json=DOCUMENT, json_hash="abc")
        assert find_similar_session([session], None, 2023, "def") is None


class TestTabs:

    def test_new_session_starts_at_structure(self):
        session = make_session(raw_json=DOCUMENT)
        assert next_tab_for(session) == "structure"
        assert tab_statuses(session) == {
            "upload": "completed",
            "structure": "active",
            "metadata": "pending",
            "questions": "pending",
        }

    def test_progress_moves_active_tab(self):
        session = make_session(raw_json=DOCUMENT)
        merge_session_metadata(session, structure_complete=True)
        assert next_tab_for(session) == "metadata"

        merge_session_metadata(session, metadata_complete=True)
        statuses = tab_statuses(session)
        assert statuses["metadata"] == "completed"
        assert statuses["questions"] == "active"

        merge_session_metadata(session, questions_imported=True)
        assert tab_statuses(session)["questions"] == "completed"

    def test_merge_keeps_existing_keys(self):
        session = make_session(metadata={"structure_complete": True})
        merged = merge_session_metadata(session, attachments={})
        assert merged == {"structure_complete": True, "attachments": {}}
        assert session.metadata_ == merged

    def test_paper_code_from_raw_json(self):
        assert session_paper_code(make_session(raw_json=DOCUMENT)) == "0620/12"
