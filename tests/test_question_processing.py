"""
Tests for question normalization of past paper imports.
"""

from datetime import date, datetime
from decimal import Decimal

import pytest

from edu_admin.services.question_processing import (
    MAX_SAFE_INTEGER,
    detect_answer_format,
    default_answer_requirement,
    ensure_array,
    ensure_string,
    normalize_text,
    parse_int,
    process_questions,
    processing_stats,
    requires_figure,
    sanitize_question,
    sanitize_question_for_storage,
    validate_question,
    validate_questions,
)


class TestAnswerFormatDetection:
    """Answer formats are inferred in a fixed priority order"""

    def test_explicit_format_wins(self):
        question = {"answer_format": "equation", "options": ["a", "b"], "question_text": "Calculate x"}
        assert detect_answer_format(question) == "equation"

    @pytest.mark.parametrize("value", ["", None, "undefined"])
    def test_blank_or_undefined_format_is_ignored(self, value):
        question = {"answer_format": value, "question_text": "Calculate the mass"}
        assert detect_answer_format(question) == "calculation"

    def test_options_mean_mcq(self):
        assert detect_answer_format({"options": [{"label": "A"}], "question_text": "Explain"}) == "mcq"

    def test_empty_options_fall_through(self):
        assert detect_answer_format({"options": [], "question_text": "Explain why"}) == "multi_line"

    def test_question_type_mcq(self):
        assert detect_answer_format({"question_type": "mcq"}) == "mcq"
        assert detect_answer_format({"type": "multiple_choice"}) == "mcq"

    @pytest.mark.parametrize("text,expected", [
        ("Calculate the speed of the car", "calculation"),
        ("Work out the total", "calculation"),
        ("Draw the structure of ethene", "diagram"),
        ("Sketch the apparatus", "diagram"),
        ("Complete the table below", "table_completion"),
        ("Plot the results", "graph"),
        ("Explain your answer", "multi_line"),
        ("Describe the process", "multi_line"),
        ("State one property", "single_line"),
        ("What is 2 + 2?", "single_line"),
    ])
    def test_text_cues(self, text, expected):
        assert detect_answer_format({"question_text": text}) == expected

    def test_calculation_beats_later_cues(self):
        assert detect_answer_format({"question_text": "Calculate and explain the result"}) == "calculation"

    def test_description_used_when_no_text(self):
        assert detect_answer_format({"question_description": "Sketch a graph"}) == "diagram"


class TestAnswerRequirement:

    def test_single_answer(self):
        assert default_answer_requirement({"correct_answers": ["x"]}, "single_line") == "Single correct answer required"

    def test_alternatives(self):
        question = {"correct_answers": ["a", "b", "c"]}
        assert default_answer_requirement(question, "single_line") == "Accept any valid answer from 3 alternatives"

    def test_by_format(self):
        assert default_answer_requirement({}, "multi_line") == "Detailed explanation required"
        assert default_answer_requirement({}, "calculation") == "Show working and final answer"
        assert default_answer_requirement({}, "graph") == "Provide a clear and accurate answer"

    def test_undefined_requirement_replaced(self):
        processed = sanitize_question({"question_text": "Explain", "answer_requirement": "undefined"})
        assert processed["answer_requirement"] == "Detailed explanation required"


class TestFigureDetection:

    def test_explicit_flags(self):
        assert requires_figure({"figure_required": True})
        assert requires_figure({"figure": True})

    def test_keywords(self):
        assert requires_figure({"question_text": "Use the DIAGRAM to answer"})
        assert requires_figure({"text": "as shown in Fig. 1"})

    def test_no_figure(self):
        assert not requires_figure({"question_text": "Name a noble gas"})


class TestHelpers:

    def test_ensure_array(self):
        assert ensure_array(None) == []
        assert ensure_array("a") == ["a"]
        assert ensure_array([1, 2]) == [1, 2]

    def test_ensure_string(self):
        assert ensure_string(None) == ""
        assert ensure_string(5) == "5"
        assert ensure_string("x") == "x"

    def test_normalize_text(self):
        assert normalize_text("  Hello   World \n") == "hello world"
        assert normalize_text(None) == ""

    def test_parse_int(self):
        assert parse_int("4 marks") == 4
        assert parse_int(3.7) == 3
        assert parse_int("abc") == 0
        assert parse_int(None) == 0
        assert parse_int(True) == 0


class TestStorageSanitization:

    def test_dates_become_iso_strings(self):
        result = sanitize_question_for_storage({"when": date(2024, 5, 1), "at": datetime(2024, 5, 1, 9, 30)})
        assert result == {"when": "2024-05-01", "at": "2024-05-01T09:30:00"}

    def test_big_ints_become_strings(self):
        result = sanitize_question_for_storage({"small": 5, "big": MAX_SAFE_INTEGER + 1})
        assert result == {"small": 5, "big": str(MAX_SAFE_INTEGER + 1)}

    def test_none_values_dropped_and_nested(self):
        result = sanitize_question_for_storage({"a": None, "b": [{"c": None, "d": Decimal("1.5")}], "e": True})
        assert result == {"b": [{"d": 1.5}], "e": True}


class TestProcessing:

    def test_sanitize_question_maps_aliases(self):
        processed = sanitize_question({
            "number": "1a",
            "question_text": "Calculate the area",
            "marks": "3",
            "chapter": "Geometry",
            "topic": "Area",
        })
        assert processed["question_number"] == "1a"
        assert processed["question_text"] == "Calculate the area"
        assert processed["marks"] == 3
        assert processed["unit"] == "Geometry"
        assert processed["answer_format"] == "calculation"
        assert processed["answer_requirement"] == "Show working and final answer"
        assert processed["id"].startswith("q_")

    def test_keeps_given_id(self):
        assert sanitize_question({"id": "abc"})["id"] == "abc"

    def test_unreadable_questions_become_errors(self):
        processed = process_questions([{"question_text": "Name it", "topic": "T"}, "garbage"])
        assert processed[0]["status"] == "pending"
        assert processed[1]["status"] == "error"

        stats = processing_stats(processed)
        assert stats["total"] == 2
        assert stats["processed"] == 1
        assert stats["errors"] == 1
        assert stats["with_topics"] == 1


class TestValidation:

    def test_valid_question(self):
        question = {"question_text": "Name a metal", "question_number": "1", "marks": 1, "topic": "Metals"}
        assert validate_question(question) == []

    def test_all_errors(self):
        errors = validate_question({"answer_format": "mcq", "marks": 0})
        assert errors == [
            "Question text is required",
            "Question number is required",
            "Marks must be greater than 0",
            "Topic is required",
            "MCQ questions must have options",
        ]

    def test_validate_questions_indexes_by_id(self):
        questions = [
            {"id": "q1", "question_text": "A", "question_number": "1", "marks": 1, "topic": "T"},
            {"id": "q2", "question_text": "", "question_number": "2", "marks": 1, "topic": "T"},
        ]
        errors, invalid = validate_questions(questions)
        assert invalid == 1
        assert errors == {"q2": ["Question text is required"]}
