"""
Question normalization for the past paper import.

Raw questions come straight out of the uploaded JSON document and are loosely
shaped. Everything here is a pure function over dictionaries so that the
papers router and the tests can share it.
"""
import logging
import re
import time
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Tuple

logger = logging.getLogger(__name__)

# Integers outside this range do not survive a JSON round trip in browsers
MAX_SAFE_INTEGER = 2 ** 53 - 1

FIGURE_KEYWORDS = ["diagram", "figure", "graph", "chart", "illustration", "shown", "image"]

COMPLEX_ANSWER_FORMATS = ["calculation", "equation", "chemical_structure", "diagram", "table", "graph"]


def normalize_text(value: Any) -> str:
    """Collapse whitespace and lower-case, for comparisons."""
    if value is None:
        return ""
    return re.sub(r"\s+", " ", str(value).strip()).lower()


def ensure_array(value: Any) -> List[Any]:
    if isinstance(value, list):
        return value
    if value is None:
        return []
    return [value]


def ensure_string(value: Any) -> str:
    if isinstance(value, str):
        return value
    if value is None:
        return ""
    return str(value)


def parse_int(value: Any) -> int:
    """Leading integer of a value, 0 when there is none."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    match = re.match(r"\s*([-+]?\d+)", ensure_string(value))
    return int(match.group(1)) if match else 0


def sanitize_question_for_storage(question: Any) -> Any:
    """Make a question JSON safe: dates to ISO strings, huge ints to strings, None keys dropped."""
    if isinstance(question, bool):
        return question
    if isinstance(question, int):
        return str(question) if abs(question) > MAX_SAFE_INTEGER else question
    if isinstance(question, Decimal):
        return float(question)
    if isinstance(question, (datetime, date)):
        return question.isoformat()
    if isinstance(question, (list, tuple)):
        return [sanitize_question_for_storage(item) for item in question]
    if isinstance(question, dict):
        return {
            str(key): sanitize_question_for_storage(value)
            for key, value in question.items()
            if value is not None
        }
    return question


def requires_figure(question: Dict[str, Any]) -> bool:
    if question.get("figure_required") is True:
        return True
    if question.get("figure") is True:
        return True

    text = ensure_string(question.get("question_text") or question.get("text") or "").lower()
    return any(keyword in text for keyword in FIGURE_KEYWORDS)


def detect_answer_format(question: Dict[str, Any]) -> str:
    """
    Work out how a question should be answered.

    Priority order:
        1. explicit answer_format from the document
        2. a non-empty options list (MCQ)
        3. question type indicators
        4. cues in the question text, defaulting to single_line
    """
    answer_format = question.get("answer_format")
    if answer_format and answer_format != "undefined":
        return answer_format

    options = question.get("options")
    if isinstance(options, list) and len(options) > 0:
        return "mcq"

    if question.get("question_type") == "mcq" or question.get("type") == "multiple_choice":
        return "mcq"

    text = ensure_string(question.get("question_text") or question.get("question_description") or "").lower()

    if "calculate" in text or "work out" in text:
        return "calculation"
    if "draw" in text or "sketch" in text:
        return "diagram"
    if "table" in text:
        return "table_completion"
    if "graph" in text or "plot" in text:
        return "graph"
    if "explain" in text or "describe" in text:
        return "multi_line"
    if "state" in text or "name" in text or "give" in text:
        return "single_line"

    return "single_line"


def default_answer_requirement(question: Dict[str, Any], answer_format: str) -> str:
    correct_answers = question.get("correct_answers")
    if isinstance(correct_answers, list) and correct_answers:
        if len(correct_answers) == 1:
            return "Single correct answer required"
        return f"Accept any valid answer from {len(correct_answers)} alternatives"
    if answer_format == "multi_line":
        return "Detailed explanation required"
    if answer_format == "calculation":
        return "Show working and final answer"
    return "Provide a clear and accurate answer"


def generate_question_id() -> str:
    return f"q_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"


def sanitize_question(question: Dict[str, Any]) -> Dict[str, Any]:
    """Map one raw question onto the processed question shape."""
    answer_format = detect_answer_format(question)

    answer_requirement = question.get("answer_requirement")
    if not answer_requirement or answer_requirement == "undefined":
        answer_requirement = default_answer_requirement(question, answer_format)

    return {
        "id": question.get("id") or generate_question_id(),
        "question_number": ensure_string(question.get("question_number") or question.get("number")),
        "question_text": ensure_string(question.get("question_text") or question.get("text")),
        "question_type": ensure_string(question.get("question_type") or question.get("type") or "standard"),
        "marks": parse_int(question.get("marks")),
        "unit": ensure_string(question.get("unit") or question.get("chapter") or ""),
        "unit_id": question.get("unit_id") or None,
        "topic": ensure_string(question.get("topic") or ""),
        "topic_id": question.get("topic_id") or None,
        "subtopic": ensure_string(question.get("subtopic") or ""),
        "subtopic_id": question.get("subtopic_id") or None,
        "difficulty": ensure_string(question.get("difficulty") or "medium"),
        "status": question.get("status") or "pending",
        "figure": requires_figure(question),
        "figure_required": question.get("figure_required") or False,
        "attachments": ensure_array(question.get("attachments")),
        "hint": question.get("hint"),
        "explanation": question.get("explanation"),
        "answer_format": answer_format,
        "answer_requirement": answer_requirement,
        "total_alternatives": question.get("total_alternatives"),
        "parts": ensure_array(question.get("parts")),
        "correct_answers": ensure_array(question.get("correct_answers")),
        "options": ensure_array(question.get("options")),
        "mcq_type": question.get("mcq_type"),
        "original_topics": ensure_array(question.get("topics") or question.get("topic")),
        "original_subtopics": ensure_array(question.get("subtopics") or question.get("subtopic")),
        "original_unit": question.get("unit") or question.get("chapter"),
        "simulation_flags": ensure_array(question.get("simulation_flags")),
        "simulation_notes": question.get("simulation_notes"),
    }


def validate_question(question: Dict[str, Any]) -> List[str]:
    errors = []

    if not ensure_string(question.get("question_text")).strip():
        errors.append("Question text is required")

    if not ensure_string(question.get("question_number")).strip():
        errors.append("Question number is required")

    if parse_int(question.get("marks")) <= 0:
        errors.append("Marks must be greater than 0")

    if not ensure_string(question.get("topic")).strip():
        errors.append("Topic is required")

    if question.get("answer_format") == "mcq" and not question.get("options"):
        errors.append("MCQ questions must have options")

    return errors


def _error_question(raw: Any) -> Dict[str, Any]:
    number = raw.get("question_number") if isinstance(raw, dict) else None
    return {
        "id": (raw.get("id") if isinstance(raw, dict) else None) or generate_question_id(),
        "question_number": ensure_string(number),
        "question_text": "",
        "question_type": "standard",
        "marks": 0,
        "topic": "",
        "subtopic": "",
        "unit": "",
        "status": "error",
        "figure": False,
        "attachments": [],
        "parts": [],
        "correct_answers": [],
        "options": [],
        "simulation_flags": [],
    }


def process_questions(raw_questions: List[Any]) -> List[Dict[str, Any]]:
    """Sanitize every raw question. Questions that cannot be read come back with status "error"."""
    processed = []
    for raw in raw_questions:
        try:
            if not isinstance(raw, dict):
                raise TypeError(f"expected an object, got {type(raw).__name__}")
            processed.append(sanitize_question(raw))
        except (TypeError, ValueError, AttributeError) as e:
            number = raw.get("question_number") if isinstance(raw, dict) else None
            logger.warning(f"Error processing question {number or 'Unknown'}: {str(e)}")
            processed.append(_error_question(raw))
    return processed


def processing_stats(questions: List[Dict[str, Any]]) -> Dict[str, int]:
    return {
        "total": len(questions),
        "processed": len([q for q in questions if q.get("status") != "error"]),
        "with_topics": len([q for q in questions if q.get("topic")]),
        "with_subtopics": len([q for q in questions if q.get("subtopic")]),
        "with_units": len([q for q in questions if q.get("unit")]),
        "errors": len([q for q in questions if q.get("status") == "error"]),
    }


def validate_questions(questions: List[Dict[str, Any]]) -> Tuple[Dict[str, List[str]], int]:
    """Validation errors per question id, plus the number of invalid questions."""
    errors = {}
    for question in questions:
        question_errors = validate_question(question)
        if question_errors:
            errors[str(question.get("id"))] = question_errors
    return errors, len(errors)
