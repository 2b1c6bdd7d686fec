import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from edu_admin.services.attachments import count_attachments, generate_attachment_key
from edu_admin.services.question_processing import COMPLEX_ANSWER_FORMATS, parse_int

logger = logging.getLogger(__name__)

MARKING_CRITERIA_FORMATS = ["calculation", "equation", "chemical_structure", "diagram"]
MAX_QUESTIONS_WITHOUT_SIMULATION = 20
SLOW_QUESTION_SECONDS = 300
HIGH_MARKS_THRESHOLD = 5
HIGH_AVERAGE_MARKS = 10


def _answers(item: Dict[str, Any]) -> List[Dict[str, Any]]:
    return [ans for ans in (item.get("correct_answers") or []) if isinstance(ans, dict)]


def _parts(question: Dict[str, Any]) -> List[Dict[str, Any]]:
    return [part for part in (question.get("parts") or []) if isinstance(part, dict)]


def _any_answer_has(question: Dict[str, Any], field: str) -> bool:
    if any(ans.get(field) for ans in _answers(question)):
        return True
    return any(ans.get(field) for part in _parts(question) for ans in _answers(part))


def is_simulation_required(questions: List[Dict[str, Any]]) -> bool:
    """A paper needs a student simulation before import when any question is complex."""
    if not questions:
        return False

    has_complex_questions = any(
        len(_parts(q)) > 0
        or q.get("answer_format") in COMPLEX_ANSWER_FORMATS
        or q.get("answer_requirement") is not None
        for q in questions
    )

    has_dynamic_answers = any(
        q.get("answer_requirement") or any(p.get("answer_requirement") for p in _parts(q))
        for q in questions
    )

    has_complex_dynamic_fields = any(
        any(ans.get("linked_alternatives") for ans in _answers(q))
        or _any_answer_has(q, "error_carried_forward")
        or _any_answer_has(q, "context")
        for q in questions
    )

    return (
        has_complex_questions
        or has_dynamic_answers
        or has_complex_dynamic_fields
        or len(questions) > MAX_QUESTIONS_WITHOUT_SIMULATION
    )


def collect_dynamic_field_issues(
    questions: List[Dict[str, Any]],
    attachments: Dict[str, List[Dict[str, Any]]],
) -> List[Dict[str, Any]]:
    issues = []

    for q in questions:
        question_id = q.get("id")

        if q.get("answer_requirement") and not _answers(q):
            issues.append({
                "question_id": question_id,
                "type": "warning",
                "message": f'Dynamic answer requirement "{q["answer_requirement"]}" but no correct answers provided',
            })

        if q.get("answer_format") in MARKING_CRITERIA_FORMATS:
            if not any(ans.get("marking_criteria") or ans.get("context") for ans in _answers(q)):
                issues.append({
                    "question_id": question_id,
                    "type": "info",
                    "message": f'Complex answer format "{q["answer_format"]}" may benefit from marking criteria',
                })

        marks = parse_int(q.get("marks"))
        if marks >= HIGH_MARKS_THRESHOLD and not q.get("hint"):
            issues.append({
                "question_id": question_id,
                "type": "info",
                "message": f"High-mark question ({marks} marks) could benefit from a hint",
            })

        if q.get("figure") and not attachments.get(str(question_id)):
            issues.append({
                "question_id": question_id,
                "type": "warning",
                "message": "Question requires figure but no attachment provided",
            })

        for part_index, part in enumerate(_parts(q)):
            part_key = generate_attachment_key(question_id, part_index)
            label = part.get("part", part_index)

            if part.get("answer_requirement") and not _answers(part):
                issues.append({
                    "question_id": question_id,
                    "type": "warning",
                    "message": f'Part {label}: Dynamic requirement "{part["answer_requirement"]}" needs correct answers',
                })

            if part.get("figure") and not attachments.get(part_key):
                issues.append({
                    "question_id": question_id,
                    "type": "warning",
                    "message": f"Part {label}: Requires figure but no attachment provided",
                })

    return issues


def _result_issues(result: Dict[str, Any], questions: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Issues derived from the answers and timings the simulation reported."""
    issues = []

    for validation in result.get("validation_results") or []:
        if not validation.get("is_correct") and (validation.get("partial_credit") or 0) < 1:
            issues.append({
                "question_id": validation.get("question_id"),
                "type": "error",
                "message": f"Validation failed: {validation.get('message') or 'Answer validation issue'}",
            })

    known_ids = {str(q.get("id")) for q in questions}
    for question_id, seconds in (result.get("question_times") or {}).items():
        if str(question_id) in known_ids and seconds > SLOW_QUESTION_SECONDS:
            issues.append({
                "question_id": question_id,
                "type": "info",
                "message": f"Question took {round(seconds / 60)} minutes - may be too complex",
            })

    return issues


def build_recommendations(
    questions: List[Dict[str, Any]],
    dynamic_issues: List[Dict[str, Any]],
    total_marks: Optional[float],
) -> List[str]:
    recommendations = []

    if dynamic_issues:
        recommendations.append(
            "Review dynamic answer requirements and ensure all have appropriate correct answers configured"
        )

    if any(q.get("answer_format") in COMPLEX_ANSWER_FORMATS for q in questions):
        recommendations.append(
            "Consider adding detailed marking criteria for questions with complex answer formats"
        )

    missing_attachments = len([i for i in dynamic_issues if "figure but no attachment" in i["message"]])
    if missing_attachments > 0:
        recommendations.append(
            f"Upload PDF and add {missing_attachments} missing figure attachment(s) using the snipping tool"
        )

    if total_marks and questions and total_marks / len(questions) > HIGH_AVERAGE_MARKS:
        recommendations.append(
            "Consider breaking down high-mark questions into smaller parts for better assessment"
        )

    return recommendations


def flag_questions(
    questions: List[Dict[str, Any]],
    flagged_ids: List[Any],
    issues: List[Dict[str, Any]],
) -> List[Dict[str, Any]]:
    """Copy of the questions with simulation_flags / simulation_notes set on the flagged ones."""
    flagged = {str(question_id) for question_id in flagged_ids}
    updated = []
    for q in questions:
        question_id = str(q.get("id"))
        messages = [i.get("message") or "" for i in issues if str(i.get("question_id")) == question_id]
        if question_id in flagged or messages:
            q = dict(q, simulation_flags=["flagged"], simulation_notes="; ".join(messages))
        updated.append(q)
    return updated


def build_validation_metadata(
    questions: List[Dict[str, Any]],
    attachments: Dict[str, List[Dict[str, Any]]],
    issues: List[Dict[str, Any]],
) -> Dict[str, Any]:
    return {
        "total_issues": len(issues),
        "error_count": len([i for i in issues if i.get("type") == "error"]),
        "warning_count": len([i for i in issues if i.get("type") == "warning"]),
        "info_count": len([i for i in issues if i.get("type") == "info"]),
        "has_dynamic_fields": any(q.get("answer_requirement") or q.get("answer_format") for q in questions),
        "has_attachments": count_attachments(attachments) > 0,
        "question_types": {
            "mcq": len([q for q in questions if q.get("question_type") == "mcq"]),
            "descriptive": len([q for q in questions if q.get("question_type") == "descriptive"]),
            "tf": len([q for q in questions if q.get("question_type") == "tf"]),
        },
    }


def complete_simulation(
    questions: List[Dict[str, Any]],
    attachments: Dict[str, List[Dict[str, Any]]],
    result: Dict[str, Any],
    total_marks: Optional[float] = None,
) -> Dict[str, Any]:
    """
    Merge a client simulation result with the server-side dynamic field checks.

    Args:
        questions: Processed questions of the session
        attachments: Session attachments by attachment key
        result: What the simulation reported (flagged_questions, issues,
            recommendations, score, time_elapsed, validation_results, question_times)
        total_marks: Paper total, used for the marks-per-question balance check

    Returns:
        Dict with the stored ``simulation_results``, the ``validation_metadata``
        and the flagged ``questions``
    """
    dynamic_issues = collect_dynamic_field_issues(questions, attachments)
    dynamic_issues.extend(_result_issues(result, questions))

    issues = list(result.get("issues") or []) + dynamic_issues
    recommendations = list(result.get("recommendations") or [])
    recommendations.extend(build_recommendations(questions, dynamic_issues, total_marks))

    simulation_results = {
        "completed": True,
        "completed_at": datetime.now(timezone.utc).isoformat(),
        "flagged_questions": list(result.get("flagged_questions") or []),
        "issues": issues,
        "recommendations": recommendations,
        "overall_score": result.get("score"),
        "time_spent": result.get("time_elapsed"),
    }

    if simulation_results["flagged_questions"] or dynamic_issues:
        questions = flag_questions(questions, simulation_results["flagged_questions"], issues)

    logger.info(
        f"Simulation completed: {len(issues)} issues, "
        f"{len(simulation_results['flagged_questions'])} flagged questions"
    )

    return {
        "simulation_results": simulation_results,
        "validation_metadata": build_validation_metadata(questions, attachments, issues),
        "questions": questions,
    }
