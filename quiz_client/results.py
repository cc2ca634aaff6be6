"""
Build Result objects from the grading backend's payloads.

Two shapes reach the client:

- the submit response: ``{"attempt": {...}, "results": {...} | None}``
  where ``results.answers`` carries no question ids;
- the results endpoint: ``{"attempt", "quiz", "summary", "answers"}``.

Pass/fail and scores always come from the server.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from quiz_client.logger import setup_logger
from quiz_client.models import Assessment, QuestionResult, Result

logger = setup_logger(__name__)


def compose_result(
    payload: Dict[str, Any],
    assessment: Optional[Assessment] = None,
    attempt_id: Optional[str] = None,
) -> Result:
    """
    Turn a submit or results payload into a Result.

    Args:
        payload: ``data`` of either grading endpoint.
        assessment: The assessment taken, used to fill question ids and
            point values the submit response leaves out.
        attempt_id: Fallback id when the payload omits it.
    """
    attempt = payload.get("attempt") or {}
    results = payload.get("results")
    summary = payload.get("summary") or results or {}

    if results is not None:
        raw_answers = results.get("answers")
    else:
        raw_answers = payload.get("answers")

    breakdown = _breakdown(raw_answers or [], assessment)

    result = Result(
        attempt_id=str(attempt.get("_id") or attempt_id or ""),
        score=_first(attempt.get("score"), summary.get("score"), summary.get("pointsEarned"), 0),
        percentage=_first(attempt.get("percentage"), summary.get("percentage"), 0),
        passed=bool(_first(attempt.get("isPassed"), summary.get("isPassed"), False)),
        elapsed_seconds=attempt.get("timeSpent"),
        attempt_number=attempt.get("attemptNumber"),
        submitted_at=attempt.get("submittedAt"),
        total_questions=summary.get("totalQuestions"),
        answered_questions=summary.get("answeredQuestions"),
        correct_answers=summary.get("correctAnswers"),
        total_points=_total_points(payload, assessment),
        feedback=attempt.get("feedback"),
        details_available=raw_answers is not None,
        breakdown=tuple(breakdown),
    )
    logger.info(
        f"🏁 Attempt {result.attempt_id}: {result.percentage:.0f}% "
        f"({'passed' if result.passed else 'failed'})"
    )
    return result


def _breakdown(
    raw_answers: List[Dict[str, Any]], assessment: Optional[Assessment]
) -> List[QuestionResult]:
    items = []
    for raw in raw_answers:
        item = QuestionResult.model_validate(raw)
        question = None
        if assessment is not None:
            if item.question_id:
                question = assessment.question(item.question_id)
            elif item.prompt:
                question = next(
                    (q for q in assessment.questions if q.prompt == item.prompt), None
                )
        if question is not None:
            item = item.model_copy(
                update={
                    "question_id": item.question_id or question.id,
                    "type": item.type or question.type,
                    "total_points": (
                        item.total_points if item.total_points is not None else question.points
                    ),
                }
            )
        items.append(item)
    return items


def _total_points(payload: Dict[str, Any], assessment: Optional[Assessment]) -> Optional[float]:
    quiz = payload.get("quiz") or {}
    summary = payload.get("summary") or {}
    total = _first(quiz.get("totalPoints"), summary.get("totalPoints"), None)
    if total is None and assessment is not None:
        total = assessment.total_points
        if total is None:
            total = sum(q.points for q in assessment.questions)
    return total


def _first(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None
