"""Grade one submitted part against its resolved answer definition."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from casegrader.core.models import (
    LIST_FIELDS,
    AnswerDefinition,
    KeyMode,
    PartResult,
    QuestionResult,
    SubmittedAnswer,
    SubmittedPart,
    percent,
)

from .answer_key import ResolvedKey, resolve_key
from .normalize import set_equals, text_equals

LOGGER = logging.getLogger(__name__)


def _find_answer(answers: List[SubmittedAnswer], question_text: str) -> str:
    # Question text is the join key; answer order in the payload is irrelevant.
    for answer in answers:
        if text_equals(answer.question_text, question_text):
            return answer.answer
    return ""


def _grade_questions(resolved: ResolvedKey, submitted: SubmittedPart) -> List[QuestionResult]:
    breakdown: List[QuestionResult] = []
    for question in resolved.questions:
        submitted_answer = _find_answer(submitted.answers, question.question_text)
        breakdown.append(
            QuestionResult(
                question_text=question.question_text,
                item_type=question.item_type,
                options=list(question.options),
                expected_answer=question.answer,
                submitted_answer=submitted_answer,
                is_correct=text_equals(question.answer, submitted_answer),
            )
        )
    return breakdown


def _grade_fields(resolved: ResolvedKey, definition: AnswerDefinition, submitted: SubmittedPart) -> Dict[str, bool]:
    results: Dict[str, bool] = {}
    for name in resolved.fields:
        expected = definition.key.value_of(name)
        given = submitted.values.value_of(name)
        if name in LIST_FIELDS:
            results[name] = set_equals(expected, given)
        else:
            results[name] = text_equals(expected, given)
    return results


def grade_part(definition: Optional[AnswerDefinition], submitted: SubmittedPart) -> PartResult:
    """Return a fresh ``PartResult`` for ``submitted``; inputs are never modified.

    The denominator is exactly the number of gradable items the definition
    resolves to. A definition with nothing gradable yields ``0/0`` and 0%.
    """

    resolved = resolve_key(definition)
    questions: List[QuestionResult] = []
    field_results: Dict[str, bool] = {}

    if resolved.mode is KeyMode.QUESTIONS:
        questions = _grade_questions(resolved, submitted)
        correct = sum(1 for entry in questions if entry.is_correct)
    elif resolved.mode is KeyMode.FIELDS:
        field_results = _grade_fields(resolved, definition, submitted)
        correct = sum(1 for ok in field_results.values() if ok)
    else:
        correct = 0

    wrong = resolved.item_count - correct
    result = PartResult(
        part_id=submitted.part_id,
        mode=resolved.mode,
        values=submitted.values.model_copy(deep=True),
        answers=[answer.model_copy() for answer in submitted.answers],
        questions=questions,
        field_results=field_results,
        correct=correct,
        wrong=wrong,
        progress=percent(correct, wrong),
    )
    LOGGER.debug(
        "Graded part %s via %s: %s correct, %s wrong",
        submitted.part_id or "parent",
        resolved.mode.value,
        correct,
        wrong,
    )
    return result


__all__ = ["grade_part"]
