"""Decide what, if anything, a part definition can be graded against."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from casegrader.core.models import CASE_FIELDS, AnswerDefinition, DynamicQuestion, KeyMode

from .normalize import has_content


@dataclass(frozen=True)
class ResolvedKey:
    """Outcome of resolving one definition: the mode plus the gradable items."""

    mode: KeyMode
    questions: List[DynamicQuestion] = field(default_factory=list)
    fields: List[str] = field(default_factory=list)

    @property
    def item_count(self) -> int:
        if self.mode is KeyMode.QUESTIONS:
            return len(self.questions)
        if self.mode is KeyMode.FIELDS:
            return len(self.fields)
        return 0


def _is_valid_question(question: DynamicQuestion) -> bool:
    return has_content(question.question_text) and has_content(question.answer)


def gradable_dynamic_questions(definition: Optional[AnswerDefinition]) -> List[DynamicQuestion]:
    """Questions with both text and an expected answer, in their original order."""

    if definition is None:
        return []
    return [question for question in definition.questions if _is_valid_question(question)]


def has_dynamic_questions(definition: Optional[AnswerDefinition]) -> bool:
    return bool(gradable_dynamic_questions(definition))


def gradable_key_fields(definition: Optional[AnswerDefinition]) -> List[str]:
    """Names of the non-empty structured key fields, in canonical field order."""

    if definition is None:
        return []
    return [name for name in CASE_FIELDS if has_content(definition.key.value_of(name))]


def resolve_key(definition: Optional[AnswerDefinition]) -> ResolvedKey:
    """Dynamic questions win outright; otherwise key fields; otherwise nothing to grade."""

    questions = gradable_dynamic_questions(definition)
    if questions:
        return ResolvedKey(mode=KeyMode.QUESTIONS, questions=questions)
    fields = gradable_key_fields(definition)
    if fields:
        return ResolvedKey(mode=KeyMode.FIELDS, fields=fields)
    return ResolvedKey(mode=KeyMode.NONE)


__all__ = [
    "ResolvedKey",
    "gradable_dynamic_questions",
    "gradable_key_fields",
    "has_dynamic_questions",
    "resolve_key",
]
