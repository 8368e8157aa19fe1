from casegrader.core.models import AnswerDefinition, KeyMode
from casegrader.grading.answer_key import (
    gradable_dynamic_questions,
    gradable_key_fields,
    has_dynamic_questions,
    resolve_key,
)


def _definition(**payload) -> AnswerDefinition:
    return AnswerDefinition.model_validate(payload)


def test_blank_questions_are_not_gradable() -> None:
    definition = _definition(
        questions=[
            {"question_text": "Primary dx?", "answer": "J45.909"},
            {"question_text": "  ", "answer": "x"},
            {"question_text": "No answer", "answer": ""},
            {"question_text": "Second?", "answer": "yes"},
        ]
    )
    questions = gradable_dynamic_questions(definition)
    assert [question.question_text for question in questions] == ["Primary dx?", "Second?"]
    assert has_dynamic_questions(definition)


def test_key_fields_follow_canonical_order() -> None:
    definition = _definition(key={"notes": "n", "icd_codes": ["A01"], "subject_name": "Jane", "modifiers": [], "adx": " "})
    assert gradable_key_fields(definition) == ["subject_name", "icd_codes", "notes"]


def test_questions_win_over_key() -> None:
    definition = _definition(
        questions=[{"question_text": "Q", "answer": "A"}],
        key={"subject_name": "Jane", "icd_codes": ["A01"]},
    )
    resolved = resolve_key(definition)
    assert resolved.mode is KeyMode.QUESTIONS
    assert resolved.fields == []
    assert resolved.item_count == 1


def test_key_used_when_questions_blank() -> None:
    definition = _definition(
        questions=[{"question_text": "", "answer": ""}],
        key={"drg_value": "202"},
    )
    resolved = resolve_key(definition)
    assert resolved.mode is KeyMode.FIELDS
    assert resolved.fields == ["drg_value"]


def test_nothing_to_grade() -> None:
    assert resolve_key(None).mode is KeyMode.NONE
    assert resolve_key(_definition()).item_count == 0
    assert not has_dynamic_questions(None)
    assert gradable_key_fields(None) == []
