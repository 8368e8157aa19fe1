"""
Typed documents exchanged between the grading core and its stores.

Stored documents may come from older schema revisions: camelCase keys, missing
counters, ``null`` lists. Every model therefore normalizes its input in a
``mode="before"`` validator so that reading a record never raises on a missing
field; absent numbers become 0 and absent lists become empty.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator, model_validator

from casegrader.utils.split_fields import split_codes

# Canonical order; gradable-field counting and reports follow it.
CASE_FIELDS: tuple[str, ...] = (
    "subject_name",
    "age_or_dob",
    "icd_codes",
    "cpt_codes",
    "pcs_codes",
    "hcpcs_codes",
    "drg_value",
    "modifiers",
    "notes",
    "adx",
)
LIST_FIELDS = frozenset({"icd_codes", "cpt_codes", "pcs_codes", "hcpcs_codes", "modifiers"})
SCALAR_FIELDS = tuple(name for name in CASE_FIELDS if name not in LIST_FIELDS)

_LEGACY_CASE_KEYS = {
    "patientName": "subject_name",
    "ageOrDob": "age_or_dob",
    "icdCodes": "icd_codes",
    "cptCodes": "cpt_codes",
    "pcsCodes": "pcs_codes",
    "hcpcsCodes": "hcpcs_codes",
    "drgValue": "drg_value",
}


def percent(correct: int, wrong: int) -> int:
    """Return ``round(correct / (correct + wrong) * 100)`` rounding halves up, or 0."""

    denominator = correct + wrong
    if denominator <= 0:
        return 0
    return int(math.floor(correct / denominator * 100 + 0.5))


def round_half_up(value: float, digits: int = 2) -> float:
    scale = 10**digits
    return math.floor(value * scale + 0.5) / scale


def _as_int(value: Any) -> int:
    if value is None or isinstance(value, bool):
        return 0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(number):
        return 0
    return int(math.floor(number + 0.5))


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _rename(data: Dict[str, Any], mapping: Dict[str, str]) -> Dict[str, Any]:
    payload: Dict[str, Any] = {}
    for key, value in data.items():
        target = mapping.get(key, key)
        # Prefer an explicit snake_case key over its legacy spelling.
        if target in payload and key != target:
            continue
        payload[target] = value
    return payload


def _id_text(value: Any) -> Any:
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, dict) and "$oid" in value:
        return str(value["$oid"])
    return str(value)


class GradingMode(str, Enum):
    """Which definitions an assignment grades against."""

    PARENT = "parent"
    SUB_ASSIGNMENTS = "sub_assignments"


class KeyMode(str, Enum):
    """How a single part was (or will be) graded."""

    QUESTIONS = "questions"
    FIELDS = "fields"
    NONE = "none"


class CaseFields(BaseModel):
    """The fixed case record shape shared by answer keys and submitted values."""

    model_config = ConfigDict(extra="ignore")

    subject_name: Optional[str] = None
    age_or_dob: Optional[str] = None
    icd_codes: List[str] = Field(default_factory=list)
    cpt_codes: List[str] = Field(default_factory=list)
    pcs_codes: List[str] = Field(default_factory=list)
    hcpcs_codes: List[str] = Field(default_factory=list)
    drg_value: Optional[str] = None
    modifiers: List[str] = Field(default_factory=list)
    notes: Optional[str] = None
    adx: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def coerce_legacy_format(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        payload = _rename(data, _LEGACY_CASE_KEYS)
        for name in LIST_FIELDS:
            if name in payload:
                try:
                    payload[name] = split_codes(payload[name])
                except ValueError as exc:
                    raise ValueError(f"{name}: {exc}") from exc
        for name in SCALAR_FIELDS:
            value = payload.get(name)
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                payload[name] = str(value)
            elif value is not None and not isinstance(value, str):
                raise ValueError(f"{name}: expected text, got {type(value).__name__}")
        return payload

    def value_of(self, name: str) -> Any:
        return getattr(self, name)


class StructuredKey(CaseFields):
    """Authoritative case record compared field by field."""


class DynamicQuestion(BaseModel):
    """A free-form or multiple-choice question with its expected answer."""

    model_config = ConfigDict(extra="ignore")

    question_text: str = ""
    options: List[str] = Field(default_factory=list)
    answer: str = ""
    item_type: str = "dynamic"

    @model_validator(mode="before")
    @classmethod
    def coerce_legacy_format(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        payload = _rename(data, {"questionText": "question_text", "type": "item_type"})
        for key in ("question_text", "answer"):
            if payload.get(key) is None:
                payload[key] = ""
            elif not isinstance(payload[key], str):
                payload[key] = str(payload[key])
        if not payload.get("item_type"):
            payload["item_type"] = "dynamic"
        payload["options"] = [str(item) for item in (payload.get("options") or []) if item is not None]
        return payload


class AnswerDefinition(BaseModel):
    """Grading target for one part: dynamic questions and/or a structured key."""

    model_config = ConfigDict(extra="ignore")

    questions: List[DynamicQuestion] = Field(default_factory=list)
    key: StructuredKey = Field(default_factory=StructuredKey)

    @model_validator(mode="before")
    @classmethod
    def coerce_legacy_format(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        payload = _rename(data, {"dynamicQuestions": "questions", "answerKey": "key", "answer_key": "key"})
        if payload.get("questions") is None:
            payload["questions"] = []
        if payload.get("key") is None:
            payload["key"] = {}
        return payload


def _split_definition(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Fold legacy top-level ``answerKey``/``dynamicQuestions`` into ``definition``."""

    if payload.get("definition") is None:
        payload["definition"] = {
            "questions": payload.pop("dynamicQuestions", None) or payload.pop("questions", None) or [],
            "key": payload.pop("answerKey", None) or payload.pop("answer_key", None) or {},
        }
    return payload


class SubAssignment(BaseModel):
    """An independently gradable child of an assignment."""

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str = ""
    definition: AnswerDefinition = Field(default_factory=AnswerDefinition)
    attachment: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def coerce_legacy_format(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        payload = _rename(data, {"_id": "id", "subModuleName": "name", "assignmentPdf": "attachment"})
        payload["id"] = _id_text(payload.get("id"))
        if payload.get("name") is None:
            payload["name"] = ""
        return _split_definition(payload)


class Assignment(BaseModel):
    """A top-level module, answered directly or through its sub-assignments."""

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str = ""
    category: str = ""
    attachment: Optional[str] = None
    time_limit_minutes: Optional[int] = Field(default=None, ge=1)
    window_start: Optional[datetime] = None
    window_end: Optional[datetime] = None
    assigned_at: Optional[datetime] = None
    definition: AnswerDefinition = Field(default_factory=AnswerDefinition)
    sub_assignments: List[SubAssignment] = Field(default_factory=list)

    _grading_mode: GradingMode = PrivateAttr(default=GradingMode.PARENT)

    @model_validator(mode="before")
    @classmethod
    def coerce_legacy_format(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        payload = _rename(
            data,
            {
                "_id": "id",
                "moduleName": "name",
                "assignmentPdf": "attachment",
                "timeLimitMinutes": "time_limit_minutes",
                "windowStart": "window_start",
                "windowEnd": "window_end",
                "assignedDate": "assigned_at",
                "subAssignments": "sub_assignments",
            },
        )
        payload["id"] = _id_text(payload.get("id"))
        if payload.get("name") is None:
            payload["name"] = ""
        if payload.get("sub_assignments") is None:
            payload["sub_assignments"] = []
        return _split_definition(payload)

    @field_validator("category", mode="before")
    @classmethod
    def upper_trim_category(cls, value: Any) -> str:
        return normalize_category(value)

    @field_validator("window_start", "window_end", "assigned_at")
    @classmethod
    def ensure_timezone(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)

    def model_post_init(self, __context: Any) -> None:
        self._grading_mode = GradingMode.SUB_ASSIGNMENTS if self.sub_assignments else GradingMode.PARENT

    @property
    def grading_mode(self) -> GradingMode:
        return self._grading_mode

    @property
    def sub_ids(self) -> List[str]:
        return [sub.id for sub in self.sub_assignments]

    def find_sub(self, sub_id: Optional[str]) -> Optional[SubAssignment]:
        if not sub_id:
            return None
        for sub in self.sub_assignments:
            if sub.id == sub_id:
                return sub
        return None


def normalize_category(value: Any) -> str:
    """Uppercase-trim a category label for grouping."""

    return ("" if value is None else str(value)).strip().upper()


class SubmittedAnswer(BaseModel):
    """A student's answer to one dynamic question, keyed by question text."""

    model_config = ConfigDict(extra="ignore")

    question_text: str = ""
    answer: str = ""

    @model_validator(mode="before")
    @classmethod
    def coerce_legacy_format(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            raise ValueError(f"answer entries must be mappings, got {type(data).__name__}")
        payload = _rename(data, {"questionText": "question_text", "submittedAnswer": "answer", "submitted_answer": "answer"})
        for key in ("question_text", "answer"):
            if payload.get(key) is None:
                payload[key] = ""
            elif not isinstance(payload[key], str):
                payload[key] = str(payload[key])
        return payload


def _case_values(payload: Dict[str, Any]) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for key in list(payload):
        name = _LEGACY_CASE_KEYS.get(key, key)
        if name in CASE_FIELDS:
            values[key] = payload.pop(key)
    return values


class SubmittedPart(BaseModel):
    """One part of an incoming payload: the parent (``part_id=None``) or one sub-assignment."""

    model_config = ConfigDict(extra="ignore")

    part_id: Optional[str] = None
    values: CaseFields = Field(default_factory=CaseFields)
    answers: List[SubmittedAnswer] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def coerce_flat_payload(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            raise ValueError(f"each part must be a mapping, got {type(data).__name__}")
        payload = _rename(
            dict(data),
            {
                "subAssignmentId": "part_id",
                "sub_assignment_id": "part_id",
                "dynamicQuestions": "answers",
                "dynamic_questions": "answers",
            },
        )
        payload["part_id"] = _id_text(payload.get("part_id")) or None
        if "values" not in payload:
            payload["values"] = _case_values(payload)
        answers = payload.get("answers")
        if answers is None:
            payload["answers"] = []
        elif not isinstance(answers, list):
            raise ValueError(f"answers must be a list, got {type(answers).__name__}")
        return payload


class QuestionResult(BaseModel):
    """Graded breakdown entry for one dynamic question."""

    model_config = ConfigDict(extra="ignore")

    question_text: str = ""
    item_type: str = "dynamic"
    options: List[str] = Field(default_factory=list)
    expected_answer: str = ""
    submitted_answer: str = ""
    is_correct: bool = False

    @model_validator(mode="before")
    @classmethod
    def coerce_legacy_format(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        payload = _rename(
            data,
            {
                "questionText": "question_text",
                "type": "item_type",
                "correctAnswer": "expected_answer",
                "submittedAnswer": "submitted_answer",
                "isCorrect": "is_correct",
            },
        )
        for key in ("question_text", "expected_answer", "submitted_answer"):
            if payload.get(key) is None:
                payload[key] = ""
        if not payload.get("item_type"):
            payload["item_type"] = "dynamic"
        if payload.get("options") is None:
            payload["options"] = []
        payload["is_correct"] = bool(payload.get("is_correct"))
        return payload


class PartResult(BaseModel):
    """Graded outcome for one part of one submission."""

    model_config = ConfigDict(extra="ignore")

    part_id: Optional[str] = None
    mode: KeyMode = KeyMode.NONE
    values: CaseFields = Field(default_factory=CaseFields)
    answers: List[SubmittedAnswer] = Field(default_factory=list)
    questions: List[QuestionResult] = Field(default_factory=list)
    field_results: Dict[str, bool] = Field(default_factory=dict)
    correct: int = 0
    wrong: int = 0
    progress: int = 0

    @model_validator(mode="before")
    @classmethod
    def coerce_legacy_format(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        payload = _rename(
            dict(data),
            {
                "subAssignmentId": "part_id",
                "dynamicQuestions": "questions",
                "correctCount": "correct",
                "wrongCount": "wrong",
                "progressPercent": "progress",
            },
        )
        payload["part_id"] = _id_text(payload.get("part_id")) or None
        if "values" not in payload:
            payload["values"] = _case_values(payload)
        for key in ("correct", "wrong", "progress"):
            payload[key] = _as_int(payload.get(key))
        for key in ("questions", "answers"):
            if not isinstance(payload.get(key), list):
                payload[key] = []
        if not isinstance(payload.get("field_results"), dict):
            payload["field_results"] = {}
        if not payload["answers"] and payload["questions"]:
            payload["answers"] = [
                {
                    "question_text": entry.get("question_text", entry.get("questionText")),
                    "answer": entry.get("submitted_answer", entry.get("submittedAnswer")),
                }
                for entry in payload["questions"]
                if isinstance(entry, dict)
            ]
        if not payload.get("mode"):
            if payload["questions"]:
                payload["mode"] = KeyMode.QUESTIONS
            elif payload["correct"] + payload["wrong"] > 0:
                payload["mode"] = KeyMode.FIELDS
            else:
                payload["mode"] = KeyMode.NONE
        return payload

    @property
    def graded_items(self) -> int:
        return self.correct + self.wrong


class Submission(BaseModel):
    """One student's graded work on one assignment."""

    model_config = ConfigDict(extra="ignore")

    student_id: str = ""
    assignment_id: str = ""
    parts: List[PartResult] = Field(default_factory=list)
    total_correct: int = 0
    total_wrong: int = 0
    overall_progress: int = 0
    submitted_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    must_submit_by: Optional[datetime] = None

    @model_validator(mode="before")
    @classmethod
    def coerce_legacy_format(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        payload = _rename(
            data,
            {
                "studentId": "student_id",
                "assignmentId": "assignment_id",
                "submittedAnswers": "parts",
                "totalCorrect": "total_correct",
                "totalWrong": "total_wrong",
                "overallProgress": "overall_progress",
                "submissionDate": "submitted_at",
                "startedAt": "started_at",
                "mustSubmitBy": "must_submit_by",
            },
        )
        for key in ("student_id", "assignment_id"):
            payload[key] = _id_text(payload.get(key)) or ""
        parts = payload.get("parts")
        payload["parts"] = [part for part in parts if isinstance(part, (dict, PartResult))] if isinstance(parts, list) else []
        for key in ("total_correct", "total_wrong", "overall_progress"):
            payload[key] = _as_int(payload.get(key))
        return payload

    @field_validator("submitted_at", "started_at", "must_submit_by")
    @classmethod
    def ensure_timezone(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)

    def find_part(self, part_id: Optional[str]) -> Optional[PartResult]:
        for part in self.parts:
            if part.part_id == part_id:
                return part
        return None

    def put_part(self, result: PartResult) -> None:
        """Replace the stored result for ``result.part_id`` or append a new one."""

        for index, part in enumerate(self.parts):
            if part.part_id == result.part_id:
                self.parts[index] = result
                return
        self.parts.append(result)

    def recompute_totals(self) -> None:
        self.total_correct = sum(part.correct for part in self.parts)
        self.total_wrong = sum(part.wrong for part in self.parts)
        self.overall_progress = percent(self.total_correct, self.total_wrong)

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class CategoryStats(BaseModel):
    """Per-student completion summary for one category."""

    category: str
    total_assigned: int = 0
    completed: int = 0
    pending: int = 0
    average_score: float = 0.0


__all__ = [
    "AnswerDefinition",
    "Assignment",
    "CASE_FIELDS",
    "CaseFields",
    "CategoryStats",
    "DynamicQuestion",
    "GradingMode",
    "KeyMode",
    "LIST_FIELDS",
    "PartResult",
    "QuestionResult",
    "SCALAR_FIELDS",
    "StructuredKey",
    "SubAssignment",
    "Submission",
    "SubmittedAnswer",
    "SubmittedPart",
    "normalize_category",
    "percent",
    "round_half_up",
]
