"""Read-only views over stored submissions: per-part summaries, status boards, rosters."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from casegrader.core.models import (
    AnswerDefinition,
    Assignment,
    CaseFields,
    DynamicQuestion,
    GradingMode,
    KeyMode,
    PartResult,
    QuestionResult,
    StructuredKey,
    Submission,
)
from casegrader.core.policy import CompletionPolicy

from .answer_key import resolve_key
from .completion import is_complete, part_coverage
from .statistics import latest_submissions

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


class PartSummary(BaseModel):
    """What the student entered next to what the key expected, for one part."""

    part_id: Optional[str] = None
    name: str = ""
    attachment: Optional[str] = None
    submitted: bool = False
    entered: Optional[CaseFields] = None
    key: StructuredKey = Field(default_factory=StructuredKey)
    questions: List[DynamicQuestion] = Field(default_factory=list)
    breakdown: List[QuestionResult] = Field(default_factory=list)
    field_results: Dict[str, bool] = Field(default_factory=dict)
    correct: int = 0
    wrong: int = 0
    progress: int = 0


class SubmissionSummary(BaseModel):
    student_id: str
    assignment_id: str
    name: str = ""
    category: str = ""
    total_correct: int = 0
    total_wrong: int = 0
    overall_progress: int = 0
    submitted_at: Optional[datetime] = None
    parent: Optional[PartSummary] = None
    parts: List[PartSummary] = Field(default_factory=list)


class SubStatus(BaseModel):
    part_id: str
    name: str = ""
    is_completed: bool = False


class AssignmentStatus(BaseModel):
    assignment_id: str
    name: str = ""
    category: str = ""
    is_completed: bool = False
    overall_progress: int = 0
    sub_assignments: List[SubStatus] = Field(default_factory=list)


class RosterEntry(BaseModel):
    student_id: str
    total_correct: int = 0
    total_wrong: int = 0
    overall_progress: int = 0
    is_completed: bool = False
    parts_submitted: int = 0
    submitted_at: Optional[datetime] = None


def _part_summary(
    part_id: Optional[str],
    name: str,
    attachment: Optional[str],
    definition: AnswerDefinition,
    stored: Optional[PartResult],
) -> PartSummary:
    summary = PartSummary(
        part_id=part_id,
        name=name,
        attachment=attachment,
        key=definition.key.model_copy(deep=True),
        questions=[question.model_copy() for question in definition.questions],
    )
    if stored is None:
        return summary
    summary.submitted = True
    summary.entered = stored.values.model_copy(deep=True)
    summary.breakdown = [entry.model_copy() for entry in stored.questions]
    summary.field_results = dict(stored.field_results)
    summary.correct = stored.correct
    summary.wrong = stored.wrong
    summary.progress = stored.progress
    return summary


def submission_summary(assignment: Assignment, submission: Submission) -> SubmissionSummary:
    """Side-by-side summary of the parent (when it is gradable) and every sub-assignment."""

    parent = None
    if assignment.grading_mode is GradingMode.PARENT or resolve_key(assignment.definition).mode is not KeyMode.NONE:
        parent = _part_summary(
            None,
            assignment.name,
            assignment.attachment,
            assignment.definition,
            submission.find_part(None),
        )
    parts = [
        _part_summary(sub.id, sub.name, sub.attachment, sub.definition, submission.find_part(sub.id))
        for sub in assignment.sub_assignments
    ]
    return SubmissionSummary(
        student_id=submission.student_id,
        assignment_id=assignment.id,
        name=assignment.name,
        category=assignment.category,
        total_correct=submission.total_correct,
        total_wrong=submission.total_wrong,
        overall_progress=submission.overall_progress,
        submitted_at=submission.submitted_at,
        parent=parent,
        parts=parts,
    )


def status_board(
    student_id: str,
    assignments: Iterable[Assignment],
    submissions: Iterable[Submission],
    policy: CompletionPolicy | None = None,
) -> List[AssignmentStatus]:
    """Completion status for every assignment the student has submitted to."""

    by_id = {assignment.id: assignment for assignment in assignments}
    latest = latest_submissions(
        submission for submission in submissions if submission.student_id == str(student_id)
    )
    board: List[AssignmentStatus] = []
    for assignment_id, submission in latest.items():
        assignment = by_id.get(assignment_id)
        if assignment is None:
            continue
        names = {sub.id: sub.name for sub in assignment.sub_assignments}
        coverage = part_coverage(assignment, submission)
        board.append(
            AssignmentStatus(
                assignment_id=assignment.id,
                name=assignment.name,
                category=assignment.category,
                is_completed=is_complete(assignment, submission, policy),
                overall_progress=submission.overall_progress,
                sub_assignments=[
                    SubStatus(part_id=sub_id, name=names.get(sub_id, ""), is_completed=done)
                    for sub_id, done in coverage.items()
                ],
            )
        )
    board.sort(key=lambda status: (status.category, status.name, status.assignment_id))
    return board


def assignment_roster(
    assignment: Assignment,
    submissions: Iterable[Submission],
    policy: CompletionPolicy | None = None,
) -> List[RosterEntry]:
    """One row per student who submitted to ``assignment``, most recent first."""

    latest: Dict[str, Submission] = {}
    for submission in submissions:
        if submission.assignment_id != assignment.id:
            continue
        current = latest.get(submission.student_id)
        if current is None or (submission.submitted_at or _OLDEST) > (current.submitted_at or _OLDEST):
            latest[submission.student_id] = submission

    roster = [
        RosterEntry(
            student_id=student_id,
            total_correct=submission.total_correct,
            total_wrong=submission.total_wrong,
            overall_progress=submission.overall_progress,
            is_completed=is_complete(assignment, submission, policy),
            parts_submitted=len(submission.parts),
            submitted_at=submission.submitted_at,
        )
        for student_id, submission in latest.items()
    ]
    roster.sort(key=lambda entry: entry.submitted_at or _OLDEST, reverse=True)
    return roster


__all__ = [
    "AssignmentStatus",
    "PartSummary",
    "RosterEntry",
    "SubStatus",
    "SubmissionSummary",
    "assignment_roster",
    "status_board",
    "submission_summary",
]
