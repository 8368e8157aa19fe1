"""Per-student category roll-ups over the latest submission of each assignment."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from casegrader.core.models import Assignment, CategoryStats, Submission, normalize_category, round_half_up
from casegrader.core.policy import CompletionPolicy

from .completion import is_complete

LOGGER = logging.getLogger(__name__)

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


class CompletedEntry(BaseModel):
    assignment_id: str
    name: str = ""
    score: int = 0
    submitted_at: Optional[datetime] = None


class PendingEntry(BaseModel):
    assignment_id: str
    name: str = ""


class CategoryReport(BaseModel):
    """Category statistics plus the assignments behind each number."""

    student_id: str
    stats: CategoryStats
    completed: List[CompletedEntry] = Field(default_factory=list)
    pending: List[PendingEntry] = Field(default_factory=list)


def latest_submissions(submissions: Iterable[Submission]) -> Dict[str, Submission]:
    """Keep the most recent submission per assignment id.

    Records without ``submitted_at`` sort oldest; on a tie the first record seen wins.
    """

    latest: Dict[str, Submission] = {}
    for submission in submissions:
        current = latest.get(submission.assignment_id)
        if current is None or (submission.submitted_at or _OLDEST) > (current.submitted_at or _OLDEST):
            latest[submission.assignment_id] = submission
    return latest


def category_report(
    category: str,
    student_id: str,
    assignments: Iterable[Assignment],
    submissions: Iterable[Submission],
    policy: CompletionPolicy | None = None,
) -> CategoryReport:
    wanted = normalize_category(category)
    in_category = [assignment for assignment in assignments if assignment.category == wanted]
    latest = latest_submissions(
        submission for submission in submissions if submission.student_id == str(student_id)
    )

    completed: List[CompletedEntry] = []
    pending: List[PendingEntry] = []
    for assignment in in_category:
        submission = latest.get(assignment.id)
        if submission is not None and is_complete(assignment, submission, policy):
            completed.append(
                CompletedEntry(
                    assignment_id=assignment.id,
                    name=assignment.name,
                    score=submission.overall_progress,
                    submitted_at=submission.submitted_at,
                )
            )
        else:
            pending.append(PendingEntry(assignment_id=assignment.id, name=assignment.name))

    scores = [entry.score for entry in completed]
    average = round_half_up(sum(scores) / len(scores)) if scores else 0.0
    stats = CategoryStats(
        category=wanted,
        total_assigned=len(in_category),
        completed=len(completed),
        pending=len(in_category) - len(completed),
        average_score=average,
    )
    LOGGER.debug(
        "Category %s for %s: %s/%s complete, average %.2f",
        wanted,
        student_id,
        stats.completed,
        stats.total_assigned,
        stats.average_score,
    )
    return CategoryReport(student_id=str(student_id), stats=stats, completed=completed, pending=pending)


def category_stats(
    category: str,
    student_id: str,
    assignments: Iterable[Assignment],
    submissions: Iterable[Submission],
    policy: CompletionPolicy | None = None,
) -> CategoryStats:
    return category_report(category, student_id, assignments, submissions, policy).stats


__all__ = [
    "CategoryReport",
    "CompletedEntry",
    "PendingEntry",
    "category_report",
    "category_stats",
    "latest_submissions",
]
