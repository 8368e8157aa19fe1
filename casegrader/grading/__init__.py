"""Grading, aggregation, completion, and reporting over the core models."""

from __future__ import annotations

from .aggregator import SkippedPart, SubmissionAggregator, SubmitOutcome
from .answer_key import ResolvedKey, resolve_key
from .completion import is_complete, part_coverage
from .part_grader import grade_part
from .review import assignment_roster, status_board, submission_summary
from .statistics import CategoryReport, category_report, category_stats, latest_submissions

__all__ = [
    "CategoryReport",
    "ResolvedKey",
    "SkippedPart",
    "SubmissionAggregator",
    "SubmitOutcome",
    "assignment_roster",
    "category_report",
    "category_stats",
    "grade_part",
    "is_complete",
    "latest_submissions",
    "part_coverage",
    "resolve_key",
    "status_board",
    "submission_summary",
]
