"""Service facade wiring the stores, the aggregator, and the read-side reports."""

from __future__ import annotations

import logging
from typing import Any, Iterable, List, Optional

from pydantic import ValidationError

from casegrader.core.audit import GradingEvent, NullAuditLog
from casegrader.core.config import GradingConfig
from casegrader.core.errors import GradingError, NotFoundError
from casegrader.core.models import Assignment, CategoryStats, Submission
from casegrader.core.policy import CompletionPolicy
from casegrader.grading.aggregator import Clock, SubmissionAggregator, SubmitOutcome, load_assignment
from casegrader.grading.completion import is_complete
from casegrader.grading.review import (
    AssignmentStatus,
    RosterEntry,
    SubmissionSummary,
    assignment_roster,
    status_board,
    submission_summary,
)
from casegrader.grading.statistics import CategoryReport, category_report
from gradebook.base import AssignmentSource, Document, SubmissionStore

LOGGER = logging.getLogger(__name__)


def _parse_documents(model: type, documents: Iterable[Document]) -> List[Any]:
    parsed = []
    for document in documents:
        try:
            parsed.append(model.model_validate(document))
        except ValidationError as exc:
            LOGGER.warning("Ignoring unreadable %s document: %s", model.__name__, exc.errors()[:1])
    return parsed


class GradingService:
    """Entry point used by the CLI and by embedding applications.

    Write paths delegate to :class:`SubmissionAggregator`; read paths load
    documents from the stores and hand typed models to the pure report
    functions. Every stored submission, skipped part, and rejection is written
    to the audit log.
    """

    def __init__(
        self,
        assignments: AssignmentSource,
        submissions: SubmissionStore,
        *,
        config: GradingConfig | None = None,
        audit=None,
        clock: Clock | None = None,
    ) -> None:
        self.config = config or GradingConfig()
        self.assignments = assignments
        self.submissions = submissions
        self.audit = audit or NullAuditLog()
        self.aggregator = SubmissionAggregator(
            assignments,
            submissions,
            resubmission=self.config.policy.resubmission,
            max_write_retries=self.config.max_write_retries,
            clock=clock,
        )

    @property
    def completion_policy(self) -> CompletionPolicy:
        return self.config.policy.completion

    # ------------------------------------------------------------------
    # Writes

    def _audit_outcome(self, stage: str, student_id: str, assignment_id: str, outcome: SubmitOutcome) -> None:
        for skipped in outcome.skipped:
            self.audit.log(
                GradingEvent(
                    stage=stage,
                    message=f"Skipped part {skipped.describe()}",
                    student_id=student_id,
                    assignment_id=assignment_id,
                    payload={"part_id": skipped.part_id, "reason": skipped.reason, "detail": skipped.detail},
                )
            )
        if outcome.stored:
            submission = outcome.submission
            self.audit.log(
                GradingEvent(
                    stage=stage,
                    message="Submission stored",
                    student_id=student_id,
                    assignment_id=assignment_id,
                    payload={
                        "graded": outcome.graded,
                        "replaced": outcome.replaced,
                        "version": outcome.version,
                        "total_correct": submission.total_correct,
                        "total_wrong": submission.total_wrong,
                        "overall_progress": submission.overall_progress,
                    },
                )
            )

    def _audit_rejection(self, stage: str, student_id: str, assignment_id: str, exc: GradingError) -> None:
        self.audit.log(
            GradingEvent(
                stage=stage,
                message=f"Rejected: {exc}",
                student_id=student_id,
                assignment_id=assignment_id,
                payload={"error": type(exc).__name__},
            )
        )

    def grade_and_store(self, student_id: str, assignment_id: str, parts: Any) -> SubmitOutcome:
        try:
            outcome = self.aggregator.submit(student_id, assignment_id, parts)
        except GradingError as exc:
            LOGGER.warning("Submission %s/%s rejected: %s", student_id, assignment_id, exc)
            self._audit_rejection("submit", student_id, assignment_id, exc)
            raise
        self._audit_outcome("submit", student_id, assignment_id, outcome)
        return outcome

    def start_attempt(self, student_id: str, assignment_id: str) -> Submission:
        try:
            outcome = self.aggregator.start_attempt(student_id, assignment_id)
        except GradingError as exc:
            self._audit_rejection("start", student_id, assignment_id, exc)
            raise
        if outcome.stored:
            self.audit.log(
                GradingEvent(
                    stage="start",
                    message="Attempt started",
                    student_id=student_id,
                    assignment_id=assignment_id,
                    payload={"must_submit_by": outcome.submission.model_dump(mode="json")["must_submit_by"]},
                )
            )
        return outcome.submission

    def regrade(self, student_id: str, assignment_id: str) -> SubmitOutcome:
        try:
            outcome = self.aggregator.regrade(student_id, assignment_id)
        except GradingError as exc:
            self._audit_rejection("regrade", student_id, assignment_id, exc)
            raise
        self._audit_outcome("regrade", student_id, assignment_id, outcome)
        return outcome

    # ------------------------------------------------------------------
    # Reads

    def _assignment(self, assignment_id: str) -> Assignment:
        return load_assignment(self.assignments, assignment_id)

    def _submission(self, student_id: str, assignment_id: str) -> Optional[Submission]:
        submission, _ = self.aggregator.load_submission(student_id, assignment_id)
        return submission

    def _list_assignments(self, category: Optional[str] = None) -> List[Assignment]:
        return _parse_documents(Assignment, self.assignments.list_assignments(category))

    def _list_submissions(self, **filters: Any) -> List[Submission]:
        return _parse_documents(Submission, self.submissions.list_submissions(**filters))

    def completion(self, student_id: str, assignment_id: str, policy: CompletionPolicy | None = None) -> bool:
        assignment = self._assignment(assignment_id)
        return is_complete(assignment, self._submission(student_id, assignment_id), policy or self.completion_policy)

    def category_report(
        self, category: str, student_id: str, policy: CompletionPolicy | None = None
    ) -> CategoryReport:
        assignments = self._list_assignments(category)
        submissions = self._list_submissions(
            student_id=student_id, assignment_ids=[assignment.id for assignment in assignments]
        )
        return category_report(category, student_id, assignments, submissions, policy or self.completion_policy)

    def category_stats(self, category: str, student_id: str, policy: CompletionPolicy | None = None) -> CategoryStats:
        return self.category_report(category, student_id, policy).stats

    def submission_summary(self, student_id: str, assignment_id: str) -> SubmissionSummary:
        assignment = self._assignment(assignment_id)
        submission = self._submission(student_id, assignment_id)
        if submission is None:
            raise NotFoundError(assignment_id, student_id=student_id, what="submission")
        return submission_summary(assignment, submission)

    def status_board(self, student_id: str, policy: CompletionPolicy | None = None) -> List[AssignmentStatus]:
        return status_board(
            student_id,
            self._list_assignments(),
            self._list_submissions(student_id=student_id),
            policy or self.completion_policy,
        )

    def assignment_roster(self, assignment_id: str, policy: CompletionPolicy | None = None) -> List[RosterEntry]:
        assignment = self._assignment(assignment_id)
        return assignment_roster(
            assignment,
            self._list_submissions(assignment_ids=[assignment_id]),
            policy or self.completion_policy,
        )


__all__ = ["GradingService"]
