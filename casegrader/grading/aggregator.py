"""Merge graded parts into the per-(student, assignment) submission record."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, List, Optional, Sequence, Tuple

from casegrader.core.errors import (
    ConcurrentSubmissionError,
    DuplicatePartError,
    MalformedPayloadError,
    NotFoundError,
    TimeViolationError,
)
from casegrader.core.models import (
    AnswerDefinition,
    Assignment,
    GradingMode,
    PartResult,
    Submission,
    SubmittedPart,
)
from casegrader.core.policy import ResubmissionPolicy
from casegrader.core.validation import validate_submitted_parts
from gradebook.base import AssignmentSource, StaleWriteError, SubmissionStore

from .part_grader import grade_part

LOGGER = logging.getLogger(__name__)

Clock = Callable[[], datetime]

UNKNOWN_PART = "unknown_part"
PARENT_NOT_GRADABLE = "parent_not_gradable"
DUPLICATE_IN_REQUEST = "duplicate_in_request"
MALFORMED = "malformed"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SkippedPart:
    """A submitted (or stored) part that was not graded, and why."""

    part_id: Optional[str]
    reason: str
    detail: str = ""

    def describe(self) -> str:
        label = self.part_id or "parent"
        return f"{label}: {self.reason}" + (f" ({self.detail})" if self.detail else "")


@dataclass
class SubmitOutcome:
    """What a submit or regrade call did."""

    submission: Submission
    graded: List[Optional[str]] = field(default_factory=list)
    replaced: List[Optional[str]] = field(default_factory=list)
    skipped: List[SkippedPart] = field(default_factory=list)
    stored: bool = False
    version: int = 0


def load_assignment(source: AssignmentSource, assignment_id: str) -> Assignment:
    document = source.get_assignment(assignment_id)
    if document is None:
        raise NotFoundError(assignment_id)
    return Assignment.model_validate(document)


def enforce_time_rules(assignment: Assignment, submission: Submission, now: datetime) -> None:
    """Reject ``now`` outside the availability window or past the attempt deadline.

    Stamps ``started_at``/``must_submit_by`` on the first attempt of a
    time-limited assignment; later attempts reuse the stored stamp.
    """

    if assignment.window_start is not None and now < assignment.window_start:
        raise TimeViolationError("Assignment window has not opened", now=now, deadline=assignment.window_start)
    if assignment.window_end is not None and now > assignment.window_end:
        raise TimeViolationError("Assignment window has closed", now=now, deadline=assignment.window_end)

    if not assignment.time_limit_minutes:
        return
    if submission.must_submit_by is None:
        if submission.started_at is None:
            submission.started_at = now
        submission.must_submit_by = submission.started_at + timedelta(minutes=assignment.time_limit_minutes)
    if now > submission.must_submit_by:
        raise TimeViolationError("Time limit exceeded", now=now, deadline=submission.must_submit_by)


def resolve_target(assignment: Assignment, part_id: Optional[str]) -> Tuple[Optional[AnswerDefinition], Optional[str]]:
    """Return ``(definition, None)`` for a gradable target, else ``(None, skip_reason)``."""

    if part_id is None:
        if assignment.grading_mode is GradingMode.SUB_ASSIGNMENTS:
            return None, PARENT_NOT_GRADABLE
        return assignment.definition, None
    sub = assignment.find_sub(part_id)
    if sub is None:
        return None, UNKNOWN_PART
    return sub.definition, None


class SubmissionAggregator:
    """Grades incoming parts and stores them with compare-and-set retries.

    Every write goes through ``SubmissionStore.save_submission`` with the
    version read at the start of the attempt, so two concurrent submits for the
    same pair can never silently drop each other's parts: the loser reloads and
    merges again.
    """

    def __init__(
        self,
        assignments: AssignmentSource,
        submissions: SubmissionStore,
        *,
        resubmission: ResubmissionPolicy = ResubmissionPolicy.REJECT,
        max_write_retries: int = 5,
        clock: Clock | None = None,
    ) -> None:
        self.assignments = assignments
        self.submissions = submissions
        self.resubmission = resubmission
        self.max_write_retries = max(1, max_write_retries)
        self._clock = clock or utc_now

    # ------------------------------------------------------------------

    def load_submission(self, student_id: str, assignment_id: str) -> Tuple[Optional[Submission], int]:
        document, version = self.submissions.load_submission(student_id, assignment_id)
        if document is None:
            return None, 0
        submission = Submission.model_validate(document)
        submission.student_id = student_id
        submission.assignment_id = assignment_id
        return submission, version

    def _load_or_new(self, student_id: str, assignment_id: str) -> Tuple[Submission, int]:
        submission, version = self.load_submission(student_id, assignment_id)
        if submission is None:
            submission = Submission(student_id=student_id, assignment_id=assignment_id)
        return submission, version

    def _save(self, submission: Submission, version: int) -> Optional[int]:
        try:
            return self.submissions.save_submission(submission.to_document(), expected_version=version)
        except StaleWriteError as exc:
            LOGGER.info("Write race on %s/%s: %s; retrying", submission.student_id, submission.assignment_id, exc)
            return None

    # ------------------------------------------------------------------

    def _select_targets(
        self, assignment: Assignment, parsed: Sequence[Tuple[int, SubmittedPart]]
    ) -> Tuple[List[Tuple[SubmittedPart, AnswerDefinition]], List[SkippedPart]]:
        targets: List[Tuple[SubmittedPart, AnswerDefinition]] = []
        skipped: List[SkippedPart] = []
        seen: set[Optional[str]] = set()
        for index, part in parsed:
            definition, reason = resolve_target(assignment, part.part_id)
            if definition is None:
                skipped.append(SkippedPart(part.part_id, reason or UNKNOWN_PART, f"part[{index}]"))
                continue
            if part.part_id in seen:
                skipped.append(SkippedPart(part.part_id, DUPLICATE_IN_REQUEST, f"part[{index}]"))
                continue
            seen.add(part.part_id)
            targets.append((part, definition))
        return targets, skipped

    def submit(self, student_id: str, assignment_id: str, parts: Any) -> SubmitOutcome:
        """Grade ``parts`` and merge them into the stored submission for the pair."""

        now = self._clock()
        assignment = load_assignment(self.assignments, assignment_id)

        check = validate_submitted_parts(parts)
        if not check.valid:
            raise MalformedPayloadError(check.errors)
        skipped = [SkippedPart(None, MALFORMED, warning) for warning in check.warnings]
        targets, unresolved = self._select_targets(assignment, check.data)
        skipped.extend(unresolved)
        for entry in unresolved:
            LOGGER.warning("Skipping part for assignment %s: %s", assignment_id, entry.describe())

        if not targets:
            if not check.data or check.warnings:
                raise MalformedPayloadError(check.warnings or ["no parts submitted"])
            submission, version = self._load_or_new(student_id, assignment_id)
            return SubmitOutcome(submission=submission, skipped=skipped, stored=False, version=version)

        graded: Optional[List[PartResult]] = None
        for attempt in range(1, self.max_write_retries + 1):
            submission, version = self._load_or_new(student_id, assignment_id)
            enforce_time_rules(assignment, submission, now)

            if graded is None:
                graded = [grade_part(definition, part) for part, definition in targets]

            existing = [result.part_id for result in graded if submission.find_part(result.part_id) is not None]
            if existing and self.resubmission is ResubmissionPolicy.REJECT:
                raise DuplicatePartError(existing)
            for result in graded:
                submission.put_part(result.model_copy(deep=True))
            submission.recompute_totals()
            submission.submitted_at = now

            new_version = self._save(submission, version)
            if new_version is None:
                continue
            LOGGER.info(
                "Stored submission %s/%s (parts=%s, progress=%s%%, attempt=%s)",
                student_id,
                assignment_id,
                len(submission.parts),
                submission.overall_progress,
                attempt,
            )
            return SubmitOutcome(
                submission=submission,
                graded=[result.part_id for result in graded],
                replaced=existing,
                skipped=skipped,
                stored=True,
                version=new_version,
            )

        raise ConcurrentSubmissionError(student_id, assignment_id, self.max_write_retries)

    def start_attempt(self, student_id: str, assignment_id: str) -> SubmitOutcome:
        """Open (or re-open) the timed attempt for the pair without grading anything."""

        now = self._clock()
        assignment = load_assignment(self.assignments, assignment_id)
        for _ in range(self.max_write_retries):
            submission, version = self._load_or_new(student_id, assignment_id)
            already_stamped = submission.must_submit_by is not None
            enforce_time_rules(assignment, submission, now)
            if not assignment.time_limit_minutes or already_stamped:
                return SubmitOutcome(submission=submission, stored=False, version=version)
            new_version = self._save(submission, version)
            if new_version is not None:
                LOGGER.info(
                    "Started attempt %s/%s; must submit by %s",
                    student_id,
                    assignment_id,
                    submission.must_submit_by.isoformat() if submission.must_submit_by else "-",
                )
                return SubmitOutcome(submission=submission, stored=True, version=new_version)
        raise ConcurrentSubmissionError(student_id, assignment_id, self.max_write_retries)

    def regrade(self, student_id: str, assignment_id: str) -> SubmitOutcome:
        """Re-grade stored parts against the current definitions.

        Under ``OVERWRITE`` every stored part whose target still exists is graded
        again from its stored raw values and replaced. Under ``REJECT`` stored
        parts are immutable and only the submission totals are recomputed.
        """

        assignment = load_assignment(self.assignments, assignment_id)
        for _ in range(self.max_write_retries):
            submission, version = self.load_submission(student_id, assignment_id)
            if submission is None:
                raise NotFoundError(assignment_id, student_id=student_id, what="submission")
            before = submission.to_document()

            regraded: List[Optional[str]] = []
            skipped: List[SkippedPart] = []
            if self.resubmission is ResubmissionPolicy.OVERWRITE:
                for stored in list(submission.parts):
                    definition, reason = resolve_target(assignment, stored.part_id)
                    if definition is None:
                        skipped.append(SkippedPart(stored.part_id, reason or UNKNOWN_PART, "kept as stored"))
                        continue
                    replay = SubmittedPart(part_id=stored.part_id, values=stored.values, answers=stored.answers)
                    submission.put_part(grade_part(definition, replay))
                    regraded.append(stored.part_id)
            submission.recompute_totals()

            if submission.to_document() == before:
                return SubmitOutcome(submission=submission, graded=regraded, skipped=skipped, version=version)
            new_version = self._save(submission, version)
            if new_version is not None:
                LOGGER.info("Regraded submission %s/%s (parts=%s)", student_id, assignment_id, len(regraded))
                return SubmitOutcome(
                    submission=submission,
                    graded=regraded,
                    replaced=list(regraded),
                    skipped=skipped,
                    stored=True,
                    version=new_version,
                )
        raise ConcurrentSubmissionError(student_id, assignment_id, self.max_write_retries)


__all__ = [
    "Clock",
    "SkippedPart",
    "SubmissionAggregator",
    "SubmitOutcome",
    "enforce_time_rules",
    "load_assignment",
    "resolve_target",
    "utc_now",
]
