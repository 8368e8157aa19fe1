"""Error taxonomy raised by the grading core."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional, Sequence


def _label(part_id: Optional[str]) -> str:
    return part_id if part_id else "parent"


class GradingError(RuntimeError):
    """Base class for every error the grading core reports to its caller."""


class NotFoundError(GradingError):
    """An assignment (or a submission required by the operation) does not exist."""

    def __init__(self, assignment_id: str, *, student_id: str | None = None, what: str = "assignment") -> None:
        self.assignment_id = assignment_id
        self.student_id = student_id
        self.what = what
        if what == "submission":
            message = f"No submission found for student {student_id} on assignment {assignment_id}"
        else:
            message = f"Assignment {assignment_id} not found"
        super().__init__(message)


class TimeViolationError(GradingError):
    """The request arrived outside the availability window or after the attempt deadline."""

    def __init__(self, reason: str, *, now: datetime, deadline: datetime | None = None) -> None:
        self.reason = reason
        self.now = now
        self.deadline = deadline
        detail = f" (deadline {deadline.isoformat()})" if deadline is not None else ""
        super().__init__(f"{reason} at {now.isoformat()}{detail}")


class DuplicatePartError(GradingError):
    """One or more targeted parts already have a stored result and resubmission is rejected."""

    def __init__(self, part_ids: Iterable[Optional[str]]) -> None:
        self.part_ids: List[Optional[str]] = list(part_ids)
        labels = ", ".join(_label(part_id) for part_id in self.part_ids)
        super().__init__(f"Already submitted: {labels}. Resubmission not allowed.")


class MalformedPayloadError(GradingError):
    """The submitted payload has no usable parts."""

    def __init__(self, issues: Sequence[str]) -> None:
        self.issues = list(issues)
        super().__init__("Malformed submission payload: " + "; ".join(self.issues or ["no parts"]))


class ConcurrentSubmissionError(GradingError):
    """Compare-and-set retries were exhausted while storing a submission."""

    def __init__(self, student_id: str, assignment_id: str, attempts: int) -> None:
        self.student_id = student_id
        self.assignment_id = assignment_id
        self.attempts = attempts
        super().__init__(
            f"Submission for student {student_id} on assignment {assignment_id} "
            f"kept changing underneath us ({attempts} attempts)"
        )


__all__ = [
    "ConcurrentSubmissionError",
    "DuplicatePartError",
    "GradingError",
    "MalformedPayloadError",
    "NotFoundError",
    "TimeViolationError",
]
