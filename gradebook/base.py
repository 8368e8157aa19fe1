"""Storage contract shared by the grading service and its document stores."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Protocol, Tuple

Document = Dict[str, Any]


class StaleWriteError(RuntimeError):
    """A compare-and-set write lost a race with another writer for the same key."""

    def __init__(self, student_id: str, assignment_id: str, expected_version: int) -> None:
        self.student_id = student_id
        self.assignment_id = assignment_id
        self.expected_version = expected_version
        super().__init__(
            f"Submission ({student_id}, {assignment_id}) changed since version {expected_version}"
        )


class AssignmentSource(Protocol):
    """Read-only access to authored assignment documents."""

    def get_assignment(self, assignment_id: str) -> Optional[Document]:
        ...

    def list_assignments(self, category: Optional[str] = None) -> List[Document]:
        ...


class SubmissionStore(Protocol):
    """Per-(student, assignment) submission documents with optimistic versioning.

    ``load_submission`` returns the document and its version (0 when absent).
    ``save_submission`` writes only if the stored version still equals
    ``expected_version`` and returns the new version; otherwise it raises
    ``StaleWriteError``.
    """

    def load_submission(self, student_id: str, assignment_id: str) -> Tuple[Optional[Document], int]:
        ...

    def save_submission(self, document: Document, *, expected_version: int) -> int:
        ...

    def list_submissions(
        self,
        *,
        student_id: Optional[str] = None,
        assignment_ids: Optional[Iterable[str]] = None,
    ) -> List[Document]:
        ...

    def delete_submission(self, student_id: str, assignment_id: str) -> bool:
        ...


def submission_key(document: Document) -> Tuple[str, str]:
    """Return the ``(student_id, assignment_id)`` pair a document is stored under."""

    student_id = document.get("student_id")
    assignment_id = document.get("assignment_id")
    if not student_id or not assignment_id:
        raise ValueError("Submission documents need both student_id and assignment_id")
    return str(student_id), str(assignment_id)


__all__ = [
    "AssignmentSource",
    "Document",
    "StaleWriteError",
    "SubmissionStore",
    "submission_key",
]
