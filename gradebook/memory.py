"""Thread-safe in-memory gradebook, used by tests and the default configuration."""

from __future__ import annotations

import copy
import threading
from typing import Dict, Iterable, List, Optional, Tuple

from .base import Document, StaleWriteError, submission_key


def _upper_trim(value: object) -> str:
    return ("" if value is None else str(value)).strip().upper()


def _field(document: Document, name: str, legacy: str) -> str:
    value = document.get(name, document.get(legacy))
    return "" if value is None else str(value)


class InMemoryGradebook:
    """Holds assignment and submission documents in process memory.

    Documents are deep-copied on the way in and out so callers never share
    mutable state with the store.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._assignments: Dict[str, Document] = {}
        self._submissions: Dict[Tuple[str, str], Tuple[Document, int]] = {}
        self._history: List[Document] = []

    # ------------------------------------------------------------------
    # Assignments

    def put_assignment(self, document: Document) -> None:
        assignment_id = document.get("id") or document.get("_id")
        if not assignment_id:
            raise ValueError("Assignment documents need an id")
        with self._lock:
            self._assignments[str(assignment_id)] = copy.deepcopy(document)

    def get_assignment(self, assignment_id: str) -> Optional[Document]:
        with self._lock:
            document = self._assignments.get(str(assignment_id))
            return copy.deepcopy(document) if document is not None else None

    def list_assignments(self, category: Optional[str] = None) -> List[Document]:
        wanted = _upper_trim(category) if category is not None else None
        with self._lock:
            documents = list(self._assignments.values())
        return [
            copy.deepcopy(document)
            for document in documents
            if wanted is None or _upper_trim(document.get("category")) == wanted
        ]

    # ------------------------------------------------------------------
    # Submissions

    def load_submission(self, student_id: str, assignment_id: str) -> Tuple[Optional[Document], int]:
        with self._lock:
            entry = self._submissions.get((str(student_id), str(assignment_id)))
            if entry is None:
                return None, 0
            document, version = entry
            return copy.deepcopy(document), version

    def save_submission(self, document: Document, *, expected_version: int) -> int:
        key = submission_key(document)
        with self._lock:
            current = self._submissions.get(key)
            current_version = current[1] if current is not None else 0
            if current_version != expected_version:
                raise StaleWriteError(key[0], key[1], expected_version)
            new_version = current_version + 1
            self._submissions[key] = (copy.deepcopy(document), new_version)
            return new_version

    def list_submissions(
        self,
        *,
        student_id: Optional[str] = None,
        assignment_ids: Optional[Iterable[str]] = None,
    ) -> List[Document]:
        wanted = {str(value) for value in assignment_ids} if assignment_ids is not None else None
        with self._lock:
            documents = [document for document, _ in self._submissions.values()] + list(self._history)
        return [
            copy.deepcopy(document)
            for document in documents
            if (student_id is None or _field(document, "student_id", "studentId") == str(student_id))
            and (wanted is None or _field(document, "assignment_id", "assignmentId") in wanted)
        ]

    def delete_submission(self, student_id: str, assignment_id: str) -> bool:
        with self._lock:
            return self._submissions.pop((str(student_id), str(assignment_id)), None) is not None

    def import_legacy_submission(self, document: Document) -> None:
        """Keep an older duplicate record around for read-only queries.

        Legacy data sometimes holds several submissions for one pair; they are
        visible to ``list_submissions`` but never loaded for writing.
        """
        with self._lock:
            self._history.append(copy.deepcopy(document))


__all__ = ["InMemoryGradebook"]
