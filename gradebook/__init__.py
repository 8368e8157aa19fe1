"""Document stores for assignments and graded submissions."""

from .base import AssignmentSource, StaleWriteError, SubmissionStore
from .ingest import ingest_assignments
from .memory import InMemoryGradebook
from .storage import GradebookStore

__all__ = [
    "AssignmentSource",
    "GradebookStore",
    "InMemoryGradebook",
    "StaleWriteError",
    "SubmissionStore",
    "ingest_assignments",
]
