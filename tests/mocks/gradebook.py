"""Deterministic clock and store doubles for grading tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from gradebook.base import StaleWriteError
from gradebook.memory import InMemoryGradebook

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class RacingGradebook(InMemoryGradebook):
    """Lets a competing writer land just before the first save."""

    def __init__(self, competitor) -> None:
        super().__init__()
        self.competitor = competitor
        self.races = 0

    def save_submission(self, document, *, expected_version):
        if self.competitor is not None:
            competing, self.competitor = self.competitor, None
            self.races += 1
            super().save_submission(competing, expected_version=expected_version)
        return super().save_submission(document, expected_version=expected_version)


class StaleGradebook(InMemoryGradebook):
    """Every write loses the race."""

    def save_submission(self, document, *, expected_version):
        raise StaleWriteError(document["student_id"], document["assignment_id"], expected_version)
