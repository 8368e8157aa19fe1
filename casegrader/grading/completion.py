"""Decide whether a stored submission counts as complete for its assignment."""

from __future__ import annotations

from typing import Dict, Optional

from casegrader.core.models import Assignment, GradingMode, PartResult, Submission
from casegrader.core.policy import CompletionPolicy


def part_coverage(assignment: Assignment, submission: Optional[Submission]) -> Dict[str, bool]:
    """Map every current sub-assignment id to whether a result is stored for it."""

    stored = {part.part_id for part in submission.parts} if submission is not None else set()
    return {sub_id: sub_id in stored for sub_id in assignment.sub_ids}


def _is_full_score(part: PartResult) -> bool:
    if part.graded_items == 0:
        return True
    return part.progress >= 100


def is_complete(
    assignment: Assignment,
    submission: Optional[Submission],
    policy: CompletionPolicy | None = None,
) -> bool:
    policy = policy or CompletionPolicy()
    if submission is None:
        return False

    if assignment.grading_mode is GradingMode.PARENT:
        return submission.find_part(None) is not None

    sub_ids = set(assignment.sub_ids)
    covered = [part for part in submission.parts if part.part_id in sub_ids]
    covered_ids = {part.part_id for part in covered}

    if len(covered_ids) == len(sub_ids):
        counted = covered
    elif policy.allow_count_fallback:
        # Legacy records stored sub results without ids.
        unlabeled = [part for part in submission.parts if part.part_id is None]
        if not unlabeled or len(covered_ids) + len(unlabeled) < len(sub_ids):
            return False
        counted = covered + unlabeled
    else:
        return False

    if policy.require_full_score:
        return all(_is_full_score(part) for part in counted)
    return True


__all__ = ["is_complete", "part_coverage"]
