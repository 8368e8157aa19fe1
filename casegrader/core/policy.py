"""Named grading policies and the CLI flag parser that toggles them."""

from __future__ import annotations

from enum import Enum
from typing import List

from pydantic import BaseModel


class ResubmissionPolicy(str, Enum):
    """What happens when a part that already has a stored result is submitted again."""

    REJECT = "reject"
    OVERWRITE = "overwrite"

    @classmethod
    def choices(cls) -> List[str]:
        return [member.value for member in cls]


class CompletionSwitch(str, Enum):
    """Named toggles accepted by ``parse_completion_flag``."""

    STRICT = "strict"
    IDS_ONLY = "ids_only"

    @classmethod
    def choices(cls) -> List[str]:
        return [member.value for member in cls]


class CompletionPolicy(BaseModel):
    """How the completion classifier treats multi-part assignments.

    ``require_full_score`` additionally demands 100% on every covered sub-assignment
    part that had something to grade. ``allow_count_fallback`` lets stored parts
    without a part id (legacy payloads) count toward coverage.
    """

    require_full_score: bool = False
    allow_count_fallback: bool = True

    def describe(self) -> str:
        enabled = []
        if self.require_full_score:
            enabled.append("full-score")
        if self.allow_count_fallback:
            enabled.append("count-fallback")
        return ", ".join(enabled) if enabled else "coverage-only"


def parse_completion_flag(flag_value: str | None) -> CompletionPolicy:
    """
    Convert a comma-separated CLI flag into a CompletionPolicy.

    Examples
    --------
    - ``None`` or empty string → default policy (coverage only, count fallback on).
    - ``strict`` → every covered sub-assignment must be at 100%.
    - ``strict,ids_only`` → strict, and legacy id-less parts do not count.
    """
    policy = CompletionPolicy()
    if not flag_value:
        return policy

    tokens = [token.strip().lower() for token in flag_value.split(",") if token.strip()]
    for token in tokens:
        try:
            switch = CompletionSwitch(token)
        except ValueError as exc:
            valid = ", ".join(CompletionSwitch.choices())
            raise ValueError(f"Unknown completion switch '{token}'. Valid options: {valid}") from exc

        if switch is CompletionSwitch.STRICT:
            policy.require_full_score = True
        elif switch is CompletionSwitch.IDS_ONLY:
            policy.allow_count_fallback = False

    return policy


__all__ = [
    "CompletionPolicy",
    "CompletionSwitch",
    "ResubmissionPolicy",
    "parse_completion_flag",
]
