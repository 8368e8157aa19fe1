"""Validation of raw submission payloads before grading."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List

from pydantic import ValidationError

from .models import SubmittedPart

LOGGER = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    """Result of a validation check."""

    valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    data: Any = None

    @property
    def has_warnings(self) -> bool:
        return len(self.warnings) > 0


def _describe(exc: ValidationError) -> str:
    messages = []
    for error in exc.errors():
        location = ".".join(str(loc) for loc in error["loc"])
        messages.append(f"{location}: {error['msg']}" if location else error["msg"])
    return "; ".join(messages)


def validate_submitted_parts(raw_parts: Any) -> ValidationResult:
    """Convert raw part payloads into ``SubmittedPart`` models.

    A payload that is not a list is an error. Individual parts that fail
    validation become warnings naming their index (and part id when one can be
    read) so the caller can skip them and keep grading the rest. ``data`` holds
    the list of ``(index, SubmittedPart)`` pairs that validated.
    """

    if not isinstance(raw_parts, (list, tuple)):
        message = f"parts must be a list, got {type(raw_parts).__name__}"
        LOGGER.error("Submission payload rejected: %s", message)
        return ValidationResult(valid=False, errors=[message], data=[])

    parsed: List[tuple[int, SubmittedPart]] = []
    warnings: List[str] = []
    for index, raw in enumerate(raw_parts):
        if isinstance(raw, SubmittedPart):
            parsed.append((index, raw))
            continue
        try:
            parsed.append((index, SubmittedPart.model_validate(raw)))
        except ValidationError as exc:
            part_id = None
            if isinstance(raw, dict):
                part_id = raw.get("part_id") or raw.get("subAssignmentId") or raw.get("sub_assignment_id")
            label = f"part[{index}]" + (f" ({part_id})" if part_id else "")
            warnings.append(f"{label}: {_describe(exc)}")

    if warnings:
        LOGGER.warning("Skipping malformed parts: %s", warnings)
    return ValidationResult(valid=True, errors=[], warnings=warnings, data=parsed)


__all__ = ["ValidationResult", "validate_submitted_parts"]
