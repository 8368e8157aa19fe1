"""Append-only JSONL audit trail for grading activity."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List

from pydantic import BaseModel, Field


class GradingEvent(BaseModel):
    """Structured record of one grading decision."""

    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    stage: str = Field(..., description="Operation that produced the event, e.g. 'submit' or 'regrade'.")
    message: str = Field(..., description="Human-readable description of the event.")
    student_id: str | None = None
    assignment_id: str | None = None
    payload: Dict[str, Any] = Field(default_factory=dict)


class GradingAuditLog:
    """Writes grading events to a JSONL file, one event per line."""

    def __init__(self, output_path: Path):
        self.output_path = output_path
        self.output_path.parent.mkdir(parents=True, exist_ok=True)

    def log(self, event: GradingEvent | Dict[str, Any]) -> GradingEvent:
        """Append a single event and return the normalized object."""
        if not isinstance(event, GradingEvent):
            event = GradingEvent(**event)
        with self.output_path.open("a", encoding="utf-8") as handle:
            handle.write(event.model_dump_json() + "\n")
        return event

    def extend(self, events: Iterable[GradingEvent | Dict[str, Any]]) -> None:
        for event in events:
            self.log(event)

    def read(self) -> List[GradingEvent]:
        if not self.output_path.exists():
            return []
        lines = self.output_path.read_text(encoding="utf-8").splitlines()
        return [GradingEvent.model_validate_json(line) for line in lines if line.strip()]


class NullAuditLog:
    """Audit sink used when auditing is disabled."""

    def log(self, event: GradingEvent | Dict[str, Any]) -> GradingEvent:
        if not isinstance(event, GradingEvent):
            event = GradingEvent(**event)
        return event

    def extend(self, events: Iterable[GradingEvent | Dict[str, Any]]) -> None:
        for event in events:
            self.log(event)

    def read(self) -> List[GradingEvent]:
        return []


__all__ = ["GradingAuditLog", "GradingEvent", "NullAuditLog"]
