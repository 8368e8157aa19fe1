"""
Foundational models, configuration, and error types for the grading engine.

Nothing here touches storage; the grading modules and the service layer build
on these types.
"""

from .audit import GradingAuditLog, GradingEvent, NullAuditLog
from .config import GradingConfig, PolicyConfig, StoreConfig, load_grading_config
from .errors import (
    ConcurrentSubmissionError,
    DuplicatePartError,
    GradingError,
    MalformedPayloadError,
    NotFoundError,
    TimeViolationError,
)
from .policy import CompletionPolicy, ResubmissionPolicy, parse_completion_flag

__all__ = [
    "CompletionPolicy",
    "ConcurrentSubmissionError",
    "DuplicatePartError",
    "GradingAuditLog",
    "GradingConfig",
    "GradingError",
    "GradingEvent",
    "MalformedPayloadError",
    "NotFoundError",
    "NullAuditLog",
    "PolicyConfig",
    "ResubmissionPolicy",
    "StoreConfig",
    "TimeViolationError",
    "load_grading_config",
    "parse_completion_flag",
]
