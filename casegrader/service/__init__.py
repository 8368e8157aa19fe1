"""Service layer: the grading facade and its bootstrap helpers."""

from __future__ import annotations

from .bootstrap import bootstrap_service, resolve_config
from .engine import GradingService

__all__ = ["GradingService", "bootstrap_service", "resolve_config"]
