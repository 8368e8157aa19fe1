"""Canonical forms for comparing free text and code lists."""

from __future__ import annotations

import re
from typing import Any

_WHITESPACE = re.compile(r"\s+")


def normalize_text(value: Any) -> str:
    """Trim, lowercase, and collapse whitespace runs; ``None`` becomes ``""``."""

    if value is None:
        return ""
    return _WHITESPACE.sub(" ", str(value).strip().lower())


def text_equals(a: Any, b: Any) -> bool:
    return normalize_text(a) == normalize_text(b)


def set_equals(a: Any, b: Any) -> bool:
    """Compare two code lists ignoring order and case; multiplicity still matters."""

    if not isinstance(a, (list, tuple)) or not isinstance(b, (list, tuple)):
        return False
    if len(a) != len(b):
        return False
    return sorted(normalize_text(item) for item in a) == sorted(normalize_text(item) for item in b)


def has_content(value: Any) -> bool:
    """True for a non-blank string or a non-empty list."""

    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple)):
        return len(value) > 0
    return bool(normalize_text(value))


__all__ = ["has_content", "normalize_text", "set_equals", "text_equals"]
