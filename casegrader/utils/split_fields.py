"""Helpers for turning loosely typed code-list input into lists of strings."""

from __future__ import annotations

import re
from collections.abc import Sequence
from typing import Any, List

CODE_DELIMITERS = r"[;,]"


def split_codes(value: Any, *, delimiters: str = CODE_DELIMITERS) -> List[str]:
    """Return ``value`` as a list of code strings.

    Strings are split on the delimiters and trimmed, dropping empty tokens, so
    ``"A01, B02"`` becomes ``["A01", "B02"]``. Sequences keep their entries as
    given (``None`` entries become ``""``) so duplicates and blanks still count
    during comparison. ``None`` yields an empty list.

    Raises ``ValueError`` for anything else (mappings, numbers, nested lists).
    """

    if value is None:
        return []
    if isinstance(value, str):
        return [token.strip() for token in re.split(delimiters, value) if token.strip()]
    if isinstance(value, Sequence) and not isinstance(value, bytes):
        codes: List[str] = []
        for item in value:
            if item is None:
                codes.append("")
            elif isinstance(item, (str, int, float)) and not isinstance(item, bool):
                codes.append(str(item))
            else:
                raise ValueError(f"code list entries must be text, got {type(item).__name__}")
        return codes
    raise ValueError(f"expected a list of codes, got {type(value).__name__}")
