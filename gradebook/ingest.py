"""Load authored assignment documents from YAML or JSON files into a store."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Protocol

import yaml

from .base import Document

LOGGER = logging.getLogger(__name__)


class AssignmentSink(Protocol):
    def put_assignment(self, document: Document) -> None:
        ...


def _load_documents(source: Path) -> List[Dict[str, Any]]:
    text = source.read_text(encoding="utf-8")
    if source.suffix.lower() == ".json":
        data = json.loads(text)
    else:
        data = yaml.safe_load(text)
    if isinstance(data, dict):
        data = data.get("assignments", [])
    if not isinstance(data, list):
        raise ValueError(f"{source} must hold a list of assignments or an 'assignments' list")
    for index, entry in enumerate(data):
        if not isinstance(entry, dict):
            raise ValueError(f"{source}: assignment #{index} is not a mapping")
        if not (entry.get("id") or entry.get("_id")):
            raise ValueError(f"{source}: assignment #{index} has no id")
    return data


def ingest_assignments(source: Path, store: AssignmentSink) -> Dict[str, int]:
    """Write every assignment in ``source`` (a file or a directory of files) to ``store``."""

    source = source.expanduser().resolve()
    if not source.exists():
        raise FileNotFoundError(f"Assignment source {source} does not exist")

    files = (
        sorted(path for path in source.iterdir() if path.suffix.lower() in {".yaml", ".yml", ".json"})
        if source.is_dir()
        else [source]
    )
    assignments = 0
    sub_assignments = 0
    for path in files:
        for document in _load_documents(path):
            store.put_assignment(document)
            assignments += 1
            sub_assignments += len(document.get("sub_assignments") or document.get("subAssignments") or [])
        LOGGER.info("Ingested assignments from %s", path)
    return {"files": len(files), "assignments": assignments, "sub_assignments": sub_assignments}


__all__ = ["ingest_assignments"]
