"""
Grading and completion engine for hierarchical coding assignments.

The package is importable on its own; storage adapters live in the sibling
``gradebook`` package and are only needed by the service layer and the CLI.
"""

from importlib import metadata


def get_version() -> str:
    """Return the installed project version."""
    try:
        return metadata.version("casegrader")
    except metadata.PackageNotFoundError:
        return "0.0.0"


__all__ = ["get_version"]
