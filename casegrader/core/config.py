"""
Typed configuration for the grading service.

Configuration lives in a small YAML file (see ``config/grading.yaml``); every
section is optional so an empty file yields an in-memory store with the
default policies.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Literal, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .policy import CompletionPolicy, ResubmissionPolicy


class PolicyConfig(BaseModel):
    """Grading policies applied consistently by submit, regrade, and the statistics roller."""

    model_config = ConfigDict(extra="ignore")

    resubmission: ResubmissionPolicy = ResubmissionPolicy.REJECT
    completion: CompletionPolicy = Field(default_factory=CompletionPolicy)

    @model_validator(mode="before")
    @classmethod
    def coerce_legacy_format(cls, data: Any) -> Any:
        if data is None or isinstance(data, PolicyConfig):
            return data
        if not isinstance(data, dict):
            return data

        payload = dict(data)
        if "resubmission_policy" in payload and "resubmission" not in payload:
            payload["resubmission"] = payload.pop("resubmission_policy")
        if isinstance(payload.get("resubmission"), str):
            payload["resubmission"] = payload["resubmission"].strip().lower()

        # Flat switches from older config files.
        completion = dict(payload.get("completion") or {})
        if "require_100_each_sub" in payload:
            completion.setdefault("require_full_score", bool(payload.pop("require_100_each_sub")))
        if "count_fallback" in payload:
            completion.setdefault("allow_count_fallback", bool(payload.pop("count_fallback")))
        payload["completion"] = completion
        return payload


class StoreConfig(BaseModel):
    """Which document store backs the service."""

    model_config = ConfigDict(extra="ignore")

    backend: Literal["memory", "sqlite"] = "memory"
    sqlite_path: Path = Field(default=Path("outputs/gradebook.sqlite"))

    @field_validator("sqlite_path", mode="before")
    @classmethod
    def coerce_path(cls, value: Any) -> Path:
        return Path(value).expanduser()


class AuditConfig(BaseModel):
    """Optional JSONL audit trail."""

    enabled: bool = False
    path: Optional[Path] = None

    @field_validator("path", mode="before")
    @classmethod
    def coerce_path(cls, value: Any) -> Optional[Path]:
        if value in (None, ""):
            return None
        return Path(value).expanduser()

    @property
    def active(self) -> bool:
        return self.enabled and self.path is not None


class GradingConfig(BaseModel):
    """Top-level configuration for the grading service."""

    model_config = ConfigDict(extra="ignore")

    policy: PolicyConfig = Field(default_factory=PolicyConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    audit: AuditConfig = Field(default_factory=AuditConfig)
    max_write_retries: int = Field(default=5, ge=1, le=50)
    log_level: str = "INFO"

    @model_validator(mode="before")
    @classmethod
    def promote_flat_policy_keys(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        payload = dict(data)
        policy = dict(payload.get("policy") or {})
        for key in ("resubmission_policy", "require_100_each_sub", "count_fallback"):
            if key in payload:
                policy.setdefault(key, payload.pop(key))
        payload["policy"] = policy
        return payload

    @field_validator("log_level", mode="before")
    @classmethod
    def upper_log_level(cls, value: Any) -> str:
        return str(value or "INFO").strip().upper()


def read_yaml_file(path: Path) -> Dict[str, Any]:
    """Load a YAML file and return a dictionary."""
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected mapping at root of {path}, received {type(data)}")
    return data


def _resolve_config_path(value: Any, base_dir: Path) -> str:
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = (base_dir / path).resolve()
    return str(path)


def _absolutize_paths(data: Dict[str, Any], base_dir: Path) -> None:
    store = data.get("store")
    if isinstance(store, dict) and store.get("sqlite_path"):
        store["sqlite_path"] = _resolve_config_path(store["sqlite_path"], base_dir)
    audit = data.get("audit")
    if isinstance(audit, dict) and audit.get("path"):
        audit["path"] = _resolve_config_path(audit["path"], base_dir)


def load_grading_config(path: Path, *, base_dir: Path | None = None) -> GradingConfig:
    """Load the grading config; relative paths resolve against ``base_dir`` or the file's folder."""
    path = path.expanduser().resolve()
    data = read_yaml_file(path)
    _absolutize_paths(data, base_dir=(base_dir or path.parent).resolve())
    try:
        return GradingConfig.model_validate(data)
    except ValidationError as exc:
        raise ValueError(f"Invalid grading config in {path}") from exc


def merge_policy(base: GradingConfig, overrides: Dict[str, Any]) -> GradingConfig:
    """Return a copy of ``base`` with policy overrides applied (e.g. from CLI flags)."""
    payload = base.policy.model_dump()
    payload.update(overrides)
    try:
        policy = PolicyConfig.model_validate(payload)
    except ValidationError as exc:
        raise ValueError("Invalid policy overrides") from exc
    return base.model_copy(update={"policy": policy})


__all__ = [
    "AuditConfig",
    "GradingConfig",
    "PolicyConfig",
    "StoreConfig",
    "load_grading_config",
    "merge_policy",
    "read_yaml_file",
]
