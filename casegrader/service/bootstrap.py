"""Build a configured :class:`GradingService` from YAML config and environment."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict

from dotenv import load_dotenv

from casegrader.core.audit import GradingAuditLog, NullAuditLog
from casegrader.core.config import GradingConfig, load_grading_config, merge_policy
from casegrader.grading.aggregator import Clock
from gradebook.memory import InMemoryGradebook
from gradebook.storage import GradebookStore

from .engine import GradingService

DEFAULT_CONFIG_PATH = Path("config/grading.yaml")
CONFIG_ENV = "CASEGRADER_CONFIG"
STORE_ENV = "CASEGRADER_STORE"
LOGGER = logging.getLogger(__name__)


def _build_store(config: GradingConfig):
    if config.store.backend == "sqlite":
        LOGGER.debug("Using SQLite gradebook at %s", config.store.sqlite_path)
        return GradebookStore(config.store.sqlite_path)
    return InMemoryGradebook()


def resolve_config(
    config_path: Path | None = None,
    *,
    repo_root: Path | None = None,
    store_path: Path | None = None,
    policy_overrides: Dict[str, Any] | None = None,
) -> GradingConfig:
    """
    Load the grading config, applying environment and caller overrides.

    Precedence for the config file: ``config_path``, then ``$CASEGRADER_CONFIG``,
    then ``config/grading.yaml`` under ``repo_root`` when it exists; otherwise
    defaults. ``store_path`` (or ``$CASEGRADER_STORE``) switches the store to
    SQLite at that path.
    """

    repo_root = (repo_root or Path.cwd()).resolve()
    load_dotenv(repo_root / ".env")

    env_config = os.getenv(CONFIG_ENV)
    if config_path is None and env_config:
        config_path = Path(env_config)
    if config_path is None and (repo_root / DEFAULT_CONFIG_PATH).exists():
        config_path = repo_root / DEFAULT_CONFIG_PATH

    config = load_grading_config(config_path) if config_path is not None else GradingConfig()

    env_store = os.getenv(STORE_ENV)
    if store_path is None and env_store:
        store_path = Path(env_store)
    if store_path is not None:
        store_cfg = config.store.model_copy(
            update={"backend": "sqlite", "sqlite_path": store_path.expanduser().resolve()}
        )
        config = config.model_copy(update={"store": store_cfg})

    if policy_overrides:
        config = merge_policy(config, policy_overrides)
    return config


def bootstrap_service(
    config_path: Path | None = None,
    *,
    repo_root: Path | None = None,
    store_path: Path | None = None,
    policy_overrides: Dict[str, Any] | None = None,
    clock: Clock | None = None,
) -> GradingService:
    """Create the service with the configured store and audit log."""

    config = resolve_config(
        config_path,
        repo_root=repo_root,
        store_path=store_path,
        policy_overrides=policy_overrides,
    )
    store = _build_store(config)
    audit = GradingAuditLog(config.audit.path) if config.audit.active else NullAuditLog()
    LOGGER.info(
        "Grading service ready (store=%s, resubmission=%s, completion=%s)",
        config.store.backend,
        config.policy.resubmission.value,
        config.policy.completion.describe(),
    )
    return GradingService(store, store, config=config, audit=audit, clock=clock)


__all__ = ["DEFAULT_CONFIG_PATH", "bootstrap_service", "resolve_config"]
