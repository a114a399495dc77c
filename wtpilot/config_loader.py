"""
Configuration loader for WTPILOT.
Merges defaults with per-repo .wtpilot/config.yaml overrides.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from loguru import logger
from pydantic import BaseModel, Field, field_validator

from wtpilot.hooks.types import HookDefinition, HookName, parse_hook_definition


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

class HookDefaultsConfig(BaseModel):
    timeout_ms: int = 30_000
    max_timeout_ms: int = 60_000
    continue_on_warning: bool = False
    show_output: bool = False


class CommitConfig(BaseModel):
    wip_message: str = "chore: work in progress\n\nCommitted with wtpilot"


class WtPilotConfig(BaseModel):
    base_branch: str = "main"
    branch_prefix: str = "feat/"
    worktree_pattern: str = "{repo}.pr{number}"
    draft: bool = True
    confirm_hooks: bool = False
    hook_defaults: HookDefaultsConfig = Field(default_factory=HookDefaultsConfig)
    commit: CommitConfig = Field(default_factory=CommitConfig)
    hooks: dict[HookName, HookDefinition] = Field(default_factory=dict)

    @field_validator("hooks", mode="before")
    @classmethod
    def _parse_hooks(cls, raw: Any) -> dict[HookName, HookDefinition]:
        hooks: dict[HookName, HookDefinition] = {}
        for name, value in (raw or {}).items():
            try:
                hook = HookName(name)
            except ValueError:
                logger.warning(f"[CONFIG] Ignoring unknown hook '{name}'")
                continue
            if value is None:
                continue
            hooks[hook] = parse_hook_definition(value)
        return hooks


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "config.yaml"


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base."""
    merged = base.copy()
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def repo_config_path(repo_path: Path) -> Path:
    return repo_path / ".wtpilot" / "config.yaml"


def load_config(repo_path: Path | None = None) -> WtPilotConfig:
    """
    Load config by merging:
      1. Built-in defaults (wtpilot/config.yaml)
      2. Repo-level overrides (<repo>/.wtpilot/config.yaml)
    """
    with open(_DEFAULT_CONFIG_PATH, "r") as f:
        base: dict[str, Any] = yaml.safe_load(f) or {}

    if repo_path:
        repo_config = repo_config_path(repo_path)
        if repo_config.exists():
            with open(repo_config, "r") as f:
                overrides: dict[str, Any] = yaml.safe_load(f) or {}
            base = _deep_merge(base, overrides)
            logger.debug(f"[CONFIG] Merged overrides from {repo_config}")

    return WtPilotConfig(**base)
