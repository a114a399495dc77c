"""
Hook types: lifecycle points, definitions, context and results.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field


class HookName(str, Enum):
    PRE_ANALYZE = "pre-analyze"
    POST_ANALYZE = "post-analyze"
    PRE_BRANCH = "pre-branch"
    POST_BRANCH = "post-branch"
    PRE_COMMIT = "pre-commit"
    POST_COMMIT = "post-commit"
    PRE_PUSH = "pre-push"
    POST_PUSH = "post-push"
    PRE_PR = "pre-pr"
    POST_PR = "post-pr"
    PRE_WORKTREE = "pre-worktree"
    POST_WORKTREE = "post-worktree"
    CLEANUP = "cleanup"


# Failure aborts the workflow.
CRITICAL_HOOKS: frozenset[HookName] = frozenset({
    HookName.PRE_ANALYZE,
    HookName.PRE_BRANCH,
    HookName.PRE_COMMIT,
    HookName.PRE_PUSH,
    HookName.PRE_PR,
    HookName.PRE_WORKTREE,
})

# Failure is reported, the workflow carries on.
NON_CRITICAL_HOOKS: frozenset[HookName] = frozenset({
    HookName.POST_ANALYZE,
    HookName.POST_BRANCH,
    HookName.POST_COMMIT,
    HookName.POST_PUSH,
    HookName.POST_PR,
    HookName.POST_WORKTREE,
})

# Run inside the new worktree when it exists; eligible for confirmation.
WORKTREE_CWD_HOOKS: frozenset[HookName] = frozenset({
    HookName.POST_WORKTREE,
    HookName.POST_PR,
    HookName.POST_PUSH,
})


def uses_worktree_cwd(name: HookName) -> bool:
    return name in WORKTREE_CWD_HOOKS


class HookSpec(BaseModel):
    """Structured hook definition. Exactly one of `command` / `script` should be set."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    command: str | None = None
    script: str | None = None
    cwd: str | None = None
    condition: str | None = Field(default=None, alias="if")
    timeout: int | None = None  # ms
    fail_on_error: bool = True
    env: dict[str, str] = Field(default_factory=dict)


HookDefinition = Union[str, list[str], HookSpec]


def parse_hook_definition(raw: Any) -> HookDefinition:
    """Normalize a raw YAML value into a HookDefinition."""
    if isinstance(raw, (str, HookSpec)):
        return raw
    if isinstance(raw, list):
        return [str(c) for c in raw]
    if isinstance(raw, dict):
        return HookSpec.model_validate(raw)
    raise ValueError(f"Unsupported hook definition: {raw!r}")


class HookContext(BaseModel):
    """Values hooks can see, either as {{PLACEHOLDERS}} or WT_* env vars."""

    repo_root: str
    base_branch: str = "main"
    description: str | None = None
    branch_name: str | None = None
    pr_number: int | None = None
    pr_url: str | None = None
    worktree_path: str | None = None
    scenario: str | None = None
    action: str | None = None
    staged_files: list[str] = Field(default_factory=list)
    unstaged_files: list[str] = Field(default_factory=list)
    error: str | None = None


class HookResult(BaseModel):
    hook: HookName
    success: bool
    duration: int = 0  # ms
    output: str | None = None
    error: str | None = None
    skipped: bool = False
    skip_reason: str | None = None


def context_to_env(context: HookContext) -> dict[str, str]:
    env: dict[str, str] = {}
    if context.branch_name:
        env["WT_BRANCH_NAME"] = context.branch_name
    if context.pr_number is not None:
        env["WT_PR_NUMBER"] = str(context.pr_number)
    if context.pr_url:
        env["WT_PR_URL"] = context.pr_url
    if context.worktree_path:
        env["WT_WORKTREE_PATH"] = context.worktree_path
    if context.repo_root:
        env["WT_REPO_ROOT"] = context.repo_root
    if context.base_branch:
        env["WT_BASE_BRANCH"] = context.base_branch
    if context.description:
        env["WT_DESCRIPTION"] = context.description
    if context.scenario:
        env["WT_SCENARIO"] = context.scenario
    if context.action:
        env["WT_ACTION"] = context.action
    if context.error:
        env["WT_ERROR"] = context.error
    if context.staged_files:
        env["WT_STAGED_FILES"] = ",".join(context.staged_files)
    if context.unstaged_files:
        env["WT_UNSTAGED_FILES"] = ",".join(context.unstaged_files)
    return env


def normalize_hooks_config(raw: dict[Any, Any]) -> dict[HookName, HookDefinition]:
    """Key by HookName and parse every definition. Unknown names raise ValueError."""
    return {HookName(name): parse_hook_definition(value) for name, value in raw.items()}
