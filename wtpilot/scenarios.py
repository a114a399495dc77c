"""
Scenario Classifier

Turns a captured repository snapshot into exactly one Scenario tag.
Pure and total: same snapshot in, same tag out, never raises.
"""

from __future__ import annotations

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict


class Scenario(str, Enum):
    CLEAN_ON_BASE = "clean_on_base"
    UNCOMMITTED_UNSTAGED = "uncommitted_unstaged"
    UNCOMMITTED_STAGED = "uncommitted_staged"
    DETACHED_HEAD_CLEAN = "detached_head_clean"
    DETACHED_HEAD_WITH_COMMITS = "detached_head_with_commits"
    EXISTING_BRANCH_CLEAN = "existing_branch_clean"
    EXISTING_BRANCH_DIRTY = "existing_branch_dirty"
    EXISTING_BRANCH_AHEAD = "existing_branch_ahead"
    BASE_BEHIND_REMOTE = "base_behind_remote"
    PR_MODE_CLEAN = "pr_mode_clean"
    PR_MODE_DIRTY = "pr_mode_dirty"


class RepositoryState(BaseModel):
    """
    Snapshot of the repository taken once per invocation.

    `staged_only` is only meaningful when there are uncommitted changes:
    a mix of staged and unstaged work reports `staged_only=False`.
    """

    model_config = ConfigDict(frozen=True)

    has_uncommitted_changes: bool = False
    staged_only: bool = False
    is_detached_head: bool = False
    current_branch: str | None = "main"
    existing_local_branch_for_task: bool = False
    ahead_of_base: int = 0
    behind_base: int = 0
    existing_pr_number: int | None = None
    mode: Literal["new", "pr", "branch"] = "new"
    base_branch: str = "main"

    @property
    def on_existing_branch(self) -> bool:
        if self.is_detached_head:
            return False
        if self.mode == "branch" or self.existing_local_branch_for_task:
            return True
        return self.current_branch is not None and self.current_branch != self.base_branch


def _uncommitted(state: RepositoryState) -> Scenario:
    if state.staged_only:
        return Scenario.UNCOMMITTED_STAGED
    return Scenario.UNCOMMITTED_UNSTAGED


def classify_scenario(state: RepositoryState) -> Scenario:
    dirty = state.has_uncommitted_changes

    if state.mode == "pr":
        return Scenario.PR_MODE_DIRTY if dirty else Scenario.PR_MODE_CLEAN

    if state.is_detached_head:
        if state.ahead_of_base > 0:
            return Scenario.DETACHED_HEAD_WITH_COMMITS
        if dirty:
            return _uncommitted(state)
        return Scenario.DETACHED_HEAD_CLEAN

    if state.on_existing_branch:
        if dirty:
            return Scenario.EXISTING_BRANCH_DIRTY
        if state.ahead_of_base > 0:
            return Scenario.EXISTING_BRANCH_AHEAD
        return Scenario.EXISTING_BRANCH_CLEAN

    if dirty:
        return _uncommitted(state)
    if state.ahead_of_base > 0:
        return Scenario.BASE_BEHIND_REMOTE
    return Scenario.CLEAN_ON_BASE


_DESCRIPTIONS: dict[Scenario, str] = {
    Scenario.CLEAN_ON_BASE: "On the base branch, level with origin, no uncommitted changes",
    Scenario.UNCOMMITTED_UNSTAGED: "Uncommitted changes, some of them unstaged",
    Scenario.UNCOMMITTED_STAGED: "Uncommitted changes, all of them staged",
    Scenario.DETACHED_HEAD_CLEAN: "Detached HEAD with nothing beyond the base branch",
    Scenario.DETACHED_HEAD_WITH_COMMITS: "Detached HEAD carrying commits not on the base branch",
    Scenario.EXISTING_BRANCH_CLEAN: "On a feature branch at the same commit as the base branch",
    Scenario.EXISTING_BRANCH_DIRTY: "On a feature branch with uncommitted changes",
    Scenario.EXISTING_BRANCH_AHEAD: "On a feature branch with commits not on the base branch",
    Scenario.BASE_BEHIND_REMOTE: "On the base branch with local commits origin does not have yet",
    Scenario.PR_MODE_CLEAN: "Checking out an existing PR, working tree clean",
    Scenario.PR_MODE_DIRTY: "Checking out an existing PR, working tree has uncommitted changes",
}


def describe_scenario(scenario: Scenario) -> str:
    return _DESCRIPTIONS[scenario]
