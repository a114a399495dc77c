"""
Action Resolver

Table-driven mapping from Scenario to the StateAction the executor
should perform, plus the severity the caller uses to decide whether
to ask before executing.

Caller-supplied action keys are parsed into ActionType here, at the
boundary. Nothing downstream ever sees a raw string.
"""

from __future__ import annotations

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict

from wtpilot.scenarios import RepositoryState, Scenario


class ActionType(str, Enum):
    EMPTY_COMMIT = "empty_commit"
    COMMIT_STAGED = "commit_staged"
    COMMIT_ALL = "commit_all"
    STASH_AND_EMPTY = "stash_and_empty"
    USE_COMMITS = "use_commits"
    PUSH_THEN_BRANCH = "push_then_branch"
    USE_COMMITS_AND_COMMIT_ALL = "use_commits_and_commit_all"
    USE_COMMITS_AND_STASH = "use_commits_and_stash"
    CREATE_PR_FOR_BRANCH = "create_pr_for_branch"
    PR_FOR_BRANCH_COMMIT_ALL = "pr_for_branch_commit_all"
    PR_FOR_BRANCH_STASH = "pr_for_branch_stash"
    BRANCH_FROM_DETACHED = "branch_from_detached"


BranchFrom = Literal["head", "base"]
MessageLevel = Literal["info", "warning"]

VALID_ACTION_KEYS: tuple[str, ...] = tuple(a.value for a in ActionType)

HEAD_ACTIONS = frozenset({ActionType.USE_COMMITS, ActionType.BRANCH_FROM_DETACHED})
# Local commits go into the PR: the controller starts these branches at HEAD.
KEEP_COMMITS_ACTIONS = frozenset({
    ActionType.USE_COMMITS_AND_COMMIT_ALL,
    ActionType.USE_COMMITS_AND_STASH,
})
STAGE_ALL_ACTIONS = frozenset({ActionType.COMMIT_ALL, ActionType.USE_COMMITS_AND_COMMIT_ALL})
STASH_ACTIONS = frozenset({
    ActionType.STASH_AND_EMPTY,
    ActionType.USE_COMMITS_AND_STASH,
    ActionType.PR_FOR_BRANCH_STASH,
})
EXISTING_BRANCH_ACTIONS = frozenset({
    ActionType.CREATE_PR_FOR_BRANCH,
    ActionType.PR_FOR_BRANCH_COMMIT_ALL,
    ActionType.PR_FOR_BRANCH_STASH,
})


class InvalidAction(ValueError):
    """Raised when an explicit action key is not one of the known ActionType values."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(
            f"Invalid action '{key}'. Valid actions: {', '.join(VALID_ACTION_KEYS)}"
        )


class StateAction(BaseModel):
    model_config = ConfigDict(frozen=True)

    action: ActionType
    branch_from: BranchFrom

    @classmethod
    def of(cls, action: ActionType) -> "StateAction":
        """Build a StateAction whose branch origin is derived from the action."""
        return cls(action=action, branch_from="head" if action in HEAD_ACTIONS else "base")


class Resolution(BaseModel):
    model_config = ConfigDict(frozen=True)

    action: StateAction
    level: MessageLevel = "info"


# ---------------------------------------------------------------------------
# Scenario → Action table
# ---------------------------------------------------------------------------

_TABLE: dict[Scenario, tuple[ActionType, MessageLevel]] = {
    Scenario.CLEAN_ON_BASE: (ActionType.EMPTY_COMMIT, "warning"),
    Scenario.UNCOMMITTED_UNSTAGED: (ActionType.STASH_AND_EMPTY, "info"),
    Scenario.UNCOMMITTED_STAGED: (ActionType.COMMIT_STAGED, "info"),
    Scenario.DETACHED_HEAD_CLEAN: (ActionType.EMPTY_COMMIT, "warning"),
    Scenario.DETACHED_HEAD_WITH_COMMITS: (ActionType.BRANCH_FROM_DETACHED, "warning"),
    Scenario.EXISTING_BRANCH_CLEAN: (ActionType.EMPTY_COMMIT, "warning"),
    Scenario.EXISTING_BRANCH_DIRTY: (ActionType.PR_FOR_BRANCH_COMMIT_ALL, "info"),
    Scenario.EXISTING_BRANCH_AHEAD: (ActionType.CREATE_PR_FOR_BRANCH, "info"),
    Scenario.BASE_BEHIND_REMOTE: (ActionType.USE_COMMITS, "warning"),
    Scenario.PR_MODE_CLEAN: (ActionType.CREATE_PR_FOR_BRANCH, "info"),
    Scenario.PR_MODE_DIRTY: (ActionType.PR_FOR_BRANCH_STASH, "warning"),
}

# Alternatives offered for each scenario, recommended action first.
_ALTERNATIVES: dict[Scenario, tuple[ActionType, ...]] = {
    Scenario.CLEAN_ON_BASE: (ActionType.EMPTY_COMMIT,),
    Scenario.UNCOMMITTED_UNSTAGED: (
        ActionType.STASH_AND_EMPTY,
        ActionType.COMMIT_ALL,
        ActionType.USE_COMMITS_AND_COMMIT_ALL,
        ActionType.USE_COMMITS_AND_STASH,
        ActionType.EMPTY_COMMIT,
    ),
    Scenario.UNCOMMITTED_STAGED: (
        ActionType.COMMIT_STAGED,
        ActionType.COMMIT_ALL,
        ActionType.STASH_AND_EMPTY,
        ActionType.USE_COMMITS_AND_COMMIT_ALL,
        ActionType.USE_COMMITS_AND_STASH,
        ActionType.EMPTY_COMMIT,
    ),
    Scenario.DETACHED_HEAD_CLEAN: (ActionType.EMPTY_COMMIT, ActionType.BRANCH_FROM_DETACHED),
    Scenario.DETACHED_HEAD_WITH_COMMITS: (ActionType.BRANCH_FROM_DETACHED, ActionType.EMPTY_COMMIT),
    Scenario.EXISTING_BRANCH_CLEAN: (ActionType.EMPTY_COMMIT,),
    Scenario.EXISTING_BRANCH_DIRTY: (
        ActionType.PR_FOR_BRANCH_COMMIT_ALL,
        ActionType.PR_FOR_BRANCH_STASH,
        ActionType.COMMIT_ALL,
        ActionType.STASH_AND_EMPTY,
        ActionType.EMPTY_COMMIT,
    ),
    Scenario.EXISTING_BRANCH_AHEAD: (
        ActionType.CREATE_PR_FOR_BRANCH,
        ActionType.USE_COMMITS,
        ActionType.EMPTY_COMMIT,
    ),
    Scenario.BASE_BEHIND_REMOTE: (
        ActionType.USE_COMMITS,
        ActionType.PUSH_THEN_BRANCH,
        ActionType.EMPTY_COMMIT,
    ),
    Scenario.PR_MODE_CLEAN: (ActionType.CREATE_PR_FOR_BRANCH,),
    Scenario.PR_MODE_DIRTY: (ActionType.PR_FOR_BRANCH_STASH, ActionType.PR_FOR_BRANCH_COMMIT_ALL),
}


def parse_action_key(key: str | ActionType) -> ActionType:
    """Validate a caller-supplied action key against the closed ActionType set."""
    if isinstance(key, ActionType):
        return key
    try:
        return ActionType(key.strip().lower())
    except (ValueError, AttributeError):
        raise InvalidAction(str(key)) from None


def resolve_action(
    scenario: Scenario,
    override: str | ActionType | None = None,
    state: RepositoryState | None = None,
) -> Resolution:
    """
    Resolve the action for a scenario.

    An explicit override replaces the table entry once it has been
    validated; the severity still comes from the scenario so callers
    keep prompting where the situation is unusual.

    With the snapshot at hand, uncommitted work on top of local commits
    the base's remote does not have is raised to "warning": the
    recommended action branches from origin and leaves those commits
    out of the PR, so the caller must ask first.
    """
    action_type, level = _TABLE[scenario]
    if override is not None:
        action_type = parse_action_key(override)
    if state is not None and has_unpushed_commits_under_changes(scenario, state):
        level = "warning"
    return Resolution(action=StateAction.of(action_type), level=level)


def has_unpushed_commits_under_changes(scenario: Scenario, state: RepositoryState) -> bool:
    return (
        scenario in (Scenario.UNCOMMITTED_STAGED, Scenario.UNCOMMITTED_UNSTAGED)
        and not state.is_detached_head
        and state.ahead_of_base > 0
    )


def available_actions(scenario: Scenario) -> list[StateAction]:
    return [StateAction.of(a) for a in _ALTERNATIVES[scenario]]


def get_branch_point(action: StateAction, base_branch: str) -> str:
    return "HEAD" if action.branch_from == "head" else f"origin/{base_branch}"


def branch_start_point(action: StateAction, base_branch: str) -> str:
    """Where the new branch is actually created."""
    if keeps_local_commits(action):
        return "HEAD"
    return get_branch_point(action, base_branch)


def requires_stage_all(action: StateAction) -> bool:
    return action.action in STAGE_ALL_ACTIONS


def involves_stashing(action: StateAction) -> bool:
    return action.action in STASH_ACTIONS


def needs_push_to_base(action: StateAction) -> bool:
    return action.action is ActionType.PUSH_THEN_BRANCH


def commits_to_current_branch(action: StateAction) -> bool:
    return action.action is ActionType.PR_FOR_BRANCH_COMMIT_ALL


def is_existing_branch_action(action: StateAction) -> bool:
    return action.action in EXISTING_BRANCH_ACTIONS


def keeps_local_commits(action: StateAction) -> bool:
    return action.action in KEEP_COMMITS_ACTIONS


_ACTION_DESCRIPTIONS: dict[ActionType, str] = {
    ActionType.EMPTY_COMMIT: "Create the branch from origin with an empty initial commit",
    ActionType.COMMIT_STAGED: "Commit the staged changes to the new branch",
    ActionType.COMMIT_ALL: "Stage everything and commit it to the new branch",
    ActionType.STASH_AND_EMPTY: "Stash all changes, then start from an empty commit",
    ActionType.USE_COMMITS: "Branch from HEAD so the local commits go into the PR",
    ActionType.PUSH_THEN_BRANCH: "Push the base branch to origin first, then branch",
    ActionType.USE_COMMITS_AND_COMMIT_ALL: "Keep the local commits and commit uncommitted work too",
    ActionType.USE_COMMITS_AND_STASH: "Keep the local commits and stash uncommitted work",
    ActionType.CREATE_PR_FOR_BRANCH: "Open a PR for the current branch as-is",
    ActionType.PR_FOR_BRANCH_COMMIT_ALL: "Commit uncommitted work on the current branch, then open its PR",
    ActionType.PR_FOR_BRANCH_STASH: "Stash uncommitted work, then open a PR for the current branch",
    ActionType.BRANCH_FROM_DETACHED: "Create the branch from the detached HEAD commit",
}


def describe_action(action: StateAction | ActionType) -> str:
    action_type = action.action if isinstance(action, StateAction) else action
    return _ACTION_DESCRIPTIONS[action_type]
