"""
Action Executor

Performs the git mutations a StateAction needs before the branch is
created. All git access goes through an injected GitOperations object
so the executor can be driven by fakes in tests.

The executor never raises. Failures come back as ActionResult with
success=False, and any stash created before the failure is still
reported so the caller can restore it.
"""

from __future__ import annotations

from typing import Protocol

from loguru import logger
from pydantic import BaseModel

from wtpilot.actions import ActionType, StateAction, describe_action

DEFAULT_WIP_COMMIT_MESSAGE = "chore: work in progress\n\nCommitted with wtpilot"


class GitOperations(Protocol):
    def git_add(self, path: str, cwd: str | None = None) -> None: ...

    def git_stash(
        self, message: str, keep_index: bool = False, cwd: str | None = None
    ) -> str | None: ...

    def git_push(
        self, remote: str, branch: str, set_upstream: bool = False, cwd: str | None = None
    ) -> None: ...

    def git_commit(self, message: str, allow_empty: bool = False, cwd: str | None = None) -> None: ...


class ActionResult(BaseModel):
    success: bool
    stash_ref: str | None = None
    message: str | None = None


def execute_state_action(
    action: StateAction,
    branch_name: str,
    ops: GitOperations,
    cwd: str | None = None,
    base_branch: str = "main",
    commit_message: str = DEFAULT_WIP_COMMIT_MESSAGE,
) -> ActionResult:
    stash_ref: str | None = None
    kind = action.action
    logger.debug(f"[ACTION] {kind.value}: {describe_action(action)}")

    try:
        if kind in (
            ActionType.EMPTY_COMMIT,
            ActionType.COMMIT_STAGED,
            ActionType.USE_COMMITS,
            ActionType.BRANCH_FROM_DETACHED,
            ActionType.CREATE_PR_FOR_BRANCH,
        ):
            pass

        elif kind in (ActionType.COMMIT_ALL, ActionType.USE_COMMITS_AND_COMMIT_ALL):
            ops.git_add(".", cwd=cwd)

        elif kind in (ActionType.STASH_AND_EMPTY, ActionType.USE_COMMITS_AND_STASH):
            stash_ref = ops.git_stash(
                message=f"wtpilot: auto-stash before creating {branch_name}", cwd=cwd
            )

        elif kind is ActionType.PR_FOR_BRANCH_STASH:
            stash_ref = ops.git_stash(
                message=f"wtpilot: auto-stash before opening PR for {branch_name}", cwd=cwd
            )

        elif kind is ActionType.PUSH_THEN_BRANCH:
            ops.git_push(remote="origin", branch=base_branch, cwd=cwd)

        elif kind is ActionType.PR_FOR_BRANCH_COMMIT_ALL:
            ops.git_add(".", cwd=cwd)
            ops.git_commit(message=commit_message, cwd=cwd)

        else:
            raise ValueError(f"Unhandled action: {kind}")

    except Exception as e:
        logger.warning(f"[ACTION] {kind.value} failed: {e}")
        return ActionResult(success=False, stash_ref=stash_ref, message=str(e))

    if stash_ref:
        logger.info(f"[ACTION] Work shelved in {stash_ref}")
    return ActionResult(success=True, stash_ref=stash_ref)
