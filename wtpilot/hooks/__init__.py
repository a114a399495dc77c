"""
Lifecycle hooks: user commands run at fixed points of the provisioning run.
"""

from wtpilot.hooks.executor import HookExecutor
from wtpilot.hooks.runner import HookRunner, run_lifecycle_hook
from wtpilot.hooks.types import (
    CRITICAL_HOOKS,
    NON_CRITICAL_HOOKS,
    WORKTREE_CWD_HOOKS,
    HookContext,
    HookDefinition,
    HookName,
    HookResult,
    HookSpec,
)

__all__ = [
    "CRITICAL_HOOKS",
    "NON_CRITICAL_HOOKS",
    "WORKTREE_CWD_HOOKS",
    "HookContext",
    "HookDefinition",
    "HookExecutor",
    "HookName",
    "HookResult",
    "HookRunner",
    "HookSpec",
    "run_lifecycle_hook",
]
