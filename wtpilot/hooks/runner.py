"""
Hook Runner

Owns the lifecycle hooks for one provisioning run: the accumulated
HookContext, the critical / non-critical failure policy, and the
optional interactive review of worktree hooks.

One runner per run. The context is private; get_context() hands out
copies only.
"""

from __future__ import annotations

import os
from typing import Any, Callable, Protocol

from loguru import logger
from rich.console import Console

from wtpilot.hooks import confirmation
from wtpilot.hooks.executor import (
    DEFAULT_MAX_TIMEOUT_MS,
    DEFAULT_TIMEOUT_MS,
    HookExecutor,
    resolve_hook_cwd,
)
from wtpilot.hooks.types import (
    CRITICAL_HOOKS,
    NON_CRITICAL_HOOKS,
    HookContext,
    HookDefinition,
    HookName,
    HookResult,
    normalize_hooks_config,
    uses_worktree_cwd,
)

console = Console()


class HookExecution(Protocol):
    def execute_hook(self, name: HookName, context: HookContext) -> HookResult: ...

    def get_configured_hooks(self) -> list[HookName]: ...

    def has_hook(self, name: HookName) -> bool: ...


class HookRunner:
    def __init__(
        self,
        hooks_config: dict[HookName, HookDefinition] | None,
        initial_context: dict[str, Any] | None = None,
        *,
        verbose: bool = False,
        dry_run: bool = False,
        show_output: bool = False,
        continue_on_warning: bool = False,
        default_timeout: int = DEFAULT_TIMEOUT_MS,
        max_timeout: int = DEFAULT_MAX_TIMEOUT_MS,
        confirm_hooks: bool = False,
        executor: HookExecution | None = None,
        executor_factory: Callable[[dict[HookName, HookDefinition]], HookExecution] | None = None,
        is_interactive: Callable[[], bool] = confirmation.is_interactive_environment,
        prompt: Callable[..., confirmation.HookConfirmation] = confirmation.prompt_hook_confirmation,
        edit_definition: Callable[[HookDefinition, str], HookDefinition] = (
            confirmation.create_edited_hook_definition
        ),
    ):
        self.hooks_config = normalize_hooks_config(hooks_config or {})
        self.verbose = verbose
        self.show_output = show_output
        self.continue_on_warning = continue_on_warning
        self.confirm_hooks = confirm_hooks
        self.default_timeout = default_timeout
        self.max_timeout = max_timeout

        self._context: dict[str, Any] = {"base_branch": "main", **(initial_context or {})}
        if not self._context.get("repo_root"):
            self._context["repo_root"] = os.getcwd()
        HookContext.model_validate(self._context)

        self._executor_factory = executor_factory or (
            lambda config: HookExecutor(
                config,
                cwd=self._context["repo_root"],
                dry_run=dry_run,
                default_timeout=default_timeout,
                max_timeout=max_timeout,
            )
        )
        self._executor = executor or self._executor_factory(self.hooks_config)
        self._is_interactive = is_interactive
        self._prompt = prompt
        self._edit_definition = edit_definition

    # -----------------------------------------------------------------------
    # Context
    # -----------------------------------------------------------------------

    def update_context(self, **updates: Any) -> None:
        """
        Shallow merge. Keys not named here keep their values.

        The merged context is validated here, so a bad value raises
        ValueError at the call that introduced it and the previous
        context is kept.
        """
        merged = {**self._context, **updates}
        HookContext.model_validate(merged)
        self._context = merged

    def get_context(self) -> dict[str, Any]:
        return dict(self._context)

    def _build_context(self, **extra: Any) -> HookContext:
        return HookContext.model_validate({**self._context, **extra})

    # -----------------------------------------------------------------------
    # Introspection
    # -----------------------------------------------------------------------

    def has_configured_hooks(self) -> bool:
        return len(self._executor.get_configured_hooks()) > 0

    def get_configured_hooks(self) -> list[HookName]:
        return self._executor.get_configured_hooks()

    # -----------------------------------------------------------------------
    # Execution
    # -----------------------------------------------------------------------

    def run_hook(self, name: HookName | str) -> bool:
        """
        Run a lifecycle hook.

        Returns True if the workflow should continue, False if it
        should abort. Never raises for a known hook name: a failure
        anywhere on the way (context, confirmation prompt, executor)
        is handled like a failed hook.
        """
        name = HookName(name)
        if not self._executor.has_hook(name):
            return True

        try:
            result = self._run(name)
        except Exception as e:
            result = HookResult(hook=name, success=False, error=f"{type(e).__name__}: {e}")

        return self._handle_result(name, result)

    def _run(self, name: HookName) -> HookResult:
        context = self._build_context()
        executor = self._executor

        if self._should_confirm(name):
            definition = self.hooks_config.get(name)
            if definition is not None:
                cwd = resolve_hook_cwd(name, definition, context, self._context["repo_root"])
                choice = self._prompt(name, definition, cwd)

                if choice.action == "skip":
                    logger.info(f"[HOOKS] {name.value} skipped by user")
                    return HookResult(hook=name, success=True, skipped=True, skip_reason="User chose to skip")

                if choice.edited_command:
                    edited = self._edit_definition(definition, choice.edited_command)
                    logger.info(f"[HOOKS] Running edited {name.value}: {choice.edited_command}")
                    executor = self._executor_factory({name: edited})

        if self.verbose:
            console.print(f"[dim]Running hook: {name.value}[/]")

        return executor.execute_hook(name, context)

    def run_cleanup(self, error: BaseException | str | None = None) -> None:
        """Best effort. Never raises, whatever the cleanup hook does."""
        try:
            if not self._executor.has_hook(HookName.CLEANUP):
                return

            message = str(error) if error is not None else None
            context = self._build_context(error=message)

            if self.verbose:
                console.print("[dim]Running cleanup hook...[/]")

            result = self._executor.execute_hook(HookName.CLEANUP, context)

            if result.output and self.show_output:
                console.print(result.output)
            if not result.success and not result.skipped:
                logger.warning(f"[HOOKS] Cleanup hook failed: {result.error}")
        except Exception as e:
            logger.warning(f"[HOOKS] Cleanup hook raised: {e}")

    def _should_confirm(self, name: HookName) -> bool:
        if not self.confirm_hooks or not uses_worktree_cwd(name):
            return False
        try:
            return self._is_interactive()
        except Exception:
            return False

    def _handle_result(self, name: HookName, result: HookResult) -> bool:
        if result.skipped:
            if self.verbose and result.skip_reason:
                console.print(f"[dim]  Skipped: {result.skip_reason}[/]")
            return True

        if result.output and self.show_output:
            console.print(result.output)

        if result.success:
            if self.verbose:
                console.print(f"[dim]  Completed in {result.duration}ms[/]")
            return True

        if name in CRITICAL_HOOKS:
            logger.error(f"[HOOKS] Hook {name.value} failed: {result.error}")
            return False

        if name in NON_CRITICAL_HOOKS or self.continue_on_warning:
            logger.warning(f"[HOOKS] Hook {name.value} failed (non-critical): {result.error}")
            return True

        logger.error(f"[HOOKS] Hook {name.value} failed: {result.error}")
        return False


def run_lifecycle_hook(runner: HookRunner | None, name: HookName) -> bool:
    """Hooks disabled (no runner) always means continue."""
    if runner is None:
        return True
    return runner.run_hook(name)
