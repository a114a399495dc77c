"""
Hook Executor

Runs configured hook commands through the shell with the hook context
exported as WT_* environment variables. Every outcome, timeouts
included, is returned as a HookResult.
"""

from __future__ import annotations

import os
import re
import subprocess
import sys
import time
from pathlib import Path

from loguru import logger

from wtpilot.hooks.types import (
    HookContext,
    HookDefinition,
    HookName,
    HookResult,
    HookSpec,
    context_to_env,
    normalize_hooks_config,
    uses_worktree_cwd,
)

DEFAULT_TIMEOUT_MS = 30_000
DEFAULT_MAX_TIMEOUT_MS = 60_000

_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")


def expand_template(template: str, context: HookContext) -> str:
    values = {
        "BRANCH_NAME": context.branch_name,
        "PR_NUMBER": str(context.pr_number) if context.pr_number is not None else None,
        "PR_URL": context.pr_url,
        "WORKTREE_PATH": context.worktree_path,
        "REPO_ROOT": context.repo_root,
        "BASE_BRANCH": context.base_branch,
        "DESCRIPTION": context.description,
        "SCENARIO": context.scenario,
        "ACTION": context.action,
    }
    return _PLACEHOLDER.sub(lambda m: values.get(m.group(1)) or "", template)


def resolve_hook_cwd(
    name: HookName,
    definition: HookDefinition,
    context: HookContext,
    default_cwd: str | None = None,
) -> str:
    """
    Explicit cwd on a structured definition wins, then the new worktree
    for worktree-cwd hooks (once it exists on disk), then the repo root.
    """
    if isinstance(definition, HookSpec) and definition.cwd:
        return expand_template(definition.cwd, context)
    if uses_worktree_cwd(name) and context.worktree_path and Path(context.worktree_path).is_dir():
        return context.worktree_path
    return default_cwd or context.repo_root


def evaluate_condition(condition: str, context: HookContext, cwd: str) -> bool:
    if condition.startswith("not:"):
        return not evaluate_condition(condition[4:], context, cwd)
    if condition.startswith("exists:"):
        target = Path(condition[7:])
        if not target.is_absolute():
            target = Path(cwd) / target
        return target.exists()
    if condition.startswith("env:"):
        return bool(os.environ.get(condition[4:]))
    if condition.startswith("scenario:"):
        return context.scenario == condition[9:]
    if condition == "has-changes":
        return bool(context.staged_files or context.unstaged_files)
    if condition == "has-staged":
        return bool(context.staged_files)

    logger.warning(f"[HOOKS] Unknown condition '{condition}', treating as satisfied")
    return True


def _script_command(script_path: Path) -> str:
    suffix = script_path.suffix
    if suffix == ".py":
        return f'"{sys.executable}" "{script_path}"'
    if suffix == ".sh":
        return f'sh "{script_path}"'
    if suffix in (".js", ".mjs"):
        return f'node "{script_path}"'
    return f'"{script_path}"'


class HookExecutor:
    """Executes hooks from a name → definition mapping."""

    def __init__(
        self,
        config: dict[HookName, HookDefinition] | None = None,
        cwd: str | None = None,
        dry_run: bool = False,
        default_timeout: int = DEFAULT_TIMEOUT_MS,
        max_timeout: int = DEFAULT_MAX_TIMEOUT_MS,
    ):
        self.config = normalize_hooks_config(config or {})
        self.cwd = cwd
        self.dry_run = dry_run
        self.default_timeout = default_timeout
        self.max_timeout = max_timeout

    def has_hook(self, name: HookName) -> bool:
        return name in self.config

    def get_configured_hooks(self) -> list[HookName]:
        return list(self.config)

    def execute_hook(self, name: HookName, context: HookContext) -> HookResult:
        definition = self.config.get(name)
        if definition is None:
            return HookResult(hook=name, success=True, skipped=True, skip_reason="No hook configured")

        logger.debug(f"[HOOKS] Executing {name.value}")
        started = time.monotonic()
        result = self._execute_definition(name, definition, context, started)

        if result.success:
            logger.debug(f"[HOOKS] {name.value} completed in {result.duration}ms")
        else:
            logger.debug(f"[HOOKS] {name.value} failed: {result.error}")
        return result

    # -----------------------------------------------------------------------

    def _execute_definition(
        self,
        name: HookName,
        definition: HookDefinition,
        context: HookContext,
        started: float,
    ) -> HookResult:
        cwd = resolve_hook_cwd(name, definition, context, self.cwd)

        if isinstance(definition, str):
            commands = [definition]
        elif isinstance(definition, list):
            commands = list(definition)
        else:
            return self._execute_spec(name, definition, context, cwd, started)

        if self.dry_run:
            return self._dry_run_result(name, commands)

        outputs: list[str] = []
        for command in commands:
            ok, output, error = self._run_command(command, context, cwd, self.default_timeout)
            if output:
                outputs.append(output)
            if not ok:
                return HookResult(
                    hook=name,
                    success=False,
                    duration=_elapsed_ms(started),
                    output="\n".join(outputs),
                    error=error,
                )

        return HookResult(
            hook=name,
            success=True,
            duration=_elapsed_ms(started),
            output="\n".join(outputs),
        )

    def _execute_spec(
        self,
        name: HookName,
        spec: HookSpec,
        context: HookContext,
        cwd: str,
        started: float,
    ) -> HookResult:
        if spec.condition and not evaluate_condition(spec.condition, context, cwd):
            return HookResult(
                hook=name,
                success=True,
                duration=_elapsed_ms(started),
                skipped=True,
                skip_reason=f"Condition not met: {spec.condition}",
            )

        if spec.command:
            command = spec.command
        elif spec.script:
            script_path = Path(spec.script)
            if not script_path.is_absolute():
                script_path = Path(cwd) / script_path
            if not script_path.exists():
                return HookResult(
                    hook=name,
                    success=not spec.fail_on_error,
                    duration=_elapsed_ms(started),
                    error=f"Script not found: {script_path}",
                )
            command = _script_command(script_path)
        else:
            return HookResult(
                hook=name,
                success=False,
                duration=_elapsed_ms(started),
                error="Hook must specify either 'command' or 'script'",
            )

        if self.dry_run:
            return self._dry_run_result(name, [command])

        timeout = min(spec.timeout or self.default_timeout, self.max_timeout)
        ok, output, error = self._run_command(command, context, cwd, timeout, spec.env)

        if not ok and not spec.fail_on_error:
            return HookResult(
                hook=name,
                success=True,
                duration=_elapsed_ms(started),
                output=output,
                error=f"[Non-fatal] {error}",
            )

        return HookResult(
            hook=name,
            success=ok,
            duration=_elapsed_ms(started),
            output=output,
            error=error,
        )

    @staticmethod
    def _dry_run_result(name: HookName, commands: list[str]) -> HookResult:
        return HookResult(
            hook=name,
            success=True,
            output="\n".join(f"[DRY RUN] Would execute: {c}" for c in commands),
            skipped=True,
            skip_reason="dry-run mode",
        )

    @staticmethod
    def _run_command(
        command: str,
        context: HookContext,
        cwd: str,
        timeout_ms: int,
        extra_env: dict[str, str] | None = None,
    ) -> tuple[bool, str, str | None]:
        env = {**os.environ, **context_to_env(context), **(extra_env or {})}
        expanded = expand_template(command, context)

        try:
            result = subprocess.run(
                expanded,
                shell=True,
                cwd=cwd,
                env=env,
                capture_output=True,
                text=True,
                timeout=timeout_ms / 1000,
            )
        except subprocess.TimeoutExpired as e:
            partial = e.stdout.decode() if isinstance(e.stdout, bytes) else (e.stdout or "")
            return False, partial.strip(), f"Command timed out after {timeout_ms}ms"
        except OSError as e:
            return False, "", f"Failed to execute command: {e}"

        output = result.stdout.strip()
        if result.returncode == 0:
            return True, output, None
        return False, output, result.stderr.strip() or f"Command exited with code {result.returncode}"


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
