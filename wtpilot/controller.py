"""
WTPILOT Controller — the provisioning workflow.

It is NOT smart. It is deterministic.

Responsibilities:
  - Snapshot the repository
  - Classify the scenario and resolve the action
  - Run lifecycle hooks at every phase boundary
  - Execute the action, create the branch, commit, push
  - Open (or reuse) the PR and create the worktree
  - On failure: run the cleanup hook, then restore any stash

Everything runs sequentially. No hook ever overlaps a git operation.
"""

from __future__ import annotations

from pathlib import Path
from types import ModuleType
from typing import Any, Literal

from loguru import logger
from pydantic import BaseModel
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm

from wtpilot import github
from wtpilot.actions import (
    InvalidAction,
    Resolution,
    StateAction,
    describe_action,
    branch_start_point,
    is_existing_branch_action,
    parse_action_key,
    resolve_action,
)
from wtpilot.config_loader import WtPilotConfig, load_config
from wtpilot.event_bus import EventBus, WorkflowEvent
from wtpilot.executor import ActionResult, execute_state_action
from wtpilot.hooks import HookName, HookRunner, run_lifecycle_hook
from wtpilot.scenarios import RepositoryState, Scenario, classify_scenario, describe_scenario
from wtpilot.workspace import Workspace, WorkspaceError, make_branch_name, worktree_path_for

console = Console()


class HookAborted(Exception):
    """A critical hook failed and the run must stop."""

    def __init__(self, hook: HookName):
        self.hook = hook
        super().__init__(f"Aborted by {hook.value} hook")


class ProvisioningError(Exception):
    pass


# ---------------------------------------------------------------------------
# Task Definition
# ---------------------------------------------------------------------------

class Task(BaseModel):
    """One provisioning request."""
    description: str = ""
    mode: Literal["new", "pr", "branch"] = "new"
    branch_name: str | None = None
    pr_number: int | None = None
    base_branch: str | None = None
    action: str | None = None
    draft: bool | None = None


class Plan(BaseModel):
    state: RepositoryState
    scenario: Scenario
    resolution: Resolution
    branch_name: str

    @property
    def action(self) -> StateAction:
        return self.resolution.action


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------

class Controller:
    """
    Pipeline: analyze → action → branch → commit → push → PR → worktree

    One Controller run owns one HookRunner and one EventBus.
    """

    def __init__(
        self,
        repo_path: Path,
        config: WtPilotConfig | None = None,
        auto_approve: bool = False,
        dry_run: bool = False,
        no_hooks: bool = False,
        open_pr: bool = True,
        verbose: bool = False,
        workspace: Workspace | None = None,
        pr_client: ModuleType | Any = github,
    ):
        self.repo_path = repo_path.resolve()
        self.config = config or load_config(self.repo_path)
        self.auto_approve = auto_approve
        self.dry_run = dry_run
        self.no_hooks = no_hooks
        self.open_pr = open_pr
        self.verbose = verbose
        self.workspace = workspace or Workspace(self.repo_path)
        self.pr_client = pr_client

    # -----------------------------------------------------------------------
    # Planning (no mutations)
    # -----------------------------------------------------------------------

    def plan(self, task: Task) -> Plan:
        base = task.base_branch or self.config.base_branch
        state = self.workspace.capture_state(
            base_branch=base,
            mode=task.mode,
            branch_name=task.branch_name,
            pr_number=task.pr_number,
        )
        scenario = classify_scenario(state)
        resolution = resolve_action(scenario, task.action, state=state)

        if is_existing_branch_action(resolution.action) and task.mode != "pr":
            branch_name = state.current_branch or ""
        else:
            branch_name = task.branch_name or make_branch_name(
                task.description or "task", self.config.branch_prefix
            )

        return Plan(state=state, scenario=scenario, resolution=resolution, branch_name=branch_name)

    # -----------------------------------------------------------------------
    # Run
    # -----------------------------------------------------------------------

    def run(self, task: Task) -> dict[str, Any]:
        base = task.base_branch or self.config.base_branch
        result: dict[str, Any] = {"status": "pending", "events": []}

        bus = EventBus()
        bus.subscribe(self._log_event)

        # Reject a bad --action before anything touches the repository.
        if task.action is not None:
            try:
                parse_action_key(task.action)
            except InvalidAction as e:
                result["status"] = "invalid_action"
                result["error"] = str(e)
                return result

        runner = self._make_hook_runner(task, base)
        action_result: ActionResult | None = None
        original_ref: str | None = None
        stash_restored = False

        try:
            self._hook(runner, HookName.PRE_ANALYZE, bus)

            try:
                self.workspace.fetch()
            except WorkspaceError as e:
                logger.warning(f"[CONTROLLER] Could not fetch from origin: {e}")

            plan = self.plan(task)
            result.update({
                "scenario": plan.scenario.value,
                "action": plan.action.action.value,
                "branch": plan.branch_name,
            })
            bus.emit("analyzed", "analyze", {
                "scenario": plan.scenario.value,
                "action": plan.action.action.value,
                "level": plan.resolution.level,
            })

            if runner:
                runner.update_context(
                    scenario=plan.scenario.value,
                    action=plan.action.action.value,
                    branch_name=plan.branch_name,
                    staged_files=self.workspace.staged_files(),
                    unstaged_files=self.workspace.unstaged_files(),
                )
            self._hook(runner, HookName.POST_ANALYZE, bus)

            self._print_plan(plan, base)

            if self.dry_run:
                result["status"] = "dry_run"
                return result

            if plan.resolution.level == "warning" and not self._confirm("Continue with this action?"):
                result["status"] = "cancelled"
                return result

            original_ref = plan.state.current_branch or self.workspace.head_commit()

            action_result = execute_state_action(
                plan.action,
                plan.branch_name,
                self.workspace,
                cwd=str(self.repo_path),
                base_branch=base,
                commit_message=self.config.commit.wip_message,
            )
            bus.emit("action_executed", "action", action_result.model_dump())
            result["stash_ref"] = action_result.stash_ref
            if not action_result.success:
                raise ProvisioningError(f"Action failed: {action_result.message}")

            if task.mode == "pr":
                stash_restored = self._provision_pr(task, plan, base, runner, bus, result, action_result)
            elif is_existing_branch_action(plan.action):
                stash_restored = self._provision_existing_branch(
                    task, plan, base, runner, bus, result, action_result
                )
            else:
                stash_restored = self._provision_new_branch(
                    task, plan, base, runner, bus, result, action_result, original_ref
                )

            result["status"] = "pr_created" if result.get("pr_url") else "provisioned"
            console.print(f"[bold green]✅ Worktree ready: {result.get('worktree_path')}[/]")

        except HookAborted as e:
            result["status"] = "aborted"
            result["error"] = str(e)
            self._rollback(runner, e, action_result, original_ref, stash_restored)
        except KeyboardInterrupt:
            console.print("\n[yellow]Interrupted.[/]")
            result["status"] = "interrupted"
            self._rollback(runner, None, action_result, original_ref, stash_restored)
        except Exception as e:
            logger.exception("Controller error")
            console.print(f"[red]💥 Error: {e}[/]")
            result["status"] = "error"
            result["error"] = str(e)
            self._rollback(runner, e, action_result, original_ref, stash_restored)
        finally:
            result["events"] = bus.dump()

        return result

    # -----------------------------------------------------------------------
    # Flows
    # -----------------------------------------------------------------------

    def _provision_new_branch(
        self,
        task: Task,
        plan: Plan,
        base: str,
        runner: HookRunner | None,
        bus: EventBus,
        result: dict[str, Any],
        action_result: ActionResult,
        original_ref: str | None,
    ) -> bool:
        ws = self.workspace
        branch = plan.branch_name
        if ws.branch_exists(branch):
            raise ProvisioningError(f"Branch {branch} already exists locally")

        self._hook(runner, HookName.PRE_BRANCH, bus)
        start = branch_start_point(plan.action, base)
        ws.checkout_new_branch(branch, start)
        self._hook(runner, HookName.POST_BRANCH, bus)

        self._hook(runner, HookName.PRE_COMMIT, bus)
        if ws.staged_files():
            ws.git_commit(f"feat: {task.description}\n\nCreated with wtpilot")
        elif start != "HEAD":
            ws.git_commit(
                f"chore: initialize {branch}\n\nBranch created for: {task.description}",
                allow_empty=True,
            )
        self._hook(runner, HookName.POST_COMMIT, bus)

        self._push(branch, runner, bus)

        if original_ref:
            ws.checkout(original_ref)

        pr = self._open_pr(task, branch, base, runner, bus, result)
        self._create_worktree(branch, pr.number if pr else None, runner, bus, result)

        if action_result.stash_ref:
            ws.stash_pop(action_result.stash_ref)
            bus.emit("stash_restored", "worktree", {"stash_ref": action_result.stash_ref})
        return True

    def _provision_existing_branch(
        self,
        task: Task,
        plan: Plan,
        base: str,
        runner: HookRunner | None,
        bus: EventBus,
        result: dict[str, Any],
        action_result: ActionResult,
    ) -> bool:
        branch = plan.branch_name
        if not branch:
            raise ProvisioningError("Cannot open a PR for a detached HEAD")

        self._push(branch, runner, bus)

        pr = self.pr_client.get_pr(self.repo_path, branch) if self.open_pr else None
        if pr:
            result["pr_url"] = pr.url
            result["pr_number"] = pr.number
            if runner:
                runner.update_context(pr_number=pr.number, pr_url=pr.url)
        else:
            pr = self._open_pr(task, branch, base, runner, bus, result)

        # The branch can only be checked out in one worktree at a time.
        self.workspace.checkout(base)
        worktree = self._create_worktree(branch, pr.number if pr else None, runner, bus, result)

        if action_result.stash_ref:
            self.workspace.stash_pop(action_result.stash_ref, cwd=str(worktree))
            bus.emit("stash_restored", "worktree", {"stash_ref": action_result.stash_ref})
        return True

    def _provision_pr(
        self,
        task: Task,
        plan: Plan,
        base: str,
        runner: HookRunner | None,
        bus: EventBus,
        result: dict[str, Any],
        action_result: ActionResult,
    ) -> bool:
        if task.pr_number is None:
            raise ProvisioningError("PR mode needs a PR number")

        pr = self.pr_client.get_pr(self.repo_path, task.pr_number)
        if pr is None:
            raise ProvisioningError(f"PR #{task.pr_number} not found")

        result.update({"pr_url": pr.url, "pr_number": pr.number, "branch": pr.head_branch})
        if runner:
            runner.update_context(pr_number=pr.number, pr_url=pr.url, branch_name=pr.head_branch)

        self.workspace.track_remote_branch(pr.head_branch)
        self._create_worktree(pr.head_branch, pr.number, runner, bus, result)

        if action_result.stash_ref:
            self.workspace.stash_pop(action_result.stash_ref)
            bus.emit("stash_restored", "worktree", {"stash_ref": action_result.stash_ref})
        return True

    # -----------------------------------------------------------------------
    # Phases
    # -----------------------------------------------------------------------

    def _push(self, branch: str, runner: HookRunner | None, bus: EventBus) -> None:
        self._hook(runner, HookName.PRE_PUSH, bus)
        self.workspace.git_push("origin", branch, set_upstream=True)
        self._hook(runner, HookName.POST_PUSH, bus)

    def _open_pr(
        self,
        task: Task,
        branch: str,
        base: str,
        runner: HookRunner | None,
        bus: EventBus,
        result: dict[str, Any],
    ) -> github.PullRequest | None:
        if not self.open_pr:
            return None

        self._hook(runner, HookName.PRE_PR, bus)
        draft = self.config.draft if task.draft is None else task.draft
        title = task.description or branch
        pr = self.pr_client.create_pr(
            self.repo_path,
            title=title,
            body=self.pr_client.build_pr_body(title, branch),
            base=base,
            head=branch,
            draft=draft,
        )
        result["pr_url"] = pr.url
        result["pr_number"] = pr.number
        if runner:
            runner.update_context(pr_number=pr.number, pr_url=pr.url)
        bus.emit("pr_created", "pr", {"number": pr.number, "url": pr.url})
        self._hook(runner, HookName.POST_PR, bus)
        return pr

    def _create_worktree(
        self,
        branch: str,
        pr_number: int | None,
        runner: HookRunner | None,
        bus: EventBus,
        result: dict[str, Any],
    ) -> Path:
        pattern = self.config.worktree_pattern if pr_number is not None else "{repo}.{branch}"
        path = worktree_path_for(self.repo_path, pattern, pr_number, branch)
        if runner:
            runner.update_context(worktree_path=str(path))

        self._hook(runner, HookName.PRE_WORKTREE, bus)
        self.workspace.add_worktree(path, branch)
        result["worktree_path"] = str(path)
        bus.emit("worktree_created", "worktree", {"path": str(path)})
        self._hook(runner, HookName.POST_WORKTREE, bus)
        return path

    def _rollback(
        self,
        runner: HookRunner | None,
        error: BaseException | None,
        action_result: ActionResult | None,
        original_ref: str | None,
        stash_restored: bool,
    ) -> None:
        if runner:
            runner.run_cleanup(error)

        if not action_result or not action_result.stash_ref or stash_restored:
            return
        try:
            if original_ref and self.workspace.current_ref() != original_ref:
                self.workspace.checkout(original_ref)
            self.workspace.stash_pop(action_result.stash_ref)
            console.print(f"[yellow]Restored stashed changes from {action_result.stash_ref}[/]")
        except WorkspaceError as e:
            logger.warning(f"[CONTROLLER] Could not restore {action_result.stash_ref}: {e}")
            console.print(
                f"[yellow]Your changes are still in {action_result.stash_ref}. "
                "Run 'git stash pop' to recover them.[/]"
            )

    # -----------------------------------------------------------------------
    # Utilities
    # -----------------------------------------------------------------------

    def _make_hook_runner(self, task: Task, base: str) -> HookRunner | None:
        if self.no_hooks:
            return None
        defaults = self.config.hook_defaults
        return HookRunner(
            self.config.hooks,
            {"repo_root": str(self.repo_path), "base_branch": base, "description": task.description},
            verbose=self.verbose,
            dry_run=self.dry_run,
            show_output=defaults.show_output,
            continue_on_warning=defaults.continue_on_warning,
            default_timeout=defaults.timeout_ms,
            max_timeout=defaults.max_timeout_ms,
            confirm_hooks=self.config.confirm_hooks and not self.auto_approve,
        )

    @staticmethod
    def _hook(runner: HookRunner | None, name: HookName, bus: EventBus) -> None:
        if not run_lifecycle_hook(runner, name):
            bus.emit("hook_aborted", name.value, {"hook": name.value})
            raise HookAborted(name)
        if runner and name in runner.get_configured_hooks():
            bus.emit("hook_passed", name.value, {"hook": name.value})

    def _print_plan(self, plan: Plan, base: str) -> None:
        color = "yellow" if plan.resolution.level == "warning" else "bright_green"
        console.print(Panel(
            f"[bold]Scenario:[/] {plan.scenario.value}\n"
            f"[dim]{describe_scenario(plan.scenario)}[/]\n"
            f"[bold]Action:[/] {plan.action.action.value} — {describe_action(plan.action)}\n"
            f"[bold]Branch:[/] {plan.branch_name or '—'}  |  "
            f"[bold]From:[/] {branch_start_point(plan.action, base)}",
            title="⚡ WTPILOT",
            border_style=color,
        ))

    def _confirm(self, prompt: str) -> bool:
        if self.auto_approve:
            return True
        return Confirm.ask(f"[bold]{prompt}[/]")

    def _log_event(self, event: WorkflowEvent) -> None:
        logger.debug(f"[CONTROLLER] {event.phase}: {event.event_type} {event.payload}")
