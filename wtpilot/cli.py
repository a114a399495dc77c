"""
WTPILOT CLI — The Interface

  wtpilot new "<description>"     (branch + commit + PR + worktree)
  wtpilot new --pr 123            (worktree for an existing PR)
  wtpilot new --branch            (PR + worktree for the current branch)

Plus utilities:
  - wtpilot state     (classify the current repository state)
  - wtpilot actions   (list valid --action keys)
  - wtpilot hooks     (list configured lifecycle hooks)
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from loguru import logger
from rich.console import Console
from rich.table import Table

from wtpilot import __codename__, __tagline__, __version__
from wtpilot.actions import (
    ActionType,
    StateAction,
    available_actions,
    describe_action,
    branch_start_point,
    resolve_action,
)
from wtpilot.config_loader import load_config
from wtpilot.controller import Controller, Task
from wtpilot.hooks import CRITICAL_HOOKS, NON_CRITICAL_HOOKS, WORKTREE_CWD_HOOKS
from wtpilot.scenarios import classify_scenario, describe_scenario
from wtpilot.workspace import Workspace, WorkspaceError

load_dotenv()

app = typer.Typer(
    name="wtpilot",
    help=f"{__codename__} — {__tagline__}",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"{__codename__} v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
):
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "WARNING")


def _open_workspace(repo: Path) -> Workspace:
    try:
        return Workspace.discover(repo)
    except WorkspaceError:
        console.print(f"[red]Not a git repository: {repo}[/]")
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def new(
    description: str = typer.Argument("", help="What the task is about."),
    repo: Path = typer.Option(Path("."), "--repo", "-r", help="Repository path."),
    base: Optional[str] = typer.Option(None, "--base", "-b", help="Base branch."),
    pr: Optional[int] = typer.Option(None, "--pr", help="Create a worktree for this PR."),
    branch: bool = typer.Option(False, "--branch", help="Open a PR for the current branch."),
    branch_name: Optional[str] = typer.Option(None, "--name", help="Explicit branch name."),
    action: Optional[str] = typer.Option(None, "--action", "-a", help="Force an action (see `wtpilot actions`)."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show the plan without changing anything."),
    no_hooks: bool = typer.Option(False, "--no-hooks", help="Do not run lifecycle hooks."),
    no_pr: bool = typer.Option(False, "--no-pr", help="Skip PR creation."),
    draft: Optional[bool] = typer.Option(None, "--draft/--ready", help="Open the PR as draft or ready."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON."),
):
    """Provision a branch, PR and worktree for a task."""
    if not description and pr is None and not branch:
        console.print("[red]Give a description, --pr <number>, or --branch.[/]")
        raise typer.Exit(2)

    ws = _open_workspace(repo)
    mode = "pr" if pr is not None else ("branch" if branch else "new")
    task = Task(
        description=description,
        mode=mode,
        branch_name=branch_name,
        pr_number=pr,
        base_branch=base,
        action=action,
        draft=draft,
    )

    controller = Controller(
        repo_path=ws.repo_path,
        auto_approve=yes,
        dry_run=dry_run,
        no_hooks=no_hooks,
        open_pr=not no_pr,
        workspace=ws,
    )
    result = controller.run(task)

    if as_json:
        print(json.dumps(result, indent=2, default=str))
    elif result.get("error"):
        console.print(f"[red]{result['error']}[/]")

    if result["status"] not in ("pr_created", "provisioned", "dry_run"):
        raise typer.Exit(1)


@app.command()
def state(
    repo: Path = typer.Option(Path("."), "--repo", "-r", help="Repository path."),
    base: Optional[str] = typer.Option(None, "--base", "-b", help="Base branch."),
    as_json: bool = typer.Option(False, "--json", help="Print as JSON."),
):
    """Classify the current repository state and show the recommended action."""
    ws = _open_workspace(repo)
    config = load_config(ws.repo_path)
    base_branch = base or config.base_branch

    snapshot = ws.capture_state(base_branch=base_branch)
    scenario = classify_scenario(snapshot)
    resolution = resolve_action(scenario, state=snapshot)
    alternatives = available_actions(scenario)

    if as_json:
        print(json.dumps({
            "scenario": scenario.value,
            "description": describe_scenario(scenario),
            "state": snapshot.model_dump(),
            "recommended_action": resolution.action.action.value,
            "level": resolution.level,
            "available_actions": [a.action.value for a in alternatives],
        }, indent=2))
        return

    console.print(f"\n[bold]Scenario:[/] {scenario.value}")
    console.print(f"[dim]{describe_scenario(scenario)}[/]\n")
    _print_actions(alternatives, base_branch, recommended=resolution.action)


@app.command()
def actions():
    """List every valid --action key."""
    _print_actions([StateAction.of(a) for a in ActionType], "main")


@app.command()
def hooks(
    repo: Path = typer.Option(Path("."), "--repo", "-r", help="Repository path."),
):
    """List the lifecycle hooks configured for a repository."""
    config = load_config(repo.resolve())

    if not config.hooks:
        console.print("[dim]No hooks configured.[/]")
        return

    table = Table(title="Lifecycle Hooks", border_style="bright_green")
    table.add_column("Hook")
    table.add_column("On failure")
    table.add_column("Runs in")
    table.add_column("Definition")

    for name, definition in config.hooks.items():
        if name in CRITICAL_HOOKS:
            policy = "[red]abort[/]"
        elif name in NON_CRITICAL_HOOKS:
            policy = "[yellow]warn[/]"
        else:
            policy = "[dim]warn (cleanup)[/]"
        where = "worktree" if name in WORKTREE_CWD_HOOKS else "repo"
        shown = definition if isinstance(definition, (str, list)) else definition.model_dump(exclude_none=True)
        table.add_row(name.value, policy, where, str(shown))

    console.print(table)


def _print_actions(items: list[StateAction], base_branch: str, recommended: StateAction | None = None):
    table = Table(border_style="bright_green")
    table.add_column("Action")
    table.add_column("Branch from")
    table.add_column("Description")

    for item in items:
        label = item.action.value
        if recommended is not None and item == recommended:
            label = f"[bold green]{label} (recommended)[/]"
        table.add_row(label, branch_start_point(item, base_branch), describe_action(item))

    console.print(table)


if __name__ == "__main__":
    app()
