"""
Interactive review of a hook before it runs: run it, skip it, or edit
the command once.
"""

from __future__ import annotations

import os
import sys
from typing import Literal

from pydantic import BaseModel
from rich.console import Console
from rich.prompt import Prompt

from wtpilot.hooks.types import HookDefinition, HookName, HookSpec

console = Console()

CI_ENVIRONMENT_VARIABLES = (
    "CI",
    "GITHUB_ACTIONS",
    "GITLAB_CI",
    "JENKINS_URL",
    "CIRCLECI",
    "TRAVIS",
    "BUILDKITE",
    "TEAMCITY_VERSION",
    "TF_BUILD",
    "CODEBUILD_BUILD_ID",
    "BITBUCKET_BUILD_NUMBER",
)


class HookConfirmation(BaseModel):
    action: Literal["run", "skip"]
    edited_command: str | None = None


def is_interactive_environment() -> bool:
    """False under CI or when stdin is not a terminal."""
    if not sys.stdin or not sys.stdin.isatty():
        return False
    return not any(os.environ.get(var) for var in CI_ENVIRONMENT_VARIABLES)


def get_hook_commands(definition: HookDefinition) -> list[str]:
    if isinstance(definition, str):
        return [definition]
    if isinstance(definition, list):
        return list(definition)
    if definition.command:
        return [definition.command]
    if definition.script:
        return [f"[script: {definition.script}]"]
    return []


def is_hook_editable(definition: HookDefinition) -> bool:
    # Command lists and scripts cannot be edited inline.
    if isinstance(definition, str):
        return True
    if isinstance(definition, HookSpec):
        return bool(definition.command) and not definition.script
    return False


def prompt_hook_confirmation(
    name: HookName, definition: HookDefinition, cwd: str
) -> HookConfirmation:
    commands = get_hook_commands(definition)

    console.print(f"\n[bold]Hook: {name.value}[/]")
    console.print(f"[dim]Working directory: {cwd}[/]")
    console.print("[dim]Command(s):[/]")
    for cmd in commands:
        console.print(f"  [cyan]{cmd}[/]")
    if isinstance(definition, HookSpec):
        if definition.timeout:
            console.print(f"[dim]Timeout: {definition.timeout}ms[/]")
        if not definition.fail_on_error:
            console.print("[dim]Non-fatal: continues on error[/]")
        if definition.condition:
            console.print(f"[dim]Condition: {definition.condition}[/]")

    choices = ["run", "skip"]
    if is_hook_editable(definition):
        choices.append("edit")

    choice = Prompt.ask("[bold]How would you like to proceed?[/]", choices=choices, default="run")
    if choice != "edit":
        return HookConfirmation(action=choice)

    edited = Prompt.ask("Enter modified command", default=commands[0] if commands else "")
    if not edited.strip():
        return HookConfirmation(action="skip")
    return HookConfirmation(action="run", edited_command=edited.strip())


def create_edited_hook_definition(original: HookDefinition, edited_command: str) -> HookDefinition:
    if isinstance(original, HookSpec):
        return original.model_copy(update={"command": edited_command, "script": None})
    return edited_command
