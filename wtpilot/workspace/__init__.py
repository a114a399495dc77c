"""
WTPILOT Workspace

Thin wrapper around the git CLI for one repository: reading the state
snapshot the classifier works from, the four mutations the action
executor needs, and creating the task worktree.
"""

from __future__ import annotations

import re
import subprocess
from pathlib import Path
from typing import Literal

from loguru import logger
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from wtpilot.scenarios import RepositoryState


class WorkspaceError(Exception):
    pass


class Workspace:
    """
    Git access for a single repository. Implements the GitOperations
    protocol the action executor consumes.
    """

    def __init__(self, repo_path: Path, remote: str = "origin"):
        self.repo_path = repo_path.resolve()
        self.remote = remote

    @classmethod
    def discover(cls, path: Path) -> "Workspace":
        """Find the repository root that contains `path`."""
        root = cls._run_cmd(["git", "rev-parse", "--show-toplevel"], cwd=path, capture=True)
        return cls(Path(root.strip()))

    @property
    def repo_name(self) -> str:
        return self.repo_path.name

    # -----------------------------------------------------------------------
    # Snapshot
    # -----------------------------------------------------------------------

    def current_branch(self) -> str | None:
        """Current branch name, or None on a detached HEAD."""
        name = self._git("rev-parse", "--abbrev-ref", "HEAD", capture=True).strip()
        return None if name == "HEAD" else name

    def head_commit(self) -> str:
        return self._git("rev-parse", "HEAD", capture=True).strip()

    def current_ref(self) -> str:
        """Branch name, or the commit SHA when detached."""
        return self.current_branch() or self.head_commit()

    def status_porcelain(self) -> list[str]:
        out = self._git("status", "--porcelain", capture=True)
        return [line for line in out.splitlines() if line.strip()]

    def staged_files(self) -> list[str]:
        return [
            _porcelain_path(line) for line in self.status_porcelain()
            if line[0] not in (" ", "?")
        ]

    def unstaged_files(self) -> list[str]:
        return [
            _porcelain_path(line) for line in self.status_porcelain()
            if line[1] != " " or line[0] == "?"
        ]

    def branch_exists(self, name: str) -> bool:
        res = self._git("branch", "--list", name, capture=True)
        return bool(res.strip())

    def count_commits(self, rev_range: str) -> int:
        out = self._git("rev-list", "--count", rev_range, capture=True, check=False).strip()
        return int(out) if out.isdigit() else 0

    def capture_state(
        self,
        base_branch: str = "main",
        mode: Literal["new", "pr", "branch"] = "new",
        branch_name: str | None = None,
        pr_number: int | None = None,
    ) -> RepositoryState:
        """Read everything the classifier needs in one pass."""
        staged = self.staged_files()
        unstaged = self.unstaged_files()
        current = self.current_branch()
        base_ref = f"{self.remote}/{base_branch}"

        state = RepositoryState(
            has_uncommitted_changes=bool(staged or unstaged),
            staged_only=bool(staged) and not unstaged,
            is_detached_head=current is None,
            current_branch=current,
            existing_local_branch_for_task=bool(branch_name) and self.branch_exists(branch_name),
            ahead_of_base=self.count_commits(f"{base_ref}..HEAD"),
            behind_base=self.count_commits(f"HEAD..{base_ref}"),
            existing_pr_number=pr_number,
            mode=mode,
            base_branch=base_branch,
        )
        logger.debug(f"[WORKSPACE] Snapshot: {state.model_dump()}")
        return state

    # -----------------------------------------------------------------------
    # Mutations used by the action executor
    # -----------------------------------------------------------------------

    def git_add(self, path: str, cwd: str | None = None) -> None:
        self._git("add", path, cwd=cwd)

    def git_stash(self, message: str, keep_index: bool = False, cwd: str | None = None) -> str | None:
        """Stash everything, untracked files included. None if there was nothing to stash."""
        cmd = ["stash", "push", "--include-untracked", "-m", message]
        if keep_index:
            cmd.insert(2, "--keep-index")
        out = self._git(*cmd, cwd=cwd, capture=True)
        if "No local changes to save" in out:
            return None
        return "stash@{0}"

    @retry(
        retry=retry_if_exception_type(WorkspaceError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        reraise=True,
    )
    def git_push(
        self, remote: str, branch: str, set_upstream: bool = False, cwd: str | None = None
    ) -> None:
        cmd = ["push", remote, branch]
        if set_upstream:
            cmd.insert(1, "-u")
        self._git(*cmd, cwd=cwd)
        logger.info(f"[WORKSPACE] Pushed {branch} to {remote}")

    def git_commit(self, message: str, allow_empty: bool = False, cwd: str | None = None) -> None:
        cmd = ["commit", "-m", message]
        if allow_empty:
            cmd.insert(1, "--allow-empty")
        self._git(*cmd, cwd=cwd)

    # -----------------------------------------------------------------------
    # Branch + worktree
    # -----------------------------------------------------------------------

    @retry(
        retry=retry_if_exception_type(WorkspaceError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        reraise=True,
    )
    def fetch(self) -> None:
        self._git("fetch", "--quiet", self.remote)

    def checkout_new_branch(self, name: str, start_point: str) -> None:
        self._git("checkout", "-b", name, start_point)

    def checkout(self, ref: str) -> None:
        self._git("checkout", ref)

    def stash_pop(self, stash_ref: str = "stash@{0}", cwd: str | None = None) -> None:
        self._git("stash", "pop", stash_ref, cwd=cwd)
        logger.info(f"[WORKSPACE] Restored {stash_ref}")

    def track_remote_branch(self, branch: str) -> None:
        """Create a local branch tracking the remote one unless it already exists."""
        if not self.branch_exists(branch):
            self._git("fetch", "--quiet", self.remote, branch)
            self._git("branch", "--track", branch, f"{self.remote}/{branch}")

    def add_worktree(self, path: Path, branch: str) -> Path:
        if path.exists():
            raise WorkspaceError(f"Worktree path already exists: {path}")
        path.parent.mkdir(parents=True, exist_ok=True)
        self._git("worktree", "add", str(path), branch)
        logger.info(f"[WORKSPACE] Worktree created: {path}")
        return path

    def remove_worktree(self, path: Path) -> None:
        self._git("worktree", "remove", "--force", str(path), check=False)
        self._git("worktree", "prune", check=False)

    # -----------------------------------------------------------------------

    def _git(self, *args: str, cwd: str | None = None, check: bool = True, capture: bool = False) -> str:
        return self._run_cmd(["git", *args], cwd=Path(cwd) if cwd else self.repo_path, check=check, capture=capture)

    @staticmethod
    def _run_cmd(cmd: list[str], cwd: Path, check: bool = True, capture: bool = False) -> str:
        try:
            result = subprocess.run(cmd, cwd=cwd, capture_output=True, text=True, timeout=60)
        except (OSError, subprocess.TimeoutExpired) as e:
            raise WorkspaceError(f"Git failed: {' '.join(cmd)}\n{e}") from e
        if check and result.returncode != 0:
            raise WorkspaceError(f"Git failed: {' '.join(cmd)}\n{result.stderr}")
        return result.stdout if capture else ""


def make_branch_name(description: str, prefix: str = "feat/", max_length: int = 50) -> str:
    """Slugify a task description into a branch name."""
    slug = re.sub(r"[^a-z0-9]+", "-", description.lower()).strip("-")
    slug = slug[:max_length].rstrip("-") or "task"
    return f"{prefix}{slug}"


def worktree_path_for(repo_path: Path, pattern: str, pr_number: int | None, branch: str) -> Path:
    """
    Expand the worktree location pattern. Relative results are taken
    from the repository's parent directory.
    """
    name = pattern.format(
        repo=repo_path.name,
        number=pr_number if pr_number is not None else "",
        branch=branch.replace("/", "-"),
    )
    path = Path(name).expanduser()
    return path if path.is_absolute() else repo_path.parent / path


def _porcelain_path(line: str) -> str:
    # renames and copies read "R  old -> new"; the new path is the one on disk
    return line[3:].split(" -> ")[-1]
