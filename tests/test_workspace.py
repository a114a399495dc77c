import shutil
import subprocess
from pathlib import Path

import pytest

from wtpilot.scenarios import Scenario, classify_scenario
from wtpilot.workspace import Workspace, WorkspaceError, make_branch_name, worktree_path_for

needs_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


def git(cwd: Path, *args: str) -> str:
    return subprocess.run(
        ["git", *args], cwd=cwd, check=True, capture_output=True, text=True
    ).stdout


@pytest.fixture
def repo(tmp_path):
    """A clone of a bare origin, one commit on main, level with origin."""
    origin = tmp_path / "origin.git"
    work = tmp_path / "project"
    git(tmp_path, "init", "--bare", "-b", "main", str(origin))
    git(tmp_path, "clone", str(origin), str(work))
    git(work, "config", "user.email", "dev@example.com")
    git(work, "config", "user.name", "Dev")
    git(work, "checkout", "-B", "main")
    (work / "README.md").write_text("hello\n")
    git(work, "add", ".")
    git(work, "commit", "-m", "init")
    git(work, "push", "-u", "origin", "main")
    return work


def test_make_branch_name():
    assert make_branch_name("Add OAuth login!") == "feat/add-oauth-login"
    assert make_branch_name("  ", prefix="fix/") == "fix/task"
    assert len(make_branch_name("x" * 200, max_length=20)) == len("feat/") + 20


def test_worktree_path_for(tmp_path):
    repo_path = tmp_path / "project"
    assert worktree_path_for(repo_path, "{repo}.pr{number}", 12, "feat/a") == tmp_path / "project.pr12"
    assert worktree_path_for(repo_path, "{repo}.{branch}", None, "feat/a") == tmp_path / "project.feat-a"
    assert worktree_path_for(repo_path, "/wt/{number}", 3, "x") == Path("/wt/3")


@needs_git
def test_clean_repo_snapshot(repo):
    ws = Workspace.discover(repo)
    assert ws.repo_path == repo.resolve()
    state = ws.capture_state()
    assert state.current_branch == "main"
    assert not state.has_uncommitted_changes
    assert state.ahead_of_base == 0
    assert classify_scenario(state) is Scenario.CLEAN_ON_BASE


@needs_git
def test_staged_and_unstaged_detection(repo):
    ws = Workspace(repo)
    (repo / "new.txt").write_text("x\n")
    git(repo, "add", "new.txt")
    state = ws.capture_state()
    assert state.has_uncommitted_changes and state.staged_only
    assert classify_scenario(state) is Scenario.UNCOMMITTED_STAGED

    (repo / "README.md").write_text("changed\n")
    state = ws.capture_state()
    assert not state.staged_only
    assert classify_scenario(state) is Scenario.UNCOMMITTED_UNSTAGED
    assert ws.staged_files() == ["new.txt"]
    assert ws.unstaged_files() == ["README.md"]


@needs_git
def test_staged_rename_reports_new_path(repo):
    ws = Workspace(repo)
    git(repo, "mv", "README.md", "DOCS.md")
    assert ws.staged_files() == ["DOCS.md"]
    assert ws.unstaged_files() == []


@needs_git
def test_local_commits_on_base(repo):
    (repo / "a.txt").write_text("a\n")
    git(repo, "add", ".")
    git(repo, "commit", "-m", "local")
    state = Workspace(repo).capture_state()
    assert state.ahead_of_base == 1
    assert classify_scenario(state) is Scenario.BASE_BEHIND_REMOTE


@needs_git
def test_detached_head(repo):
    git(repo, "checkout", "--detach")
    ws = Workspace(repo)
    assert ws.current_branch() is None
    assert ws.current_ref() == ws.head_commit()
    assert classify_scenario(ws.capture_state()) is Scenario.DETACHED_HEAD_CLEAN


@needs_git
def test_stash_round_trip(repo):
    ws = Workspace(repo)
    assert ws.git_stash("nothing here") is None

    (repo / "untracked.txt").write_text("u\n")
    ref = ws.git_stash("wip")
    assert ref == "stash@{0}"
    assert not (repo / "untracked.txt").exists()

    ws.stash_pop(ref)
    assert (repo / "untracked.txt").exists()


@needs_git
def test_branch_push_and_worktree(repo, tmp_path):
    ws = Workspace(repo)
    ws.checkout_new_branch("feat/x", "origin/main")
    ws.git_commit("chore: start", allow_empty=True)
    ws.git_push("origin", "feat/x", set_upstream=True)
    ws.checkout("main")

    assert ws.branch_exists("feat/x")
    assert not ws.branch_exists("feat/y")

    path = worktree_path_for(repo, "{repo}.{branch}", None, "feat/x")
    ws.add_worktree(path, "feat/x")
    assert (path / "README.md").exists()

    with pytest.raises(WorkspaceError):
        ws.add_worktree(path, "feat/x")

    ws.remove_worktree(path)
    assert not path.exists()


@needs_git
def test_git_errors_raise_workspace_error(repo):
    with pytest.raises(WorkspaceError):
        Workspace(repo).checkout("does-not-exist")


def test_discover_outside_a_repo(tmp_path):
    with pytest.raises(WorkspaceError):
        Workspace.discover(tmp_path)
