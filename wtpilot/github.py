"""
GitHub access through the `gh` CLI.
"""

from __future__ import annotations

import json
import re
import subprocess
from pathlib import Path

from pydantic import BaseModel


class GitHubError(Exception):
    pass


class PullRequest(BaseModel):
    number: int
    url: str
    head_branch: str = ""
    is_draft: bool = False


def _gh(args: list[str], cwd: Path) -> str:
    try:
        result = subprocess.run(["gh", *args], cwd=cwd, capture_output=True, text=True, timeout=60)
    except (OSError, subprocess.TimeoutExpired) as e:
        raise GitHubError(f"gh {' '.join(args[:2])} failed: {e}") from e
    if result.returncode != 0:
        raise GitHubError(f"gh {' '.join(args[:2])} failed: {result.stderr.strip()}")
    return result.stdout


def create_pr(repo_path: Path, title: str, body: str, base: str, head: str, draft: bool = True) -> PullRequest:
    args = ["pr", "create", "--title", title, "--body", body, "--base", base, "--head", head]
    if draft:
        args.append("--draft")
    url = _gh(args, repo_path).strip().splitlines()[-1]

    match = re.search(r"/pull/(\d+)", url)
    if not match:
        raise GitHubError(f"Could not read PR number from: {url}")
    return PullRequest(number=int(match.group(1)), url=url, head_branch=head, is_draft=draft)


def get_pr(repo_path: Path, ref: str | int) -> PullRequest | None:
    """Look up a PR by number or head branch. None if there is none."""
    try:
        out = _gh(["pr", "view", str(ref), "--json", "number,url,headRefName,isDraft"], repo_path)
    except GitHubError:
        return None
    data = json.loads(out)
    return PullRequest(
        number=data["number"],
        url=data["url"],
        head_branch=data.get("headRefName", ""),
        is_draft=data.get("isDraft", False),
    )


def build_pr_body(description: str, branch: str) -> str:
    return f"""## Summary
{description}

## Changes
-

## Test Plan
-

---
*Branch `{branch}` provisioned with wtpilot*
"""
