from wtpilot.config_loader import load_config, repo_config_path
from wtpilot.hooks import HookName, HookSpec


def write_repo_config(repo, text):
    path = repo_config_path(repo)
    path.parent.mkdir(parents=True)
    path.write_text(text)


def test_defaults():
    config = load_config()
    assert config.base_branch == "main"
    assert config.branch_prefix == "feat/"
    assert config.draft is True
    assert config.hooks == {}
    assert config.hook_defaults.timeout_ms == 30_000
    assert config.commit.wip_message.startswith("chore: work in progress")


def test_repo_without_config_uses_defaults(tmp_path):
    assert load_config(tmp_path) == load_config()


def test_repo_overrides_merge_with_defaults(tmp_path):
    write_repo_config(
        tmp_path,
        """
base_branch: develop
hook_defaults:
  continue_on_warning: true
hooks:
  pre-branch: "make lint"
  post-worktree:
    - npm install
    - npm run build
  post-pr:
    command: "echo {{PR_URL}}"
    if: "env:NOTIFY"
    timeout: 5000
""",
    )
    config = load_config(tmp_path)
    assert config.base_branch == "develop"
    assert config.branch_prefix == "feat/"
    assert config.hook_defaults.continue_on_warning is True
    assert config.hook_defaults.timeout_ms == 30_000

    assert config.hooks[HookName.PRE_BRANCH] == "make lint"
    assert config.hooks[HookName.POST_WORKTREE] == ["npm install", "npm run build"]
    spec = config.hooks[HookName.POST_PR]
    assert isinstance(spec, HookSpec)
    assert spec.condition == "env:NOTIFY"
    assert spec.timeout == 5000


def test_unknown_and_empty_hooks_are_dropped(tmp_path):
    write_repo_config(
        tmp_path,
        """
hooks:
  pre-deploy: "echo nope"
  pre-push:
  cleanup: "rm -rf tmp"
""",
    )
    config = load_config(tmp_path)
    assert list(config.hooks) == [HookName.CLEANUP]
