import shutil

import pytest

from wtpilot.hooks import HookContext, HookExecutor, HookName, HookSpec
from wtpilot.hooks.executor import evaluate_condition, expand_template, resolve_hook_cwd
from wtpilot.hooks.types import context_to_env, normalize_hooks_config

pytestmark = pytest.mark.skipif(shutil.which("sh") is None, reason="needs a POSIX shell")


@pytest.fixture
def context(tmp_path):
    return HookContext(
        repo_root=str(tmp_path),
        branch_name="feat/login",
        description="add login",
        scenario="clean_on_base",
    )


def test_unconfigured_hook_is_skipped(context):
    result = HookExecutor({}).execute_hook(HookName.PRE_PR, context)
    assert result.success and result.skipped


def test_string_command(context, tmp_path):
    executor = HookExecutor({HookName.POST_BRANCH: "echo {{BRANCH_NAME}}"}, cwd=str(tmp_path))
    result = executor.execute_hook(HookName.POST_BRANCH, context)
    assert result.success
    assert result.output == "feat/login"


def test_context_exported_as_env(context, tmp_path):
    executor = HookExecutor({"post-branch": 'echo "$WT_BRANCH_NAME|$WT_SCENARIO"'}, cwd=str(tmp_path))
    result = executor.execute_hook(HookName.POST_BRANCH, context)
    assert result.output == "feat/login|clean_on_base"


def test_failing_command(context, tmp_path):
    executor = HookExecutor({HookName.PRE_BRANCH: "exit 3"}, cwd=str(tmp_path))
    result = executor.execute_hook(HookName.PRE_BRANCH, context)
    assert not result.success
    assert "code 3" in result.error


def test_command_list_stops_at_first_failure(context, tmp_path):
    marker = tmp_path / "ran"
    executor = HookExecutor(
        {HookName.PRE_COMMIT: ["echo one", "false", f"touch {marker}"]},
        cwd=str(tmp_path),
    )
    result = executor.execute_hook(HookName.PRE_COMMIT, context)
    assert not result.success
    assert result.output == "one"
    assert not marker.exists()


def test_dry_run_executes_nothing(context, tmp_path):
    marker = tmp_path / "ran"
    executor = HookExecutor({HookName.PRE_PUSH: f"touch {marker}"}, cwd=str(tmp_path), dry_run=True)
    result = executor.execute_hook(HookName.PRE_PUSH, context)
    assert result.skipped
    assert "Would execute" in result.output
    assert not marker.exists()


def test_condition_not_met_skips(context, tmp_path):
    spec = HookSpec(command="exit 1", condition="exists:package.json")
    result = HookExecutor({HookName.POST_WORKTREE: spec}, cwd=str(tmp_path)).execute_hook(
        HookName.POST_WORKTREE, context
    )
    assert result.success and result.skipped
    assert "exists:package.json" in result.skip_reason


def test_non_fatal_failure_reports_success(context, tmp_path):
    spec = HookSpec(command="echo partial; exit 1", fail_on_error=False)
    result = HookExecutor({HookName.PRE_PR: spec}, cwd=str(tmp_path)).execute_hook(HookName.PRE_PR, context)
    assert result.success
    assert result.error.startswith("[Non-fatal]")


def test_timeout_is_clamped_to_max(context, tmp_path):
    spec = HookSpec(command="sleep 2", timeout=10_000)
    executor = HookExecutor({HookName.PRE_PR: spec}, cwd=str(tmp_path), max_timeout=200)
    result = executor.execute_hook(HookName.PRE_PR, context)
    assert not result.success
    assert result.error == "Command timed out after 200ms"


def test_spec_env_and_cwd(context, tmp_path):
    sub = tmp_path / "sub"
    sub.mkdir()
    spec = HookSpec(command='echo "$GREETING $(basename "$(pwd)")"', cwd=str(sub), env={"GREETING": "hi"})
    result = HookExecutor({HookName.POST_COMMIT: spec}, cwd=str(tmp_path)).execute_hook(
        HookName.POST_COMMIT, context
    )
    assert result.output == "hi sub"


def test_missing_script(context, tmp_path):
    spec = HookSpec(script="scripts/setup.sh")
    result = HookExecutor({HookName.POST_WORKTREE: spec}, cwd=str(tmp_path)).execute_hook(
        HookName.POST_WORKTREE, context
    )
    assert not result.success
    assert "Script not found" in result.error


def test_shell_script(context, tmp_path):
    script = tmp_path / "setup.sh"
    script.write_text("echo from-script\n")
    spec = HookSpec(script="setup.sh")
    result = HookExecutor({HookName.POST_WORKTREE: spec}, cwd=str(tmp_path)).execute_hook(
        HookName.POST_WORKTREE, context
    )
    assert result.success
    assert result.output == "from-script"


def test_spec_without_command_or_script(context):
    result = HookExecutor({HookName.PRE_PR: HookSpec()}).execute_hook(HookName.PRE_PR, context)
    assert not result.success


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def test_expand_template_blanks_unknown_values(context):
    assert expand_template("{{PR_NUMBER}}-{{BRANCH_NAME}}-{{NOPE}}", context) == "-feat/login-"


def test_worktree_hooks_run_in_existing_worktree(context, tmp_path):
    worktree = tmp_path / "wt"
    ctx = context.model_copy(update={"worktree_path": str(worktree)})
    assert resolve_hook_cwd(HookName.POST_WORKTREE, "true", ctx) == str(tmp_path)

    worktree.mkdir()
    assert resolve_hook_cwd(HookName.POST_WORKTREE, "true", ctx) == str(worktree)
    assert resolve_hook_cwd(HookName.PRE_WORKTREE, "true", ctx) == str(tmp_path)


def test_conditions(context, tmp_path, monkeypatch):
    (tmp_path / "Makefile").write_text("")
    cwd = str(tmp_path)
    assert evaluate_condition("exists:Makefile", context, cwd)
    assert evaluate_condition("not:exists:nope", context, cwd)
    assert evaluate_condition("scenario:clean_on_base", context, cwd)
    assert not evaluate_condition("has-changes", context, cwd)

    staged = context.model_copy(update={"staged_files": ["a.py"]})
    assert evaluate_condition("has-staged", staged, cwd)

    monkeypatch.setenv("WTPILOT_TEST_FLAG", "1")
    assert evaluate_condition("env:WTPILOT_TEST_FLAG", context, cwd)
    assert evaluate_condition("something-new", context, cwd)


def test_context_to_env_skips_empty_values(context):
    env = context_to_env(context)
    assert env["WT_BRANCH_NAME"] == "feat/login"
    assert "WT_PR_NUMBER" not in env


def test_unknown_hook_name_rejected():
    with pytest.raises(ValueError):
        normalize_hooks_config({"pre-deploy": "true"})


def test_if_alias():
    spec = HookSpec.model_validate({"command": "make", "if": "has-staged"})
    assert spec.condition == "has-staged"
