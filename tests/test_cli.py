import json

from typer.testing import CliRunner

from wtpilot import __version__
from wtpilot.cli import app

runner = CliRunner()


def test_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert f"WTPILOT v{__version__}" in result.stdout


def test_actions_lists_every_key():
    result = runner.invoke(app, ["actions"])
    assert result.exit_code == 0
    for key in ("empty_commit", "stash_and_empty", "use_commits"):
        assert key in result.stdout


def test_hooks_without_config(tmp_path):
    result = runner.invoke(app, ["hooks", "--repo", str(tmp_path)])
    assert result.exit_code == 0
    assert "No hooks configured" in result.stdout


def test_hooks_lists_configured(tmp_path):
    config_dir = tmp_path / ".wtpilot"
    config_dir.mkdir()
    (config_dir / "config.yaml").write_text('hooks:\n  pre-branch: "make lint"\n')
    result = runner.invoke(app, ["hooks", "--repo", str(tmp_path)])
    assert result.exit_code == 0
    assert "pre-branch" in result.stdout


def test_new_requires_something_to_do():
    result = runner.invoke(app, ["new"])
    assert result.exit_code == 2


def test_new_outside_a_repo(tmp_path):
    result = runner.invoke(app, ["new", "Add login", "--repo", str(tmp_path)])
    assert result.exit_code == 1


def test_new_invalid_action(monkeypatch, tmp_path):
    import wtpilot.cli as cli
    from wtpilot.workspace import Workspace

    monkeypatch.setattr(cli.Workspace, "discover", classmethod(lambda c, p: Workspace(tmp_path)))
    result = runner.invoke(app, ["new", "Add login", "--action", "yolo", "--json"])
    assert result.exit_code == 1
    payload = json.loads(result.stdout)
    assert payload["status"] == "invalid_action"
