"""Tests for hook installation, configuration and the CLI entry point."""

import io
import json
import logging
import os

import pytest

from agent_attest import cli
from agent_attest.config import (
    DEFAULTS,
    get_project_config,
    get_setting,
    ledger_path,
    save_project_config,
)
from agent_attest.hooks import (
    configure_claude_hooks,
    configure_cursor_hooks,
    configure_git_hooks,
    git_hook_installed,
)


@pytest.fixture(autouse=True)
def _restore_logger():
    logger = logging.getLogger("agent_attest")
    handlers, level = logger.handlers[:], logger.level
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)


def _claude_event(path, content):
    return json.dumps({
        "hook_event_name": "PostToolUse",
        "tool_name": "Write",
        "tool_input": {"file_path": str(path), "content": content},
    })


class TestHooks:
    def test_git_hooks_are_installed_once(self, repo):
        hooks_dir = repo.path / ".git" / "hooks"
        hooks_dir.mkdir(exist_ok=True)
        (hooks_dir / "post-commit").write_text("#!/bin/sh\necho existing\n", encoding="utf-8")

        assert configure_git_hooks(repo.cwd)
        assert configure_git_hooks(repo.cwd)

        content = (hooks_dir / "post-commit").read_text(encoding="utf-8")
        assert "echo existing" in content
        assert content.count("agent-attest commit-link") == 1
        assert os.access(hooks_dir / "post-commit", os.X_OK)
        assert git_hook_installed(repo.cwd, "post-commit")
        assert git_hook_installed(repo.cwd, "post-rewrite")

    def test_git_hooks_need_a_git_dir(self, tmp_path):
        assert not configure_git_hooks(str(tmp_path))
        assert not git_hook_installed(str(tmp_path), "post-commit")

    def test_agent_hooks_merge_into_existing_config(self, tmp_path):
        settings = tmp_path / ".claude" / "settings.json"
        settings.parent.mkdir()
        settings.write_text(json.dumps({"model": "x", "hooks": {"Stop": []}}), encoding="utf-8")

        configure_claude_hooks(str(tmp_path))
        configure_claude_hooks(str(tmp_path))
        configure_cursor_hooks(str(tmp_path))

        data = json.loads(settings.read_text(encoding="utf-8"))
        assert data["model"] == "x"
        assert len(data["hooks"]["PostToolUse"]) == 1
        assert data["hooks"]["PostToolUse"][0]["hooks"][0]["command"] == "agent-attest record"

        cursor = json.loads((tmp_path / ".cursor" / "hooks.json").read_text(encoding="utf-8"))
        assert cursor["hooks"]["afterFileEdit"] == [{"command": "agent-attest record"}]


class TestConfig:
    def test_defaults_and_overrides(self, project, monkeypatch):
        assert get_project_config(project.cwd) is None
        assert get_setting("strict_stats", project.cwd) is DEFAULTS["strict_stats"]

        save_project_config({"strict_stats": True, "ledger_file": "custom.jsonl"}, project.cwd)
        assert get_setting("strict_stats", project.cwd) is True
        assert ledger_path(project.cwd).name == "custom.jsonl"
        assert ".agent-attest/" in (project.path / ".gitignore").read_text(encoding="utf-8")

        monkeypatch.setenv("AGENT_ATTEST_LOG_LEVEL", "DEBUG")
        assert get_setting("log_level", project.cwd) == "DEBUG"


class TestCommands:
    def _commit_with_hooks(self, project, monkeypatch):
        monkeypatch.chdir(project.path)
        monkeypatch.setattr("sys.stdin", io.StringIO(
            _claude_event(project.path / "app.py", "a = 1\nb = 2\n")
        ))
        cli.main(["record"])

        project.write_raw("app.py", "a = 1\nmine = 0\nb = 2\n")
        project.commit("first", link=False)
        cli.main(["commit-link"])

    def test_stats_json(self, project, monkeypatch, capsys):
        self._commit_with_hooks(project, monkeypatch)
        capsys.readouterr()

        cli.main(["stats", "--json"])
        data = json.loads(capsys.readouterr().out)
        assert data == {
            "ai_additions": 2,
            "human_additions": 1,
            "ai_accepted": 2,
            "git_diff_added_lines": 3,
        }

    def test_attestations_and_blame_json(self, project, monkeypatch, capsys):
        self._commit_with_hooks(project, monkeypatch)
        capsys.readouterr()

        cli.main(["attestations", "--json"])
        data = json.loads(capsys.readouterr().out)
        assert data["commit_sha"] == project.head()
        assert [line["author"] for line in data["attestations"][0]["lines"]] == [
            "ai", "human", "ai",
        ]

        cli.main(["blame", "app.py", "-L", "2,3", "--json"])
        data = json.loads(capsys.readouterr().out)
        assert [(line["line_no"], line["author"]) for line in data["lines"]] == [
            (2, "human"), (3, "ai"),
        ]

    def test_hook_commands_never_fail(self, project, monkeypatch, capsys):
        monkeypatch.chdir(project.path)
        project.commit("empty", link=False)
        cli.main(["commit-link"])
        # second run on the same commit: logged, not raised
        cli.main(["commit-link"])
        assert "commit-link failed" in capsys.readouterr().err

        monkeypatch.setattr("sys.stdin", io.StringIO("not json"))
        cli.main(["record"])

    def test_stats_for_unreconciled_commit_exits(self, project, monkeypatch):
        monkeypatch.chdir(project.path)
        project.commit("unlinked", link=False)
        with pytest.raises(SystemExit) as exc:
            cli.main(["stats"])
        assert exc.value.code == 1

    def test_init_configures_everything(self, project, monkeypatch):
        monkeypatch.chdir(project.path)
        cli.main(["init", "-y"])

        assert get_project_config(project.cwd) is not None
        assert (project.path / ".claude" / "settings.json").exists()
        assert (project.path / ".cursor" / "hooks.json").exists()
        assert git_hook_installed(project.cwd, "post-commit")
