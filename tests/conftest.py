"""Shared fixtures: throwaway git repositories driven line by line."""

from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from agent_attest import vcs
from agent_attest.blame import blame
from agent_attest.commit_link import link_commit
from agent_attest.ledger import AttestationLog
from agent_attest.pending import PendingAttributionBuffer
from agent_attest.stats import CommitStats, compute


def ai(content: str) -> tuple[str, str]:
    return content, "ai"


def human(content: str) -> tuple[str, str]:
    return content, "human"


def git(cwd, *args: str) -> str:
    result = subprocess.run(
        ["git", *args], cwd=cwd, capture_output=True, check=True,
    )
    return result.stdout.decode("utf-8", "replace")


class TestRepo:
    """A git repository plus an in-memory attestation log and pending buffer.

    ``write`` puts tagged lines into a file and reports the AI-tagged ones
    to the pending buffer, as an agent hook would.  ``commit`` commits
    everything and reconciles the new commit.
    """

    __test__ = False

    def __init__(self, path: Path):
        self.path = path
        self.log = AttestationLog()
        self.pending = PendingAttributionBuffer()

        git(path, "init", "-q")
        git(path, "config", "user.name", "Test User")
        git(path, "config", "user.email", "test@example.com")
        git(path, "config", "commit.gpgsign", "false")
        git(path, "config", "core.autocrlf", "false")
        # keep global hooks (and ours) out of the way
        git(path, "config", "core.hooksPath", str(path / ".no-hooks"))

    @property
    def cwd(self) -> str:
        return str(self.path)

    def write(self, name: str, lines: list[tuple[str, str]]) -> Path:
        file_path = self.path / name
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_bytes(
            "".join(content + "\n" for content, _ in lines).encode("utf-8")
        )
        for content, author in lines:
            if author == "ai":
                self.pending.record(name, content)
        return file_path

    def write_raw(self, name: str, text: str) -> Path:
        file_path = self.path / name
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_bytes(text.encode("utf-8"))
        return file_path

    def git(self, *args: str) -> str:
        return git(self.path, *args)

    def commit(self, message: str = "change", *, link: bool = True):
        self.git("add", "-A")
        self.git("commit", "-q", "--allow-empty", "-m", message)
        if not link:
            return None
        return link_commit("HEAD", self.cwd, log=self.log, pending=self.pending)

    def head(self) -> str:
        return vcs.resolve_commit("HEAD", cwd=self.cwd)

    def stats(self, rev: str = "HEAD") -> CommitStats:
        return compute(self.log, vcs.resolve_commit(rev, cwd=self.cwd), cwd=self.cwd)

    def blame(self, name: str, **kwargs):
        return blame(self.log, name, cwd=self.cwd, **kwargs)


@pytest.fixture
def repo(tmp_path):
    path = tmp_path / "repo"
    path.mkdir()
    return TestRepo(path)


@pytest.fixture
def project(repo, monkeypatch):
    """A repo whose persisted data lives under .agent-attest/."""
    monkeypatch.delenv("CLAUDE_PROJECT_DIR", raising=False)
    monkeypatch.delenv("CURSOR_PROJECT_DIR", raising=False)
    monkeypatch.delenv("AGENT_ATTEST_LOG_LEVEL", raising=False)
    monkeypatch.setattr("agent_attest.config.GLOBAL_CONFIG_FILE", repo.path / ".no-global.json")
    exclude = repo.path / ".git" / "info" / "exclude"
    exclude.parent.mkdir(parents=True, exist_ok=True)
    exclude.write_text(".agent-attest/\n", encoding="utf-8")
    return repo


@pytest.fixture(autouse=True)
def _isolated_git_env(monkeypatch, tmp_path):
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.delenv("GIT_DIR", raising=False)
    monkeypatch.delenv("GIT_WORK_TREE", raising=False)
    monkeypatch.delenv("GIT_INDEX_FILE", raising=False)
