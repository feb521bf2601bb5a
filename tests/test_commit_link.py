"""Tests for the persisted capture -> commit -> rewrite pipeline."""

import io

import pytest

from agent_attest.attestation import AI, HUMAN
from agent_attest.blame import blame
from agent_attest.commit_link import link_commit, link_head, preview_worktree
from agent_attest.config import ledger_path, pending_path
from agent_attest.errors import DuplicateCommitError
from agent_attest.ledger import AttestationLog
from agent_attest.pending import append_to_feed, load_feed
from agent_attest.record import canonical_repo_path, record_event, written_lines
from agent_attest.rewrite import parse_rewrite_map, rewrite_from_stream
from agent_attest.stats import compute


def claude_write(path, content):
    return {
        "hook_event_name": "PostToolUse",
        "tool_name": "Write",
        "tool_input": {"file_path": str(path), "content": content},
    }


class TestRecord:
    def test_claude_write_event(self, project):
        target = project.path / "中文文件.txt"
        n = record_event(claude_write(target, "第一行\n第二行\n"), project.cwd)

        assert n == 2
        buf = load_feed(pending_path(project.cwd))
        assert [p.content for p in buf.peek("中文文件.txt")] == ["第一行", "第二行"]

    def test_claude_multiedit_event(self, project):
        event = {
            "hook_event_name": "PostToolUse",
            "tool_name": "MultiEdit",
            "tool_input": {
                "file_path": "src/a.py",
                "edits": [{"old_string": "x", "new_string": "y = 1"}, {"new_string": "z = 2\n"}],
            },
        }
        assert record_event(event, project.cwd) == 2
        assert [p.content for p in load_feed(pending_path(project.cwd)).peek("src/a.py")] == [
            "y = 1", "z = 2",
        ]

    def test_edit_records_only_changed_lines(self, project):
        event = {
            "hook_event_name": "PostToolUse",
            "tool_name": "Edit",
            "tool_input": {
                "file_path": "a.py",
                "old_string": "def f():\n    x = 1\n    return x\n",
                "new_string": "def f():\n    x = 1\n    x = 2\n    return x\n",
            },
        }
        assert record_event(event, project.cwd) == 1
        assert [p.content for p in load_feed(pending_path(project.cwd)).peek("a.py")] == ["    x = 2"]

    def test_written_lines(self):
        assert written_lines("", "a\nb\n") == ["a", "b"]
        assert written_lines("a\nb\nc", "a\nB\nc\nd") == ["B", "d"]
        assert written_lines("same\n", "same\n") == []

    def test_cursor_event(self, project):
        event = {
            "hook_event_name": "afterFileEdit",
            "file_path": str(project.path / "b.ts"),
            "edits": [{"old_string": "", "new_string": "const b = 1;"}],
        }
        assert record_event(event, project.cwd) == 1

    def test_ignores_other_events_and_outside_paths(self, project, tmp_path):
        assert record_event({"hook_event_name": "Stop"}, project.cwd) == 0
        assert record_event(claude_write(tmp_path / "elsewhere.txt", "x"), project.cwd) == 0
        assert not pending_path(project.cwd).exists()

    def test_canonical_repo_path(self, tmp_path):
        root = str(tmp_path)
        assert canonical_repo_path(str(tmp_path / "a" / "b.txt"), root) == "a/b.txt"
        assert canonical_repo_path("rel/c.txt", root) == "rel/c.txt"
        assert canonical_repo_path(str(tmp_path.parent / "x.txt"), root) is None
        assert canonical_repo_path(root, root) is None


class TestLinkCommit:
    def test_pipeline_persists_and_clears_feed(self, project):
        target = project.path / "app.py"
        record_event(claude_write(target, "import os\nprint(os.name)\n"), project.cwd)
        project.write_raw("app.py", "import os\n# human note\nprint(os.name)\n")
        project.commit("first", link=False)

        authorship = link_commit("HEAD", project.cwd)

        assert not pending_path(project.cwd).exists()
        log = AttestationLog.load(ledger_path(project.cwd))
        assert log.commits() == [project.head()]
        records = log.for_commit(project.head())
        assert [(r.start_line, r.end_line, r.author) for r in records] == [
            (1, 1, AI), (2, 2, HUMAN), (3, 3, AI),
        ]
        assert authorship.parent is None
        stats = compute(log, project.head(), cwd=project.cwd)
        assert (stats.ai_additions, stats.human_additions, stats.git_diff_added_lines) == (2, 1, 3)

    def test_parent_is_first_parent(self, project):
        project.write("a.txt", [("a", "human")])
        project.commit("one")
        first = project.head()
        project.write("a.txt", [("a", "human"), ("b", "human")])
        log = project.commit("two")
        assert log.parent == first

    def test_failed_link_keeps_feed(self, project):
        record_event(claude_write(project.path / "a.txt", "x\n"), project.cwd)
        project.write_raw("a.txt", "x\n")
        project.commit("first", link=False)
        link_commit("HEAD", project.cwd)

        record_event(claude_write(project.path / "b.txt", "y\n"), project.cwd)
        with pytest.raises(DuplicateCommitError):
            link_commit("HEAD", project.cwd)
        assert pending_path(project.cwd).exists()
        assert len(AttestationLog.load(ledger_path(project.cwd))) == 1

    def test_context_lines_of_an_edit_are_not_claimed(self, project):
        project.write_raw("a.py", "def f():\n    x = 1\n    return 1\n")
        project.commit("base", link=False)
        link_commit("HEAD", project.cwd)

        record_event({
            "hook_event_name": "PostToolUse",
            "tool_name": "Edit",
            "tool_input": {
                "file_path": "a.py",
                "old_string": "    x = 1\n    return 1\n",
                "new_string": "    x = 1\n    x = 2\n    return 1\n",
            },
        }, project.cwd)
        project.write_raw("a.py", "def g():\n    return 1\ndef f():\n    x = 1\n    x = 2\n    return 1\n")
        project.commit("second", link=False)

        authorship = link_commit("HEAD", project.cwd)
        assert [(r.start_line, r.end_line, r.author) for r in authorship.records()] == [
            (1, 2, HUMAN), (5, 5, AI),
        ]

    def test_edited_feed_entry_demotes_line(self, project):
        record_event(claude_write(project.path / "f.txt", "a\nb\n"), project.cwd)
        append_to_feed(pending_path(project.cwd), "f.txt", ["b"], edited=True)
        project.write_raw("f.txt", "a\nb\n")
        project.commit("first", link=False)

        authorship = link_commit("HEAD", project.cwd)
        assert [(r.start_line, r.author, r.accepted) for r in authorship.records()] == [
            (1, AI, True), (2, HUMAN, False),
        ]

    def test_merge_commit_diffs_against_first_parent(self, repo):
        repo.write("base.txt", [("base", "human")])
        repo.commit("base")
        main = repo.git("rev-parse", "--abbrev-ref", "HEAD").strip()

        repo.git("checkout", "-q", "-b", "feature")
        repo.write("feature.txt", [("f1", "ai"), ("f2", "ai")])
        repo.commit("feature")

        repo.git("checkout", "-q", main)
        repo.write("main.txt", [("m", "human")])
        repo.commit("main work")

        repo.git("merge", "-q", "--no-ff", "--no-edit", "feature")
        log = link_commit("HEAD", repo.cwd, log=repo.log, pending=repo.pending)

        assert [fa.file_path for fa in log.attestations] == ["feature.txt"]
        stats = repo.stats()
        assert stats.git_diff_added_lines == 2
        assert stats.human_additions == 2
        assert stats.consistent


class TestPreview:
    def test_worktree_preview_stores_nothing(self, project):
        project.write_raw("a.txt", "one\n")
        project.commit("first", link=False)

        record_event(claude_write(project.path / "a.txt", "two\n"), project.cwd)
        project.write_raw("a.txt", "one\ntwo\nthree\n")

        preview = preview_worktree(project.cwd)
        fa = preview.for_path("a.txt")
        assert [(r.start_line, r.end_line, r.author) for r in fa.records] == [
            (2, 2, AI), (3, 3, HUMAN),
        ]
        assert preview.commit == "WORKTREE"
        assert not ledger_path(project.cwd).exists()
        assert pending_path(project.cwd).exists()


class TestRewrite:
    def test_parse_rewrite_map(self):
        lines = ["a" * 40 + " " + "b" * 40 + "\n", "c" * 40 + " " + "d" * 40 + " extra\n", "\n"]
        assert parse_rewrite_map(lines) == {"a" * 40: "b" * 40, "c" * 40: "d" * 40}

    def test_amend_in_hook_order(self, project):
        record_event(claude_write(project.path / "a.txt", "x\ny\n"), project.cwd)
        project.write_raw("a.txt", "x\ny\n")
        project.commit("first", link=False)
        assert link_head(project.cwd) is not None
        old = project.head()

        record_event({
            "hook_event_name": "PostToolUse",
            "tool_name": "Edit",
            "tool_input": {"file_path": "a.txt", "old_string": "x\n", "new_string": "x\nnew\n"},
        }, project.cwd)
        project.write_raw("a.txt", "x\nnew\ny\nmine\n")
        project.git("commit", "-q", "-a", "--amend", "-m", "reworded")
        new = project.head()

        # post-commit runs first and leaves the amended commit alone
        assert link_head(project.cwd) is None
        assert pending_path(project.cwd).exists()
        assert new not in AttestationLog.load(ledger_path(project.cwd))

        stream = io.StringIO(f"{old} {new}\n")
        assert rewrite_from_stream(stream, project.cwd, kind="amend") == 1
        assert not pending_path(project.cwd).exists()

        log = AttestationLog.load(ledger_path(project.cwd))
        assert old in log and new in log
        assert [(r.start_line, r.end_line, r.author) for r in log.for_commit(new)] == [
            (1, 3, AI), (4, 4, HUMAN),
        ]
        assert log.authorship_log(new).parent is None
        stats = compute(log, new, cwd=project.cwd)
        assert (stats.ai_additions, stats.human_additions, stats.git_diff_added_lines) == (3, 1, 4)
        assert [b.author for b in blame(log, "a.txt", cwd=project.cwd)] == [AI, AI, AI, HUMAN]

    def test_amend_of_unattested_commit_uses_feed(self, project):
        project.write_raw("a.txt", "x\n")
        project.commit("first", link=False)
        old = project.head()

        record_event(claude_write(project.path / "a.txt", "x\n"), project.cwd)
        project.git("commit", "-q", "--amend", "-m", "reworded")
        new = project.head()

        assert rewrite_from_stream(io.StringIO(f"{old} {new}\n"), project.cwd, kind="amend") == 1
        log = AttestationLog.load(ledger_path(project.cwd))
        assert [r.author for r in log.for_commit(new)] == [AI]

    def test_rebase_skips_unattested_and_already_attested(self, repo):
        repo.write("a.txt", [("x", "ai")])
        repo.commit("first")
        attested = repo.head()
        repo.write("a.txt", [("x", "ai"), ("y", "human")])
        repo.commit("second", link=False)
        unattested = repo.head()

        stream = io.StringIO(f"{unattested} {'e' * 40}\n{attested} {attested}\n")
        assert rewrite_from_stream(stream, repo.cwd, kind="rebase", log=repo.log) == 0
        assert repo.log.commits() == [attested]

    def test_unreadable_new_commit_falls_back_to_copy(self, repo):
        repo.write("a.txt", [("x", "ai"), ("y", "human")])
        repo.commit("first")
        old = repo.head()
        new = "f" * 40

        stream = io.StringIO(f"{old} {new}\n")
        assert rewrite_from_stream(stream, repo.cwd, kind="rebase", log=repo.log) == 1
        assert [(r.start_line, r.author) for r in repo.log.for_commit(new)] == [(1, AI), (2, HUMAN)]

    def test_empty_stream(self, project):
        assert rewrite_from_stream(io.StringIO(""), project.cwd) == 0
