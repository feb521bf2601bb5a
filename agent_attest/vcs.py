"""
git subprocess helpers.

Everything the engine needs from git goes through here: commit and parent
resolution, per-commit diffs, numstat counts, porcelain blame and rename
history.  Output that carries paths is returned as raw bytes so that the
path codec sees exactly what git printed.
"""

from __future__ import annotations

import logging
import os
import re
import subprocess

from .errors import VcsError
from .paths import to_pathspec

logger = logging.getLogger(__name__)

# git's well-known empty tree object, diff base for root commits
EMPTY_TREE = "4b825dc642cb6eb9a060e54bf8d69288fbee4904"

_DIFF_OPTS = (
    "--no-color",
    "--no-ext-diff",
    "--no-textconv",
    "--src-prefix=a/",
    "--dst-prefix=b/",
    "-M",
)

# HEAD reflog subjects written while amending or replaying commits in a rebase
_REWRITE_REFLOG = re.compile(r"\((amend|pick|reword|edit|squash|fixup|continue)\)")


# -------------------------------------------------------------------
# Runners
# -------------------------------------------------------------------

def run_git(*args: str, cwd: str | None = None, timeout: int = 30) -> bytes:
    """Run a git command and return raw stdout.  Raises ``VcsError``."""
    cmd = ["git", *args]
    logger.debug("running %s", " ".join(cmd))
    try:
        result = subprocess.run(cmd, capture_output=True, cwd=cwd, timeout=timeout)
    except (OSError, subprocess.TimeoutExpired) as e:
        raise VcsError(list(args), None, str(e)) from e
    if result.returncode != 0:
        raise VcsError(
            list(args),
            result.returncode,
            result.stderr.decode("utf-8", "replace"),
        )
    return result.stdout


def git_text(*args: str, cwd: str | None = None) -> str:
    """Run a git command and return stripped text stdout.  Raises ``VcsError``."""
    return run_git(*args, cwd=cwd).decode("utf-8", "replace").strip()


def _git(*args: str, cwd: str | None = None) -> str | None:
    """Run a git command and return stripped stdout, or None on failure."""
    try:
        return git_text(*args, cwd=cwd)
    except VcsError:
        return None


# -------------------------------------------------------------------
# Repository / commit resolution
# -------------------------------------------------------------------

def get_workspace_root(cwd: str | None = None) -> str:
    """Detect the repository root directory (falls back to cwd)."""
    for env_var in ("CLAUDE_PROJECT_DIR", "CURSOR_PROJECT_DIR"):
        val = os.environ.get(env_var)
        if val:
            return val
    root = _git("rev-parse", "--show-toplevel", cwd=cwd)
    if root:
        return root
    return cwd or os.getcwd()


def resolve_commit(rev: str = "HEAD", cwd: str | None = None) -> str:
    """Full SHA for ``rev``.  Raises ``VcsError`` for unknown revisions."""
    return git_text("rev-parse", "--verify", "--quiet", f"{rev}^{{commit}}", cwd=cwd)


def first_parent(commit: str, cwd: str | None = None) -> str | None:
    """First parent of ``commit``, or None for a root commit."""
    return _git("rev-parse", "--verify", "--quiet", f"{commit}^1", cwd=cwd)


def _diff_base(commit: str, cwd: str | None) -> str:
    return first_parent(commit, cwd=cwd) or EMPTY_TREE


def rewrite_in_progress(cwd: str | None = None) -> bool:
    """True when HEAD was just written by ``commit --amend`` or a rebase step.

    git runs post-commit for those commits before post-rewrite reports the
    old -> new mapping.
    """
    subject = _git("log", "-g", "-1", "--format=%gs", "HEAD", cwd=cwd)
    return bool(subject and _REWRITE_REFLOG.search(subject.split(":", 1)[0]))


# -------------------------------------------------------------------
# Diff / blame / history
# -------------------------------------------------------------------

def commit_diff(commit: str, cwd: str | None = None) -> bytes:
    """Unified diff of ``commit`` against its first parent (or the empty tree)."""
    return run_git("diff", *_DIFF_OPTS, _diff_base(commit, cwd), commit, cwd=cwd)


def worktree_diff(cwd: str | None = None) -> bytes:
    """Unified diff of the tracked working tree against HEAD."""
    base = _git("rev-parse", "--verify", "--quiet", "HEAD", cwd=cwd) or EMPTY_TREE
    return run_git("diff", *_DIFF_OPTS, base, cwd=cwd)


def commit_numstat(commit: str, cwd: str | None = None) -> bytes:
    """``git diff --numstat`` output for ``commit`` against its first parent."""
    return run_git(
        "diff", "--numstat", *_DIFF_OPTS, _diff_base(commit, cwd), commit, cwd=cwd,
    )


def blame_porcelain(
    path: str,
    *,
    start_line: int | None = None,
    end_line: int | None = None,
    rev: str = "HEAD",
    cwd: str | None = None,
) -> bytes:
    """Run ``git blame --porcelain`` and return raw output."""
    args = ["blame", "--porcelain", "-M"]
    if start_line is not None:
        end = end_line if end_line is not None else start_line
        args.extend(["-L", f"{start_line},{end}"])
    args.extend([rev, "--", path])
    return run_git(*args, cwd=cwd)


def rename_history(path: str, rev: str = "HEAD", cwd: str | None = None) -> bytes:
    """Name-status log following ``path`` back through renames."""
    return run_git(
        "log", "--follow", "-M", "--name-status", "--format=commit %H",
        rev, "--", to_pathspec(path),
        cwd=cwd,
    )


def file_lines(commit: str, path: str, cwd: str | None = None) -> list[str]:
    """Lines of ``path`` as stored in ``commit``."""
    raw = run_git("cat-file", "blob", f"{commit}:{path}", cwd=cwd)
    text = raw.decode("utf-8", "replace")
    if text.endswith("\n"):
        text = text[:-1]
    return text.split("\n") if text else []
