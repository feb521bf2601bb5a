"""
Per-commit authorship statistics.

Counts come from the attestation log; ``git_diff_added_lines`` is asked of
git separately (``git diff --numstat``) so that every stats query doubles as
a consistency check on reconciliation.  A mismatch is logged and attached
to the result; it is never corrected.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from . import vcs
from .attestation import AI, HUMAN
from .errors import InconsistencyError, UnreconciledCommitError
from .ledger import AttestationLog

logger = logging.getLogger(__name__)


@dataclass
class CommitStats:
    ai_additions: int = 0
    human_additions: int = 0
    ai_accepted: int = 0
    git_diff_added_lines: int = 0
    inconsistency: InconsistencyError | None = None

    @property
    def total_additions(self) -> int:
        return self.ai_additions + self.human_additions

    @property
    def consistent(self) -> bool:
        return self.total_additions == self.git_diff_added_lines

    def check(self) -> None:
        if self.inconsistency is not None:
            raise self.inconsistency

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "ai_additions": self.ai_additions,
            "human_additions": self.human_additions,
            "ai_accepted": self.ai_accepted,
            "git_diff_added_lines": self.git_diff_added_lines,
        }
        if self.inconsistency is not None:
            out["inconsistency"] = str(self.inconsistency)
        return out


def parse_numstat(raw: bytes | str) -> int:
    """Sum the added column of ``--numstat`` output; binary rows (``-``) are skipped."""
    text = raw.decode("utf-8", "replace") if isinstance(raw, bytes) else raw
    total = 0
    for line in text.splitlines():
        added, _, _ = line.partition("\t")
        if added.isdigit():
            total += int(added)
    return total


def git_added_lines(commit: str, cwd: str | None = None) -> int:
    return parse_numstat(vcs.commit_numstat(commit, cwd=cwd))


def compute(
    log: AttestationLog,
    commit: str,
    cwd: str | None = None,
    git_added: int | None = None,
) -> CommitStats:
    """Stats for one reconciled commit.

    ``commit`` must be the full id the log was appended under.  When
    ``git_added`` is None the count is taken from git in ``cwd``.
    """
    if commit not in log:
        raise UnreconciledCommitError("commit has no authorship log", commit)

    stats = CommitStats()
    for r in log.for_commit(commit):
        n = r.line_count
        if r.author == AI:
            stats.ai_additions += n
            if r.accepted:
                stats.ai_accepted += n
        elif r.author == HUMAN:
            stats.human_additions += n

    if git_added is None:
        git_added = git_added_lines(commit, cwd=cwd)
    stats.git_diff_added_lines = git_added

    if not stats.consistent:
        stats.inconsistency = InconsistencyError(commit, stats.total_additions, git_added)
        logger.warning("%s", stats.inconsistency)
    return stats


def cumulative(stats_list: list[CommitStats]) -> CommitStats:
    """Sum several commits' stats.  Keeps the first inconsistency seen."""
    total = CommitStats()
    for s in stats_list:
        total.ai_additions += s.ai_additions
        total.human_additions += s.human_additions
        total.ai_accepted += s.ai_accepted
        total.git_diff_added_lines += s.git_diff_added_lines
        if total.inconsistency is None and s.inconsistency is not None:
            total.inconsistency = s.inconsistency
    return total


def stats_for_commit(log: AttestationLog, commit: str, cwd: str | None = None) -> dict[str, Any]:
    return compute(log, commit, cwd=cwd).to_dict()
