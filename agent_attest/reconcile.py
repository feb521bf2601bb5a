"""
Diff reconciliation: assign an author to every line a commit adds.

The committed diff is matched against the pending attribution buffer by
content, not by position, since git's diff may place AI-written lines
differently relative to surrounding human edits than the agent did.

Per file, pending lines are consumed strictly in emission order: an added
line takes the first pending line with equal content at or after the
position of the previous match.  Added lines with no match are human.
A matched line the capture feed flagged as hand-edited is demoted to
human as a whole.

When a commit is rewritten, the AI lines of its previous version are
matched as a second stream with its own cursor (see ``rewrite``).
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from . import vcs
from .attestation import AI, HUMAN, AttestationRecord, AuthorshipLog, group_by_file
from .diff import FileDiff, parse_diff
from .pending import PendingAttributionBuffer, PendingLine

logger = logging.getLogger(__name__)


def _same_content(a: str, b: str) -> bool:
    return a.removesuffix("\r") == b.removesuffix("\r")


# -------------------------------------------------------------------
# Per-line matching
# -------------------------------------------------------------------

def _find(pending: list[PendingLine], start: int, content: str) -> int | None:
    for idx in range(start, len(pending)):
        if _same_content(pending[idx].content, content):
            return idx
    return None


def _match_file(file_diff: FileDiff, *streams: list[PendingLine]) -> list[dict[str, Any]]:
    """Attribute each added line of one file.

    Returns ``[{"line", "author", "accepted"}, ...]`` in diff order.

    Each pending sequence is consumed through its own forward-only cursor:
    a match at position ``i`` also retires every unmatched pending line
    before ``i``.  An added line takes its match from the first sequence
    that has one.
    """
    cursors = [0] * len(streams)
    matched_count = 0
    line_attrs: list[dict[str, Any]] = []

    for line_no, content in file_diff.added_lines:
        matched = None
        for s, pending in enumerate(streams):
            idx = _find(pending, cursors[s], content)
            if idx is not None:
                cursors[s] = idx + 1
                matched = pending[idx]
                break

        if matched is None:
            author, accepted = HUMAN, False
        else:
            matched_count += 1
            if matched.edited:
                author, accepted = HUMAN, False
            else:
                author, accepted = AI, True

        line_attrs.append({"line": line_no, "author": author, "accepted": accepted})

    total = sum(len(pending) for pending in streams)
    if matched_count < total:
        logger.debug(
            "%s: %d pending lines not found in the commit",
            file_diff.path, total - matched_count,
        )
    return line_attrs


def _merge_line_attrs(
    commit: str,
    file_path: str,
    line_attrs: list[dict[str, Any]],
) -> list[AttestationRecord]:
    """Merge contiguous lines with the same author and acceptance into ranges."""
    records: list[AttestationRecord] = []
    current: dict[str, Any] | None = None

    for la in line_attrs:
        if (
            current is not None
            and current["end_line"] + 1 == la["line"]
            and current["author"] == la["author"]
            and current["accepted"] == la["accepted"]
        ):
            current["end_line"] = la["line"]
        else:
            if current is not None:
                records.append(AttestationRecord(commit=commit, file_path=file_path, **current))
            current = {
                "start_line": la["line"],
                "end_line": la["line"],
                "author": la["author"],
                "accepted": la["accepted"],
            }

    if current is not None:
        records.append(AttestationRecord(commit=commit, file_path=file_path, **current))
    return records


# -------------------------------------------------------------------
# Reconciliation
# -------------------------------------------------------------------

def reconcile_files(
    commit: str,
    files: list[FileDiff],
    pending: PendingAttributionBuffer,
    carried: PendingAttributionBuffer | None = None,
) -> list[AttestationRecord]:
    """Match already-parsed file diffs against the buffer and drain it.

    ``carried`` holds the AI lines of a rewritten commit's previous
    version; it is matched before ``pending`` and drained as well.
    """
    records: list[AttestationRecord] = []
    for file_diff in files:
        if file_diff.binary or not file_diff.added_lines:
            continue
        streams = [pending.drain(file_diff.path)]
        if carried is not None:
            streams.insert(0, carried.drain(file_diff.path))
        line_attrs = _match_file(file_diff, *streams)
        records.extend(_merge_line_attrs(commit, file_diff.path, line_attrs))
    pending.drain_all()
    if carried is not None:
        carried.drain_all()
    return records


def reconcile(
    commit: str,
    vcs_diff: bytes | str,
    pending: PendingAttributionBuffer,
    carried: PendingAttributionBuffer | None = None,
) -> list[AttestationRecord]:
    """Produce attestation records for every line ``vcs_diff`` adds.

    The diff is parsed in full before the buffer is touched, so a
    ``PathDecodeError`` leaves the buffer as it was.
    """
    files = parse_diff(vcs_diff)
    return reconcile_files(commit, files, pending, carried)


def build_authorship_log(
    commit: str,
    parent: str | None,
    records: list[AttestationRecord],
) -> AuthorshipLog:
    return AuthorshipLog(
        commit=commit,
        parent=parent,
        created_at=datetime.now(timezone.utc).isoformat(),
        attestations=group_by_file(records),
    )


def reconcile_commit(
    commit: str,
    pending: PendingAttributionBuffer,
    cwd: str | None = None,
    carried: PendingAttributionBuffer | None = None,
) -> AuthorshipLog:
    """Reconcile a commit in the repository at ``cwd`` against ``pending``."""
    sha = vcs.resolve_commit(commit, cwd=cwd)
    parent = vcs.first_parent(sha, cwd=cwd)
    records = reconcile(sha, vcs.commit_diff(sha, cwd=cwd), pending, carried)
    log = build_authorship_log(sha, parent, records)
    logger.debug(
        "reconciled %s: %d files, %d records", sha[:12], len(log.attestations), len(records),
    )
    return log
