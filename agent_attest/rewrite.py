"""
Post-rewrite handling: keep attestations correct after rebase/amend.

Git's ``post-rewrite`` hook is called with ``amend`` or ``rebase`` as its
argument and provides ``old_sha new_sha [extra]`` lines on stdin.  Each new
commit is reconciled against the AI lines of the commit it replaces, read
back from that commit's content, so ranges follow lines that moved.  For
an amend the capture feed is matched too, since the agent may have written
more lines before amending.  The entries for the old ids are left in place.
"""

from __future__ import annotations

import logging
from typing import Iterable

from . import vcs
from .attestation import AI, AuthorshipLog
from .config import ledger_path, pending_path
from .errors import VcsError
from .ledger import AttestationLog
from .pending import PendingAttributionBuffer, clear_feed, load_feed
from .reconcile import reconcile_commit

logger = logging.getLogger(__name__)

AMEND = "amend"


def parse_rewrite_map(lines: Iterable[str]) -> dict[str, str]:
    sha_map: dict[str, str] = {}
    for line in lines:
        parts = line.strip().split()
        if len(parts) >= 2:
            sha_map[parts[0]] = parts[1]
    return sha_map


def carried_lines(log: AuthorshipLog, cwd: str | None = None) -> PendingAttributionBuffer:
    """The AI lines of an attested commit as a buffer, in file order."""
    carried = PendingAttributionBuffer()
    for fa in log.attestations:
        ai_records = sorted(
            (r for r in fa.records if r.author == AI), key=lambda r: r.start_line,
        )
        if not ai_records:
            continue
        try:
            lines = vcs.file_lines(log.commit, fa.file_path, cwd=cwd)
        except VcsError as e:
            logger.warning("cannot read %s at %s: %s", fa.file_path, log.commit[:12], e)
            continue
        for r in ai_records:
            for content in lines[r.start_line - 1:r.end_line]:
                carried.record(fa.file_path, content)
    return carried


def rewrite_from_stream(
    stream: Iterable[str],
    project_dir: str | None = None,
    *,
    kind: str | None = None,
    log: AttestationLog | None = None,
    pending: PendingAttributionBuffer | None = None,
) -> int:
    """Attest the new commits for the ``old new`` pairs in ``stream``.

    Returns the number of commits attested.  Commits that are already
    attested are skipped.  Outside an amend, a pair whose old commit was
    never attested is skipped as well.
    """
    sha_map = parse_rewrite_map(stream)
    if not sha_map:
        return 0

    if project_dir is None:
        project_dir = vcs.get_workspace_root()
    if log is None:
        log = AttestationLog.load(ledger_path(project_dir))

    use_feed = pending is None and kind == AMEND
    if pending is None:
        pending = load_feed(pending_path(project_dir)) if use_feed else PendingAttributionBuffer()

    count = 0
    for old_sha, new_sha in sha_map.items():
        if new_sha == old_sha or new_sha in log:
            continue
        old = log.authorship_log(old_sha)
        if old is None and kind != AMEND:
            continue

        carried = carried_lines(old, cwd=project_dir) if old is not None else None
        try:
            authorship = reconcile_commit(new_sha, pending, cwd=project_dir, carried=carried)
        except VcsError as e:
            if old is None:
                raise
            logger.warning("cannot reconcile %s (%s); copying its old ranges", new_sha[:12], e)
            count += log.remap({old_sha: new_sha})
            continue
        log.append_log(authorship)
        count += 1

    if use_feed:
        clear_feed(pending_path(project_dir))

    logger.info("attested %d of %d rewritten commits", count, len(sha_map))
    return count
