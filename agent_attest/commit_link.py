"""
Git post-commit logic: reconcile the new commit and append its attestations.

Called by the git post-commit hook (via ``agent-attest commit-link``, which
goes through ``link_head``).  Loads the capture feed, reconciles HEAD's
diff against it, appends the result to the attestation log and only then
clears the feed.  If anything fails, the log and the feed are left exactly
as they were.
"""

from __future__ import annotations

import logging
import os

from . import vcs
from .attestation import AuthorshipLog
from .config import ledger_path, pending_path
from .ledger import AttestationLog
from .pending import PendingAttributionBuffer, clear_feed, load_feed
from .reconcile import build_authorship_log, reconcile, reconcile_commit

logger = logging.getLogger(__name__)


def link_commit(
    rev: str = "HEAD",
    project_dir: str | None = None,
    *,
    log: AttestationLog | None = None,
    pending: PendingAttributionBuffer | None = None,
) -> AuthorshipLog:
    """Reconcile ``rev`` and append its authorship log.

    ``log`` and ``pending`` default to the project's persisted log and
    capture feed; the feed is cleared only when the feed was used.
    """
    if project_dir is None:
        project_dir = vcs.get_workspace_root()

    use_feed = pending is None
    if log is None:
        log = AttestationLog.load(ledger_path(project_dir))
    if pending is None:
        pending = load_feed(pending_path(project_dir))

    authorship = reconcile_commit(rev, pending, cwd=project_dir)
    stored = log.append_log(authorship)

    if use_feed:
        clear_feed(pending_path(project_dir))

    n_records = len(stored.records())
    logger.info(
        "attested %s: %d files, %d records", stored.commit[:12], len(stored.attestations), n_records,
    )
    return stored


def link_head(project_dir: str | None = None) -> AuthorshipLog | None:
    """Post-commit entry point: attest HEAD unless git is rewriting it.

    ``commit --amend`` and rebase steps run post-commit before post-rewrite
    reports which commit was replaced.  Those commits are left to
    ``rewrite.rewrite_from_stream`` with the capture feed untouched.
    """
    if project_dir is None:
        project_dir = vcs.get_workspace_root()
    if vcs.rewrite_in_progress(cwd=project_dir):
        logger.info("HEAD rewrites an earlier commit; leaving it to post-rewrite")
        return None
    return link_commit("HEAD", project_dir)


def preview_worktree(project_dir: str | None = None) -> AuthorshipLog:
    """Attribute uncommitted changes to tracked files without storing anything."""
    if project_dir is None:
        project_dir = os.getcwd()
    pending = load_feed(pending_path(project_dir))
    records = reconcile("WORKTREE", vcs.worktree_diff(cwd=project_dir), pending)
    return build_authorship_log("WORKTREE", None, records)
