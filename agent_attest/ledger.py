"""
Attestation log: the per-commit source of truth for authorship.

Each reconciled commit contributes one ``AuthorshipLog``.  The store is
append-only: a commit is written once, whole, and never modified; history
rewrites (rebase, amend) append copies under the new commit ids.

When backed by a file, the log is ``.agent-attest/ledgers.jsonl`` with one
JSON object per commit.  A commit is written as a single line and synced,
so a crash mid-append leaves at most a torn last line, which ``load`` skips.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path

from .attestation import AUTHORS, AttestationRecord, AuthorshipLog, group_by_file
from .errors import DuplicateCommitError, InvalidRecordError
from .paths import is_canonical

logger = logging.getLogger(__name__)


# -------------------------------------------------------------------
# Validation
# -------------------------------------------------------------------

def _validate(commit: str, records: list[AttestationRecord]) -> None:
    """Reject the whole batch if any record is malformed or overlaps another."""
    seen: dict[str, set[int]] = {}
    for r in records:
        if r.commit != commit:
            raise InvalidRecordError(
                "record belongs to another commit", f"{r.commit} != {commit}",
            )
        if not is_canonical(r.file_path):
            raise InvalidRecordError("record path is not canonical", repr(r.file_path))
        if r.author not in AUTHORS:
            raise InvalidRecordError("unknown author", repr(r.author))
        if r.start_line < 1 or r.end_line < r.start_line:
            raise InvalidRecordError(
                "invalid line range", f"{r.file_path}:{r.start_line}-{r.end_line}",
            )
        lines = seen.setdefault(r.file_path, set())
        span = set(range(r.start_line, r.end_line + 1))
        if lines & span:
            raise InvalidRecordError(
                "line attested twice", f"{r.file_path}:{min(lines & span)}",
            )
        lines |= span


# -------------------------------------------------------------------
# Store
# -------------------------------------------------------------------

class AttestationLog:
    """Append-only attestation store, in memory or backed by a JSONL file."""

    def __init__(self, path: str | Path | None = None):
        self.path = Path(path) if path is not None else None
        self._logs: dict[str, AuthorshipLog] = {}
        # commit ids in append order; newest last
        self._order: list[str] = []

    @classmethod
    def load(cls, path: str | Path) -> AttestationLog:
        """Load a JSONL-backed log, skipping malformed or torn lines."""
        store = cls(path)
        if not store.path.exists():
            return store
        try:
            raw_lines = store.path.read_text(encoding="utf-8").splitlines()
        except OSError as e:
            logger.warning("cannot read attestation log %s: %s", store.path, e)
            return store

        for line in raw_lines:
            line = line.strip()
            if not line:
                continue
            try:
                log = AuthorshipLog.from_dict(json.loads(line))
            except (json.JSONDecodeError, KeyError, TypeError, ValueError):
                logger.debug("skipping malformed attestation log line")
                continue
            if log.commit in store._logs:
                continue
            store._logs[log.commit] = log
            store._order.append(log.commit)
        return store

    # --- writes -------------------------------------------------------

    def append(
        self,
        commit: str,
        records: list[AttestationRecord],
        parent: str | None = None,
        created_at: str | None = None,
    ) -> AuthorshipLog:
        """Store all records for ``commit`` or none of them."""
        if commit in self._logs:
            raise DuplicateCommitError("commit already attested", commit)
        records = list(records)
        _validate(commit, records)

        log = AuthorshipLog(
            commit=commit,
            parent=parent,
            created_at=created_at or datetime.now(timezone.utc).isoformat(),
            attestations=group_by_file(records),
        )
        if self.path is not None:
            self._persist(log)
        self._logs[commit] = log
        self._order.append(commit)
        return log

    def append_log(self, log: AuthorshipLog) -> AuthorshipLog:
        return self.append(log.commit, log.records(), log.parent, log.created_at)

    def _persist(self, log: AuthorshipLog) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = (json.dumps(log.to_dict(), ensure_ascii=False) + "\n").encode("utf-8")

        with open(self.path, "ab+") as f:
            f.seek(0, os.SEEK_END)
            size = f.tell()
            if size:
                f.seek(size - 1)
                if f.read(1) != b"\n":
                    # torn line from an earlier crash stays on its own line
                    data = b"\n" + data
            try:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            except OSError:
                f.truncate(size)
                raise

    def remap(self, sha_map: dict[str, str]) -> int:
        """Copy logs of rewritten commits under their new ids.

        Old entries stay as they are.  Returns the number of copies appended.
        """
        copied = 0
        for old_sha in list(self._order):
            new_sha = sha_map.get(old_sha)
            if not new_sha or new_sha == old_sha or new_sha in self._logs:
                continue
            old = self._logs[old_sha]
            parent = sha_map.get(old.parent, old.parent) if old.parent else None
            records = [
                AttestationRecord(
                    commit=new_sha,
                    file_path=r.file_path,
                    start_line=r.start_line,
                    end_line=r.end_line,
                    author=r.author,
                    accepted=r.accepted,
                )
                for r in old.records()
            ]
            self.append(new_sha, records, parent=parent)
            copied += 1
        return copied

    # --- reads --------------------------------------------------------

    def authorship_log(self, commit: str) -> AuthorshipLog | None:
        return self._logs.get(commit)

    def for_commit(self, commit: str) -> list[AttestationRecord]:
        log = self._logs.get(commit)
        if log is None:
            return []
        return log.records()

    def attestations_for_commit(self, commit: str) -> list[dict]:
        """Flat query view: one dict per range record, with its file path."""
        return [{"file_path": r.file_path, **r.to_dict()} for r in self.for_commit(commit)]

    def for_file(self, path: str) -> list[AttestationRecord]:
        """Records for ``path`` across commits, most recently appended first."""
        result: list[AttestationRecord] = []
        for commit in reversed(self._order):
            fa = self._logs[commit].for_path(path)
            if fa is not None:
                result.extend(fa.records)
        return result

    def commits(self) -> list[str]:
        return list(self._order)

    def __contains__(self, commit: object) -> bool:
        return commit in self._logs

    def __len__(self) -> int:
        return len(self._order)
