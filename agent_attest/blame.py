"""
Blame reconstruction: current lines -> the commit and author that added them.

Runs ``git blame --porcelain -M`` on the file, which walks history back
through renames and reports, for each current line, the origin commit, the
line number in that commit's version and the file name it had there.  The
origin (commit, path, line) is then looked up in the attestation log.
Ledger entries use *original* line numbers, i.e. positions as they were when
the commit was made, so the lookup never uses the current line number.

When the origin path has no attestation under that commit, the file's
rename chain (``git log --follow``) supplies the other names it had in that
commit.  Lines with no attestation at all are reported as ``unattributed``.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from typing import Any

from . import paths, vcs
from .attestation import AI, HUMAN, UNATTRIBUTED, AttestationRecord
from .errors import BlameGapError, PathDecodeError, VcsError
from .ledger import AttestationLog

logger = logging.getLogger(__name__)

_HEX = set("0123456789abcdef")


@dataclass
class BlameLine:
    line_no: int
    author: str
    commit: str
    content: str
    origin_path: str
    origin_line: int
    accepted: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# ===================================================================
# Git blame porcelain parser
# ===================================================================

def _is_sha(token: bytes) -> bool:
    return len(token) in (40, 64) and all(chr(c) in _HEX for c in token)


def parse_blame_porcelain(raw: bytes | str) -> list[dict[str, Any]]:
    """Parse ``git blame --porcelain`` output into per-line records.

    Each record:
        {
            "commit_sha": "abc123...",
            "orig_line": int,
            "final_line": int,
            "content": "line content",
            "filename": "canonical/path",   # name in the origin commit
        }

    Header lines (author, summary, filename, ...) are only printed the first
    time a commit appears, except ``filename`` which git repeats when a
    commit contributes lines under more than one path.
    """
    data = raw.encode("utf-8", "surrogateescape") if isinstance(raw, str) else raw
    lines = data.split(b"\n")
    records: list[dict[str, Any]] = []
    filenames: dict[str, str] = {}  # sha -> latest filename seen

    i = 0
    while i < len(lines):
        parts = lines[i].split(b" ")
        if len(parts) < 3 or not _is_sha(parts[0]):
            i += 1
            continue

        sha = parts[0].decode("ascii")
        orig_line = int(parts[1])
        final_line = int(parts[2])
        i += 1

        while i < len(lines) and not lines[i].startswith(b"\t"):
            if lines[i].startswith(b"filename "):
                filenames[sha] = paths.decode(lines[i][len(b"filename "):])
            i += 1

        content = ""
        if i < len(lines) and lines[i].startswith(b"\t"):
            content = lines[i][1:].decode("utf-8", "replace").removesuffix("\r")
            i += 1

        records.append({
            "commit_sha": sha,
            "orig_line": orig_line,
            "final_line": final_line,
            "content": content,
            "filename": filenames.get(sha, ""),
        })

    return records


# ===================================================================
# Rename chain
# ===================================================================

def parse_rename_history(raw: bytes | str) -> dict[str, list[str]]:
    """Map commit -> paths the followed file had in that commit.

    Input is ``git log --follow --name-status --format=commit %H``.  A rename
    row contributes both its old and new path.
    """
    data = raw.encode("utf-8", "surrogateescape") if isinstance(raw, str) else raw
    history: dict[str, list[str]] = {}
    current: str | None = None

    for line in data.split(b"\n"):
        if line.startswith(b"commit "):
            current = line[len(b"commit "):].strip().decode("ascii")
            history.setdefault(current, [])
            continue
        if current is None or b"\t" not in line:
            continue
        status, *names = line.split(b"\t")
        if not status:
            continue
        for name in names:
            decoded = paths.decode(name)
            if decoded not in history[current]:
                history[current].append(decoded)

    return history


# ===================================================================
# Reconstruction
# ===================================================================

class _Resolver:
    """Looks up origin records, fetching the rename history at most once."""

    def __init__(self, log: AttestationLog, path: str, rev: str, cwd: str | None):
        self.log = log
        self.path = path
        self.rev = rev
        self.cwd = cwd
        self._history: dict[str, list[str]] | None = None

    def _aliases(self, commit: str) -> list[str]:
        if self._history is None:
            try:
                self._history = parse_rename_history(
                    vcs.rename_history(self.path, rev=self.rev, cwd=self.cwd)
                )
            except (VcsError, PathDecodeError) as e:
                logger.debug("rename history unavailable for %s: %s", self.path, e)
                self._history = {}
        return self._history.get(commit, [])

    def origin_record(self, commit: str, origin_path: str, origin_line: int) -> AttestationRecord:
        authorship = self.log.authorship_log(commit)
        if authorship is None:
            raise BlameGapError(origin_path, origin_line, commit)

        candidates = [origin_path] + [p for p in self._aliases(commit) if p != origin_path]
        for candidate in candidates:
            fa = authorship.for_path(candidate)
            if fa is None:
                continue
            record = fa.record_for_line(origin_line)
            if record is not None:
                return record
        raise BlameGapError(origin_path, origin_line, commit)


def blame(
    log: AttestationLog,
    file: str,
    start_line: int | None = None,
    end_line: int | None = None,
    *,
    cwd: str | None = None,
    rev: str = "HEAD",
) -> list[BlameLine]:
    """Authorship of each current line of ``file`` (repo-relative, canonical).

    Raises ``VcsError`` if git cannot blame the file.  Lines without an
    attestation come back with author ``unattributed``.
    """
    raw = vcs.blame_porcelain(file, start_line=start_line, end_line=end_line, rev=rev, cwd=cwd)
    resolver = _Resolver(log, file, rev, cwd)
    result: list[BlameLine] = []

    for rec in parse_blame_porcelain(raw):
        origin_path = rec["filename"] or file
        try:
            record = resolver.origin_record(rec["commit_sha"], origin_path, rec["orig_line"])
            author, accepted = record.author, record.accepted
        except BlameGapError as gap:
            logger.debug("%s", gap)
            author, accepted = UNATTRIBUTED, False

        result.append(BlameLine(
            line_no=rec["final_line"],
            author=author,
            commit=rec["commit_sha"],
            content=rec["content"],
            origin_path=origin_path,
            origin_line=rec["orig_line"],
            accepted=accepted,
        ))

    result.sort(key=lambda b: b.line_no)
    return result


def summarize(lines: list[BlameLine]) -> dict[str, int]:
    counts = {AI: 0, HUMAN: 0, UNATTRIBUTED: 0}
    for b in lines:
        counts[b.author] = counts.get(b.author, 0) + 1
    return counts


def group_segments(lines: list[BlameLine]) -> list[dict[str, Any]]:
    """Group consecutive lines that share commit and author."""
    segments: list[dict[str, Any]] = []
    current: dict[str, Any] | None = None

    for b in lines:
        if (
            current is not None
            and current["commit"] == b.commit
            and current["author"] == b.author
            and current["end_line"] + 1 == b.line_no
        ):
            current["end_line"] = b.line_no
        else:
            if current is not None:
                segments.append(current)
            current = {
                "start_line": b.line_no,
                "end_line": b.line_no,
                "author": b.author,
                "commit": b.commit,
                "origin_path": b.origin_path,
            }

    if current is not None:
        segments.append(current)
    return segments


# ===================================================================
# Output formatting
# ===================================================================

# ANSI colour codes
_BOLD = "\033[1m"
_DIM = "\033[2m"
_GREEN = "\033[32m"
_YELLOW = "\033[33m"
_RESET = "\033[0m"

_LABELS = {
    AI: f"{_GREEN}[AI]{_RESET}",
    HUMAN: f"{_DIM}[Human]{_RESET}",
    UNATTRIBUTED: f"{_YELLOW}[unattributed]{_RESET}",
}


def _format_line_range(start: int, end: int) -> str:
    if start == end:
        return f"L{start}"
    return f"L{start}-{end}"


def format_terminal(file_path: str, lines: list[BlameLine]) -> str:
    out: list[str] = ["", f"  {_BOLD}{file_path}{_RESET}", ""]
    for seg in group_segments(lines):
        lr = _format_line_range(seg["start_line"], seg["end_line"])
        label = _LABELS.get(seg["author"], f"[{seg['author']}]")
        detail = f"commit: {seg['commit'][:12]}"
        if seg["origin_path"] != file_path:
            detail += f" | from: {seg['origin_path']}"
        out.append(f"  {lr:<12}{label} {_DIM}{detail}{_RESET}")

    counts = summarize(lines)
    out.append("")
    out.append(
        f"  {counts[AI]} ai, {counts[HUMAN]} human, {counts[UNATTRIBUTED]} unattributed"
    )
    out.append("")
    return "\n".join(out)


def format_json(file_path: str, lines: list[BlameLine]) -> str:
    output = {
        "file": file_path,
        "lines": [
            {"line_no": b.line_no, "author": b.author, "commit": b.commit, "accepted": b.accepted}
            for b in lines
        ],
        "summary": summarize(lines),
    }
    return json.dumps(output, indent=2, ensure_ascii=False)
