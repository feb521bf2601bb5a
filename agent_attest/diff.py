"""
Unified diff parsing for ``git diff`` output.

Splits the output into per-file sections, decodes every path through the
path codec, and walks hunks to list the added lines with their post-image
line numbers.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from . import paths

# Match @@ -old_start[,old_count] +new_start[,new_count] @@
_HUNK_RE = re.compile(rb"^@@ -\d+(?:,\d+)? \+(\d+)(?:,\d+)? @@")

_DEV_NULL = b"/dev/null"


@dataclass
class FileDiff:
    path: str
    old_path: str | None = None
    status: str = "modified"
    binary: bool = False
    added_lines: list[tuple[int, str]] = field(default_factory=list)
    removed_count: int = 0

    @property
    def added_count(self) -> int:
        return len(self.added_lines)


def _decode_side(raw: bytes, prefix: str) -> str | None:
    """Decode a ``---``/``+++``/header operand; None for /dev/null."""
    raw = raw.rstrip(b"\n")
    # git appends a tab after names containing a space (GNU patch compat)
    if raw.endswith(b"\t"):
        raw = raw[:-1]
    if raw == _DEV_NULL:
        return None
    return paths.strip_prefix(paths.decode(raw), prefix)


def _content(line: bytes) -> str:
    # Content is never a lookup key for paths; keep undecodable bytes visible
    text = line[1:].decode("utf-8", "replace")
    if text.endswith("\r"):
        text = text[:-1]
    return text


class _Section:
    """Accumulates one ``diff --git`` section."""

    def __init__(self, header: bytes):
        old_raw, new_raw = paths.split_diff_header(header)
        self.header_old = _decode_side(old_raw, "a/")
        self.header_new = _decode_side(new_raw, "b/")
        self.minus: str | None = None
        self.plus: str | None = None
        self.saw_minus = False
        self.saw_plus = False
        self.rename_from: str | None = None
        self.rename_to: str | None = None
        self.copy_from: str | None = None
        self.copy_to: str | None = None
        self.new_file = False
        self.deleted_file = False
        self.binary = False
        self.added: list[tuple[int, str]] = []
        self.removed = 0

    def build(self) -> FileDiff:
        if self.deleted_file or (self.saw_plus and self.plus is None):
            path = self.minus or self.header_old or self.header_new
            status = "deleted"
        else:
            path = self.plus or self.rename_to or self.copy_to or self.header_new
            if self.new_file:
                status = "added"
            elif self.rename_to is not None:
                status = "renamed"
            elif self.copy_to is not None:
                status = "copied"
            else:
                status = "modified"

        old_path = self.rename_from or self.copy_from or self.minus or self.header_old
        if status == "added":
            old_path = None

        return FileDiff(
            path=path or "",
            old_path=old_path,
            status=status,
            binary=self.binary,
            added_lines=[] if self.binary else self.added,
            removed_count=self.removed,
        )


def parse_diff(raw: bytes | str) -> list[FileDiff]:
    """Parse unified ``git diff`` output into per-file records.

    Raises ``PathDecodeError`` if any path in any section cannot be decoded;
    nothing partial is returned in that case.
    """
    data = raw.encode("utf-8", "surrogateescape") if isinstance(raw, str) else raw
    files: list[FileDiff] = []
    section: _Section | None = None
    in_hunk = False
    new_line = 0

    for line in data.split(b"\n"):
        if line.startswith(b"diff --git "):
            if section is not None:
                files.append(section.build())
            section = _Section(line[len(b"diff --git "):])
            in_hunk = False
            continue

        if section is None:
            continue

        if in_hunk:
            if line.startswith(b"+"):
                section.added.append((new_line, _content(line)))
                new_line += 1
                continue
            if line.startswith(b"-"):
                section.removed += 1
                continue
            if line.startswith(b" "):
                new_line += 1
                continue
            if line.startswith(b"\\"):
                # "\ No newline at end of file"
                continue
            # anything else ends the hunk body; fall through to header handling

        m = _HUNK_RE.match(line)
        if m:
            new_line = int(m.group(1))
            # an empty post-image reports its start one line early
            if new_line == 0:
                new_line = 1
            in_hunk = True
            continue

        if line.startswith(b"--- "):
            section.saw_minus = True
            section.minus = _decode_side(line[4:], "a/")
        elif line.startswith(b"+++ "):
            section.saw_plus = True
            section.plus = _decode_side(line[4:], "b/")
        elif line.startswith(b"rename from "):
            section.rename_from = paths.decode(line[len(b"rename from "):])
        elif line.startswith(b"rename to "):
            section.rename_to = paths.decode(line[len(b"rename to "):])
        elif line.startswith(b"copy from "):
            section.copy_from = paths.decode(line[len(b"copy from "):])
        elif line.startswith(b"copy to "):
            section.copy_to = paths.decode(line[len(b"copy to "):])
        elif line.startswith(b"new file mode"):
            section.new_file = True
        elif line.startswith(b"deleted file mode"):
            section.deleted_file = True
        elif line.startswith(b"Binary files ") or line.startswith(b"GIT binary patch"):
            section.binary = True

    if section is not None:
        files.append(section.build())
    return files


def added_line_total(files: list[FileDiff]) -> int:
    """Added lines across all line-oriented (non-binary) files."""
    return sum(f.added_count for f in files if not f.binary)
