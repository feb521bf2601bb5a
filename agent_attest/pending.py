"""
Pending attribution buffer: AI-written lines awaiting their commit.

The capture side (agent hooks) reports every line an agent writes into the
working tree, per file and in emission order.  At commit time the diff
reconciler drains the buffer file by file and matches the committed lines
against it; whatever is left over afterwards is discarded.

Agent hooks and the git post-commit hook run in separate processes, so the
capture side appends to a JSONL feed (``.agent-attest/pending.jsonl``) which
``load_feed`` turns back into an ordered, process-local buffer.
"""

from __future__ import annotations

import json
import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from .paths import is_canonical

logger = logging.getLogger(__name__)


@dataclass
class PendingLine:
    file: str
    content: str
    author: str = "ai"
    # set by the capture feed when a human touched the line before commit
    edited: bool = False


def split_text(text: str) -> list[str]:
    """Split an agent edit into lines (CRLF/CR -> LF, trailing newline dropped)."""
    normalized = text.replace("\r\n", "\n").replace("\r", "\n")
    if normalized.endswith("\n"):
        normalized = normalized[:-1]
    if not normalized:
        return []
    return normalized.split("\n")


class PendingAttributionBuffer:
    """Ordered per-file record of AI-written lines since the last commit."""

    def __init__(self):
        self._lines: OrderedDict[str, list[PendingLine]] = OrderedDict()

    def record(self, file: str, content: str, edited: bool = False) -> PendingLine:
        if not is_canonical(file):
            raise ValueError(f"pending line path is not canonical: {file!r}")
        line = PendingLine(file=file, content=content, edited=edited)
        self._lines.setdefault(file, []).append(line)
        return line

    def record_text(self, file: str, text: str) -> list[PendingLine]:
        return [self.record(file, content) for content in split_text(text)]

    def mark_edited(self, file: str, content: str) -> bool:
        """Flag the oldest un-flagged pending line with this content as hand-edited."""
        for line in self._lines.get(file, []):
            if line.content == content and not line.edited:
                line.edited = True
                return True
        return False

    def drain(self, file: str) -> list[PendingLine]:
        return self._lines.pop(file, [])

    def drain_all(self) -> list[PendingLine]:
        leftovers = [line for lines in self._lines.values() for line in lines]
        if leftovers:
            logger.debug("discarding %d unmatched pending lines", len(leftovers))
        self._lines.clear()
        return leftovers

    def peek(self, file: str) -> list[PendingLine]:
        return list(self._lines.get(file, []))

    def files(self) -> list[str]:
        return list(self._lines)

    def __contains__(self, file: object) -> bool:
        return file in self._lines

    def __len__(self) -> int:
        return sum(len(lines) for lines in self._lines.values())


def notify_ai_line(buffer: PendingAttributionBuffer, file: str, content: str) -> None:
    """Producer entry point: an AI-authored line landed in the working tree."""
    buffer.record(file, content)


# -------------------------------------------------------------------
# Capture feed (.agent-attest/pending.jsonl)
# -------------------------------------------------------------------

def append_to_feed(
    feed_path: str | Path,
    file: str,
    lines: list[str],
    *,
    edited: bool = False,
) -> int:
    """Append AI-written lines for ``file`` to the capture feed.

    With ``edited=True`` the entries instead flag earlier AI lines of the
    same content as hand-edited (see ``load_feed``).
    """
    if not lines:
        return 0
    if not is_canonical(file):
        raise ValueError(f"pending line path is not canonical: {file!r}")
    path = Path(feed_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    ts = datetime.now(timezone.utc).isoformat()
    with open(path, "a", encoding="utf-8") as f:
        for content in lines:
            entry = {"file": file, "content": content, "edited": edited, "timestamp": ts}
            f.write(json.dumps(entry, ensure_ascii=False) + "\n")
    return len(lines)


def load_feed(feed_path: str | Path) -> PendingAttributionBuffer:
    """Rebuild a buffer from the capture feed, preserving emission order.

    An entry with ``"edited": true`` flags the oldest earlier line with the
    same content; with no such line it is recorded as an already-edited line.
    """
    buffer = PendingAttributionBuffer()
    path = Path(feed_path)
    if not path.exists():
        return buffer
    try:
        raw_lines = path.read_text(encoding="utf-8").splitlines()
    except OSError as e:
        logger.warning("cannot read pending feed %s: %s", path, e)
        return buffer

    for raw in raw_lines:
        raw = raw.strip()
        if not raw:
            continue
        try:
            entry = json.loads(raw)
        except json.JSONDecodeError:
            continue
        file = entry.get("file")
        content = entry.get("content")
        if not isinstance(file, str) or not isinstance(content, str) or not is_canonical(file):
            continue
        if entry.get("edited"):
            if not buffer.mark_edited(file, content):
                buffer.record(file, content, edited=True)
        else:
            buffer.record(file, content)
    return buffer


def clear_feed(feed_path: str | Path) -> None:
    path = Path(feed_path)
    try:
        path.unlink()
    except FileNotFoundError:
        pass
