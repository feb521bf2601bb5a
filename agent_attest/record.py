"""
Capture feed recording: agent hook events -> pending AI lines.

Reads a hook event from stdin (Claude Code ``PostToolUse`` or Cursor
``afterFileEdit`` / ``afterTabFileEdit``), extracts the text the agent wrote
and appends it line by line to ``.agent-attest/pending.jsonl`` under the
file's canonical repo-relative path.  Only the lines an edit inserted or
replaced are recorded.

Agent hooks never see human typing, so nothing here sets ``edited``.  Tools
that do (editor plugins, review bots) append ``"edited": true`` entries with
``pending.append_to_feed(..., edited=True)``.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from difflib import SequenceMatcher
from typing import Any

from .config import pending_path
from .pending import append_to_feed, split_text
from .vcs import get_workspace_root

logger = logging.getLogger(__name__)


def canonical_repo_path(file_path: str, root: str) -> str | None:
    """Repo-relative ``/``-separated path, or None when outside the repo."""
    abs_path = os.path.abspath(os.path.join(root, file_path))
    try:
        rel = os.path.relpath(abs_path, os.path.abspath(root))
    except ValueError:
        return None
    if rel == "." or rel.startswith(".." + os.sep) or rel == "..":
        return None
    return rel.replace(os.sep, "/")


def written_lines(old: str, new: str) -> list[str]:
    """Lines of ``new`` that the edit inserted or replaced.

    Lines ``new`` repeats unchanged from ``old`` are context, not writing.
    """
    new_lines = split_text(new)
    old_lines = split_text(old)
    if not old_lines:
        return new_lines
    matcher = SequenceMatcher(None, old_lines, new_lines, autojunk=False)
    written: list[str] = []
    for tag, _i1, _i2, j1, j2 in matcher.get_opcodes():
        if tag in ("replace", "insert"):
            written.extend(new_lines[j1:j2])
    return written


def _edit_lines(edits: list[Any]) -> list[str]:
    lines: list[str] = []
    for e in edits:
        if isinstance(e, dict):
            lines.extend(written_lines(e.get("old_string") or "", e.get("new_string") or ""))
    return lines


# -------------------------------------------------------------------
# Event handlers: each returns (file_path, [written_line, ...])
# -------------------------------------------------------------------

def _claude_PostToolUse(d: dict[str, Any]) -> tuple[str | None, list[str]]:
    tn = d.get("tool_name", "")
    ti = d.get("tool_input") or {}
    fp = ti.get("file_path")
    if tn == "Write":
        return fp, split_text(ti.get("content") or "")
    if tn == "Edit":
        return fp, _edit_lines([ti])
    if tn == "MultiEdit":
        return fp, _edit_lines(ti.get("edits") or [])
    return None, []


def _cursor_afterFileEdit(d: dict[str, Any]) -> tuple[str | None, list[str]]:
    return d.get("file_path"), _edit_lines(d.get("edits") or [])


_HANDLERS = {
    "PostToolUse": _claude_PostToolUse,
    "afterFileEdit": _cursor_afterFileEdit,
    "afterTabFileEdit": _cursor_afterFileEdit,
}


def record_event(event: dict[str, Any], project_dir: str | None = None) -> int:
    """Append the lines written by one hook event to the capture feed.

    Returns the number of pending lines recorded.
    """
    handler = _HANDLERS.get(event.get("hook_event_name", ""))
    if handler is None:
        return 0

    file_path, lines = handler(event)
    if not file_path:
        return 0

    if project_dir is None:
        project_dir = get_workspace_root()
    rel = canonical_repo_path(file_path, project_dir)
    if rel is None:
        logger.debug("ignoring edit outside the repository: %s", file_path)
        return 0

    return append_to_feed(pending_path(project_dir), rel, lines)


def record_from_stdin() -> int:
    """Read a hook event from stdin and record it."""
    raw = sys.stdin.read().strip()
    if not raw:
        return 0
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        logger.debug("hook input is not JSON")
        return 0
    if not isinstance(data, dict):
        return 0
    return record_event(data)
