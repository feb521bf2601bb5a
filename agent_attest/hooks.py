"""
Hook configuration for Claude Code, Cursor, and git.

Writes the hooks JSON so that agent edits pipe through
``agent-attest record``, and installs git ``post-commit`` / ``post-rewrite``
hooks that reconcile and remap attestations.
"""

from __future__ import annotations

import json
import os
import stat
from pathlib import Path


CURSOR_HOOKS_FILE = ".cursor/hooks.json"
CLAUDE_SETTINGS_FILE = ".claude/settings.json"

RECORD_CMD = "agent-attest record"

GIT_HOOKS = {
    "post-commit": (
        "agent-attest commit-link",
        "# agent-attest: attribute the new commit's lines\n"
        "agent-attest commit-link 2>/dev/null || true\n",
    ),
    "post-rewrite": (
        "agent-attest rewrite-log",
        "# agent-attest: carry attestations over to rewritten commits\n"
        "agent-attest rewrite-log \"$1\" 2>/dev/null || true\n",
    ),
}


def _load_json(path: Path) -> dict:
    if path.exists():
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            if isinstance(data, dict):
                return data
        except (json.JSONDecodeError, OSError):
            pass
    return {}


# -------------------------------------------------------------------
# Cursor
# -------------------------------------------------------------------

def configure_cursor_hooks(project_dir: str | None = None) -> bool:
    """Merge agent-attest into .cursor/hooks.json.  Returns True on success."""
    if project_dir is None:
        project_dir = os.getcwd()

    hooks_path = Path(project_dir) / CURSOR_HOOKS_FILE
    hooks_path.parent.mkdir(parents=True, exist_ok=True)
    config = _load_json(hooks_path)
    config.setdefault("version", 1)
    config.setdefault("hooks", {})

    for event in ("afterFileEdit", "afterTabFileEdit"):
        existing = config["hooks"].get(event, [])
        already = any(
            RECORD_CMD in (h.get("command", "") if isinstance(h, dict) else "")
            for h in existing
        )
        if not already:
            existing.append({"command": RECORD_CMD})
            config["hooks"][event] = existing

    hooks_path.write_text(json.dumps(config, indent=2) + "\n", encoding="utf-8")
    return True


# -------------------------------------------------------------------
# Claude Code
# -------------------------------------------------------------------

def configure_claude_hooks(project_dir: str | None = None) -> bool:
    """Merge agent-attest into .claude/settings.json.  Returns True on success."""
    if project_dir is None:
        project_dir = os.getcwd()

    settings_path = Path(project_dir) / CLAUDE_SETTINGS_FILE
    settings_path.parent.mkdir(parents=True, exist_ok=True)
    config = _load_json(settings_path)
    config.setdefault("hooks", {})

    post = config["hooks"].get("PostToolUse", [])
    already = any(
        any(RECORD_CMD in h.get("command", "") for h in entry.get("hooks", []))
        for entry in post
        if isinstance(entry, dict)
    )
    if not already:
        post.append({
            "matcher": "Write|Edit|MultiEdit",
            "hooks": [{"type": "command", "command": RECORD_CMD}],
        })
        config["hooks"]["PostToolUse"] = post

    settings_path.write_text(json.dumps(config, indent=2) + "\n", encoding="utf-8")
    return True


# -------------------------------------------------------------------
# Git hooks
# -------------------------------------------------------------------

def _install_git_hook(hooks_dir: Path, name: str, marker: str, script: str) -> None:
    hook_path = hooks_dir / name

    if hook_path.exists():
        content = hook_path.read_text(encoding="utf-8")
        if marker in content:
            return
        if not content.endswith("\n"):
            content += "\n"
        content += "\n" + script
    else:
        content = "#!/bin/sh\n" + script
    hook_path.write_text(content, encoding="utf-8")

    current = hook_path.stat().st_mode
    hook_path.chmod(current | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


def configure_git_hooks(project_dir: str | None = None) -> bool:
    """Install post-commit and post-rewrite hooks into .git/hooks/.

    Existing hooks are appended to; hooks that already call agent-attest are
    left alone.  Returns False if .git is not a directory.
    """
    if project_dir is None:
        project_dir = os.getcwd()

    git_dir = Path(project_dir) / ".git"
    if not git_dir.is_dir():
        return False

    hooks_dir = git_dir / "hooks"
    hooks_dir.mkdir(parents=True, exist_ok=True)
    for name, (marker, script) in GIT_HOOKS.items():
        _install_git_hook(hooks_dir, name, marker, script)
    return True


def git_hook_installed(project_dir: str, name: str) -> bool:
    hook_path = Path(project_dir) / ".git" / "hooks" / name
    marker = GIT_HOOKS[name][0]
    try:
        return marker in hook_path.read_text(encoding="utf-8")
    except OSError:
        return False
