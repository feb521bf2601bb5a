"""
agent-attest CLI: line-level AI/human attribution for git repositories.

Commands:
    agent-attest init                  Initialize attribution for the current project
    agent-attest status                Show configuration, hook and data status
    agent-attest record                Record AI-written lines from stdin (agent hooks)
    agent-attest commit-link           Attest the HEAD commit (git post-commit hook)
    agent-attest rewrite-log [KIND]    Re-attest rewritten commits (post-rewrite)
    agent-attest attestations [REV]    Show a commit's attestation records
    agent-attest stats [REV ...]       Show authorship stats for one or more commits
    agent-attest blame <file>          Show per-line authorship for a file
    agent-attest preview               Attribute uncommitted changes without storing
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys

from . import __version__, stats as stats_mod, vcs
from .blame import blame, format_json, format_terminal
from .commit_link import link_head, preview_worktree
from .config import (
    get_project_config,
    get_setting,
    ledger_path,
    pending_path,
    save_project_config,
)
from .errors import AttestError
from .hooks import (
    configure_claude_hooks,
    configure_cursor_hooks,
    configure_git_hooks,
    git_hook_installed,
)
from .ledger import AttestationLog
from .pending import load_feed
from .record import record_from_stdin
from .rewrite import rewrite_from_stream

logger = logging.getLogger(__name__)


# -------------------------------------------------------------------
# Helpers
# -------------------------------------------------------------------

def _setup_logging(verbose: bool, project_dir: str | None) -> None:
    level_name = "DEBUG" if verbose else str(get_setting("log_level", project_dir)).upper()
    level = getattr(logging, level_name, logging.WARNING)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("agent-attest: %(levelname)s %(message)s"))
    root = logging.getLogger("agent_attest")
    root.handlers[:] = [handler]
    root.setLevel(level)


def _confirm(message, default=True):
    """Interactive yes / no prompt."""
    hint = " [Y/n]" if default else " [y/N]"
    try:
        value = input(f"{message}{hint}: ").strip().lower()
    except (EOFError, KeyboardInterrupt):
        print()
        sys.exit(1)

    if not value:
        return default
    return value in ("y", "yes")


def _fail(message: str) -> None:
    print(f"agent-attest: {message}", file=sys.stderr)
    sys.exit(1)


def _repo_root() -> str:
    root = vcs._git("rev-parse", "--show-toplevel")
    if root is None:
        _fail("not a git repository")
    return root


def _count_lines(path) -> int:
    try:
        with open(path, encoding="utf-8") as f:
            return sum(1 for line in f if line.strip())
    except OSError:
        return 0


# ===================================================================
# init / status
# ===================================================================

def cmd_init(args):
    root = _repo_root()
    if get_project_config(root) is not None:
        print("agent-attest is already initialized for this project.")
        return

    save_project_config({"log_level": "WARNING", "strict_stats": False}, root)
    print("Configuration saved to .agent-attest/config.json")

    assume_yes = getattr(args, "yes", False)
    print()
    if assume_yes or _confirm("Configure hook for Claude Code?", default=True):
        configure_claude_hooks(root)
        print("  -> Claude Code hooks configured (.claude/settings.json)")

    if assume_yes or _confirm("Configure hook for Cursor?", default=True):
        configure_cursor_hooks(root)
        print("  -> Cursor hooks configured (.cursor/hooks.json)")

    if assume_yes or _confirm("Configure git hooks? (post-commit + post-rewrite)", default=True):
        if configure_git_hooks(root):
            print("  -> Git post-commit and post-rewrite hooks configured")
        else:
            print("  -> .git directory not found; git hooks not installed")

    print("\nagent-attest initialized successfully!")


def cmd_status(_args):
    root = _repo_root()
    if get_project_config(root) is None:
        print("agent-attest is not set up for this project.")
        print("Run 'agent-attest init' to get started.")
        return

    print("agent-attest status\n")
    print(f"  Attested commits: {_count_lines(ledger_path(root))}")
    print(f"  Pending AI lines: {len(load_feed(pending_path(root)))}")
    print(f"  Strict stats:     {bool(get_setting('strict_stats', root))}")

    for name in ("post-commit", "post-rewrite"):
        state = "configured" if git_hook_installed(root, name) else "not configured"
        print(f"  Git {name + ':':<14}{state}")


# ===================================================================
# Hook entry points (never fail the caller)
# ===================================================================

def cmd_record(_args):
    try:
        record_from_stdin()
    except Exception as e:
        # Never crash the coding agent
        logger.error("record failed: %s", e)


def cmd_commit_link(_args):
    try:
        authorship = link_head()
        if authorship is None:
            return
        n = sum(fa.line_count for fa in authorship.attestations)
        print(f"agent-attest: attested {n} line(s) in commit {authorship.commit[:8]}")
    except Exception as e:
        # Runs inside a git hook; the commit already exists
        logger.error("commit-link failed: %s", e)


def cmd_rewrite_log(args):
    try:
        count = rewrite_from_stream(sys.stdin, kind=args.kind)
        if count:
            print(f"agent-attest: attested {count} rewritten commit(s)")
    except Exception as e:
        logger.error("rewrite-log failed: %s", e)


# ===================================================================
# Queries
# ===================================================================

def cmd_attestations(args):
    root = _repo_root()
    log = AttestationLog.load(ledger_path(root))
    try:
        commit = vcs.resolve_commit(args.rev, cwd=root)
    except AttestError as e:
        _fail(str(e))

    authorship = log.authorship_log(commit)
    if authorship is None:
        _fail(f"commit {commit[:12]} has no attestations")

    if args.json:
        print(json.dumps(authorship.to_dict(), indent=2, ensure_ascii=False))
        return

    print(f"\n  commit {commit[:12]}\n")
    for fa in authorship.attestations:
        print(f"  {fa.file_path}")
        for r in fa.records:
            lr = f"L{r.start_line}" if r.start_line == r.end_line else f"L{r.start_line}-{r.end_line}"
            flag = " accepted" if r.accepted else ""
            print(f"    {lr:<12}{r.author}{flag}")
    print()


def cmd_stats(args):
    root = _repo_root()
    log = AttestationLog.load(ledger_path(root))
    revs = args.revs or ["HEAD"]

    collected = []
    try:
        for rev in revs:
            commit = vcs.resolve_commit(rev, cwd=root)
            collected.append(stats_mod.compute(log, commit, cwd=root))
    except AttestError as e:
        _fail(str(e))

    result = collected[0] if len(collected) == 1 else stats_mod.cumulative(collected)

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        print(f"  AI additions:     {result.ai_additions}")
        print(f"  AI accepted:      {result.ai_accepted}")
        print(f"  Human additions:  {result.human_additions}")
        print(f"  git added lines:  {result.git_diff_added_lines}")
        if result.inconsistency is not None:
            print(f"  WARNING: {result.inconsistency}")

    if result.inconsistency is not None and get_setting("strict_stats", root):
        sys.exit(2)


def _parse_line_range(value: str | None) -> tuple[int | None, int | None]:
    if not value:
        return None, None
    start, _, end = value.partition(",")
    try:
        start_line = int(start)
        end_line = int(end) if end else start_line
    except ValueError:
        _fail(f"invalid line range: {value}  (expected START,END)")
    return start_line, end_line


def cmd_blame(args):
    root = _repo_root()
    abs_path = os.path.abspath(args.file)
    rel_path = os.path.relpath(abs_path, root).replace(os.sep, "/")
    start_line, end_line = _parse_line_range(args.lines)

    log = AttestationLog.load(ledger_path(root))
    try:
        lines = blame(log, rel_path, start_line, end_line, cwd=root, rev=args.rev)
    except AttestError as e:
        _fail(str(e))

    if args.json:
        print(format_json(rel_path, lines))
    else:
        print(format_terminal(rel_path, lines))


def cmd_preview(args):
    root = _repo_root()
    try:
        authorship = preview_worktree(root)
    except AttestError as e:
        _fail(str(e))
    if args.json:
        print(json.dumps(authorship.to_dict(), indent=2, ensure_ascii=False))
        return
    for fa in authorship.attestations:
        ai = sum(r.line_count for r in fa.records if r.author == "ai")
        print(f"  {fa.file_path}: {ai} ai / {fa.line_count} added")


# ===================================================================
# Entry point
# ===================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="agent-attest",
        description="agent-attest: line-level AI/human attribution for git",
    )
    parser.add_argument("--version", action="version", version=f"agent-attest {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p_init = sub.add_parser("init", help="Initialize agent-attest for the current project")
    p_init.add_argument("-y", "--yes", action="store_true", help="Configure all hooks without asking")
    sub.add_parser("status", help="Show agent-attest status")
    sub.add_parser("record", help="Record AI-written lines from stdin (used by hooks)")
    sub.add_parser("commit-link", help="Attest the HEAD commit (called by git hook)")
    p_rw = sub.add_parser("rewrite-log", help="Remap attestations after rebase/amend (called by git hook)")
    p_rw.add_argument("kind", nargs="?", default=None, help="amend or rebase, as passed by git")

    p_att = sub.add_parser("attestations", help="Show a commit's attestation records")
    p_att.add_argument("rev", nargs="?", default="HEAD")
    p_att.add_argument("--json", action="store_true", default=False)

    p_stats = sub.add_parser("stats", help="Show authorship stats")
    p_stats.add_argument("revs", nargs="*", help="Commits (default HEAD); several are summed")
    p_stats.add_argument("--json", action="store_true", default=False)

    p_blame = sub.add_parser("blame", help="Show per-line authorship for a file")
    p_blame.add_argument("file", help="File path to blame")
    p_blame.add_argument("-L", dest="lines", default=None, help="Line range START,END")
    p_blame.add_argument("--rev", default="HEAD", help="Revision to blame at")
    p_blame.add_argument("--json", action="store_true", default=False)

    p_prev = sub.add_parser("preview", help="Attribute uncommitted changes without storing")
    p_prev.add_argument("--json", action="store_true", default=False)

    return parser


def main(argv: list[str] | None = None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    _setup_logging(args.verbose, vcs._git("rev-parse", "--show-toplevel"))

    dispatch = {
        "init": cmd_init,
        "status": cmd_status,
        "record": cmd_record,
        "commit-link": cmd_commit_link,
        "rewrite-log": cmd_rewrite_log,
        "attestations": cmd_attestations,
        "stats": cmd_stats,
        "blame": cmd_blame,
        "preview": cmd_preview,
    }
    dispatch[args.command](args)


if __name__ == "__main__":
    main()
