"""
Configuration management for agent-attest.

Global config:  ~/.agent-attest/config.json
Project config: .agent-attest/config.json   (also holds the data files)

Resolution order for a setting: environment variable (where one exists),
project config, global config, built-in default.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


# -------------------------------------------------------------------
# Paths
# -------------------------------------------------------------------

GLOBAL_CONFIG_DIR = Path.home() / ".agent-attest"
GLOBAL_CONFIG_FILE = GLOBAL_CONFIG_DIR / "config.json"

PROJECT_CONFIG_DIR_NAME = ".agent-attest"
PROJECT_CONFIG_FILE_NAME = "config.json"

DEFAULTS: dict[str, Any] = {
    "log_level": "WARNING",
    "strict_stats": False,
    "ledger_file": "ledgers.jsonl",
    "pending_file": "pending.jsonl",
}

ENV_OVERRIDES = {
    "log_level": "AGENT_ATTEST_LOG_LEVEL",
}


def _read_json(path: Path) -> dict | None:
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("ignoring unreadable config %s: %s", path, e)
        return None
    return data if isinstance(data, dict) else None


# -------------------------------------------------------------------
# Global config
# -------------------------------------------------------------------

def get_global_config() -> dict:
    """Load ~/.agent-attest/config.json (returns {} if missing)."""
    return _read_json(GLOBAL_CONFIG_FILE) or {}


# -------------------------------------------------------------------
# Project config
# -------------------------------------------------------------------

def project_data_dir(project_dir: str | None = None) -> Path:
    if project_dir is None:
        project_dir = os.getcwd()
    return Path(project_dir) / PROJECT_CONFIG_DIR_NAME


def get_project_config(project_dir: str | None = None) -> dict | None:
    """Load .agent-attest/config.json.  Returns None when not initialised."""
    return _read_json(project_data_dir(project_dir) / PROJECT_CONFIG_FILE_NAME)


def save_project_config(config: dict, project_dir: str | None = None) -> None:
    """Write .agent-attest/config.json and update .gitignore."""
    if project_dir is None:
        project_dir = os.getcwd()

    config_dir = project_data_dir(project_dir)
    config_dir.mkdir(parents=True, exist_ok=True)
    (config_dir / PROJECT_CONFIG_FILE_NAME).write_text(
        json.dumps(config, indent=2) + "\n", encoding="utf-8",
    )

    _ensure_gitignore(project_dir)


def _ensure_gitignore(project_dir: str) -> None:
    """Add .agent-attest/ to .gitignore if not already present."""
    gitignore = Path(project_dir) / ".gitignore"
    marker = f"{PROJECT_CONFIG_DIR_NAME}/"

    if gitignore.exists():
        content = gitignore.read_text(encoding="utf-8")
        if marker not in content.splitlines():
            with open(gitignore, "a", encoding="utf-8") as f:
                if content and not content.endswith("\n"):
                    f.write("\n")
                f.write(f"{marker}\n")
    else:
        gitignore.write_text(f"{marker}\n", encoding="utf-8")


# -------------------------------------------------------------------
# Setting resolution
# -------------------------------------------------------------------

def get_setting(key: str, project_dir: str | None = None) -> Any:
    env_var = ENV_OVERRIDES.get(key)
    if env_var and os.environ.get(env_var):
        return os.environ[env_var]

    project_cfg = get_project_config(project_dir) or {}
    if key in project_cfg:
        return project_cfg[key]

    global_cfg = get_global_config()
    if key in global_cfg:
        return global_cfg[key]

    return DEFAULTS.get(key)


def ledger_path(project_dir: str | None = None) -> Path:
    return project_data_dir(project_dir) / get_setting("ledger_file", project_dir)


def pending_path(project_dir: str | None = None) -> Path:
    return project_data_dir(project_dir) / get_setting("pending_file", project_dir)
