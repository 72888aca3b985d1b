"""Platform-aware path resolution for agent CLI data directories."""

import os
from pathlib import Path
from typing import Optional

CLAUDE_CONFIG_DIR_ENV = "AGENTDOCK_CLAUDE_CONFIG_DIR"
CLAUDE_BINARY_ENV = "AGENTDOCK_CLAUDE_BIN"
CODEX_HOME_DIR_ENV = "AGENTDOCK_CODEX_HOME_DIR"
CODEX_BINARY_ENV = "AGENTDOCK_CODEX_BIN"
OPENCODE_DATA_DIR_ENV = "AGENTDOCK_OPENCODE_DATA_DIR"
OPENCODE_BINARY_ENV = "AGENTDOCK_OPENCODE_BIN"


def _env(name: str) -> Optional[str]:
    value = os.environ.get(name, "").strip()
    return value or None


def default_home_dir() -> Optional[Path]:
    """Return the user's home directory without relying on pwd lookups.

    Checks HOME, then USERPROFILE, then HOMEDRIVE + HOMEPATH (Windows).
    """
    for name in ("HOME", "USERPROFILE"):
        value = _env(name)
        if value:
            return Path(value)

    drive = os.environ.get("HOMEDRIVE")
    path = os.environ.get("HOMEPATH")
    if drive is None or path is None:
        return None
    combined = f"{drive}{path}"
    if not combined.strip():
        return None
    return Path(combined)


def get_claude_config_dir(override: Optional[Path] = None) -> Path:
    """Return Claude Code's config directory (holds projects/ and settings.json)."""
    if override is not None:
        return Path(override)

    env = _env(CLAUDE_CONFIG_DIR_ENV)
    if env:
        return Path(env)

    home = default_home_dir()
    if home is not None:
        return home / ".claude"
    return Path(".claude")


def get_codex_home_dir(override: Optional[Path] = None) -> Path:
    """Return Codex's home directory (holds sessions/ and session_index.jsonl)."""
    if override is not None:
        return Path(override)

    env = _env(CODEX_HOME_DIR_ENV)
    if env:
        return Path(env)

    home = default_home_dir()
    if home is not None:
        return home / ".codex"
    return Path(".codex")


def get_opencode_data_dir(override: Optional[Path] = None) -> Path:
    """Return OpenCode's data directory (holds storage/)."""
    if override is not None:
        return Path(override)

    env = _env(OPENCODE_DATA_DIR_ENV)
    if env:
        return Path(env)

    xdg = _env("XDG_DATA_HOME")
    if xdg:
        return Path(xdg) / "opencode"

    local_app_data = _env("LOCALAPPDATA")
    if local_app_data:
        return Path(local_app_data) / "opencode"

    home = default_home_dir()
    if home is not None:
        return home / ".local" / "share" / "opencode"
    return Path(".opencode")


def get_cli_binary(env_name: str, default: str, override: Optional[str] = None) -> str:
    """Resolve the CLI executable name: override, then env var, then default."""
    if override:
        return override
    return _env(env_name) or default
