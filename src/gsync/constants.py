import os
from pathlib import Path

"""Global constants and path definitions for gsync.

This module defines the filesystem layout (adhering to XDG standards where
applicable), application identifiers, and the fixed git vocabulary the
synchronization engine relies on.
"""

# --- Identity ---
APP_NAME = "gsync"
"""str: The human-readable application name."""

__version__ = "1.2.0"
"""str: The released version, printed at session start."""

# --- Paths ---
_XDG_STATE = os.environ.get("XDG_STATE_HOME")
_BASE_STATE = Path(_XDG_STATE) if _XDG_STATE else Path.home() / ".local/state"

STATE_DIR = _BASE_STATE / "gsync"
"""Path: The directory for runtime state data (logs)."""

LOG_FILE = STATE_DIR / "gsync.log"
"""Path: The file path for the session log."""

CONFIG_DIR: Path = Path.home() / ".config/gsync"
"""Path: The directory for user configuration files."""

CONFIG_FILE: Path = CONFIG_DIR / "config.toml"
"""Path: The global configuration file path."""

LOCAL_CONFIG_NAME = "gsync.toml"
"""str: Per-repository configuration file, looked up at the superproject root."""

# --- Git / Logic Constants ---
CONFIG_SECTION = "gsync"
"""str: The `git config` section holding persisted launch parameters."""

COMMIT_TAG = "gsync:auto:commit"
"""str: Prefix of every auto-commit message."""

REMOTE_SUFFIX = "_origin"
"""str: Appended to the mirror branch name to form the mirror remote name."""

REMOTE_BASELINE = "master"
"""str: The ref on the mirror remote that the mirror branch is pushed to."""

DEFAULT_MASTER = "master"
"""str: Default local working branch."""

DEBOUNCE_SECONDS = 0.2
"""float: Delay before a commit request deferred by an in-flight cycle is retried."""

DEFAULT_IGNORES = [
    ".git",
    "node_modules",
]
"""list[str]: Path components never observed by the watcher."""

SERVER_HINT = "git config --local receive.denyCurrentBranch updateInstead"
"""str: Server-side setting required for pushes into a checked-out branch."""
