import os
from pathlib import Path

"""Global constants and default option values for git-autowatch.

This module defines the application identity, the defaults used when neither the
command line nor the config file supplies a value, the environment variables that
override collaborator binaries, and the filesystem layout for logs and config.
"""

# --- Identity ---
APP_NAME = "git-autowatch"
"""str: The human-readable application name (also the logger name)."""

# --- Defaults ---
DEFAULT_SLEEP_TIME = 8
"""int: Seconds to wait after the first event before checking for changes."""

DEFAULT_DATE_FMT = "+%Y-%m-%d %H:%M:%S"
"""str: The timestamp format spliced into commit messages."""

DEFAULT_COMMIT_MSG = "Autowatch: auto-commit on change (%d)"
"""str: The commit message template."""

DATE_PLACEHOLDER = "%d"
"""str: The token in the commit message template replaced by the timestamp."""

CONFLICT_TIMESTAMP_FMT = "%Y-%m-%dT%H:%M:%S%z"
"""str: Timestamp format used in the names of preserved conflict side files."""

CONFLICT_STAGES = {1: "original", 2: "yours", 3: "theirs"}
"""dict[int, str]: Index stage numbers mapped to side file suffixes."""

# --- Collaborator binaries ---
GIT_BIN_ENV = "GW_GIT_BIN"
"""str: Environment variable overriding the git binary."""

WATCH_BIN_ENV = "GW_INW_BIN"
"""str: Environment variable overriding the inotifywait/fswatch binary."""

INOTIFY_EVENTS_DIR = "close_write,move,delete,create"
INOTIFY_EVENTS_FILE = "close_write,move,delete"

FSWATCH_EVENTS = ["Created", "Removed", "MovedTo", "MovedFrom", "Renamed", "Updated"]
"""list[str]: fswatch event flags equivalent to the inotify directory event set."""

# --- Paths ---
_XDG_STATE = os.environ.get("XDG_STATE_HOME")
_BASE_STATE = Path(_XDG_STATE) if _XDG_STATE else Path.home() / ".local/state"

STATE_DIR = _BASE_STATE / "git-autowatch"
"""Path: The directory for runtime state data (logs)."""

LOG_FILE = STATE_DIR / "daemon.log"
"""Path: The file path for the daemon process logs."""

CONFIG_DIR: Path = Path.home() / ".config/git-autowatch"
"""Path: The directory for user configuration files."""

CONFIG_FILE: Path = CONFIG_DIR / "config.toml"
"""Path: The global configuration file path."""
