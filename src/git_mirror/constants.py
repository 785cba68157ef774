from pathlib import Path

"""Global constants and default values for Git Mirror.

This module defines application identifiers, remote names, timeouts and the
defaults used when no configuration is supplied.
"""

# --- Identity ---
APP_NAME = "git-mirror"
"""str: The human-readable application name (also the logger name)."""

ENV_PREFIX = "GITMIRROR__"
"""str: Prefix for environment variable configuration overrides."""

# --- Remotes ---
SOURCE_REMOTE = "source"
"""str: The fetch-only remote tracking the source repository."""

TARGET_REMOTE = "origin"
"""str: The push remote tracking the target repository."""

# --- Defaults ---
DEFAULT_BRANCH = "main"
"""str: Branch mirrored when an endpoint does not name one."""

DEFAULT_LOCAL_PATH = Path("./temp_repo")
"""Path: Location of the single local working copy."""

DEFAULT_SYNC_INTERVAL = 300
"""int: Seconds between daemon sync cycles."""

CONFIG_FILE = Path("gitmirror.toml")
"""Path: Configuration file looked up in the working directory."""

# --- Timeouts ---
CREDENTIAL_HELPER_TIMEOUT = 30
"""int: Seconds to wait for `git credential fill` (interactive dialogs)."""

ERROR_BACKOFF_SECONDS = 5
"""int: Daemon delay after a cycle raised, shorter than the sync interval."""

# --- Logging ---
DEFAULT_MAX_LOG_SIZE = 5 * 1024 * 1024
"""int: Max bytes for the log file before rotation."""
