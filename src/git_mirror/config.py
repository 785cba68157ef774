import json
import logging
import os
import re
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

from .constants import (
    APP_NAME,
    CONFIG_FILE,
    DEFAULT_BRANCH,
    DEFAULT_LOCAL_PATH,
    DEFAULT_MAX_LOG_SIZE,
    DEFAULT_SYNC_INTERVAL,
    ENV_PREFIX,
)

logger = logging.getLogger(APP_NAME)


def parse_size(value: int | str) -> int:
    """Converts human-readable size strings (e.g., '100MB') to bytes."""
    if isinstance(value, int):
        return value
    match = re.match(r"^(\d+(?:\.\d+)?)\s*([kmg]b?|b)?$", str(value).strip().lower())
    if not match:
        raise ValueError(f"Invalid size format '{value}'")
    num, unit = float(match.group(1)), match.group(2) or "b"
    multiplier = {
        "b": 1,
        "k": 1024,
        "kb": 1024,
        "m": 1024**2,
        "mb": 1024**2,
        "g": 1024**3,
        "gb": 1024**3,
    }
    return int(num * multiplier[unit])


def parse_time(value: int | str) -> int:
    """Converts human-readable time strings (e.g., '1hr', '30m', '300') to seconds."""
    if isinstance(value, int):
        return value
    match = re.match(
        r"^(\d+(?:\.\d+)?)\s*(?:(s|sec|m|min|h|hr)s?)?$", str(value).strip().lower()
    )
    if not match:
        raise ValueError(f"Invalid time format '{value}'")
    num, unit = float(match.group(1)), match.group(2) or "s"
    multiplier = {"s": 1, "sec": 1, "m": 60, "min": 60, "h": 3600, "hr": 3600}
    return int(num * multiplier[unit])


def parse_bool(value: bool | str) -> bool:
    """Converts environment-style flags ('true', '0', 'yes') to booleans."""
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("1", "true", "yes", "on"):
        return True
    if text in ("0", "false", "no", "off", ""):
        return False
    raise ValueError(f"Invalid boolean '{value}'")


def parse_level(value: str) -> str:
    """Validates a logging level name (e.g., 'debug' -> 'DEBUG')."""
    level = str(value).strip().upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ValueError(f"Invalid log level '{value}'")
    return level


def _normalize(key: str) -> str:
    """Folds `LocalPath`, `local_path` and `local-path` to the same key."""
    return key.replace("_", "").replace("-", "").lower()


@dataclass(frozen=True)
class RepositoryEndpoint:
    """One side of the mirror.

    Attributes:
        url (str): Clone/fetch/push URL. Must be non-empty to run.
        branch (str): The branch mirrored from source to target.
        username (str): Username for explicit token authentication.
        token (str): Access token; when set, no other credential source is used.
    """

    url: str = ""
    branch: str = DEFAULT_BRANCH
    username: str = ""
    token: str = field(default="", repr=False)


@dataclass
class MirrorConfig:
    """Workspace and scheduling settings.

    Attributes:
        local_path (Path): The single local working copy.
        sync_interval (int): Seconds between daemon cycles.
        keep_workspace (bool): Keep the clone after a fresh mirror so later
            syncs can be incremental.
    """

    local_path: Path = DEFAULT_LOCAL_PATH
    sync_interval: int = DEFAULT_SYNC_INTERVAL
    keep_workspace: bool = False


@dataclass
class LoggingConfig:
    """Logging settings.

    Attributes:
        level (str): Root level for the application logger.
        file (Path | None): Optional rotating log file.
        max_log_size (int): Max bytes for the log file before rotation.
    """

    level: str = "INFO"
    file: Path | None = None
    max_log_size: int = DEFAULT_MAX_LOG_SIZE


_SECTIONS = {
    "source": "source",
    "sourcerepository": "source",
    "target": "target",
    "targetrepository": "target",
    "mirror": "mirror",
    "logging": "logging",
}

_PARSERS = {
    "sync_interval": parse_time,
    "max_log_size": parse_size,
    "keep_workspace": parse_bool,
    "local_path": lambda v: Path(str(v)),
    "file": lambda v: Path(str(v)) if v else None,
    "level": parse_level,
}


@dataclass
class Config:
    """Global configuration aggregator.

    Attributes:
        source (RepositoryEndpoint): The read-only repository being mirrored.
        target (RepositoryEndpoint): The write-only mirror destination.
        mirror (MirrorConfig): Workspace and interval settings.
        logging (LoggingConfig): Logging settings.
    """

    source: RepositoryEndpoint = field(default_factory=RepositoryEndpoint)
    target: RepositoryEndpoint = field(default_factory=RepositoryEndpoint)
    mirror: MirrorConfig = field(default_factory=MirrorConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def load(
        cls,
        config_file: Path | None = None,
        environ: Mapping[str, str] | None = None,
        overrides: dict | None = None,
    ) -> "Config":
        """Loads and merges configuration: defaults < file < environment < CLI.

        Args:
            config_file (Path | None): Explicit TOML or JSON file. Defaults to
                `gitmirror.toml` in the working directory, if present.
            environ (Mapping[str, str] | None): Environment to scan for
                `GITMIRROR__` variables. Defaults to `os.environ`.
            overrides (dict | None): Nested command-line values.

        Returns:
            Config: The fully merged configuration object.
        """
        instance = cls()

        # 1. File
        path = config_file or CONFIG_FILE
        if path.exists():
            instance._merge(cls._read_file(path), origin=str(path))
        elif config_file:
            logger.warning(f"Config file {path} not found. Using defaults.")

        # 2. Environment
        env_layer = cls._read_environ(os.environ if environ is None else environ)
        if env_layer:
            instance._merge(env_layer, origin="environment")

        # 3. Command line
        if overrides:
            instance._merge(overrides, origin="command line")

        return instance

    def validate(self) -> list[str]:
        """Lists problems that prevent a mirror or sync from running."""
        problems = []
        if not self.source.url:
            problems.append("source repository URL is not configured")
        if not self.target.url:
            problems.append("target repository URL is not configured")
        if not self.source.branch:
            problems.append("source branch is empty")
        if self.mirror.sync_interval <= 0:
            problems.append("sync interval must be a positive number of seconds")
        return problems

    @staticmethod
    def _read_file(path: Path) -> dict:
        """Parses a TOML or JSON config file into a nested dictionary.

        A top-level `GitMirror` object (appsettings layout) is unwrapped.
        Syntax errors are logged and yield an empty layer.
        """
        try:
            if path.suffix.lower() == ".json":
                with open(path, encoding="utf-8") as f:
                    data = json.load(f)
            else:
                with open(path, "rb") as f:
                    data = tomllib.load(f)
        except (tomllib.TOMLDecodeError, json.JSONDecodeError) as e:
            logger.error(f"Config syntax error in {path}: {e}")
            return {}
        except OSError as e:
            logger.warning(f"Failed to load config from {path}: {e}")
            return {}

        if not isinstance(data, dict):
            logger.error(f"Config file {path} must contain a table/object.")
            return {}

        for key, value in data.items():
            if _normalize(key) == "gitmirror" and isinstance(value, dict):
                return value
        return data

    @staticmethod
    def _read_environ(environ: Mapping[str, str]) -> dict:
        """Collects `GITMIRROR__SECTION__KEY` variables into a nested dictionary."""
        data: dict[str, Any] = {}
        for name, value in environ.items():
            if not name.upper().startswith(ENV_PREFIX):
                continue
            parts = name[len(ENV_PREFIX) :].split("__")
            if len(parts) == 1:
                data[parts[0]] = value
            elif len(parts) == 2:
                section = data.setdefault(parts[0], {})
                if isinstance(section, dict):
                    section[parts[1]] = value
            else:
                logger.warning(f"Ignoring malformed config variable {name}.")
        return data

    def _merge(self, data: dict, origin: str) -> None:
        """Merges one configuration layer into the current instance.

        Keys outside a known section are treated as `[mirror]` keys, which is
        where `LocalPath` and `SyncInterval` live in the appsettings layout.
        """
        loose: dict[str, Any] = {}
        for key, value in data.items():
            section = _SECTIONS.get(_normalize(key))
            if section is None:
                loose[key] = value
                continue
            if not isinstance(value, dict):
                logger.warning(f"Config section [{key}] in {origin} is not a table.")
                continue
            if section == "mirror":
                loose.update(value)
            else:
                setattr(
                    self,
                    section,
                    self._update_dataclass(section, getattr(self, section), value),
                )

        if loose:
            self.mirror = self._update_dataclass("mirror", self.mirror, loose)

    @staticmethod
    def _update_dataclass(section_name: str, instance: Any, updates: dict) -> Any:
        """Updates a dataclass, warning on invalid keys and parsing human-readable formats."""
        valid_keys = {_normalize(f.name): f.name for f in fields(instance)}
        filtered_updates = {}

        # 1. Catch and warn about typos / unknown keys
        invalid_keys = [k for k in updates if _normalize(k) not in valid_keys]
        if invalid_keys:
            logger.warning(
                f"Unknown config keys in [{section_name}]: {', '.join(invalid_keys)}. Ignoring."
            )

        # 2. Process valid keys
        for k, v in updates.items():
            name = valid_keys.get(_normalize(k))
            if name is None:
                continue

            try:
                parser = _PARSERS.get(name)
                if parser:
                    filtered_updates[name] = parser(v)
                elif v is None:
                    filtered_updates[name] = ""
                else:
                    filtered_updates[name] = str(v)
            except ValueError as e:
                logger.warning(
                    f"Config error in [{section_name}].{name}: {e}. Falling back to default."
                )

        return replace(instance, **filtered_updates)
