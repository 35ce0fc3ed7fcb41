import logging
import re
import sys
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from rich.console import Console

from .constants import (
    APP_NAME,
    CONFIG_FILE,
    CONFIG_SECTION,
    DEBOUNCE_SECONDS,
    DEFAULT_MASTER,
    LOCAL_CONFIG_NAME,
    REMOTE_SUFFIX,
)
from .git_wrapper import GitRepo

logger = logging.getLogger(APP_NAME)
console = Console()


def parse_size(value: int | str) -> int:
    """Converts human-readable size strings (e.g., '100MB') to bytes."""
    if isinstance(value, int):
        return value
    match = re.match(r"^(\d+(?:\.\d+)?)\s*([kmg]b?)$", str(value).strip().lower())
    if not match:
        raise ValueError(f"Invalid size format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {
        "k": 1024,
        "kb": 1024,
        "m": 1024**2,
        "mb": 1024**2,
        "g": 1024**3,
        "gb": 1024**3,
    }
    return int(num * multiplier[unit])


def parse_duration(value: int | float | str) -> float:
    """Converts human-readable durations (e.g., '200ms', '1.5s') to seconds."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    match = re.match(r"^(\d+(?:\.\d+)?)\s*(ms|s|sec|m|min)$", str(value).strip().lower())
    if not match:
        raise ValueError(f"Invalid duration format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {"ms": 0.001, "s": 1, "sec": 1, "m": 60, "min": 60}
    return num * multiplier[unit]


# --- Tool settings (TOML) ---


@dataclass
class WatchConfig:
    """Watcher settings.

    Attributes:
        debounce (float): Seconds before a deferred commit request is retried.
        ignore (list[str]): Extra path components to exclude (appended to defaults).
    """

    debounce: float = DEBOUNCE_SECONDS
    ignore: list[str] = field(default_factory=list)


@dataclass
class LoggingConfig:
    """Log file settings.

    Attributes:
        max_log_size (int): Max bytes for the log file before rotation.
    """

    max_log_size: int = 5 * 1024 * 1024


@dataclass
class Settings:
    """Tool settings aggregator.

    Attributes:
        watch (WatchConfig): Watcher behavior.
        logging (LoggingConfig): Log file handling.
    """

    watch: WatchConfig = field(default_factory=WatchConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Cache for the base global configuration
    _global_cache: "Settings | None" = None

    @classmethod
    def load(cls, repo_path: Path | None = None) -> "Settings":
        """Loads and merges settings from defaults, global, and local sources.

        Args:
            repo_path (Path | None): The superproject root to search for local config.

        Returns:
            Settings: The fully merged settings object.
        """
        if cls._global_cache is None:
            instance = cls()
            if CONFIG_FILE.exists():
                instance._merge_from_file(CONFIG_FILE)
            cls._global_cache = instance

        instance = replace(
            cls._global_cache,
            watch=replace(
                cls._global_cache.watch, ignore=list(cls._global_cache.watch.ignore)
            ),
        )

        if repo_path:
            local_toml = repo_path / LOCAL_CONFIG_NAME
            pyproject = repo_path / "pyproject.toml"

            if local_toml.exists():
                instance._merge_from_file(local_toml)
            elif pyproject.exists():
                instance._merge_from_file(pyproject, section="tool.gsync")

        return instance

    def _merge_from_file(self, path: Path, section: str | None = None) -> None:
        """Parses a TOML file and merges it into the current instance.

        Args:
            path (Path): Path to the TOML file.
            section (str | None): Dot-separated section path (e.g., 'tool.gsync').
        """
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)

            if section:
                for key in section.split("."):
                    data = data.get(key, {})

            if not data:
                return

            if "logging" in data:
                self.logging = self._update_dataclass(
                    "logging", self.logging, data["logging"]
                )
            if "watch" in data:
                watch = dict(data["watch"])
                # Ignore patterns accumulate across layers instead of replacing.
                new_ignores = watch.pop("ignore", [])
                self.watch = self._update_dataclass("watch", self.watch, watch)
                if new_ignores:
                    self.watch.ignore.extend(new_ignores)
                    self.watch.ignore = list(dict.fromkeys(self.watch.ignore))

        except tomllib.TOMLDecodeError as e:
            logger.error(f"Config syntax error in {path}: {e}")
        except OSError as e:
            logger.warning(f"Failed to load config from {path}: {e}")

    @staticmethod
    def _update_dataclass(section_name: str, instance: Any, updates: dict) -> Any:
        """Updates a dataclass, warning on invalid keys and parsing human-readable formats."""
        valid_keys = instance.__dataclass_fields__.keys()
        filtered_updates = {}

        invalid_keys = set(updates.keys()) - set(valid_keys)
        if invalid_keys:
            logger.warning(
                f"Unknown config keys in [{section_name}]: {', '.join(sorted(invalid_keys))}. Ignoring."
            )

        for k, v in updates.items():
            if k not in valid_keys:
                continue

            try:
                if k == "max_log_size":
                    filtered_updates[k] = parse_size(v)
                elif k == "debounce":
                    filtered_updates[k] = parse_duration(v)
                else:
                    filtered_updates[k] = v
            except ValueError as e:
                logger.warning(
                    f"Config error in [{section_name}].{k}: {e}. Falling back to default."
                )

        return replace(instance, **filtered_updates)


# --- Session configuration (persisted in git config) ---


class GitConfigStore:
    """Key-value store over the repository-local `gsync.*` git config section.

    Values are strings on disk; the literals 'true' and 'false' round-trip as
    booleans and an empty value reads back as None.
    """

    def __init__(self, repo: GitRepo, section: str = CONFIG_SECTION):
        self.repo = repo
        self.section = section

    def get(self, name: str) -> str | bool | None:
        raw = self.repo.config_get(f"{self.section}.{name}")
        if raw == "true":
            return True
        if raw == "false":
            return False
        return raw or None

    def set(self, name: str, value: str | bool) -> None:
        if isinstance(value, bool):
            value = "true" if value else "false"
        self.repo.config_set(f"{self.section}.{name}", str(value))


@dataclass(frozen=True)
class SessionConfig:
    """Launch parameters, immutable for the lifetime of a session.

    Attributes:
        branch (str): The mirror branch name.
        root (Path): The superproject root.
        repository_uri (str | None): The mirror URI, if known for this launch.
        master (str): The local working branch the mirror is relative to.
        update (bool): Publish local state as the new remote baseline.
        single (bool): Update mode that also folds the auto-commit into
                       `master` at teardown.
        pull_message (str | None): If set, squash the mirror into `master`
                                   with this message instead of watching.
    """

    branch: str
    root: Path
    repository_uri: str | None = None
    master: str = DEFAULT_MASTER
    update: bool = False
    single: bool = False
    pull_message: str | None = None

    @property
    def remote(self) -> str:
        """The name of the mirror remote (`<branch>_origin`)."""
        return f"{self.branch}{REMOTE_SUFFIX}"

    def describe(self) -> str:
        """Formats the non-empty fields for the launch banner."""
        fields = {
            "branch": self.branch,
            "repositoryUri": self.repository_uri,
            "master": self.master,
            "update": self.update,
            "single": self.single,
            "pull": self.pull_message,
        }
        return " | ".join(f"{k}: {v}" for k, v in fields.items() if v)


def resolve_session(
    root: Path,
    branch: str | None = None,
    repository_uri: str | None = None,
    master: str | None = None,
    update: bool = False,
    single: bool = False,
    pull_message: str | None = None,
    store: GitConfigStore | None = None,
) -> SessionConfig:
    """Resolves launch parameters (explicit flag > stored value) and persists them.

    Args:
        root (Path): The superproject root.
        branch (str | None): Mirror branch from the command line.
        repository_uri (str | None): Mirror URI from the command line.
        master (str | None): Working branch override.
        update (bool): Update mode flag.
        single (bool): Update mode plus fold into `master` at teardown.
        pull_message (str | None): Pull mode commit message.
        store (GitConfigStore | None): The persisted store. Defaults to the
                                       superproject's git config.

    Returns:
        SessionConfig: The resolved configuration.

    Raises:
        SystemExit: If no branch name is known from either source.
    """
    if store is None:
        store = GitConfigStore(GitRepo(root))

    persisted = {"branch": branch, "repositoryUri": repository_uri}
    for name, value in persisted.items():
        if value is None:
            stored = store.get(name)
            persisted[name] = stored if isinstance(stored, str) else None

    for name, value in persisted.items():
        if value is not None:
            store.set(name, value)

    if not persisted["branch"]:
        console.print(
            "[bold red]ERROR:[/bold red] No branch given and none remembered "
            "from a previous launch."
        )
        sys.exit(1)

    return SessionConfig(
        branch=persisted["branch"],
        root=root,
        repository_uri=persisted["repositoryUri"],
        master=master or DEFAULT_MASTER,
        update=update or single,
        single=single,
        pull_message=pull_message,
    )
