"""Repository model and state probing for the synchronization engine."""

import logging
import posixpath
from dataclasses import dataclass, field
from pathlib import Path

from .config import SessionConfig
from .constants import APP_NAME, COMMIT_TAG
from .git_wrapper import GitRepo

logger = logging.getLogger(APP_NAME)


@dataclass(frozen=True)
class Snapshot:
    """Point-in-time probe result for a repository.

    Attributes:
        revision (str | None): HEAD revision, None for an unborn branch.
        dirty (bool): The working tree has uncommitted changes.
        remote_uri (str | None): URL configured for the mirror remote.
        tracking_remote (str | None): Remote the mirror branch tracks.
        branch_exists (bool): The mirror branch exists locally.
    """

    revision: str | None = None
    dirty: bool = False
    remote_uri: str | None = None
    tracking_remote: str | None = None
    branch_exists: bool = False


@dataclass(eq=False)
class Repository:
    """One version-controlled root participating in a session.

    Attributes:
        root (Path): Absolute path to the repository root.
        prefix (str): Path prefix inside the superproject, with a trailing '/'.
                      Empty for the superproject itself.
        uri (str | None): The mirror URI to configure for this root.
        snapshot (Snapshot): Probe result captured during preparation.
        prepared_revision (str | None): Mirror HEAD right after preparation.
        last_commit (str | None): HEAD produced by the last successful cycle.
    """

    root: Path
    prefix: str = ""
    uri: str | None = None
    snapshot: Snapshot = field(default_factory=Snapshot)
    prepared_revision: str | None = None
    last_commit: str | None = None

    @property
    def id(self) -> str:
        return self.root.name

    @property
    def git(self) -> GitRepo:
        return GitRepo(self.root)

    def comment(self, config: SessionConfig) -> str:
        """The deterministic auto-commit message for this repository."""
        return f"{COMMIT_TAG}:{config.branch}:{self.id}"


def probe(repository: Repository, config: SessionConfig) -> Snapshot:
    """Reads the current state of a repository.

    Args:
        repository (Repository): The repository to inspect.
        config (SessionConfig): Supplies the mirror branch and remote names.

    Returns:
        Snapshot: The assembled state. Failed queries map to empty values.
    """
    git = repository.git
    return Snapshot(
        revision=git.rev_parse("HEAD"),
        dirty=bool(git.status_porcelain()),
        remote_uri=git.remote_url(config.remote),
        tracking_remote=git.tracking_remote(config.branch),
        branch_exists=git.branch_exists(config.branch),
    )


def derive_uri(uri: str | None, rel_path: str) -> str | None:
    """Joins a superproject mirror URI with a submodule's relative path."""
    if not uri:
        return None
    return posixpath.join(uri, rel_path)


def discover(config: SessionConfig) -> list[Repository]:
    """Enumerates the superproject and its declared submodules.

    Args:
        config (SessionConfig): Supplies the superproject root and mirror URI.

    Returns:
        list[Repository]: The superproject first, then submodules in manifest order.
    """
    root = config.root
    repositories = [Repository(root=root, uri=config.repository_uri)]

    for name, rel_path in GitRepo(root).submodules():
        rel = rel_path.strip("/")
        logger.debug(f"Submodule '{name}' at {rel}")
        repositories.append(
            Repository(
                root=root / rel,
                prefix=f"{rel}/",
                uri=derive_uri(config.repository_uri, rel),
            )
        )
    return repositories
