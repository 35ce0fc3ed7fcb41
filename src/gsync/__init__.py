"""gsync: live mirroring of a working tree onto a remote staging branch.

This package provides the command-line interface, the repository preparation
logic, and the watch-commit-push engine that keeps a mirror branch (and the
matching branches of any submodules) synchronized with local edits.
"""

from . import (
    cli,
    config,
    constants,
    coordinator,
    git_wrapper,
    ops,
    prepare,
    repository,
    session,
    watcher,
)

__all__ = [
    "cli",
    "config",
    "constants",
    "coordinator",
    "git_wrapper",
    "ops",
    "prepare",
    "repository",
    "session",
    "watcher",
]
