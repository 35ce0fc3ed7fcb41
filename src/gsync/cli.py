import argparse
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.console import Console

from .config import Settings, resolve_session
from .constants import (
    APP_NAME,
    DEFAULT_MASTER,
    LOG_FILE,
    REMOTE_BASELINE,
    SERVER_HINT,
    __version__,
)
from .git_wrapper import GitRepo
from .session import Session

logger = logging.getLogger(APP_NAME)
console = Console()

EPILOG = f"""\
WARNING: do not manually commit to the gsync branch.
All commits which are not pushed to remote will be deleted.
INFO: normally, your gsync branch should contain only one generated commit.

- Configure server manually:
  In the remote repository:
  {SERVER_HINT}
  Consider this repository as read-only.
  Make sure this repository has {REMOTE_BASELINE} branch checked out:
  git status
  ATTENTION: git version should be >= 2.16.x
  WARNING: Do not use this server repository other than for gsync

- Push changes to master as a single (squashed) commit:
  gsync <branch> --pull "<commit message>"
  or manually:
  git checkout master && git merge --squash <gsync_branch> && git commit

- Publish the working branch and fold the gsync commit back on quit:
  gsync <branch> --single

Examples:
  gsync alexander rt.com:/var/www/html/alexander
  gsync alexander
  gsync
"""


def setup_logging(verbose: bool, max_log_size: int) -> None:
    """Configures the logging subsystem.

    Args:
        verbose (bool): If True, echo debug records to stdout. Otherwise only
                        warnings reach the terminal.
        max_log_size (int): Rotation threshold for the session log file.
    """
    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    try:
        LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            LOG_FILE, maxBytes=max_log_size, backupCount=3
        )
    except OSError as e:
        logger.warning(f"Could not open log file {LOG_FILE}: {e}")
        return
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description=(
            "Creates a <branch> which will be synchronized with the repository "
            "at <repository-uri>. Without arguments gsync reuses the ones from "
            "the previous launch."
        ),
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("branch", nargs="?", help="Mirror branch name")
    parser.add_argument(
        "repository_uri",
        nargs="?",
        metavar="repository-uri",
        help="Remote repository to mirror into",
    )
    parser.add_argument(
        "-u",
        "--update",
        action="store_true",
        help=f"Update the remote gsync repository to the {DEFAULT_MASTER} branch state",
    )
    parser.add_argument(
        "-s",
        "--single",
        action="store_true",
        help=(
            "Same as --update, but also folds the gsync commit into the "
            "working branch after quit"
        ),
    )
    parser.add_argument(
        "-p",
        "--pull",
        metavar="MESSAGE",
        dest="pull_message",
        help="Squash the gsync branch into the working branch with MESSAGE and exit",
    )
    parser.add_argument(
        "-m",
        "--master",
        metavar="BRANCH",
        help=f"Local working branch the gsync branch is relative to (default: {DEFAULT_MASTER})",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Print debug output"
    )
    parser.add_argument("--version", action="version", version=__version__)
    return parser


def find_root() -> Path:
    """Resolves the superproject root from the current directory.

    Raises:
        SystemExit: If the current directory is not inside a git working tree.
    """
    cwd = Path.cwd()
    try:
        root = GitRepo(cwd).show_toplevel()
    except ValueError:
        # Not at a repository root; ask git from a subdirectory.
        root = None
        for parent in cwd.parents:
            if (parent / ".git").exists():
                root = GitRepo(parent).show_toplevel()
                break
    if root is None:
        console.print("[bold red]ERROR:[/bold red] Not a git repository.")
        sys.exit(1)
    return root.resolve()


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the gsync CLI."""
    args = build_parser().parse_args(argv)

    root = find_root()
    settings = Settings.load(root)
    setup_logging(args.verbose, settings.logging.max_log_size)

    config = resolve_session(
        root,
        branch=args.branch,
        repository_uri=args.repository_uri,
        master=args.master,
        update=args.update,
        single=args.single,
        pull_message=args.pull_message,
    )

    console.print(
        f"[green]Starting {APP_NAME}@{__version__} for '{config.branch}' branch...[/green]"
    )
    console.print("[green]Launch configuration:[/green]")
    console.print(f"[yellow]{config.describe()}[/yellow]")

    sys.exit(Session(config, settings).run())


if __name__ == "__main__":
    main()
