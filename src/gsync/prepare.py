import logging
import sys

from rich.console import Console

from .config import SessionConfig
from .constants import APP_NAME, REMOTE_BASELINE
from .git_wrapper import GitError, PushError
from .repository import Repository, probe

console = Console()
logger = logging.getLogger(APP_NAME)


def _abort(message: str) -> None:
    console.print(f"[bold red]ERROR:[/bold red] {message}")
    sys.exit(1)


def _configure_remote(repository: Repository, config: SessionConfig) -> None:
    """Adds or repoints the mirror remote, or verifies it is already configured."""
    git = repository.git
    remote = config.remote
    known = repository.snapshot.remote_uri

    if not repository.uri:
        if not known:
            _abort(
                "Remote target is not configured. "
                "Specify repository URI and run command again."
            )
        console.print(f"[yellow]Remote uri of '{remote}' is '{known}'[/yellow]")
        return

    try:
        if known:
            console.print(
                f"[yellow]Change remote uri of '{remote}' to '{repository.uri}'[/yellow]"
            )
            git.remote_set_url(remote, repository.uri)
        else:
            console.print(
                f"[yellow]Set remote '{remote}' uri to '{repository.uri}'[/yellow]"
            )
            git.remote_add(remote, repository.uri)
    except GitError as e:
        logger.error(f"Remote setup failed in {repository.id}: {e}")
        _abort(f"Could not configure remote '{remote}' in '{repository.id}'.")


def _publish_baseline(repository: Repository, config: SessionConfig) -> None:
    """Update mode: the local working branch becomes the remote baseline."""
    git = repository.git
    branch = config.branch

    try:
        git.create_branch(branch)
    except GitError as e:
        logger.error(f"Branch creation failed in {repository.id}: {e}")
        _abort(f"Can not create '{branch}' branch.")

    try:
        git.push(
            config.remote,
            f"{branch}:{REMOTE_BASELINE}",
            force=True,
            set_upstream=True,
        )
        git.checkout(branch)
    except (PushError, GitError) as e:
        logger.error(f"Baseline publish failed in {repository.id}: {e}")
        _abort(f"Can not checkout '{branch}' branch to push changes.")

    console.print(
        f"[yellow]Branch '{config.remote}/{REMOTE_BASELINE}' "
        f"updated to recent '{config.master}'.[/yellow]"
    )


def _track_baseline(repository: Repository, config: SessionConfig) -> None:
    """Normal mode: recreate the mirror branch from the remote baseline."""
    git = repository.git
    branch = config.branch
    upstream = f"{config.remote}/{REMOTE_BASELINE}"

    console.print(
        f"[yellow]Fetching changes from '{config.remote}' at "
        f"'{repository.uri or repository.snapshot.remote_uri}'...[/yellow]"
    )
    try:
        git.fetch(config.remote)
        git.create_branch(branch, start=upstream, track=True)
    except GitError as e:
        logger.error(f"Branch creation failed in {repository.id}: {e}")
        _abort(f"Couldn't create branch '{branch}'.")
    console.print(
        f"[yellow]Branch '{branch}' with origin set to '{upstream}' re-created.[/yellow]"
    )

    try:
        git.checkout(branch)
    except GitError as e:
        logger.error(f"Checkout failed in {repository.id}: {e}")
        _abort(f"Can not checkout '{branch}' branch to push changes.")
    console.print(f"[yellow]Branch '{branch}' checked out.[/yellow]")


def prepare(repository: Repository, config: SessionConfig) -> None:
    """Brings one repository into mirror-ready state.

    Steps:
    1. Probes the repository, which must be initialized, and refuses to touch
       a dirty working tree.
    2. Adds, repoints or verifies the mirror remote.
    3. Returns to the working branch and discards any local mirror branch.
    4. Recreates the mirror branch (update or normal mode) and checks it out.

    The mirror branch is disposable local state: it is rebuilt on every launch.

    Args:
        repository (Repository): The repository to prepare. Its snapshot and
                                 prepared revision are recorded on it.
        config (SessionConfig): The session configuration.

    Raises:
        SystemExit: On any precondition or setup failure.
    """
    try:
        repository.snapshot = probe(repository, config)
    except ValueError as e:
        logger.error(f"PREPARE {repository.id}: {e}")
        _abort(
            f"'{repository.id}' is not an initialized git repository. "
            "Run git submodule update --init."
        )

    if repository.snapshot.dirty:
        _abort(
            f"'{repository.id}' contains uncommitted changes. "
            "Commit them and try again."
        )

    console.print(f"[green]Configuring '{repository.id}'...[/green]")
    _configure_remote(repository, config)

    git = repository.git
    git.try_checkout(config.master)
    git.delete_branch(config.branch, exists=repository.snapshot.branch_exists)

    if config.update:
        _publish_baseline(repository, config)
    else:
        _track_baseline(repository, config)

    repository.prepared_revision = git.rev_parse("HEAD")
    logger.info(
        f"PREPARED {repository.id}: {config.branch} at {repository.prepared_revision}"
    )
