import logging

from rich.console import Console
from rich.panel import Panel

from .config import SessionConfig
from .constants import APP_NAME
from .git_wrapper import GitError, Outcome
from .repository import Repository

console = Console()
logger = logging.getLogger(APP_NAME)


def pull(repository: Repository, config: SessionConfig) -> Outcome:
    """Squash-merges the mirror branch into the working branch.

    A merge conflict is reported and the repository is left conflicted for
    the operator to resolve; it does not end the session.

    Args:
        repository (Repository): The repository to merge in.
        config (SessionConfig): Supplies the branches and the commit message.

    Returns:
        Outcome: SUCCEEDED after committing, NOT_APPLICABLE if the mirror
                 carried no changes, IGNORED_FAILURE on conflict.
    """
    git = repository.git
    branch, master = config.branch, config.master

    try:
        git.checkout(master)
    except GitError as e:
        console.print(
            f"[bold red]ERROR:[/bold red] Can not checkout '{master}' "
            f"at '{repository.root}'."
        )
        logger.error(f"PULL {repository.id}: {e}")
        return Outcome.IGNORED_FAILURE

    try:
        git.merge_squash(branch)
    except GitError as e:
        logger.warning(f"PULL CONFLICT {repository.id}: {e}")
        console.print(
            Panel(
                f"Squash merge of '{branch}' into '{master}' stopped with conflicts.\n"
                "Resolve them, then commit:\n"
                f'[bold]git commit -m "{config.pull_message}"[/bold]',
                title=f"Merge Conflict: {repository.id}",
                border_style="red",
                expand=False,
            )
        )
        return Outcome.IGNORED_FAILURE

    if not git.has_staged_changes():
        console.print(f"[dim]Nothing to pull into '{master}' at '{repository.id}'.[/dim]")
        return Outcome.NOT_APPLICABLE

    git.commit(config.pull_message or repository.comment(config))
    console.print(
        f"[bold green]SUCCESS:[/bold green] Squashed '{branch}' into '{master}' "
        f"at '{repository.id}'."
    )
    return Outcome.SUCCEEDED


def fold(repository: Repository, config: SessionConfig) -> None:
    """Collapses the session's auto-commits into one commit on the working branch.

    Rebases the (already checked out) working branch onto the mirror branch,
    then soft-resets past every auto-commit below HEAD and amends the result
    into the topmost one.

    Raises:
        GitError: If the rebase, a reset, or the final amend fails.
    """
    git = repository.git
    comment = repository.comment(config)

    git.rebase(config.branch)
    while git.commit_message("HEAD~1") == comment:
        git.reset_soft("HEAD^")
    git.amend_no_edit()


def teardown(repository: Repository, config: SessionConfig) -> Outcome:
    """Restores the working branch, folding auto-commits back in single mode.

    Args:
        repository (Repository): The repository to restore.
        config (SessionConfig): The session configuration.

    Returns:
        Outcome: SUCCEEDED if the working branch is checked out (and any fold
                 completed), IGNORED_FAILURE if the fold or checkout failed.
    """
    git = repository.git
    master = config.master
    revision = git.rev_parse("HEAD")

    try:
        git.checkout(master)
    except GitError as e:
        console.print(
            f"[bold red]ERROR:[/bold red] Could not switch to '{master}' "
            f"at '{repository.root}'."
        )
        logger.error(f"TEARDOWN {repository.id}: {e}")
        return Outcome.IGNORED_FAILURE
    console.print(f"[green]Switched to '{master}' at '{repository.root}'[/green]")

    if not config.single or revision == repository.prepared_revision:
        return Outcome.SUCCEEDED

    try:
        fold(repository, config)
    except GitError as e:
        logger.error(f"FOLD {repository.id}: {e}")
        console.print(
            f"[bold red]Failed to save commit to '{master}' at '{repository.root}'[/bold red]"
        )
        # Leave the operator on the working branch, not mid-rebase.
        if git.execute(["rebase", "--abort"]).ok:
            logger.info(f"FOLD {repository.id}: rebase aborted")
        return Outcome.IGNORED_FAILURE

    console.print(
        f"[green]Rebased '{master}' to '{config.branch}' at '{repository.root}'.[/green]"
    )
    console.print("[green]Do not forget to [bold]--amend[/bold] commit message.[/green]")
    return Outcome.SUCCEEDED
