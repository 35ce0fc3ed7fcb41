"""Commit coordination: routing, the commit cycle, and single-flight debouncing.

At most one commit cycle runs at a time across every repository in a session.
Requests that arrive while a cycle is in flight collapse into a single
follow-up, scheduled a short delay out; each new request replaces the pending
one, so a burst of N events yields exactly one follow-up cycle.
"""

import logging
import threading
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor

from rich.console import Console

from .config import SessionConfig
from .constants import APP_NAME, DEBOUNCE_SECONDS, REMOTE_BASELINE, SERVER_HINT
from .git_wrapper import GitError, Outcome, PushError
from .repository import Repository

console = Console()
logger = logging.getLogger(APP_NAME)


def route(path: str, repositories: Sequence[Repository]) -> Repository | None:
    """Selects the repository owning a path by longest-prefix match.

    Args:
        path (str): Event path relative to the superproject root ('/' separated).
        repositories (Sequence[Repository]): Candidates in registration order.

    Returns:
        Repository | None: The owner; ties go to the earliest registered.
    """
    best = None
    for repository in repositories:
        if not path.startswith(repository.prefix):
            continue
        if best is None or len(repository.prefix) > len(best.prefix):
            best = repository
    return best


def should_amend(
    repository: Repository, head: str | None, tip_message: str | None, comment: str
) -> bool:
    """Decides whether a cycle amends HEAD or adds a new commit.

    After this session's first commit, amend only while HEAD is still the
    commit we produced; if HEAD moved underneath us, start a new commit.
    Before it, amend only if the mirror tip is already an auto-commit.
    """
    if head is None:
        return False
    if repository.last_commit is not None:
        return head == repository.last_commit
    return tip_message == comment


def commit_cycle(repository: Repository, config: SessionConfig) -> Outcome:
    """Stages, commits and force-pushes one repository's working tree.

    Args:
        repository (Repository): The repository to synchronize.
        config (SessionConfig): The session configuration.

    Returns:
        Outcome: SUCCEEDED after a push, NOT_APPLICABLE if nothing was staged.

    Raises:
        GitError: If staging or committing fails.
        PushError: If the mirror remote rejects the push.
    """
    git = repository.git
    comment = repository.comment(config)

    head = git.rev_parse("HEAD")
    git.add_all()
    if not git.has_staged_changes():
        logger.debug(f"SKIPPED {repository.id}: nothing staged")
        return Outcome.NOT_APPLICABLE

    tip_message = None
    if head is not None and repository.last_commit is None:
        try:
            tip_message = git.commit_message("HEAD")
        except GitError as e:
            logger.debug(f"Could not read tip message in {repository.id}: {e}")

    amend = should_amend(repository, head, tip_message, comment)
    git.commit(comment, amend=amend)
    console.print(f"committed [yellow]{comment}[/yellow]")
    logger.info(f"COMMITTED {repository.id}: {'amend' if amend else 'new'}")

    git.push(config.remote, f"{config.branch}:{REMOTE_BASELINE}", force=True)
    console.print(f"pushed to [yellow]{config.remote}[/yellow]")
    logger.info(f"PUSHED {repository.id}: {config.remote}")

    repository.last_commit = git.rev_parse("HEAD")
    return Outcome.SUCCEEDED


class CommitCoordinator:
    """Serializes commit cycles across all repositories with a trailing debounce.

    Attributes:
        cycle (Callable[[Repository], object]): Runs one commit cycle.
        debounce (float): Seconds before a deferred request is retried.
        on_fatal (Callable[[Exception], None] | None): Invoked when a cycle
            fails in a way that must end the session (a rejected push).
    """

    def __init__(
        self,
        cycle: Callable[[Repository], object],
        debounce: float = DEBOUNCE_SECONDS,
        on_fatal: Callable[[Exception], None] | None = None,
    ):
        self.cycle = cycle
        self.debounce = debounce
        self.on_fatal = on_fatal

        self._busy = threading.Lock()
        self._state = threading.Lock()
        self._retry: threading.Timer | None = None
        self._pending: Repository | None = None
        self._closed = False
        self._executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix=f"{APP_NAME}-commit"
        )

    @property
    def busy(self) -> bool:
        return self._busy.locked()

    @property
    def closed(self) -> bool:
        with self._state:
            return self._closed

    @property
    def pending(self) -> Repository | None:
        """The repository a scheduled retry will target, if any."""
        with self._state:
            return self._pending

    def request(self, repository: Repository) -> None:
        """Starts a cycle for `repository`, or defers it behind the one in flight."""
        with self._state:
            if self._closed:
                return
            started = self._busy.acquire(blocking=False)
            if started:
                self._executor.submit(self._run, repository)
                return
            self._schedule_retry(repository)

    def _schedule_retry(self, repository: Repository) -> None:
        # Caller holds self._state.
        if self._retry is not None:
            self._retry.cancel()
        self._pending = repository
        timer = threading.Timer(self.debounce, self._fire_retry)
        timer.daemon = True
        self._retry = timer
        timer.start()

    def _fire_retry(self) -> None:
        with self._state:
            # A timer replaced after it started running must not fire.
            if threading.current_thread() is not self._retry:
                return
            repository = self._pending
            self._pending = None
            self._retry = None
        if repository is not None:
            self.request(repository)

    def _shut(self) -> None:
        with self._state:
            self._closed = True
            if self._retry is not None:
                self._retry.cancel()
            self._retry = None
            self._pending = None

    def _halt(self, error: Exception) -> None:
        # No further cycles once the mirror can no longer be updated.
        self._shut()
        if self.on_fatal is not None:
            self.on_fatal(error)

    def _run(self, repository: Repository) -> None:
        try:
            self.cycle(repository)
        except PushError as e:
            console.print("[bold red]Failed to push changes.[/bold red]")
            console.print(
                "[red]Perhaps, you've forgotten to configure server repositories with:[/red]"
            )
            console.print(f"[bold]{SERVER_HINT}[/bold]")
            logger.error(f"PUSH ERROR {repository.id}: {e}")
            self._halt(e)
        except GitError as e:
            console.print(f"[bold red]COMMIT ERROR {repository.id}:[/bold red] {e}")
            logger.error(f"COMMIT ERROR {repository.id}: {e}")
        except Exception as e:
            logger.exception(f"CYCLE ERROR {repository.id}")
            self._halt(e)
        finally:
            self._busy.release()

    def close(self) -> None:
        """Stops accepting requests, drops the pending retry, and waits for
        the in-flight cycle to finish."""
        self._shut()
        self._executor.shutdown(wait=True)
