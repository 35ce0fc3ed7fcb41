"""Session lifecycle: prepare, then pull or watch, then tear down."""

import logging
import signal
import threading
from functools import partial
from types import FrameType

from rich.console import Console

from . import ops
from .config import SessionConfig, Settings
from .constants import APP_NAME
from .coordinator import CommitCoordinator, commit_cycle, route
from .prepare import prepare
from .repository import Repository, discover
from .watcher import ChangeHandler, Watcher

console = Console()
logger = logging.getLogger(APP_NAME)


class Session:
    """Owns the repositories and run-time state of one synchronization session.

    Attributes:
        config (SessionConfig): Resolved launch parameters.
        settings (Settings): Tool settings (debounce, ignore patterns).
        repositories (list[Repository]): Superproject first, then submodules.
        prepared (list[Repository]): Repositories that completed preparation.
        stop (threading.Event): Set to end the watch loop.
        failed (bool): True once a fatal runtime error has occurred.
    """

    def __init__(self, config: SessionConfig, settings: Settings | None = None):
        self.config = config
        self.settings = settings or Settings.load(config.root)
        self.repositories: list[Repository] = []
        self.prepared: list[Repository] = []
        self.stop = threading.Event()
        self.failed = False
        self.coordinator: CommitCoordinator | None = None

    def prepare_all(self) -> None:
        """Discovers and prepares every repository, stopping early if cancelled."""
        self.repositories = discover(self.config)
        submodules = [r.prefix.rstrip("/") for r in self.repositories[1:]]
        if submodules:
            console.print(f"[yellow]Found submodules: {', '.join(submodules)}.[/yellow]")
        for repository in self.repositories:
            if self.stop.is_set():
                break
            prepare(repository, self.config)
            self.prepared.append(repository)

    def on_change(self, kind: str, rel_path: str) -> None:
        """Routes a filesystem event to its repository and requests a cycle."""
        repository = route(rel_path, self.repositories)
        if repository is None or self.coordinator is None:
            return
        self.coordinator.request(repository)

    def on_fatal(self, error: Exception) -> None:
        logger.error(f"FATAL: {error}")
        self.failed = True
        self.stop.set()

    def _handle_signal(self, _signum: int, _frame: FrameType | None) -> None:
        self.stop.set()

    def watch(self) -> None:
        """Runs the watch loop until cancelled, then stops watching and
        waits for the in-flight cycle."""
        self.coordinator = CommitCoordinator(
            partial(commit_cycle, config=self.config),
            debounce=self.settings.watch.debounce,
            on_fatal=self.on_fatal,
        )
        handler = ChangeHandler(
            self.config.root, self.on_change, ignore=self.settings.watch.ignore
        )
        watcher = Watcher(self.config.root, handler)

        console.print(f"[yellow]Installing watcher on '{self.config.root}'...[/yellow]")
        try:
            watcher.start()
            console.print("[green]Watching... Press Ctrl+C to exit.[/green]")
            # Wake periodically so signal handlers run promptly.
            while not self.stop.wait(0.5):
                pass
        finally:
            watcher.close()
            self.coordinator.close()

    def teardown_all(self) -> None:
        for repository in self.prepared:
            ops.teardown(repository, self.config)

    def run(self) -> int:
        """Executes the session.

        SIGINT and SIGTERM end the session gracefully from any phase; the
        previous handlers are restored on return.

        Returns:
            int: The process exit code (1 after a fatal runtime failure).
        """
        previous = {
            sig: signal.signal(sig, self._handle_signal)
            for sig in (signal.SIGINT, signal.SIGTERM)
        }
        try:
            return self._run()
        finally:
            for sig, handler in previous.items():
                signal.signal(sig, handler)

    def _run(self) -> int:
        try:
            self.prepare_all()
        except SystemExit:
            # Leave already-prepared repositories on their working branch.
            self.teardown_all()
            raise

        if self.stop.is_set():
            console.print("[yellow]Interrupted during preparation.[/yellow]")
            self.teardown_all()
            return 0

        if self.config.pull_message is not None:
            for repository in self.prepared:
                ops.pull(repository, self.config)
            return 0

        try:
            self.watch()
        finally:
            self.teardown_all()
        return 1 if self.failed else 0
