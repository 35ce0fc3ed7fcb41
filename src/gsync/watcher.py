import fnmatch
import logging
from collections.abc import Callable, Iterable
from pathlib import Path, PurePath

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from .constants import APP_NAME, DEFAULT_IGNORES

logger = logging.getLogger(APP_NAME)

MUTATIONS = {
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
}


def is_ignored(rel_path: str, patterns: Iterable[str]) -> bool:
    """Checks whether any component of a relative path matches an ignore pattern."""
    parts = PurePath(rel_path).parts
    return any(fnmatch.fnmatch(part, pat) for part in parts for pat in patterns)


class ChangeHandler(FileSystemEventHandler):
    """Translates watchdog events into `(kind, relative_path)` callbacks.

    Paths are made relative to the watched root with '/' separators. Events
    under ignored components, directory modifications, and non-mutating
    notifications (opened/closed) are dropped.
    """

    def __init__(
        self,
        root: Path,
        callback: Callable[[str, str], None],
        ignore: Iterable[str] = (),
    ):
        super().__init__()
        self.root = root
        self.callback = callback
        self.ignore = list(dict.fromkeys([*DEFAULT_IGNORES, *ignore]))

    def _relative(self, raw: str | bytes) -> str | None:
        path = Path(raw.decode() if isinstance(raw, bytes) else raw)
        try:
            return path.relative_to(self.root).as_posix()
        except ValueError:
            return None

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type not in MUTATIONS:
            return
        if event.is_directory and event.event_type == EVENT_TYPE_MODIFIED:
            return

        rel = self._relative(event.src_path)
        if event.event_type == EVENT_TYPE_MOVED and event.dest_path:
            dest = self._relative(event.dest_path)
            # A move out of an ignored directory still counts as a change.
            if dest and not is_ignored(dest, self.ignore):
                rel = dest

        if not rel or rel == "." or is_ignored(rel, self.ignore):
            return

        logger.debug(f"EVENT {event.event_type}: {rel}")
        self.callback(event.event_type, rel)


class Watcher:
    """Recursive watch over the superproject root.

    watchdog only reports mutations after `start()`, so pre-existing files
    never produce events.
    """

    def __init__(self, root: Path, handler: ChangeHandler):
        self.root = root
        self.handler = handler
        self._observer = Observer()

    def start(self) -> None:
        self._observer.schedule(self.handler, str(self.root), recursive=True)
        self._observer.start()
        logger.info(f"WATCHING {self.root}")

    def close(self, timeout: float | None = None) -> None:
        """Stops the observer and blocks until its thread has exited."""
        self._observer.stop()
        if self._observer.is_alive():
            self._observer.join(timeout)
        logger.info(f"STOPPED watching {self.root}")
