"""File system watcher for File Replicator.

Uses the watchdog library to monitor the directory that holds the
source file and forwards only the events that concern that one file.
Problems inside watchdog itself are reported on a separate error
callback so they can be told apart from the file going away.
"""

from __future__ import annotations

import enum
import logging
import os
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from watchdog.events import (
    FileSystemEvent,
    FileSystemEventHandler,
    FileSystemMovedEvent,
)
from watchdog.observers import Observer
from watchdog.observers.api import EventEmitter

from replicator.errors import WatchError

logger = logging.getLogger(__name__)


class ChangeKind(enum.Enum):
    """What happened to the watched file."""

    MODIFIED = "modified"
    CREATED = "created"
    DELETED = "deleted"
    MOVED = "moved"


@dataclass(frozen=True)
class ChangeEvent:
    """One notification about the watched file."""

    path: str
    kind: ChangeKind


def _norm(path: str | bytes) -> str:
    return os.path.normcase(os.path.abspath(os.fsdecode(path)))


class WatchedFileHandler(FileSystemEventHandler):
    """Watchdog handler that filters a directory's events down to one file."""

    def __init__(
        self,
        path: str,
        on_change: Callable[[ChangeEvent], None],
        on_error: Callable[[Exception], None],
    ):
        """Forward events for *path*; report watch-root problems to *on_error*."""
        super().__init__()
        self._path = _norm(path)
        self._parent = os.path.dirname(self._path)
        self._on_change = on_change
        self._on_error = on_error

    def _emit(self, kind: ChangeKind) -> None:
        logger.debug("Change on %s: %s", self._path, kind.value)
        self._on_change(ChangeEvent(self._path, kind))

    def _is_watched(self, event: FileSystemEvent) -> bool:
        return not event.is_directory and _norm(event.src_path) == self._path

    def on_modified(self, event: FileSystemEvent) -> None:
        """Handle a content (or metadata) change."""
        if self._is_watched(event):
            self._emit(ChangeKind.MODIFIED)

    def on_created(self, event: FileSystemEvent) -> None:
        """Handle a file appearing at the watched path."""
        if self._is_watched(event):
            self._emit(ChangeKind.CREATED)

    def on_deleted(self, event: FileSystemEvent) -> None:
        """Handle deletion of the file or of the watched directory."""
        if self._is_watched(event):
            self._emit(ChangeKind.DELETED)
        elif event.is_directory and _norm(event.src_path) == self._parent:
            self._on_error(OSError(f"watched directory was deleted: {self._parent}"))

    def on_moved(self, event: FileSystemMovedEvent) -> None:  # type: ignore[override]
        """Handle the file being renamed away or replaced by a rename."""
        if event.is_directory:
            if _norm(event.src_path) == self._parent:
                self._on_error(OSError(f"watched directory was moved: {self._parent}"))
            return
        if self._path in (_norm(event.src_path), _norm(event.dest_path)):
            self._emit(ChangeKind.MOVED)


class FileWatcher:
    """Watches a single file with a watchdog observer.

    Usage:
        watcher = FileWatcher(path, on_change, on_error)
        watcher.start()
        ...
        watcher.stop()
    """

    def __init__(
        self,
        path: str,
        on_change: Callable[[ChangeEvent], None],
        on_error: Callable[[Exception], None],
    ):
        """Create a watcher for *path*; nothing is scheduled until start()."""
        self.path = path
        self._on_error = on_error
        self._handler = WatchedFileHandler(path, on_change, on_error)
        self._observer: Any | None = None
        self._previous_excepthook: Any | None = None

    # ---- lifecycle ----

    def start(self) -> None:
        """Start watching the file."""
        if not os.path.isfile(self.path):
            logger.error("Source file does not exist: %s", self.path)
            raise WatchError(f"Source file does not exist: {self.path}")

        directory = os.path.dirname(os.path.abspath(self.path))
        observer = Observer()
        try:
            observer.schedule(self._handler, directory, recursive=False)
            observer.start()
        except OSError as exc:
            raise WatchError(f"Local file watcher failed for {self.path}: {exc}") from exc
        self._observer = observer
        self._install_excepthook()
        logger.info("Watching '%s'", self.path)

    def stop(self) -> None:
        """Stop watching and release resources.  Safe to call twice."""
        observer = self._observer
        if observer is None:
            return
        self._observer = None
        observer.stop()
        observer.join(timeout=5)
        self._restore_excepthook()
        logger.info("Watcher stopped.")

    def __enter__(self) -> FileWatcher:
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()

    @property
    def is_running(self) -> bool:
        """Return whether the watcher is currently active."""
        return self._observer is not None and self._observer.is_alive()

    # ---- emitter failures ----

    # A watchdog emitter that raises just dies on its own thread; route
    # that exception to the error callback instead of a bare traceback.

    def _install_excepthook(self) -> None:
        self._previous_excepthook = threading.excepthook
        threading.excepthook = self._excepthook

    def _restore_excepthook(self) -> None:
        if self._previous_excepthook is not None:
            threading.excepthook = self._previous_excepthook
            self._previous_excepthook = None

    def _excepthook(self, args: threading.ExceptHookArgs) -> None:
        if isinstance(args.thread, EventEmitter) and isinstance(args.exc_value, Exception):
            self._on_error(args.exc_value)
            return
        previous = self._previous_excepthook or threading.__excepthook__
        previous(args)
