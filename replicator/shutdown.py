"""
Graceful shutdown for File Replicator.

SIGINT (Ctrl-C) and SIGTERM set a one-shot ``ShutdownSignal``.  The main
thread sleeps on that signal while the debounce loop runs in the
background, then stops the loop so the caller's cleanup can run.
"""

from __future__ import annotations

import contextlib
import logging
import signal
import threading
from collections.abc import Iterator

from replicator.coordinator import DebounceCoordinator

logger = logging.getLogger(__name__)

# Upper bound on how long the main thread sleeps between checks.  The
# signal handler wakes it immediately; this only bounds the delay in
# noticing that the coordinator died on its own.
POLL_INTERVAL = 0.02

_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ShutdownSignal:
    """A flag that goes from unset to set exactly once.

    ``handlers()`` routes SIGINT/SIGTERM to ``set`` for the duration of a
    block, so an interrupt at any point inside it (including while the
    connection is still being dialled) becomes an orderly shutdown.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self.reason: str | None = None

    def set(self, reason: str = "shutdown requested") -> bool:
        """Set the flag.  Returns False if it was already set.

        Never blocks: a signal handler can interrupt a set() in progress on
        the same thread, and the nested call then reports False.
        """
        if not self._lock.acquire(blocking=False):
            return False
        try:
            if self._event.is_set():
                return False
            self.reason = reason
            self._event.set()
            return True
        finally:
            self._lock.release()

    def is_set(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        return self._event.wait(timeout)

    @contextlib.contextmanager
    def handlers(self) -> Iterator[None]:
        """Route SIGINT/SIGTERM to this signal inside the block.

        Previous handlers are restored on exit.  Outside the main thread
        signal handlers cannot be installed and this is a no-op.
        """
        if threading.current_thread() is not threading.main_thread():
            yield
            return
        previous = {sig: signal.signal(sig, self._handle) for sig in _SIGNALS}
        try:
            yield
        finally:
            for sig, handler in previous.items():
                signal.signal(sig, handler)

    def _handle(self, signum, frame) -> None:
        name = signal.Signals(signum).name
        if self.set(name):
            logger.info("%s received. Program exiting gracefully", name)
        else:
            logger.debug("Ignoring repeated %s", name)


class ShutdownCoordinator:
    """Waits for the shutdown signal, then unwinds the debounce loop."""

    def __init__(
        self,
        shutdown: ShutdownSignal,
        coordinator: DebounceCoordinator,
        poll_interval: float = POLL_INTERVAL,
    ):
        self.shutdown = shutdown
        self._coordinator = coordinator
        self._poll_interval = poll_interval

    def wait(self) -> bool:
        """Block until shutdown is signalled or the loop ends by itself.

        Returns True when the shutdown signal caused the return.  In that
        case the coordinator has been stopped and joined.
        """
        while self._coordinator.is_running:
            if self.shutdown.wait(self._poll_interval):
                break
        if not self.shutdown.is_set():
            return False
        self._coordinator.stop()
        return True
