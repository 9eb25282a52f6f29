"""Debounce loop for File Replicator.

A single background thread owns the replication state.  The watcher's
change events, the watcher's internal errors and the shutdown request
all arrive through one FIFO inbox, so the loop handles exactly one
message at a time and in arrival order.  A transfer runs on this thread
and the next message is not read until it returns, which is what keeps
transfers from ever overlapping.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from replicator.config import ReplicationTarget
from replicator.errors import SourceGoneError
from replicator.transfer import TransferRecord
from replicator.watcher import ChangeEvent, ChangeKind

logger = logging.getLogger(__name__)

# inbox message tags
_EVENT = "event"
_ERROR = "error"
_SHUTDOWN = "shutdown"


@dataclass
class DebounceState:
    """Mutable loop state; only the coordinator thread touches it."""

    last_update: float
    accepted: int = 0


class DebounceCoordinator:
    """Turns a stream of change events into serialized transfers.

    Parameters
    ----------
    target : ReplicationTarget
        Supplies the minimum update period and the source path.
    transfer : callable
        ``transfer(sequence) -> TransferRecord``; raises on failure.
    clock : callable
        Monotonic time source in seconds (injectable for tests).
    on_transfer : callable, optional
        Invoked with each finished ``TransferRecord``.
    """

    def __init__(
        self,
        target: ReplicationTarget,
        transfer: Callable[[int], TransferRecord],
        clock: Callable[[], float] = time.monotonic,
        on_transfer: Callable[[TransferRecord], None] | None = None,
    ):
        self._min_interval = target.min_interval_ms / 1000.0
        self._source = target.source_path
        self._transfer = transfer
        self._clock = clock
        self._on_transfer = on_transfer
        # first debounce window opens now, not at the first event
        self.state = DebounceState(last_update=clock())
        self.error: BaseException | None = None
        self._inbox: queue.Queue[tuple[str, object]] = queue.Queue()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    # ---- producers (any thread) ----

    def post_event(self, event: ChangeEvent) -> None:
        """Queue a change notification."""
        self._inbox.put((_EVENT, event))

    def post_error(self, exc: Exception) -> None:
        """Queue an error raised inside the watcher."""
        self._inbox.put((_ERROR, exc))

    def request_shutdown(self) -> None:
        """Ask the loop to return before handling anything else."""
        self._stop.set()
        self._inbox.put((_SHUTDOWN, None))

    # ---- lifecycle ----

    def start(self) -> None:
        self._thread = threading.Thread(
            target=self.run, daemon=True, name="DebounceCoordinator"
        )
        self._thread.start()

    def stop(self) -> None:
        """Request shutdown and wait for the loop to return.  Idempotent.

        An in-flight transfer is never interrupted; this waits for it.
        """
        thread = self._thread
        if thread is None:
            return
        if thread.is_alive():
            self.request_shutdown()
            thread.join()
        self._thread = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # ---- loop ----

    def run(self) -> None:
        """Handle inbox messages until shutdown or a fatal error."""
        try:
            while not self._stop.is_set():
                tag, payload = self._inbox.get()
                if self._stop.is_set() or tag == _SHUTDOWN:
                    break
                if tag == _ERROR:
                    logger.error("Event watcher failed: %s", payload)
                    continue
                self.handle_event(payload)  # type: ignore[arg-type]
            logger.debug("Debounce loop stopped after %d update(s).", self.state.accepted)
        except Exception as exc:
            # Re-raised by the application on the main thread
            self.error = exc
            logger.debug("Debounce loop ended with %r", exc)

    def handle_event(self, event: ChangeEvent) -> TransferRecord | None:
        """Apply the debounce rules to one event.

        Returns the transfer record when the event was accepted, None
        when it fell inside the minimum update period.  Raises
        ``SourceGoneError`` for anything but a content modification and
        lets transfer failures propagate without touching the state.
        """
        now = self._clock()
        elapsed = now - self.state.last_update

        if event.kind is not ChangeKind.MODIFIED:
            raise SourceGoneError(event.path or self._source, event.kind.value)

        if elapsed <= self._min_interval:
            logger.debug(
                "Ignoring event %.1f ms after last update (minimum %.0f ms)",
                elapsed * 1000, self._min_interval * 1000,
            )
            return None

        self.state.accepted += 1
        logger.info("Update %d...", self.state.accepted)
        rec = self._transfer(self.state.accepted)
        logger.info(
            "Update %d complete. %d bytes copied", rec.sequence, rec.size_bytes
        )
        self.state.last_update = self._clock()
        if self._on_transfer:
            self._on_transfer(rec)
        return rec
