"""
Main application controller for File Replicator.

Ties together configuration, the SFTP connection, the file watcher,
the debounce loop and graceful shutdown.  Signal handlers go in first so
an interrupt while connecting is orderly; resources are then acquired in
order (connection, debounce thread, watcher) and released in reverse
on every exit path.
"""

import contextlib
import logging
import logging.handlers
import sys
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from replicator import __app_name__, __version__
from replicator.config import Config, ReplicationTarget
from replicator.connection import SFTPConnection
from replicator.coordinator import DebounceCoordinator
from replicator.errors import ConfigCreated, ReplicatorError
from replicator.platform_utils import get_log_path, play_error_sound
from replicator.shutdown import ShutdownCoordinator, ShutdownSignal
from replicator.transfer import TransferExecutor
from replicator.watcher import FileWatcher

logger = logging.getLogger(__name__)


class Replicator:
    """
    Central orchestrator.

    ``connection_factory`` and ``watcher_factory`` default to the real
    SFTP connection and watchdog watcher; both must return context
    managers.
    """

    def __init__(
        self,
        config_path: Path | None = None,
        connection_factory: Callable[[ReplicationTarget], SFTPConnection] = SFTPConnection,
        watcher_factory: Callable[..., FileWatcher] = FileWatcher,
    ) -> None:
        self._config_path = config_path
        self._connection_factory = connection_factory
        self._watcher_factory = watcher_factory
        self.config: Config | None = None
        self.shutdown = ShutdownSignal()
        self.coordinator: DebounceCoordinator | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> int:
        """Load config, replicate until stopped, return the exit status."""
        try:
            self.config = Config(self._config_path)
        except ConfigCreated as exc:
            print(str(exc))
            return 1
        except ReplicatorError as exc:
            print(f"ERROR: {exc}", file=sys.stderr)
            return 1

        self._setup_logging()
        logger.info("%s %s starting.", __app_name__, __version__)

        try:
            target = self.config.target()
            self._describe(target)
            self.replicate(target)
        except ReplicatorError as exc:
            logger.critical("%s failed: %s", exc.step, exc)
            if self.config.play_sound_on_error:
                play_error_sound()
            return 1

        logger.info("Program exit at %s", datetime.now().strftime("%H:%M:%S"))
        return 0

    def replicate(self, target: ReplicationTarget) -> None:
        """Mirror the source file until shutdown.

        Raises the fatal error that ended the debounce loop, if any,
        after every resource has been released.
        """
        verify = self.config.verify_transfers if self.config else True
        with contextlib.ExitStack() as stack:
            stack.enter_context(self.shutdown.handlers())
            connection = stack.enter_context(self._connection_factory(target))
            executor = TransferExecutor(target, connection, verify=verify)
            coordinator = DebounceCoordinator(target, executor.transfer)
            self.coordinator = coordinator
            if self.shutdown.is_set():
                logger.info("Shutdown requested while connecting.")
                return

            coordinator.start()
            stack.callback(coordinator.stop)
            stack.enter_context(
                self._watcher_factory(
                    target.source_path, coordinator.post_event, coordinator.post_error
                )
            )
            logger.info("Replicating. Hit CTRL+C to exit at any time.")
            ShutdownCoordinator(self.shutdown, coordinator).wait()

        if coordinator.error is not None:
            raise coordinator.error

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _describe(self, target: ReplicationTarget) -> None:
        logger.info("Local user (required for authentication): %s", target.local_user)
        logger.info("Source to copy: %s", target.source_path)
        logger.info("Target machine address: %s", target.endpoint)
        logger.info("Target directory/file: %s", target.destination_path)
        logger.info(
            "Minimum interval between update events: %d ms", target.min_interval_ms
        )

    def _setup_logging(self) -> None:
        """Configure rotating file log and stderr handler."""
        log_path = get_log_path()
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)
        root_logger = logging.getLogger()
        root_logger.setLevel(level)

        fmt = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

        # Rotating file handler
        max_bytes = self.config.max_log_size_mb * 1024 * 1024
        fh = logging.handlers.RotatingFileHandler(
            str(log_path),
            maxBytes=max_bytes,
            backupCount=self.config.log_backup_count,
            encoding="utf-8",
        )
        fh.setLevel(level)
        fh.setFormatter(fmt)
        root_logger.addHandler(fh)

        # Stderr handler (operator console)
        sh = logging.StreamHandler(sys.stderr)
        sh.setLevel(level)
        sh.setFormatter(fmt)
        root_logger.addHandler(sh)
