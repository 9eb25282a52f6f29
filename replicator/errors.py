"""Exception types raised by File Replicator.

Every error here is fatal to the process: the entry point reports
``"<step> failed: <message>"`` and exits.  Errors reported by the file
watcher itself are *not* exceptions on this path; the coordinator logs
them and keeps going.
"""


class ReplicatorError(Exception):
    """Base class for all fatal replicator errors."""

    step = "replicator"


class ConfigError(ReplicatorError):
    """The configuration file is unreadable or malformed."""

    step = "configuration"


class ConfigCreated(ReplicatorError):
    """No configuration existed; a default one was written to disk."""

    step = "configuration"


class ConnectionFailed(ReplicatorError):
    """SSH/SFTP session could not be established."""

    step = "connection"


class WatchError(ReplicatorError):
    """The source file could not be registered with the watcher."""

    step = "watch"


class SourceGoneError(ReplicatorError):
    """The watched file was deleted, moved, or replaced."""

    step = "source"

    def __init__(self, path: str, kind: str):
        super().__init__(
            f"Source file appears to have been deleted or is no longer "
            f"accessible ({kind}): {path}"
        )
        self.path = path
        self.kind = kind


class TransferError(ReplicatorError):
    """A transfer failed while opening, copying, or verifying."""

    step = "transfer"

    def __init__(self, stage: str, message: str):
        super().__init__(f"{stage}: {message}")
        self.stage = stage
