"""
Transfer engine for File Replicator.

Copies the whole source file over the SFTP connection, replacing the
remote destination.  Every failure is fatal: there is no retry, the
operator is expected to fix the path, permission or disk problem.
"""

import logging
import time
from dataclasses import dataclass
from typing import IO, Protocol

import paramiko

from replicator.config import ReplicationTarget
from replicator.errors import TransferError

logger = logging.getLogger(__name__)

_CHUNK = 256 * 1024  # 256 KiB read chunks

# SFTP failures surface as IOError or SFTPError (unexpected server replies);
# a dropped session as SSHException or EOFError
_IO_ERRORS = (OSError, EOFError, paramiko.SSHException, paramiko.SFTPError)


class RemoteFiles(Protocol):
    """The part of the connection the executor needs."""

    def create_or_truncate(self, remote_path: str) -> IO[bytes]: ...

    def remote_size(self, remote_path: str) -> int: ...


@dataclass
class TransferRecord:
    """Record of a single completed transfer."""
    sequence: int
    source: str
    destination: str
    size_bytes: int = 0
    started: float = 0.0
    finished: float = 0.0
    verified: bool = False

    @property
    def duration(self) -> float:
        if self.finished and self.started:
            return self.finished - self.started
        return 0.0


class TransferExecutor:
    """
    Pushes the source file to the remote destination.

    Parameters
    ----------
    target : ReplicationTarget
        Resolved source and destination paths.
    remote : RemoteFiles
        Open connection used to create the destination file.
    verify : bool
        If True, stat the remote file afterwards and compare sizes.
    """

    def __init__(self, target: ReplicationTarget, remote: RemoteFiles, verify: bool = True):
        self._source = target.source_path
        self._destination = target.destination_path
        self._remote = remote
        self._verify = verify

    def transfer(self, sequence: int) -> TransferRecord:
        """Copy source → destination and return the finished record.

        Raises ``TransferError`` naming the stage that failed.  Both
        files are closed before this returns or raises.
        """
        rec = TransferRecord(
            sequence=sequence, source=self._source, destination=self._destination
        )
        rec.started = time.time()

        try:
            src = open(self._source, "rb")
        except OSError as exc:
            raise TransferError(
                "open source", f"check source filepath and file {self._source}: {exc}"
            ) from exc

        with src:
            try:
                dst = self._remote.create_or_truncate(self._destination)
            except _IO_ERRORS as exc:
                raise TransferError(
                    "open destination",
                    f"check destination filepath {self._destination}: {exc}",
                ) from exc
            try:
                # closing an SFTP file flushes buffered writes, so it can fail too
                with dst:
                    rec.size_bytes = self._copy(src, dst)
            except _IO_ERRORS as exc:
                raise TransferError("copy", f"failed to update file: {exc}") from exc

        if self._verify:
            self._check_remote_size(rec)

        rec.finished = time.time()
        logger.debug(
            "Copied %s -> %s (%d bytes) in %.3fs",
            rec.source, rec.destination, rec.size_bytes, rec.duration,
        )
        return rec

    @staticmethod
    def _copy(src: IO[bytes], dst: IO[bytes]) -> int:
        total = 0
        while chunk := src.read(_CHUNK):
            dst.write(chunk)
            total += len(chunk)
        return total

    def _check_remote_size(self, rec: TransferRecord) -> None:
        try:
            remote_size = self._remote.remote_size(self._destination)
        except _IO_ERRORS as exc:
            raise TransferError(
                "verify", f"could not stat {self._destination}: {exc}"
            ) from exc
        if remote_size != rec.size_bytes:
            raise TransferError(
                "verify",
                f"size mismatch for {self._destination} "
                f"(sent {rec.size_bytes}, remote has {remote_size})",
            )
        rec.verified = True
