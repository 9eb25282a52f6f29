"""
Shared fakes for the File Replicator tests.

FakeRemote stands in for the SFTP connection and keeps remote files in a
dict; FakeClock is a manually advanced monotonic clock.
"""
import io
import os
from pathlib import Path

from replicator.config import ReplicationTarget


def make_target(root: Path, min_interval_ms: int = 10,
                source_name: str = "data.txt", dest_name: str = "data.txt") -> ReplicationTarget:
    """Build a target whose source lives under *root*."""
    return ReplicationTarget(
        local_user=str(root),
        source_dir=str(root),
        source_name=source_name,
        dest_dir="/remote/dir",
        dest_name=dest_name,
        min_interval_ms=min_interval_ms,
        address="127.0.0.1",
        port=22,
        user="pi",
    )


class _RemoteFile(io.BytesIO):
    """In-memory remote file that lands in the store when closed."""

    def __init__(self, store: dict, path: str, fail_after: int | None = None):
        super().__init__()
        self._store = store
        self._path = path
        self._fail_after = fail_after
        self.close_count = 0

    def write(self, data):
        if self._fail_after is not None and self.tell() + len(data) > self._fail_after:
            raise OSError("connection lost")
        return super().write(data)

    def close(self):
        if not self.closed:
            self.close_count += 1
            self._store[self._path] = self.getvalue()
        super().close()


class FakeRemote:
    """Records remote files and how often it was opened and closed."""

    def __init__(self, target=None):
        self.target = target
        self.files: dict[str, bytes] = {}
        self.handles: list[_RemoteFile] = []
        self.enter_count = 0
        self.exit_count = 0
        self.fail_create: Exception | None = None
        self.fail_write_after: int | None = None
        self.size_offset = 0

    def create_or_truncate(self, remote_path: str):
        if self.fail_create is not None:
            raise self.fail_create
        self.files[remote_path] = b""
        fh = _RemoteFile(self.files, remote_path, self.fail_write_after)
        self.handles.append(fh)
        return fh

    def remote_size(self, remote_path: str) -> int:
        return len(self.files[remote_path]) + self.size_offset

    def __enter__(self):
        self.enter_count += 1
        return self

    def __exit__(self, *exc_info):
        self.exit_count += 1


class FakeClock:
    """Monotonic clock the test moves by hand."""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def write_file(path: str | os.PathLike, data: bytes) -> None:
    with open(path, "wb") as fh:
        fh.write(data)
