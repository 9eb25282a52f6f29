"""
SSH/SFTP connection for File Replicator.

Wraps a paramiko SSHClient + SFTPClient pair.  Authentication uses the
local user's ``~/.ssh/id_rsa`` only and the server must already be
listed in ``~/.ssh/known_hosts``; unknown hosts are rejected.
"""

from __future__ import annotations

import logging
import os
from typing import IO

import paramiko

from replicator.config import ReplicationTarget
from replicator.errors import ConnectionFailed

logger = logging.getLogger(__name__)


class SFTPConnection:
    """One authenticated SFTP session to the replication target.

    Usage:
        with SFTPConnection(target) as conn:
            with conn.create_or_truncate("/remote/file") as fh:
                fh.write(b"...")
    """

    def __init__(self, target: ReplicationTarget, timeout: float = 20):
        self._target = target
        self._timeout = timeout
        self._ssh: paramiko.SSHClient | None = None
        self._sftp: paramiko.SFTPClient | None = None

    # ---- lifecycle ----

    def open(self) -> SFTPConnection:
        """Dial, authenticate, verify the host key and start SFTP."""
        t = self._target
        if not os.path.isfile(t.key_path):
            raise ConnectionFailed(f"unable to read private key: {t.key_path}")

        client = paramiko.SSHClient()
        try:
            client.load_host_keys(t.known_hosts_path)
        except OSError as exc:
            raise ConnectionFailed(
                f"could not load known hosts from {t.known_hosts_path}: {exc}"
            ) from exc
        client.set_missing_host_key_policy(paramiko.RejectPolicy())

        logger.info("Connecting to %s …", t.endpoint)
        try:
            client.connect(
                hostname=t.address,
                port=t.port,
                username=t.user,
                key_filename=t.key_path,
                look_for_keys=False,
                allow_agent=False,
                timeout=self._timeout,
                banner_timeout=self._timeout,
                auth_timeout=self._timeout,
            )
        except paramiko.BadHostKeyException as exc:
            client.close()
            raise ConnectionFailed(f"host key mismatch for {t.address}: {exc}") from exc
        except paramiko.AuthenticationException as exc:
            client.close()
            raise ConnectionFailed(
                f"authentication as {t.user} failed: {exc}. Ensure you have "
                f"copied your public key over to the server."
            ) from exc
        except (paramiko.SSHException, paramiko.SFTPError, OSError) as exc:
            client.close()
            raise ConnectionFailed(f"unable to connect to {t.endpoint}: {exc}") from exc
        logger.info("SSH (transport layer) communication channel opened.")

        try:
            sftp = client.open_sftp()
        except (paramiko.SSHException, paramiko.SFTPError, OSError) as exc:
            client.close()
            raise ConnectionFailed(
                f"failed to apply SFTP protocol layer to SSH connection: {exc}"
            ) from exc

        self._ssh = client
        self._sftp = sftp
        logger.info("SFTP session established.")
        return self

    def close(self) -> None:
        """Close the SFTP session and then the SSH transport.  Idempotent."""
        sftp, ssh = self._sftp, self._ssh
        self._sftp = None
        self._ssh = None
        if sftp is not None:
            sftp.close()
        if ssh is not None:
            ssh.close()
            logger.info("SSH connection closed.")

    def __enter__(self) -> SFTPConnection:
        return self.open()

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ---- remote file ops ----

    def _client(self) -> paramiko.SFTPClient:
        if self._sftp is None:
            raise ConnectionFailed("SFTP session is not open")
        return self._sftp

    def create_or_truncate(self, remote_path: str) -> IO[bytes]:
        """Open *remote_path* for writing, creating or truncating it."""
        return self._client().open(remote_path, "wb")

    def remote_size(self, remote_path: str) -> int:
        """Return the size in bytes of *remote_path*."""
        return self._client().stat(remote_path).st_size
