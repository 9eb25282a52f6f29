"""Configuration management for File Replicator.

Settings live in a JSON file (``replicator.conf`` in the working
directory).  On first run the file does not exist yet: a default one is
written and the operator is asked to edit it before running again.
"""

import json
import logging
import os
import posixpath
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from replicator.errors import ConfigCreated, ConfigError

logger = logging.getLogger(__name__)

CONFIG_FILE = "replicator.conf"

_HOME = str(Path.home())

DEFAULT_CONFIG: dict[str, Any] = {
    "Local_User": _HOME,  # home directory holding .ssh/id_rsa and .ssh/known_hosts
    "Min_ms_Update_Period": 10,  # collapses an event storm into one update
    "Source_Filepath": _HOME,
    "Source_Filename": "myTestFile.txt",
    "Target_Filepath": "/home/pi/Documents/",
    "Target_Filename": "",  # blank = same name as the source
    "Target_IP_Address": "192.168.1.126",
    "Target_Address_Port": 22,
    "Target_Username": "pi",
    # ---- logging ----
    "Log_Level": "INFO",
    "Max_Log_Size_MB": 10,
    "Log_Backup_Count": 3,
    # ---- transfers ----
    "Verify_Transfers": True,  # compare remote size with bytes sent
    # ---- notifications ----
    "Play_Sound_On_Error": True,
}

# Expected JSON type of every key; bool is checked separately because
# it is a subclass of int.
_SCHEMA: dict[str, type] = {
    key: type(value) for key, value in DEFAULT_CONFIG.items()
}


def get_config_path() -> Path:
    """Return the path to the configuration file."""
    return Path.cwd() / CONFIG_FILE


@dataclass(frozen=True)
class ReplicationTarget:
    """Where to copy from and to, resolved once at startup."""

    local_user: str
    source_dir: str
    source_name: str
    dest_dir: str
    dest_name: str
    min_interval_ms: int
    address: str
    port: int
    user: str

    @property
    def source_path(self) -> str:
        return os.path.join(self.source_dir, self.source_name)

    @property
    def destination_path(self) -> str:
        # Remote side is always POSIX regardless of the local OS
        return posixpath.join(self.dest_dir, self.dest_name)

    @property
    def key_path(self) -> str:
        return os.path.join(self.local_user, ".ssh", "id_rsa")

    @property
    def known_hosts_path(self) -> str:
        return os.path.join(self.local_user, ".ssh", "known_hosts")

    @property
    def endpoint(self) -> str:
        """``user@address:port`` for log lines."""
        return f"{self.user}@{self.address}:{self.port}"


class Config:
    """Configuration loaded from a JSON file and merged over defaults."""

    def __init__(self, path: Path | None = None):
        """Load config from *path*, falling back to ``./replicator.conf``.

        Raises ``ConfigCreated`` after writing a default file when none
        exists, and ``ConfigError`` when the file cannot be used.
        """
        self._path = Path(path) if path is not None else get_config_path()
        self._data: dict[str, Any] = dict(DEFAULT_CONFIG)
        self.load()

    # ---- persistence ----

    def load(self) -> None:
        """Load configuration from disk, applying defaults for missing keys."""
        if not self._path.exists():
            logger.warning("Config file does not exist! Creating new file...")
            self._data = dict(DEFAULT_CONFIG)
            self.save()
            raise ConfigCreated(
                f"New file successfully created. Edit {self._path} to "
                f"include source and target file, then run again."
            )

        try:
            with open(self._path, encoding="utf-8") as fh:
                stored = json.load(fh)
        except OSError as exc:
            raise ConfigError(
                f"Failed to load configuration file ({self._path}): {exc}. "
                f"Try deleting the file and restarting to create a new "
                f"default file."
            ) from exc
        except json.JSONDecodeError as exc:
            raise ConfigError(
                f"Failed to load parameters from {self._path}: {exc}. "
                f"Confirm the JSON is not corrupt, or delete the file and "
                f"restart to create a new default file."
            ) from exc

        if not isinstance(stored, dict):
            raise ConfigError(
                f"{self._path} must contain a JSON object, "
                f"not {type(stored).__name__}."
            )
        self._validate(stored)
        # Merge stored values over defaults so new keys get defaults
        self._data = {**DEFAULT_CONFIG, **stored}
        logger.info("Configuration loaded from %s", self._path)

    def save(self) -> None:
        """Persist the current configuration to disk."""
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._path, "w", encoding="utf-8") as fh:
                json.dump(self._data, fh, indent=2)
        except OSError as exc:
            raise ConfigError(
                f"Failed to create config file {self._path}: {exc}. "
                f"Confirm the volume is writable."
            ) from exc
        logger.info("Configuration saved to %s", self._path)

    def _validate(self, stored: dict[str, Any]) -> None:
        for key, value in stored.items():
            expected = _SCHEMA.get(key)
            if expected is None:
                logger.warning("Ignoring unknown config key %r", key)
                continue
            if expected is bool:
                ok = isinstance(value, bool)
            else:
                ok = isinstance(value, expected) and not isinstance(value, bool)
            if not ok:
                raise ConfigError(
                    f"{self._path}: {key} must be of type {expected.__name__}, "
                    f"got {value!r}."
                )
        if stored.get("Min_ms_Update_Period", 0) < 0:
            raise ConfigError(f"{self._path}: Min_ms_Update_Period must be >= 0.")

    # ---- accessors ----

    @property
    def log_level(self) -> str:
        return self._data["Log_Level"]

    @property
    def max_log_size_mb(self) -> int:
        """Return the maximum log file size in MB before rotation."""
        return max(1, int(self._data["Max_Log_Size_MB"]))

    @property
    def log_backup_count(self) -> int:
        """Return the number of rotated log backups to keep."""
        return max(0, int(self._data["Log_Backup_Count"]))

    @property
    def verify_transfers(self) -> bool:
        return bool(self._data["Verify_Transfers"])

    @property
    def play_sound_on_error(self) -> bool:
        return bool(self._data["Play_Sound_On_Error"])

    def target(self) -> ReplicationTarget:
        """Build the immutable replication target from the loaded values."""
        d = self._data
        dest_name = d["Target_Filename"]
        if not dest_name:
            logger.info(
                "Target filename is not set in config file. Target file will "
                "be saved with the same name as source (%s)",
                posixpath.join(d["Target_Filepath"], d["Source_Filename"]),
            )
            dest_name = d["Source_Filename"]
        return ReplicationTarget(
            local_user=d["Local_User"],
            source_dir=d["Source_Filepath"],
            source_name=d["Source_Filename"],
            dest_dir=d["Target_Filepath"],
            dest_name=dest_name,
            min_interval_ms=d["Min_ms_Update_Period"],
            address=d["Target_IP_Address"],
            port=d["Target_Address_Port"],
            user=d["Target_Username"],
        )
