"""
Cross-platform utilities for File Replicator.

Centralises OS detection so the rest of the package can ask for
the log location or an alert sound without scattering
``sys.platform`` checks around.

Supported platforms:
  - Linux
  - macOS 12+
  - Windows 10/11
"""

from __future__ import annotations

import logging
import os
import subprocess
import sys
from pathlib import Path

logger = logging.getLogger(__name__)

# ---- platform flags ----------------------------------------------------

IS_WINDOWS: bool = sys.platform == "win32"
IS_MACOS: bool = sys.platform == "darwin"

_APP_DIR_NAME = "FileReplicator"

# ---- directories -------------------------------------------------------


def get_config_dir() -> Path:
    """
    Return the application data directory, created if needed.

    - Windows : ``%APPDATA%\\FileReplicator``
    - macOS   : ``~/Library/Application Support/FileReplicator``
    - Linux   : ``$XDG_CONFIG_HOME/FileReplicator`` (default ``~/.config``)
    """
    if IS_WINDOWS:
        base = os.environ.get("APPDATA", str(Path.home()))
    elif IS_MACOS:
        base = str(Path.home() / "Library" / "Application Support")
    else:
        base = os.environ.get("XDG_CONFIG_HOME", str(Path.home() / ".config"))

    config_dir = Path(base) / _APP_DIR_NAME
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


def get_log_path() -> Path:
    """Return the path to the log file (inside the app data directory)."""
    return get_config_dir() / "file_replicator.log"


# ---- alerts -------------------------------------------------------------


def play_error_sound() -> None:
    """Play the OS error/alert sound.  Silent on unsupported platforms."""
    try:
        if IS_WINDOWS:
            import winsound  # type: ignore[import-untyped]
            winsound.MessageBeep(winsound.MB_ICONHAND)
        elif IS_MACOS:
            subprocess.Popen(
                ["afplay", "/System/Library/Sounds/Basso.aiff"],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        else:
            # Terminal bell is the closest thing Linux has to a system sound
            sys.stderr.write("\a")
            sys.stderr.flush()
    except Exception:
        logger.debug("Could not play error sound.", exc_info=True)
