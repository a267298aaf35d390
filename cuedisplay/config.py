"""
Listener configuration and last-used port persistence.

The port is remembered in a one-line text file under the user's config
directory so the display comes back up on the same port next time.
"""

import os
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .constants import ListenerDefaults


logger = logging.getLogger(__name__)

APP_DIR_NAME = "cue-display"
PORT_FILE_NAME = "port.txt"


@dataclass(frozen=True)
class ListenerConfig:
    """Network settings for the UDP listener."""
    host: str = ListenerDefaults.HOST
    port: int = ListenerDefaults.PORT
    buffer_size: int = ListenerDefaults.BUFFER_SIZE
    poll_interval: float = ListenerDefaults.POLL_INTERVAL_SECONDS

    def __post_init__(self):
        if not isinstance(self.port, int) or not 0 <= self.port <= 65535:
            raise ValueError(f"Port must be an integer in range 0-65535, got {self.port!r}")
        if self.buffer_size <= 0:
            raise ValueError(f"Buffer size must be positive, got {self.buffer_size}")
        if not 0 < self.poll_interval <= ListenerDefaults.MAX_POLL_INTERVAL_SECONDS:
            raise ValueError(
                f"Poll interval must be in (0, {ListenerDefaults.MAX_POLL_INTERVAL_SECONDS}], "
                f"got {self.poll_interval}"
            )


def config_dir() -> Path:
    """Per-user config directory ($XDG_CONFIG_HOME or ~/.config)."""
    base = os.environ.get("XDG_CONFIG_HOME")
    root = Path(base) if base else Path.home() / ".config"
    return root / APP_DIR_NAME


def port_file() -> Path:
    return config_dir() / PORT_FILE_NAME


def load_saved_port(path: Optional[Path] = None) -> Optional[int]:
    """
    Read the last-used port.

    Returns:
        The saved port, or None if the file is missing or does not hold a valid port
    """
    path = Path(path) if path else port_file()
    try:
        text = path.read_text(encoding="utf-8").strip()
    except FileNotFoundError:
        return None
    except OSError as e:
        logger.warning(f"Could not read saved port from {path}: {e}")
        return None

    try:
        port = int(text)
    except ValueError:
        logger.warning(f"Ignoring invalid saved port {text!r} in {path}")
        return None

    if not 0 < port <= 65535:
        logger.warning(f"Ignoring out-of-range saved port {port} in {path}")
        return None
    return port


def save_port(port: int, path: Optional[Path] = None) -> Path:
    """
    Remember the port for the next start.

    Returns:
        Path of the written file
    """
    path = Path(path) if path else port_file()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f"{port}\n", encoding="utf-8")
    logger.debug(f"Saved port {port} to {path}")
    return path
