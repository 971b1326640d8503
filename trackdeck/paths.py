"""
Filesystem locations used by trackdeck.

All library documents live under a per-user config root. Downloaded audio
lives under the configured download root, one subdirectory per playlist.
"""

import os
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

CONFIG_FILE = "config.json"
PLAYLISTS_INDEX = "playlists.json"
PLAYLISTS_DIR = "playlists"
DOWNLOAD_QUEUE_FILE = "download_queue.json"
SETTINGS_FILE = "settings.yaml"
LOG_FILE = "trackdeck.log"


def get_config_root() -> Path:
    """
    Get the config root directory from environment variable or default.

    Reads the TRACKDECK_HOME environment variable. If it is not set, defaults
    to ``~/.trackdeck``. Falls back to ``/tmp`` when no home directory can be
    determined.

    Returns:
        Path object pointing to the config root (not created)
    """
    custom = os.getenv("TRACKDECK_HOME")
    if custom:
        return Path(custom)

    home = os.getenv("HOME") or "/tmp"
    return Path(home) / ".trackdeck"


def default_download_path() -> str:
    """Default download root: ``~/Music/trackdeck``."""
    home = os.getenv("HOME") or "/tmp"
    return str(Path(home) / "Music" / "trackdeck")


@dataclass(frozen=True)
class LibraryPaths:
    """Resolved paths of every document kept under the config root."""

    root: Path

    @property
    def config_file(self) -> Path:
        return self.root / CONFIG_FILE

    @property
    def playlists_index(self) -> Path:
        return self.root / PLAYLISTS_INDEX

    @property
    def playlists_dir(self) -> Path:
        return self.root / PLAYLISTS_DIR

    @property
    def queue_file(self) -> Path:
        return self.root / DOWNLOAD_QUEUE_FILE

    @property
    def settings_file(self) -> Path:
        return self.root / SETTINGS_FILE

    @property
    def log_file(self) -> Path:
        return self.root / LOG_FILE

    def playlist_file(self, filename: str) -> Path:
        return self.playlists_dir / filename

    @classmethod
    def resolve(cls, root: Optional[Path] = None) -> "LibraryPaths":
        return cls(Path(root) if root else get_config_root())

    def ensure(self) -> None:
        """
        Create the config root and playlists directory if missing.

        Raises:
            OSError: If a directory cannot be created
        """
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            self.playlists_dir.mkdir(parents=True, exist_ok=True)
            logger.debug(f"Config root: {self.root}")
        except OSError as e:
            logger.error(f"Failed to create config directory {self.root}: {e}")
            raise


def get_log_path(paths: LibraryPaths) -> Path:
    """
    Get the log file path, checking that its directory is writable.

    Args:
        paths: Resolved library paths

    Returns:
        Path object pointing to the log file

    Raises:
        OSError: If the log directory is not writable
    """
    log_path = paths.log_file
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        test_file = log_path.parent / ".trackdeck_write_test"
        test_file.touch()
        test_file.unlink()
    except OSError as e:
        logger.error(f"Log directory {log_path.parent} is not writable: {e}")
        raise OSError(f"Cannot write to log directory {log_path.parent}: {e}") from e
    return log_path
