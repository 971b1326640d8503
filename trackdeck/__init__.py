"""
Core modules for the trackdeck music player.
"""

from trackdeck.app import Player
from trackdeck.config import LibraryConfig, PlayerSettings
from trackdeck.documents import DocumentStore
from trackdeck.download_queue import DownloadQueue
from trackdeck.engine import YtDlpEngine
from trackdeck.exceptions import (
    ConfigError,
    DocumentError,
    FetchError,
    MetadataError,
    PlaybackError,
    PlaylistError,
    PlaylistExistsError,
    TrackdeckError,
)
from trackdeck.library import LibraryModel
from trackdeck.models import (
    DownloadStatus,
    DownloadTask,
    EnqueueResult,
    Playlist,
    Song,
)
from trackdeck.paths import LibraryPaths

__all__ = [
    "Player",
    "LibraryConfig",
    "PlayerSettings",
    "LibraryPaths",
    "DocumentStore",
    "DownloadQueue",
    "LibraryModel",
    "YtDlpEngine",
    "Song",
    "Playlist",
    "DownloadTask",
    "DownloadStatus",
    "EnqueueResult",
    "TrackdeckError",
    "ConfigError",
    "DocumentError",
    "PlaylistError",
    "PlaylistExistsError",
    "FetchError",
    "PlaybackError",
    "MetadataError",
]
