"""
Custom exceptions for trackdeck.
"""


class TrackdeckError(Exception):
    """Base exception for all trackdeck errors."""


class ConfigError(TrackdeckError):
    """Configuration errors."""


class DocumentError(TrackdeckError):
    """Corrupt, oversized or unwritable library documents."""


class PlaylistError(TrackdeckError):
    """Playlist creation and lookup failures."""


class PlaylistExistsError(PlaylistError):
    """A playlist with the same name (case-insensitive) already exists."""


class FetchError(TrackdeckError):
    """Search, playlist scrape and audio download failures."""


class PlaybackError(TrackdeckError):
    """Playback engine errors."""


class MetadataError(TrackdeckError):
    """Metadata embedding errors."""
