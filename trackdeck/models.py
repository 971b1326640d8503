"""
Data models for trackdeck.

Songs and playlists are owned by the interactive thread. Download tasks are
shared with the download worker and are only mutated under the queue lock.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

WATCH_URL = "https://www.youtube.com/watch?v={video_id}"


@dataclass
class Song:
    """Song metadata model."""

    title: str
    video_id: str
    duration: int = 0  # seconds, 0 = unknown

    @property
    def url(self) -> str:
        """Playable (streaming) URL derived from the video id."""
        return WATCH_URL.format(video_id=self.video_id)


@dataclass
class Playlist:
    """A named, ordered collection of songs backed by one document."""

    name: str
    filename: str
    songs: List[Song] = field(default_factory=list)
    is_remote: bool = False
    loaded: bool = False  # songs are read from disk lazily

    @property
    def kind(self) -> str:
        """Type token written to the playlist document."""
        return "youtube" if self.is_remote else "local"

    def has_song(self, video_id: str) -> bool:
        return any(song.video_id == video_id for song in self.songs)


class DownloadStatus(str, Enum):
    """Status of a download task."""

    PENDING = "pending"  # Waiting for the worker
    ACTIVE = "active"  # Claimed by the worker
    COMPLETED = "completed"  # Output file produced
    FAILED = "failed"  # Fetch failed, never retried automatically

    @property
    def is_terminal(self) -> bool:
        return self in (DownloadStatus.COMPLETED, DownloadStatus.FAILED)


class EnqueueResult(str, Enum):
    """Outcome of a download queue enqueue request."""

    ADDED = "added"
    ALREADY_PRESENT = "already_present"  # A local copy exists
    ALREADY_QUEUED = "already_queued"  # Same id is pending or active
    REJECTED = "rejected"  # Empty id or queue at capacity


@dataclass
class DownloadTask:
    """
    A single requested fetch of one video into a destination file.

    Only ``status`` changes after creation.
    """

    video_id: str
    title: str
    filename: str
    playlist: str = ""  # "" = download root
    status: DownloadStatus = DownloadStatus.PENDING

    def to_dict(self) -> Dict[str, str]:
        """
        Convert task to the flat record stored in the queue document.

        Returns:
            Dictionary of string fields
        """
        return {
            "video_id": self.video_id,
            "title": self.title,
            "filename": self.filename,
            "playlist": self.playlist,
            "status": self.status.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DownloadTask":
        """
        Create task from a queue document record.

        Anything other than a ``failed`` status is restored as pending.

        Args:
            data: Record read from the queue document

        Returns:
            DownloadTask instance

        Raises:
            ValueError: If the record has no video id
        """
        video_id = data.get("video_id") or ""
        if not video_id:
            raise ValueError("Missing required field: video_id")

        status = (
            DownloadStatus.FAILED
            if data.get("status") == DownloadStatus.FAILED.value
            else DownloadStatus.PENDING
        )
        return cls(
            video_id=video_id,
            title=data.get("title") or "",
            filename=data.get("filename") or "",
            playlist=data.get("playlist") or "",
            status=status,
        )


@dataclass
class PlaybackEvents:
    """Events collected from one poll of the playback engine."""

    eof: bool = False
    volume: Optional[float] = None
