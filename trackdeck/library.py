"""
Playlist library.

Playlists are owned by the interactive thread. Each one is backed by its own
document, listed in the playlist index, and has a download directory named
after it under the download root.
"""

import logging
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from trackdeck.documents import DocumentStore
from trackdeck.download_queue import DownloadQueue
from trackdeck.exceptions import PlaylistError, PlaylistExistsError
from trackdeck.models import EnqueueResult, Playlist, Song
from trackdeck.probe import delete_directory_recursive, has_local_copy

logger = logging.getLogger(__name__)

DEFAULT_SLUG = "playlist"
DEFAULT_REMOTE_NAME = "YouTube Playlist"
_PATH_SEPARATORS = ("/", "\\")


def playlist_slug(name: str) -> str:
    """
    Derive a playlist document filename from its name.

    Keeps lowercased ASCII letters, digits, ``-`` and ``_``; spaces become
    underscores and everything else is dropped.

    Args:
        name: Playlist name

    Returns:
        Filename ending in ``.json``
    """
    chars = []
    for c in name:
        if c.isascii() and (c.isalnum() or c in "-_"):
            chars.append(c.lower())
        elif c == " ":
            chars.append("_")
    return ("".join(chars) or DEFAULT_SLUG) + ".json"


def check_playlist_name(name: str) -> None:
    """
    Reject names that cannot serve as a single download directory.

    Raises:
        PlaylistError: If the name is empty, "." or "..", or holds a path separator
    """
    if not name:
        raise PlaylistError("Playlist name cannot be empty")
    if name in (".", "..") or any(sep in name for sep in _PATH_SEPARATORS):
        raise PlaylistError(f"Invalid playlist name: {name}")


def remote_playlist_name(title: str) -> str:
    """Local name for an imported playlist, with path separators replaced."""
    name = (title or "").strip()
    for sep in _PATH_SEPARATORS:
        name = name.replace(sep, "-")
    if name in ("", ".", ".."):
        return DEFAULT_REMOTE_NAME
    return name


class LibraryModel:
    """In-memory playlists with write-through persistence."""

    def __init__(
        self,
        store: DocumentStore,
        queue: DownloadQueue,
        max_playlists: int = 50,
        max_items: int = 500,
    ):
        """
        Initialize the library.

        Args:
            store: Document store for the index and playlist files
            queue: Download queue that playlist additions feed
            max_playlists: Maximum number of playlists
            max_items: Maximum number of songs per playlist
        """
        self.store = store
        self.queue = queue
        self.max_playlists = max_playlists
        self.max_items = max_items
        self.playlists: List[Playlist] = []

    def __len__(self) -> int:
        return len(self.playlists)

    def load(self) -> int:
        """
        Load playlist headers from the index. Songs are loaded lazily.

        Returns:
            Number of playlists
        """
        self.store.ensure_playlist_index()
        self.playlists = self.store.load_playlist_index(self.max_playlists)
        logger.debug(f"Loaded {len(self.playlists)} playlists")
        return len(self.playlists)

    def find_playlist(self, name: str) -> Optional[int]:
        """Index of the playlist with this name (case-insensitive), or None."""
        wanted = name.casefold()
        for idx, playlist in enumerate(self.playlists):
            if playlist.name.casefold() == wanted:
                return idx
        return None

    def get_playlist(self, idx: int) -> Playlist:
        """
        Get a playlist with its songs loaded.

        Raises:
            PlaylistError: If the index is out of range
        """
        if not 0 <= idx < len(self.playlists):
            raise PlaylistError(f"No playlist at position {idx}")
        playlist = self.playlists[idx]
        if not playlist.loaded:
            self.store.load_playlist_songs(playlist, self.max_items)
        return playlist

    # ------------------------------------------------------------------
    # Playlist CRUD
    # ------------------------------------------------------------------

    def create_playlist(self, name: str, is_remote: bool = False) -> int:
        """
        Create an empty playlist and persist it.

        Args:
            name: Playlist name, unique ignoring case
            is_remote: True for streaming playlists imported from YouTube

        Returns:
            Index of the new playlist

        Raises:
            PlaylistExistsError: If a playlist with the same name exists
            PlaylistError: If the name is empty, contains a path separator,
                is "." or "..", or the library is full
        """
        name = (name or "").strip()
        check_playlist_name(name)
        if self.find_playlist(name) is not None:
            raise PlaylistExistsError(f"Playlist already exists: {name}")
        if len(self.playlists) >= self.max_playlists:
            raise PlaylistError(f"Playlist limit reached ({self.max_playlists})")

        playlist = Playlist(
            name=name,
            filename=self._unique_filename(playlist_slug(name)),
            is_remote=is_remote,
            loaded=True,
        )
        self.playlists.append(playlist)
        self.store.save_playlist_index(self.playlists)
        self.store.save_playlist(playlist)

        logger.info(f"Created playlist '{name}' ({playlist.filename})")
        return len(self.playlists) - 1

    def delete_playlist(self, idx: int) -> bool:
        """
        Delete a playlist, its document and its download directory.

        Directory removal is best-effort; failures are logged.

        Returns:
            False if the index is out of range
        """
        if not 0 <= idx < len(self.playlists):
            return False

        playlist = self.playlists[idx]
        self.store.delete_playlist_file(playlist)

        download_dir = self.queue.destination_dir(playlist.name)
        if not self._inside_download_root(download_dir):
            logger.warning(f"Not removing {download_dir}: outside the download root")
        elif download_dir.is_dir() and not delete_directory_recursive(download_dir):
            logger.warning(f"Could not fully remove download directory {download_dir}")

        del self.playlists[idx]
        self.store.save_playlist_index(self.playlists)

        logger.info(f"Deleted playlist '{playlist.name}'")
        return True

    def add_song(self, idx: int, song: Song) -> bool:
        """
        Append a song to a playlist and queue it for download.

        Args:
            idx: Playlist index
            song: Song to add

        Returns:
            False if the playlist is full, already holds the song, or the
            index is invalid
        """
        if not 0 <= idx < len(self.playlists) or not song.video_id:
            return False

        playlist = self.get_playlist(idx)
        if len(playlist.songs) >= self.max_items:
            logger.warning(f"Playlist '{playlist.name}' is full ({self.max_items} songs)")
            return False
        if playlist.has_song(song.video_id):
            return False

        playlist.songs.append(
            Song(title=song.title or "Unknown", video_id=song.video_id, duration=song.duration)
        )
        self.store.save_playlist(playlist)

        # Playlist membership implies a download request
        self.queue.enqueue(song.video_id, song.title, playlist.name)
        return True

    def remove_song(self, idx: int, song_idx: int) -> bool:
        """Remove a song from a playlist. Downloaded files are kept."""
        if not 0 <= idx < len(self.playlists):
            return False

        playlist = self.get_playlist(idx)
        if not 0 <= song_idx < len(playlist.songs):
            return False

        removed = playlist.songs.pop(song_idx)
        self.store.save_playlist(playlist)
        logger.debug(f"Removed '{removed.title}' from '{playlist.name}'")
        return True

    # ------------------------------------------------------------------
    # Bulk operations
    # ------------------------------------------------------------------

    def queue_playlist(self, idx: int) -> Tuple[int, int]:
        """
        Queue every song of a playlist for download.

        Returns:
            Tuple of (added, skipped) where skipped counts songs already
            downloaded or already queued
        """
        playlist = self.get_playlist(idx)
        added = skipped = 0
        for song in playlist.songs:
            result = self.queue.enqueue(song.video_id, song.title, playlist.name)
            if result == EnqueueResult.ADDED:
                added += 1
            elif result in (EnqueueResult.ALREADY_PRESENT, EnqueueResult.ALREADY_QUEUED):
                skipped += 1
        return added, skipped

    def import_remote_playlist(
        self,
        title: str,
        songs: Sequence[Song],
        name: Optional[str] = None,
        download: bool = True,
    ) -> int:
        """
        Create a streaming playlist from songs scraped from a remote playlist.

        Args:
            title: Remote playlist title (used when no name is given)
            songs: Scraped songs
            name: Optional local name
            download: Also queue every song for download

        Returns:
            Index of the new playlist

        Raises:
            PlaylistError: If the playlist cannot be created
        """
        name = (name or "").strip() or remote_playlist_name(title)
        idx = self.create_playlist(name, is_remote=True)
        playlist = self.playlists[idx]
        for song in songs:
            if len(playlist.songs) >= self.max_items:
                logger.warning(f"Truncating import of '{playlist.name}' at {self.max_items} songs")
                break
            if song.video_id and not playlist.has_song(song.video_id):
                playlist.songs.append(song)
        self.store.save_playlist(playlist)
        logger.info(f"Imported {len(playlist.songs)} songs into '{playlist.name}'")

        if download:
            self.queue_playlist(idx)
        return idx

    # ------------------------------------------------------------------
    # Playback routing
    # ------------------------------------------------------------------

    def local_path_for_song(self, idx: int, song_idx: int) -> Optional[Path]:
        """Path of the downloaded copy of a playlist song, if any."""
        playlist = self.get_playlist(idx)
        song = playlist.songs[song_idx]
        return has_local_copy(
            self.queue.config.download_root,
            playlist.name,
            song.video_id,
            self.queue.audio_format,
        )

    def resolve_playable(self, idx: int, song_idx: int) -> str:
        """
        Choose what to hand to the player for a playlist song.

        Remote playlists always stream. Local playlists play the downloaded
        file when there is one and stream otherwise.
        """
        playlist = self.get_playlist(idx)
        song = playlist.songs[song_idx]
        if playlist.is_remote:
            return song.url
        local = self.local_path_for_song(idx, song_idx)
        return str(local) if local else song.url

    def _unique_filename(self, filename: str) -> str:
        used = {playlist.filename for playlist in self.playlists}
        if filename not in used and not self.store.paths.playlist_file(filename).exists():
            return filename

        sequence = len(self.playlists)
        while True:
            candidate = f"{sequence}_{filename}"
            if (
                candidate not in used
                and not self.store.paths.playlist_file(candidate).exists()
            ):
                return candidate
            sequence += 1

    def _inside_download_root(self, path: Path) -> bool:
        root = self.queue.destination_dir(None).resolve()
        return root in path.resolve().parents
