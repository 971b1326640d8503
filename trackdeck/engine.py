"""
Search, playlist scrape and audio download using yt-dlp.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yt_dlp

from trackdeck.exceptions import FetchError
from trackdeck.models import WATCH_URL, Song

logger = logging.getLogger(__name__)

DEFAULT_PLAYLIST_TITLE = "YouTube Playlist"
PLAYLIST_URL_MARKERS = ("youtube.com/playlist?list=", "youtu.be/playlist?list=")


def validate_playlist_url(url: Optional[str]) -> bool:
    """Check that a URL points at a YouTube playlist."""
    if not url:
        return False
    return any(marker in url for marker in PLAYLIST_URL_MARKERS)


class YtDlpLogger:
    """Routes yt-dlp output into the logging module."""

    def __init__(self, name: str = "trackdeck.yt_dlp"):
        self._logger = logging.getLogger(name)

    def debug(self, msg: str) -> None:
        self._logger.debug(msg)

    def info(self, msg: str) -> None:
        self._logger.debug(msg)

    def warning(self, msg: str) -> None:
        self._logger.warning(msg)

    def error(self, msg: str) -> None:
        self._logger.error(msg)


def _entry_to_song(entry: Dict[str, Any]) -> Optional[Song]:
    video_id = entry.get("id") or ""
    if not video_id:
        return None
    try:
        duration = int(entry.get("duration") or 0)
    except (TypeError, ValueError):
        duration = 0
    return Song(title=entry.get("title") or "", video_id=video_id, duration=duration)


class YtDlpEngine:
    """Search and fetch engine backed by yt-dlp."""

    def __init__(self, audio_format: str = "mp3", search_results: int = 50):
        """
        Initialize with format settings.

        Args:
            audio_format: Output audio format (mp3, m4a, opus, flac)
            search_results: Default number of search results
        """
        self.audio_format = audio_format
        self.search_results = search_results
        self.ytdl_opts = {
            "quiet": True,
            "no_warnings": True,
            "encoding": "UTF-8",
            "logger": YtDlpLogger(),
        }

    def search(self, query: str, limit: Optional[int] = None) -> List[Song]:
        """
        Search YouTube for songs.

        Args:
            query: Free-text search query
            limit: Maximum number of results (default: search_results)

        Returns:
            List of songs (empty for a blank query)

        Raises:
            FetchError: If the search fails
        """
        query = (query or "").strip()
        if not query:
            return []

        limit = limit or self.search_results
        ytdl_opts = {**self.ytdl_opts, "extract_flat": True}
        logger.debug(f"Searching: {query!r} (limit {limit})")

        try:
            with yt_dlp.YoutubeDL(ytdl_opts) as ydl:
                info = ydl.extract_info(f"ytsearch{limit}:{query}", download=False)
        except Exception as e:
            raise FetchError(f"Search failed for {query!r}: {e}") from e

        songs = []
        for entry in (info or {}).get("entries") or []:
            song = _entry_to_song(entry or {})
            # Search results with unusual ids are channels or playlists
            if song and 5 <= len(song.video_id) <= 20:
                songs.append(song)
            if len(songs) >= limit:
                break

        logger.info(f"Found {len(songs)} results for {query!r}")
        return songs

    def fetch_playlist(self, url: str, limit: int = 500) -> Tuple[str, List[Song]]:
        """
        Scrape a playlist's title and songs.

        Args:
            url: Playlist URL
            limit: Maximum number of songs

        Returns:
            Tuple of (playlist title, songs)

        Raises:
            FetchError: If the playlist cannot be read
        """
        ytdl_opts = {**self.ytdl_opts, "extract_flat": True}
        logger.info(f"Fetching playlist: {url}")

        try:
            with yt_dlp.YoutubeDL(ytdl_opts) as ydl:
                info = ydl.extract_info(url, download=False)
        except Exception as e:
            raise FetchError(f"Failed to fetch playlist {url}: {e}") from e

        if not info:
            raise FetchError(f"No playlist data for {url}")

        title = info.get("title") or DEFAULT_PLAYLIST_TITLE
        songs = []
        for entry in info.get("entries") or []:
            song = _entry_to_song(entry or {})
            if song:
                songs.append(song)
            if len(songs) >= limit:
                break

        logger.info(f"Fetched {len(songs)} songs from playlist '{title}'")
        return title, songs

    def download(self, video_id: str, dest_path: Path) -> bool:
        """
        Download a video's audio track to ``dest_path``.

        Args:
            video_id: Video identifier
            dest_path: Final file path, including the audio extension

        Returns:
            True if the file exists after the download
        """
        dest_path.parent.mkdir(parents=True, exist_ok=True)

        # yt-dlp substitutes the extension after audio extraction
        template = str(dest_path.with_suffix("")).replace("%", "%%") + ".%(ext)s"
        ytdl_opts = {
            **self.ytdl_opts,
            "format": "bestaudio/best",
            "noplaylist": True,
            "outtmpl": template,
            "postprocessors": [
                {
                    "key": "FFmpegExtractAudio",
                    "preferredcodec": self.audio_format,
                }
            ],
        }

        try:
            with yt_dlp.YoutubeDL(ytdl_opts) as ydl:
                retcode = ydl.download([WATCH_URL.format(video_id=video_id)])
        except Exception as e:
            logger.error(f"yt-dlp failed for {video_id}: {e}")
            return False

        if retcode:
            logger.warning(f"yt-dlp exited with status {retcode} for {video_id}")
            return False
        return dest_path.exists()
