"""
Tag embedding for downloaded audio using mutagen.
"""

import logging
from pathlib import Path

from mutagen import File
from mutagen.id3 import ID3, ID3NoHeaderError, TIT2, WOAS

from trackdeck.exceptions import MetadataError
from trackdeck.models import WATCH_URL

logger = logging.getLogger(__name__)


class TagWriter:
    """Writes the song title and source URL into downloaded files."""

    def embed(self, file_path: Path, title: str, video_id: str) -> None:
        """
        Embed title and source URL tags into an audio file.

        Args:
            file_path: Path to audio file
            title: Song title
            video_id: Video identifier (stored as the source URL)

        Raises:
            MetadataError: If the file is missing or cannot be tagged
        """
        if not file_path.exists():
            raise MetadataError(f"File not found: {file_path}")

        source_url = WATCH_URL.format(video_id=video_id)
        file_ext = file_path.suffix[1:].lower()

        try:
            if file_ext == "mp3":
                self._embed_mp3(file_path, title, source_url)
            elif file_ext in ["flac", "ogg", "opus"]:
                self._embed_vorbis(file_path, title, source_url)
            elif file_ext == "m4a":
                self._embed_m4a(file_path, title)
            else:
                logger.debug(f"Unsupported format for tags: {file_ext}")
        except MetadataError:
            raise
        except Exception as e:
            raise MetadataError(f"Failed to embed tags: {e}") from e

    def _embed_mp3(self, file_path: Path, title: str, source_url: str) -> None:
        try:
            audio_file = ID3(str(file_path))
        except ID3NoHeaderError:
            audio_file = ID3()

        audio_file["TIT2"] = TIT2(encoding=3, text=title)
        audio_file["WOAS"] = WOAS(url=source_url)

        # Save with filename - required when ID3() was created without filename
        audio_file.save(str(file_path), v2_version=3)

    def _embed_vorbis(self, file_path: Path, title: str, source_url: str) -> None:
        audio_file = File(str(file_path))
        if audio_file is None:
            raise MetadataError(f"Unable to load file: {file_path}")

        audio_file["title"] = title
        audio_file["woas"] = source_url
        audio_file.save()

    def _embed_m4a(self, file_path: Path, title: str) -> None:
        audio_file = File(str(file_path))
        if audio_file is None:
            raise MetadataError(f"Unable to load file: {file_path}")

        audio_file["\xa9nam"] = title
        audio_file.save()
