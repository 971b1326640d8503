"""
Filesystem helpers for downloaded audio.

Downloaded files are named ``<sanitized-title>_[<video id>].<ext>``; the
bracketed id marker is what identifies an existing local copy.
"""

import logging
import os
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_BASENAME = "download"
MAX_TITLE_BYTES = 180
_SANITIZE_BUFFER = 255
_DROPPED = set('/\\:*?"<>|')
_SEPARATORS = set(" '`")


def sanitize_track_filename(title: Optional[str], video_id: str, ext: str = "mp3") -> str:
    """
    Build the download filename for a title and video id.

    Path-hostile characters are dropped, runs of spaces and quotes become a
    single underscore, trailing underscores are trimmed and the title part is
    truncated to 180 UTF-8 bytes so the whole name fits the filesystem
    name limit.

    Args:
        title: Song title (may be empty)
        video_id: Video identifier
        ext: File extension without dot

    Returns:
        Filename such as ``Test_Song_[abc123].mp3``, or "" without a video id
    """
    if not video_id:
        return ""

    chars = []
    for c in title or "":
        if len(chars) >= _SANITIZE_BUFFER:
            break
        if c in _DROPPED:
            continue
        if c in _SEPARATORS:
            if chars and chars[-1] != "_":
                chars.append("_")
        elif (c.isascii() and c.isalnum()) or c in "-_." or ord(c) > 127:
            chars.append(c)

    while chars and chars[-1] == "_":
        chars.pop()

    name = "".join(chars) or DEFAULT_BASENAME
    # Bounded in UTF-8 bytes; a cut multi-byte character is dropped
    name = name.encode("utf-8")[:MAX_TITLE_BYTES].decode("utf-8", "ignore")
    return f"{name}_[{video_id}].{ext}"


def id_marker(video_id: str, ext: str = "mp3") -> str:
    """Filename fragment identifying a download of ``video_id``."""
    return f"[{video_id}].{ext}"


def destination_dir(download_root: Path, playlist: Optional[str]) -> Path:
    """Directory holding downloads for a playlist ("" or None = root)."""
    return download_root / playlist if playlist else download_root


def find_local_copy(directory: Path, video_id: str, ext: str = "mp3") -> Optional[Path]:
    """
    Scan a directory for a file tagged with ``video_id``.

    Args:
        directory: Directory to scan (missing directories yield None)
        video_id: Video identifier
        ext: File extension without dot

    Returns:
        Path of the first matching file, or None
    """
    if not video_id:
        return None

    marker = id_marker(video_id, ext)
    try:
        names = sorted(entry.name for entry in os.scandir(directory))
    except OSError:
        return None

    for name in names:
        if marker in name:
            return directory / name
    return None


def has_local_copy(
    download_root: Path, playlist: Optional[str], video_id: str, ext: str = "mp3"
) -> Optional[Path]:
    """
    Look up a downloaded copy of a song.

    Args:
        download_root: Configured download root
        playlist: Owning playlist name, or None/"" for the root
        video_id: Video identifier
        ext: File extension without dot

    Returns:
        Path to the local file, or None if it has not been downloaded
    """
    return find_local_copy(destination_dir(download_root, playlist), video_id, ext)


def delete_directory_recursive(path: Path) -> bool:
    """
    Delete a directory tree, continuing past individual failures.

    Symlinks are removed, never followed.

    Args:
        path: Directory to delete

    Returns:
        True only if every entry and the directory itself were removed
    """
    try:
        entries = list(os.scandir(path))
    except OSError as e:
        logger.warning(f"Cannot open directory {path}: {e}")
        return False

    success = True
    for entry in entries:
        entry_path = Path(entry.path)
        try:
            is_dir = entry.is_dir(follow_symlinks=False)
        except OSError:
            is_dir = False

        if is_dir:
            if not delete_directory_recursive(entry_path):
                success = False
            continue

        try:
            entry_path.unlink()
        except OSError as e:
            logger.warning(f"Failed to delete {entry_path}: {e}")
            success = False

    try:
        path.rmdir()
    except OSError as e:
        logger.warning(f"Failed to remove directory {path}: {e}")
        success = False

    return success
