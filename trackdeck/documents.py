"""
Flat JSON-like library documents.

Every document trackdeck persists has the same restricted shape: one top-level
object whose values are either strings or a single array of flat objects with
string values. Nothing is nested deeper than that, and no numbers, booleans or
nulls are written. The encoder escapes only ``"``, ``\\``, newline, carriage
return and tab; any other control character is written verbatim, so a document
holding one is readable by ``decode_document`` but is not strict JSON.

Documents are always rewritten whole. A document that is missing is reported as
absent; one that is oversized or does not match the shape is rejected as a
whole and the caller falls back to its defaults.
"""

import logging
import os
from pathlib import Path
from typing import Dict, List, Optional, Union

from trackdeck.config import LibraryConfig
from trackdeck.exceptions import DocumentError
from trackdeck.models import DownloadStatus, DownloadTask, Playlist, Song
from trackdeck.paths import LibraryPaths

logger = logging.getLogger(__name__)

Record = Dict[str, str]
Document = Dict[str, Union[str, List[Record]]]

CONFIG_MAX_BYTES = 64 * 1024
DOCUMENT_MAX_BYTES = 1024 * 1024

_ESCAPES = {'"': '\\"', "\\": "\\\\", "\n": "\\n", "\r": "\\r", "\t": "\\t"}
_UNESCAPES = {"n": "\n", "r": "\r", "t": "\t"}
_WHITESPACE = " \t\r\n"


def escape_string(value: str) -> str:
    """Escape a string value for a document (five characters only)."""
    return "".join(_ESCAPES.get(c, c) for c in value)


def _quote(value: str) -> str:
    return f'"{escape_string(value)}"'


def encode_document(fields: Document) -> str:
    """
    Serialize a document deterministically.

    Field order follows the mapping order; records keep their key order.

    Args:
        fields: Top-level fields (strings or one list of flat records)

    Returns:
        Document text ending with a newline

    Raises:
        DocumentError: If a value is not a string or a list of flat records
    """
    lines = []
    members = list(fields.items())
    for position, (key, value) in enumerate(members):
        comma = "," if position < len(members) - 1 else ""
        if isinstance(value, str):
            lines.append(f"  {_quote(key)}: {_quote(value)}{comma}")
        elif isinstance(value, list):
            if not value:
                lines.append(f"  {_quote(key)}: []{comma}")
                continue
            lines.append(f"  {_quote(key)}: [")
            for index, record in enumerate(value):
                pairs = []
                for record_key, record_value in record.items():
                    if not isinstance(record_value, str):
                        raise DocumentError(
                            f"Record field {record_key!r} must be a string"
                        )
                    pairs.append(f"{_quote(record_key)}: {_quote(record_value)}")
                sep = "," if index < len(value) - 1 else ""
                lines.append("    {" + ", ".join(pairs) + "}" + sep)
            lines.append(f"  ]{comma}")
        else:
            raise DocumentError(f"Field {key!r} must be a string or a list of records")
    return "{\n" + "\n".join(lines) + "\n}\n"


class _Reader:
    """Cursor over document text for the restricted grammar."""

    def __init__(self, text: str):
        self.text = text
        self.pos = 0

    def error(self, message: str) -> DocumentError:
        return DocumentError(f"{message} at offset {self.pos}")

    def skip_ws(self) -> None:
        while self.pos < len(self.text) and self.text[self.pos] in _WHITESPACE:
            self.pos += 1

    def peek(self) -> str:
        self.skip_ws()
        return self.text[self.pos] if self.pos < len(self.text) else ""

    def expect(self, char: str) -> None:
        if self.peek() != char:
            raise self.error(f"Expected {char!r}")
        self.pos += 1

    def string(self) -> str:
        self.expect('"')
        out = []
        text = self.text
        while True:
            if self.pos >= len(text):
                raise self.error("Unterminated string")
            c = text[self.pos]
            self.pos += 1
            if c == '"':
                return "".join(out)
            if c == "\\":
                if self.pos >= len(text):
                    raise self.error("Unterminated escape")
                escaped = text[self.pos]
                self.pos += 1
                out.append(_UNESCAPES.get(escaped, escaped))
            else:
                out.append(c)

    def record(self) -> Record:
        self.expect("{")
        record: Record = {}
        if self.peek() == "}":
            self.pos += 1
            return record
        while True:
            key = self.string()
            self.expect(":")
            if self.peek() != '"':
                raise self.error(f"Record field {key!r} must be a string")
            record[key] = self.string()
            if self.peek() == ",":
                self.pos += 1
                continue
            self.expect("}")
            return record

    def array(self) -> List[Record]:
        self.expect("[")
        records: List[Record] = []
        if self.peek() == "]":
            self.pos += 1
            return records
        while True:
            records.append(self.record())
            if self.peek() == ",":
                self.pos += 1
                continue
            self.expect("]")
            return records

    def document(self) -> Document:
        self.expect("{")
        fields: Document = {}
        if self.peek() == "}":
            self.pos += 1
        else:
            seen_array = False
            while True:
                key = self.string()
                self.expect(":")
                nxt = self.peek()
                if nxt == '"':
                    fields[key] = self.string()
                elif nxt == "[":
                    if seen_array:
                        raise self.error("Only one array is allowed")
                    seen_array = True
                    fields[key] = self.array()
                else:
                    raise self.error(f"Unsupported value for {key!r}")
                if self.peek() == ",":
                    self.pos += 1
                    continue
                self.expect("}")
                break
        if self.peek():
            raise self.error("Trailing data after document")
        return fields


def decode_document(text: str) -> Document:
    """
    Parse document text.

    Args:
        text: Document text

    Returns:
        Mapping of top-level fields

    Raises:
        DocumentError: If the text does not match the document shape
    """
    return _Reader(text).document()


def read_document(path: Path, max_bytes: int) -> Optional[Document]:
    """
    Read and parse a document file.

    Args:
        path: Document path
        max_bytes: Size cap; larger files are rejected

    Returns:
        Parsed fields, or None if the file does not exist

    Raises:
        DocumentError: If the file is empty, oversized, unreadable or corrupt
    """
    try:
        size = path.stat().st_size
    except FileNotFoundError:
        return None
    except OSError as e:
        raise DocumentError(f"Cannot stat {path}: {e}") from e

    if size <= 0:
        raise DocumentError(f"Document {path} is empty")
    if size > max_bytes:
        raise DocumentError(f"Document {path} exceeds {max_bytes} bytes ({size})")

    try:
        with open(path, "r", encoding="utf-8") as f:
            text = f.read()
    except FileNotFoundError:
        return None
    except (OSError, UnicodeDecodeError) as e:
        raise DocumentError(f"Cannot read {path}: {e}") from e

    try:
        return decode_document(text)
    except DocumentError as e:
        raise DocumentError(f"Corrupt document {path}: {e}") from e


def write_document(path: Path, fields: Document) -> None:
    """
    Rewrite a document file in full.

    The text is written to a sibling temporary file and moved into place so a
    reader never observes a half-written document.

    Args:
        path: Document path
        fields: Top-level fields

    Raises:
        DocumentError: If the document cannot be encoded or written
    """
    text = encode_document(fields)
    tmp_path = path.with_name(path.name + ".tmp")
    try:
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(tmp_path, path)
    except OSError as e:
        raise DocumentError(f"Cannot write {path}: {e}") from e


def _require_array(fields: Document, key: str) -> List[Record]:
    value = fields.get(key)
    if not isinstance(value, list):
        raise DocumentError(f"Missing {key!r} array")
    return value


class DocumentStore:
    """
    Reads and writes the four library documents.

    Loaders never raise for bad content: a corrupt or oversized document is
    logged and discarded, and the defaults are returned. Savers return False
    when the document could not be written.
    """

    def __init__(self, paths: LibraryPaths):
        self.paths = paths

    # ------------------------------------------------------------------
    # Config
    # ------------------------------------------------------------------

    def load_config(self) -> LibraryConfig:
        """
        Load the library config, writing the defaults if no file exists.

        Returns:
            LibraryConfig instance
        """
        config = LibraryConfig()
        try:
            fields = read_document(self.paths.config_file, CONFIG_MAX_BYTES)
        except DocumentError as e:
            logger.warning(f"Ignoring config file: {e}")
            return config

        if fields is None:
            self.save_config(config)
            return config

        download_path = fields.get("download_path")
        if isinstance(download_path, str) and download_path:
            config.download_path = download_path
        return config

    def save_config(self, config: LibraryConfig) -> bool:
        try:
            write_document(self.paths.config_file, {"download_path": config.download_path})
            return True
        except DocumentError as e:
            logger.error(f"Failed to save config: {e}")
            return False

    # ------------------------------------------------------------------
    # Playlist index and playlist files
    # ------------------------------------------------------------------

    def ensure_playlist_index(self) -> None:
        """Create an empty playlist index if none exists."""
        if not self.paths.playlists_index.exists():
            self.save_playlist_index([])

    def load_playlist_index(self, limit: int) -> List[Playlist]:
        """
        Load playlist headers (name and filename) from the index.

        Songs are not read; each playlist is returned unloaded.

        Args:
            limit: Maximum number of playlists to restore

        Returns:
            List of Playlist objects in index order
        """
        try:
            fields = read_document(self.paths.playlists_index, DOCUMENT_MAX_BYTES)
            if fields is None:
                return []
            records = _require_array(fields, "playlists")
        except DocumentError as e:
            logger.warning(f"Ignoring playlist index: {e}")
            return []

        playlists = []
        for record in records:
            if len(playlists) >= limit:
                logger.warning(f"Playlist index holds more than {limit} playlists, truncating")
                break
            name = record.get("name", "")
            filename = record.get("filename", "")
            if name and filename:
                playlists.append(Playlist(name=name, filename=filename))
        return playlists

    def save_playlist_index(self, playlists: List[Playlist]) -> bool:
        records = [{"name": pl.name, "filename": pl.filename} for pl in playlists]
        try:
            write_document(self.paths.playlists_index, {"playlists": records})
            return True
        except DocumentError as e:
            logger.error(f"Failed to save playlist index: {e}")
            return False

    def load_playlist_songs(self, playlist: Playlist, limit: int) -> None:
        """
        Read a playlist's songs and type from its document.

        The playlist is marked loaded even when its file is missing or corrupt,
        in which case it is left empty.

        Args:
            playlist: Playlist to fill
            limit: Maximum number of songs to restore
        """
        path = self.paths.playlist_file(playlist.filename)
        songs: List[Song] = []
        is_remote = False
        try:
            fields = read_document(path, DOCUMENT_MAX_BYTES)
            if fields is not None:
                is_remote = fields.get("type") == "youtube"
                for record in _require_array(fields, "songs"):
                    if len(songs) >= limit:
                        break
                    title = record.get("title")
                    video_id = record.get("video_id", "")
                    if title is not None and video_id:
                        songs.append(Song(title=title, video_id=video_id))
        except DocumentError as e:
            logger.warning(f"Ignoring playlist file for '{playlist.name}': {e}")
            songs, is_remote = [], False

        playlist.songs = songs
        playlist.is_remote = is_remote
        playlist.loaded = True

    def save_playlist(self, playlist: Playlist) -> bool:
        fields: Document = {
            "name": playlist.name,
            "type": playlist.kind,
            "songs": [
                {"title": song.title, "video_id": song.video_id}
                for song in playlist.songs
            ],
        }
        try:
            write_document(self.paths.playlist_file(playlist.filename), fields)
            return True
        except DocumentError as e:
            logger.error(f"Failed to save playlist '{playlist.name}': {e}")
            return False

    def delete_playlist_file(self, playlist: Playlist) -> bool:
        try:
            self.paths.playlist_file(playlist.filename).unlink()
            return True
        except FileNotFoundError:
            return True
        except OSError as e:
            logger.warning(f"Failed to delete playlist file {playlist.filename}: {e}")
            return False

    # ------------------------------------------------------------------
    # Download queue
    # ------------------------------------------------------------------

    def load_queue(self, limit: int) -> List[DownloadTask]:
        """
        Load persisted download tasks.

        Args:
            limit: Maximum number of tasks to restore

        Returns:
            Tasks in document order, each pending or failed
        """
        try:
            fields = read_document(self.paths.queue_file, DOCUMENT_MAX_BYTES)
            if fields is None:
                return []
            records = _require_array(fields, "tasks")
        except DocumentError as e:
            logger.warning(f"Ignoring download queue file: {e}")
            return []

        tasks = []
        for record in records:
            if len(tasks) >= limit:
                logger.warning(f"Download queue file holds more than {limit} tasks, truncating")
                break
            try:
                tasks.append(DownloadTask.from_dict(record))
            except ValueError as e:
                logger.debug(f"Skipping queue record: {e}")
        return tasks

    def save_queue(self, tasks: List[DownloadTask]) -> bool:
        """
        Persist the queue snapshot.

        Only pending and failed tasks are written. Completed and active tasks
        are left out of the document.
        """
        records = [
            task.to_dict()
            for task in tasks
            if task.status in (DownloadStatus.PENDING, DownloadStatus.FAILED)
        ]
        try:
            write_document(self.paths.queue_file, {"tasks": records})
            return True
        except DocumentError as e:
            logger.error(f"Failed to save download queue: {e}")
            return False
