"""
Shared pytest fixtures for trackdeck tests.
"""
import tempfile
import threading
from pathlib import Path
from typing import List, Optional, Set

import pytest

from trackdeck.config import LibraryConfig
from trackdeck.documents import DocumentStore
from trackdeck.download_queue import DownloadQueue
from trackdeck.library import LibraryModel
from trackdeck.models import Song
from trackdeck.paths import LibraryPaths


# Real YouTube videos
SAMPLE_SONGS = [
    Song(title="Rick Astley - Never Gonna Give You Up", video_id="dQw4w9WgXcQ", duration=213),
    Song(title="a-ha - Take On Me", video_id="djV11Xbc914", duration=225),
    Song(title="Toto - Africa", video_id="FTQbiNvZqaY", duration=295),
]


class FakeFetch:
    """
    Stand-in for the yt-dlp download collaborator.

    Writes a small file at the destination path and records every call.
    Ids in ``fail_ids`` fail without producing a file. When ``gate`` is set,
    each fetch blocks until the gate is opened.
    """

    def __init__(self):
        self.calls: List[str] = []
        self.fail_ids: Set[str] = set()
        self.gate: Optional[threading.Event] = None
        self.started = threading.Event()

    def __call__(self, video_id: str, dest_path: Path) -> bool:
        self.calls.append(video_id)
        self.started.set()
        if self.gate is not None:
            self.gate.wait(5)
        if video_id in self.fail_ids:
            return False
        dest_path.write_bytes(b"fake audio content")
        return True


@pytest.fixture
def tmp_test_dir():
    """Create temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def library_paths(tmp_test_dir):
    """Config root with its playlists directory created."""
    paths = LibraryPaths(tmp_test_dir / "home")
    paths.ensure()
    return paths


@pytest.fixture
def download_root(tmp_test_dir):
    """Download root (not created)."""
    return tmp_test_dir / "music"


@pytest.fixture
def library_config(download_root):
    """Library config pointing at the test download root."""
    return LibraryConfig(download_path=str(download_root))


@pytest.fixture
def store(library_paths):
    """Document store over the test config root."""
    return DocumentStore(library_paths)


@pytest.fixture
def fake_fetch():
    """Fetch collaborator that writes the destination file."""
    return FakeFetch()


@pytest.fixture
def download_queue(store, library_config, fake_fetch):
    """Download queue with a fast idle poll; the worker is stopped afterwards."""
    queue = DownloadQueue(store, library_config, fake_fetch, idle_interval=0.05)
    yield queue
    if fake_fetch.gate is not None:
        fake_fetch.gate.set()
    queue.shutdown(timeout=5)


@pytest.fixture
def library(store, download_queue):
    """Empty, loaded playlist library."""
    model = LibraryModel(store, download_queue)
    model.load()
    return model


@pytest.fixture
def sample_song():
    """Create sample Song object."""
    return SAMPLE_SONGS[0]


@pytest.fixture
def sample_songs():
    """Create a list of sample songs."""
    return list(SAMPLE_SONGS)
