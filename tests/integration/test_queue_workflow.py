"""
Integration tests for the library and download queue workflow.

These run the real worker thread against the fake fetch collaborator and
check what ends up on disk.
"""
import json
import threading

import pytest

from trackdeck.documents import DOCUMENT_MAX_BYTES, read_document
from trackdeck.download_queue import DownloadQueue
from trackdeck.library import LibraryModel
from trackdeck.models import DownloadStatus, EnqueueResult, Song


def persisted_tasks(store):
    fields = read_document(store.paths.queue_file, DOCUMENT_MAX_BYTES)
    return fields["tasks"] if fields else []


class TestDownloadWorkflow:
    """End-to-end download behavior."""

    def test_download_into_playlist_directory(self, download_queue, store, download_root):
        """Test a single download from request to completed status."""
        result = download_queue.enqueue("abc123", "Test Song", "Mix")

        assert result == EnqueueResult.ADDED
        assert download_queue.wait_until_idle(timeout=5)

        assert (download_root / "Mix" / "Test_Song_[abc123].mp3").exists()
        assert download_queue.stats()["completed"] == 1
        assert persisted_tasks(store) == []

    def test_long_non_ascii_title(self, download_queue, download_root):
        """Test that a long multi-byte title still downloads to a valid filename."""
        download_queue.enqueue("abc123", "曲" * 100, "Mix")

        assert download_queue.wait_until_idle(timeout=5)
        assert download_queue.stats()["completed"] == 1
        (path,) = (download_root / "Mix").iterdir()
        assert path.name.endswith("_[abc123].mp3")
        assert len(path.name.encode("utf-8")) <= 255

    def test_existing_copy_is_not_queued(self, download_queue, fake_fetch, download_root):
        """Test that a differently named local copy with the id marker is reused."""
        (download_root / "Mix").mkdir(parents=True)
        (download_root / "Mix" / "Anything_[abc123].mp3").write_bytes(b"x")

        assert download_queue.enqueue("abc123", "Test Song", "Mix") == EnqueueResult.ALREADY_PRESENT
        assert len(download_queue) == 0
        assert fake_fetch.calls == []

    def test_failure_is_persisted_and_not_retried(self, download_queue, fake_fetch, store):
        """Test that failed downloads stay failed across the session."""
        fake_fetch.fail_ids.add("bad001")
        download_queue.enqueue("bad001", "Broken Song")
        download_queue.enqueue("abc123", "Test Song")

        assert download_queue.wait_until_idle(timeout=5)

        assert fake_fetch.calls == ["bad001", "abc123"]
        assert [(t["video_id"], t["status"]) for t in persisted_tasks(store)] == [
            ("bad001", "failed")
        ]
        stats = download_queue.stats()
        assert (stats["completed"], stats["failed"]) == (1, 1)

    def test_at_most_one_active(self, download_queue, fake_fetch):
        """Test that only one task is ever ACTIVE while others wait."""
        fake_fetch.gate = threading.Event()
        for vid in ["a00001", "b00002", "c00003"]:
            download_queue.enqueue(vid, vid)
        assert fake_fetch.started.wait(5)

        statuses = [t.status for t in download_queue.snapshot()]
        assert statuses == [
            DownloadStatus.ACTIVE,
            DownloadStatus.PENDING,
            DownloadStatus.PENDING,
        ]
        assert download_queue.is_busy

        fake_fetch.gate.set()
        assert download_queue.wait_until_idle(timeout=5)
        assert fake_fetch.calls == ["a00001", "b00002", "c00003"]
        assert not download_queue.is_busy

    def test_enqueue_during_fetch_is_not_blocked(self, download_queue, fake_fetch, store):
        """Test that the queue lock is free while a fetch runs."""
        fake_fetch.gate = threading.Event()
        download_queue.enqueue("a00001", "First")
        assert fake_fetch.started.wait(5)

        assert download_queue.enqueue("b00002", "Second") == EnqueueResult.ADDED
        assert download_queue.enqueue("a00001", "First") == EnqueueResult.ALREADY_QUEUED
        assert [t["video_id"] for t in persisted_tasks(store)] == ["b00002"]

        fake_fetch.gate.set()
        assert download_queue.wait_until_idle(timeout=5)

    def test_capacity_overflow_not_persisted(self, store, library_config, fake_fetch):
        """Test that requests past capacity are rejected and never written."""
        fake_fetch.gate = threading.Event()
        queue = DownloadQueue(store, library_config, fake_fetch, capacity=3, idle_interval=0.05)
        try:
            results = [queue.enqueue(f"id{i:04d}", f"Song {i}") for i in range(4)]
            assert results[:3] == [EnqueueResult.ADDED] * 3
            assert results[3] == EnqueueResult.REJECTED
            assert "id0003" not in [t["video_id"] for t in persisted_tasks(store)]
        finally:
            fake_fetch.gate.set()
            queue.shutdown(timeout=5)


class TestRestartWorkflow:
    """Queue persistence across sessions."""

    def test_pending_and_failed_survive_restart(self, store, library_config, fake_fetch):
        """Test that pending tasks resume and failed tasks are restored as failed."""
        fake_fetch.gate = threading.Event()
        fake_fetch.fail_ids.add("bad001")
        first = DownloadQueue(store, library_config, fake_fetch, idle_interval=0.05)
        first.enqueue("bad001", "Broken Song")
        first.enqueue("p00001", "Pending One")
        first.enqueue("p00002", "Pending Two")
        assert fake_fetch.started.wait(5)
        stopper = threading.Thread(target=first.shutdown, kwargs={"timeout": 5})
        stopper.start()
        assert first.worker._stop_requested.wait(5)
        fake_fetch.gate.set()
        stopper.join(5)

        # bad001 failed; the worker stopped before claiming the rest
        saved = [(t["video_id"], t["status"]) for t in persisted_tasks(store)]
        assert saved == [
            ("bad001", "failed"),
            ("p00001", "pending"),
            ("p00002", "pending"),
        ]

        fake_fetch.calls.clear()
        second = DownloadQueue(store, library_config, fake_fetch, idle_interval=0.05)
        try:
            assert second.restore() == 2
            assert second.wait_until_idle(timeout=5)
            assert fake_fetch.calls == ["p00001", "p00002"]
            assert second.stats()["failed"] == 1
            assert second.stats()["completed"] == 2
        finally:
            second.shutdown(timeout=5)

    def test_completed_counter_not_restored(self, store, library_config, fake_fetch):
        """Test that a finished download leaves nothing to restore."""
        first = DownloadQueue(store, library_config, fake_fetch, idle_interval=0.05)
        try:
            first.enqueue("abc123", "Test Song")
            assert first.wait_until_idle(timeout=5)
            assert first.completed == 1
        finally:
            first.shutdown(timeout=5)

        assert persisted_tasks(store) == []

        second = DownloadQueue(store, library_config, fake_fetch, idle_interval=0.05)
        assert second.restore() == 0
        assert second.completed == 0
        assert len(second) == 0


class TestPlaylistWorkflow:
    """Playlist operations with real downloads."""

    def test_add_songs_downloads_them(self, library, download_queue, sample_songs, download_root):
        """Test that playlist membership results in downloaded files."""
        idx = library.create_playlist("Road Trip")
        for song in sample_songs:
            assert library.add_song(idx, song)

        assert download_queue.wait_until_idle(timeout=5)
        for song_idx, song in enumerate(sample_songs):
            local = library.local_path_for_song(idx, song_idx)
            assert local is not None
            assert local.parent == download_root / "Road Trip"
            assert library.resolve_playable(idx, song_idx) == str(local)

        # Already downloaded songs are skipped by a bulk request
        assert library.queue_playlist(idx) == (0, 3)

    def test_delete_playlist_leaves_no_gap(self, library, download_queue, store, sample_songs, download_root):
        """Test deleting a playlist with downloads between two others."""
        for name in ["First", "Middle", "Last"]:
            library.create_playlist(name)
        library.add_song(1, sample_songs[0])
        assert download_queue.wait_until_idle(timeout=5)
        assert (download_root / "Middle").is_dir()

        assert library.delete_playlist(1)

        assert [p.name for p in library.playlists] == ["First", "Last"]
        fields = read_document(store.paths.playlists_index, DOCUMENT_MAX_BYTES)
        assert [r["name"] for r in fields["playlists"]] == ["First", "Last"]
        assert not store.paths.playlist_file("middle.json").exists()
        assert not (download_root / "Middle").exists()

        reloaded = LibraryModel(store, download_queue)
        reloaded.load()
        assert [p.name for p in reloaded.playlists] == ["First", "Last"]

    def test_colliding_names_get_distinct_files(self, library, store):
        """Test that playlists whose slugs collide do not share a file."""
        library.create_playlist("Road Trip")
        library.create_playlist("Road Trip!")  # same slug after sanitizing

        filenames = [p.filename for p in library.playlists]
        assert len(set(filenames)) == 2
        for filename in filenames:
            assert store.paths.playlist_file(filename).exists()

    def test_control_characters_round_trip(self, library, store, download_queue):
        """Test that titles with raw control characters survive a reload."""
        idx = library.create_playlist("Odd Titles")
        library.playlists[idx].songs.append(Song(title="Bell\x07Song", video_id="abc123"))
        store.save_playlist(library.playlists[idx])

        path = store.paths.playlist_file(library.playlists[idx].filename)
        with pytest.raises(json.JSONDecodeError):
            json.loads(path.read_text())

        reloaded = LibraryModel(store, download_queue)
        reloaded.load()
        playlist = reloaded.get_playlist(0)
        assert playlist.songs[0].title == "Bell\x07Song"
