"""
Unit tests for data models.
"""
import pytest

from trackdeck.models import DownloadStatus, DownloadTask, Playlist, Song


class TestSong:
    """Test Song model."""

    def test_url(self):
        """Test that the streaming URL is derived from the video id."""
        song = Song(title="Take On Me", video_id="djV11Xbc914")
        assert song.url == "https://www.youtube.com/watch?v=djV11Xbc914"
        assert song.duration == 0


class TestPlaylist:
    """Test Playlist model."""

    def test_kind(self):
        """Test the type token for local and remote playlists."""
        assert Playlist(name="Mix", filename="mix.json").kind == "local"
        assert Playlist(name="Mix", filename="mix.json", is_remote=True).kind == "youtube"

    def test_has_song(self, sample_songs):
        """Test membership by video id."""
        playlist = Playlist(name="Mix", filename="mix.json", songs=sample_songs[:2])
        assert playlist.has_song("dQw4w9WgXcQ")
        assert not playlist.has_song("FTQbiNvZqaY")


class TestDownloadStatus:
    """Test DownloadStatus enum."""

    def test_terminal_statuses(self):
        """Test that only COMPLETED and FAILED are terminal."""
        assert DownloadStatus.COMPLETED.is_terminal
        assert DownloadStatus.FAILED.is_terminal
        assert not DownloadStatus.PENDING.is_terminal
        assert not DownloadStatus.ACTIVE.is_terminal


class TestDownloadTask:
    """Test DownloadTask serialization."""

    def test_to_dict(self):
        """Test conversion to a flat record."""
        task = DownloadTask(
            video_id="abc123",
            title="Test Song",
            filename="Test_Song_[abc123].mp3",
            playlist="Road Trip",
            status=DownloadStatus.FAILED,
        )
        assert task.to_dict() == {
            "video_id": "abc123",
            "title": "Test Song",
            "filename": "Test_Song_[abc123].mp3",
            "playlist": "Road Trip",
            "status": "failed",
        }

    def test_from_dict_failed(self):
        """Test that a failed record stays failed."""
        task = DownloadTask.from_dict({"video_id": "abc123", "status": "failed"})
        assert task.status == DownloadStatus.FAILED
        assert task.title == ""
        assert task.playlist == ""

    @pytest.mark.parametrize("status", ["pending", "active", "completed", "bogus", None])
    def test_from_dict_restores_as_pending(self, status):
        """Test that every other status is restored as pending."""
        data = {"video_id": "abc123", "title": "Test Song"}
        if status is not None:
            data["status"] = status
        assert DownloadTask.from_dict(data).status == DownloadStatus.PENDING

    def test_from_dict_missing_video_id(self):
        """Test that a record without a video id is rejected."""
        with pytest.raises(ValueError, match="video_id"):
            DownloadTask.from_dict({"title": "Test Song", "status": "pending"})
