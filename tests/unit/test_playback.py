"""
Unit tests for the mpv playback controller.

A connected socket pair stands in for mpv's IPC server.
"""
import json
import socket
import subprocess

import pytest

from trackdeck.exceptions import PlaybackError
from trackdeck.playback import MpvPlayer


@pytest.fixture
def ipc_pair(tmp_test_dir):
    """MpvPlayer wired to one end of a socket pair; yields (player, mpv end)."""
    player = MpvPlayer(socket_path=tmp_test_dir / "mpv.sock")
    ours, theirs = socket.socketpair(socket.AF_UNIX, socket.SOCK_STREAM)
    ours.settimeout(1.0)
    theirs.settimeout(1.0)
    player._sock = ours
    yield player, theirs
    player._disconnect()
    theirs.close()


def read_commands(sock):
    data = b""
    while not data.endswith(b"\n"):
        data += sock.recv(4096)
    return [json.loads(line)["command"] for line in data.decode().splitlines()]


class TestCommands:
    """Test commands sent to mpv."""

    def test_toggle_pause(self, ipc_pair):
        player, mpv = ipc_pair
        player.toggle_pause()
        assert read_commands(mpv) == [["cycle", "pause"]]

    def test_stop(self, ipc_pair):
        player, mpv = ipc_pair
        player.stop()
        assert read_commands(mpv) == [["stop"]]

    def test_adjust_volume(self, ipc_pair):
        player, mpv = ipc_pair
        player.adjust_volume(-5)
        assert read_commands(mpv) == [["add", "volume", -5]]

    def test_load_quotes_target(self, ipc_pair):
        """Test that paths with quotes survive the JSON command."""
        player, mpv = ipc_pair
        player.load('/music/Mix/Say "Hello"_[abc123].mp3')
        assert read_commands(mpv) == [
            ["loadfile", '/music/Mix/Say "Hello"_[abc123].mp3', "replace"]
        ]

    def test_send_without_connection(self, tmp_test_dir):
        """Test that commands fail when mpv is not running."""
        player = MpvPlayer(socket_path=tmp_test_dir / "mpv.sock")
        with pytest.raises(PlaybackError, match="not running"):
            player.toggle_pause()

    def test_send_after_peer_closed(self, ipc_pair):
        """Test that a broken connection raises PlaybackError and disconnects."""
        player, mpv = ipc_pair
        mpv.close()
        with pytest.raises(PlaybackError):
            for _ in range(10):
                player.stop()
        assert not player.is_connected


class TestPollEvents:
    """Test MpvPlayer.poll_events."""

    def test_not_connected(self, tmp_test_dir):
        """Test polling without mpv."""
        events = MpvPlayer(socket_path=tmp_test_dir / "mpv.sock").poll_events()
        assert not events.eof
        assert events.volume is None

    def test_eof_and_volume(self, ipc_pair):
        """Test end-of-file and volume events."""
        player, mpv = ipc_pair
        mpv.sendall(
            b'{"event":"property-change","id":2,"name":"volume","data":85.0}\n'
            b'{"event":"end-file","reason":"eof","playlist_entry_id":1}\n'
        )

        events = player.poll_events()
        assert events.eof
        assert events.volume == 85.0

    def test_ignores_other_messages(self, ipc_pair):
        """Test that replies, errors and other events are ignored."""
        player, mpv = ipc_pair
        mpv.sendall(
            b'{"data":null,"request_id":0,"error":"success"}\n'
            b'{"event":"end-file","reason":"error"}\n'
            b'{"event":"property-change","id":1,"name":"eof-reached","data":true}\n'
            b"garbage\n"
        )

        events = player.poll_events()
        assert not events.eof
        assert events.volume is None

    def test_partial_lines_are_buffered(self, ipc_pair):
        """Test that a message split across reads is parsed once complete."""
        player, mpv = ipc_pair
        mpv.sendall(b'{"event":"end-file",')
        assert not player.poll_events().eof

        mpv.sendall(b'"reason":"eof"}\n')
        assert player.poll_events().eof

    def test_peer_closed(self, ipc_pair):
        """Test that a closed connection is dropped."""
        player, mpv = ipc_pair
        mpv.close()
        player.poll_events()
        assert not player.is_connected


class TestLifecycle:
    """Test starting and stopping mpv."""

    def test_start_failure(self, tmp_test_dir, mocker):
        """Test that a missing mpv binary raises PlaybackError."""
        mocker.patch(
            "trackdeck.playback.subprocess.Popen",
            side_effect=FileNotFoundError("mpv"),
        )
        player = MpvPlayer(socket_path=tmp_test_dir / "mpv.sock")

        with pytest.raises(PlaybackError, match="Failed to start"):
            player.load("https://www.youtube.com/watch?v=abc123")

    def test_early_exit(self, tmp_test_dir, mocker):
        """Test that mpv exiting during startup raises PlaybackError."""
        process = mocker.Mock()
        process.poll.return_value = 2
        process.returncode = 2
        mocker.patch("trackdeck.playback.subprocess.Popen", return_value=process)
        player = MpvPlayer(socket_path=tmp_test_dir / "mpv.sock")

        with pytest.raises(PlaybackError, match="exited with status 2"):
            player.load("https://www.youtube.com/watch?v=abc123")

    def test_start_replaces_stale_socket(self, tmp_test_dir, mocker):
        """Test the mpv command line after an unusable socket is found."""
        sock_path = tmp_test_dir / "mpv.sock"
        sock_path.write_text("")  # left behind by a crashed mpv
        process = mocker.Mock()
        process.poll.return_value = None

        def launch(args, **kwargs):
            assert not sock_path.exists()
            sock_path.write_text("")
            return process

        popen = mocker.patch("trackdeck.playback.subprocess.Popen", side_effect=launch)
        player = MpvPlayer(socket_path=sock_path)
        connect = mocker.patch.object(player, "_try_connect", side_effect=[False, True])

        player._ensure_running()

        assert connect.call_count == 2
        args = popen.call_args[0][0]
        assert args[0] == "mpv"
        assert "--no-video" in args
        assert "--idle=yes" in args
        assert f"--input-ipc-server={sock_path}" in args

    def test_quit(self, ipc_pair, mocker):
        """Test that quit sends the command, stops the process and removes the socket."""
        player, mpv = ipc_pair
        process = mocker.Mock()
        process.poll.return_value = None
        process.pid = 4242
        player._process = process
        player.socket_path.write_text("")

        player.quit()

        assert read_commands(mpv) == [["quit"]]
        process.terminate.assert_called_once()
        process.wait.assert_called_once_with(timeout=2)
        assert not player.is_connected
        assert not player.socket_path.exists()

    def test_quit_kills_stuck_process(self, tmp_test_dir, mocker):
        """Test that a process ignoring SIGTERM is killed."""
        process = mocker.Mock()
        process.poll.return_value = None
        process.wait.side_effect = subprocess.TimeoutExpired("mpv", 2)
        player = MpvPlayer(socket_path=tmp_test_dir / "mpv.sock")
        player._process = process

        player.quit()
        process.kill.assert_called_once()
