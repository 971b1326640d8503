"""
mpv playback controller.

mpv runs as an idle background process with a JSON IPC server on a Unix
socket. Commands are newline-delimited JSON objects; events are read back
without blocking from the same connection.
"""

import json
import logging
import os
import select
import socket
import subprocess
import tempfile
import time
from pathlib import Path
from typing import Any, List, Optional

from trackdeck.exceptions import PlaybackError
from trackdeck.models import PlaybackEvents

logger = logging.getLogger(__name__)

DEFAULT_SOCKET_PATH = Path(tempfile.gettempdir()) / "trackdeck_mpv.sock"

# Property observer ids
OBSERVE_EOF = 1
OBSERVE_VOLUME = 2


class MpvPlayer:
    """Controls a single mpv process through its IPC socket."""

    def __init__(
        self,
        socket_path: Path = DEFAULT_SOCKET_PATH,
        mpv_binary: str = "mpv",
        startup_timeout: float = 5.0,
    ):
        self.socket_path = Path(socket_path)
        self.mpv_binary = mpv_binary
        self.startup_timeout = startup_timeout
        self._process: Optional[subprocess.Popen] = None
        self._sock: Optional[socket.socket] = None
        self._buffer = b""

    @property
    def is_connected(self) -> bool:
        return self._sock is not None

    def load(self, target: str) -> None:
        """
        Play a URL or local file, replacing the current track.

        Starts mpv if it is not running.

        Raises:
            PlaybackError: If mpv cannot be started or the command fails
        """
        self._ensure_running()
        logger.info(f"Playing: {target}")
        self._send(["loadfile", target, "replace"])

    def toggle_pause(self) -> None:
        self._send(["cycle", "pause"])

    def stop(self) -> None:
        self._send(["stop"])

    def adjust_volume(self, delta: int) -> None:
        """Change the volume by ``delta`` percentage points."""
        self._send(["add", "volume", delta])

    def poll_events(self) -> PlaybackEvents:
        """
        Drain pending IPC messages without blocking.

        Returns:
            PlaybackEvents with ``eof`` set if a track ended normally and
            ``volume`` set to the last reported volume, if any
        """
        events = PlaybackEvents()
        if self._sock is None:
            return events

        try:
            while select.select([self._sock], [], [], 0)[0]:
                chunk = self._sock.recv(4096)
                if not chunk:
                    logger.warning("mpv closed the IPC connection")
                    self._disconnect()
                    break
                self._buffer += chunk
        except OSError as e:
            logger.warning(f"Lost mpv IPC connection: {e}")
            self._disconnect()

        *lines, self._buffer = self._buffer.split(b"\n")
        for line in lines:
            self._apply_message(line, events)
        return events

    def quit(self) -> None:
        """Shut down mpv and remove its socket."""
        if self._sock is not None:
            try:
                self._send(["quit"])
            except PlaybackError as e:
                logger.debug(f"mpv quit command failed: {e}")
            self._disconnect()

        if self._process is not None:
            if self._process.poll() is None:
                self._process.terminate()
                try:
                    self._process.wait(timeout=2)
                except subprocess.TimeoutExpired:
                    self._process.kill()
            logger.debug(f"mpv (pid {self._process.pid}) stopped")
            self._process = None

        try:
            self.socket_path.unlink()
        except FileNotFoundError:
            pass

    def _apply_message(self, line: bytes, events: PlaybackEvents) -> None:
        try:
            message = json.loads(line)
        except ValueError:
            logger.debug(f"Ignoring malformed mpv message: {line!r}")
            return
        if not isinstance(message, dict):
            return

        event = message.get("event")
        if event == "end-file":
            reason = message.get("reason")
            if reason == "eof":
                events.eof = True
            elif reason == "error":
                logger.warning("Track ended with an error")
        elif event == "property-change" and message.get("id") == OBSERVE_VOLUME:
            data = message.get("data")
            if isinstance(data, (int, float)):
                events.volume = float(data)

    def _ensure_running(self) -> None:
        if self._sock is not None:
            return
        if self.socket_path.exists() and self._try_connect():
            return

        try:
            self.socket_path.unlink()
        except FileNotFoundError:
            pass

        args = [
            self.mpv_binary,
            "--no-video",
            "--idle=yes",
            "--force-window=no",
            "--really-quiet",
            f"--input-ipc-server={self.socket_path}",
        ]
        try:
            self._process = subprocess.Popen(
                args, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL
            )
        except OSError as e:
            raise PlaybackError(f"Failed to start {self.mpv_binary}: {e}") from e
        logger.debug(f"Started mpv (pid {self._process.pid})")

        deadline = time.monotonic() + self.startup_timeout
        while time.monotonic() < deadline:
            if self.socket_path.exists() and self._try_connect():
                return
            if self._process.poll() is not None:
                raise PlaybackError(
                    f"mpv exited with status {self._process.returncode} during startup"
                )
            time.sleep(0.05)

        raise PlaybackError(f"Timed out waiting for mpv IPC socket {self.socket_path}")

    def _try_connect(self) -> bool:
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            sock.connect(os.fspath(self.socket_path))
        except OSError as e:
            logger.debug(f"Cannot connect to {self.socket_path}: {e}")
            sock.close()
            return False

        sock.settimeout(1.0)
        self._sock = sock
        self._buffer = b""
        self._send(["observe_property", OBSERVE_EOF, "eof-reached"])
        self._send(["observe_property", OBSERVE_VOLUME, "volume"])
        logger.debug(f"Connected to mpv IPC socket {self.socket_path}")
        return True

    def _send(self, command: List[Any]) -> None:
        if self._sock is None:
            raise PlaybackError("mpv is not running")

        payload = json.dumps({"command": command}) + "\n"
        try:
            self._sock.sendall(payload.encode("utf-8"))
        except OSError as e:
            self._disconnect()
            raise PlaybackError(f"Failed to send {command[0]} to mpv: {e}") from e

    def _disconnect(self) -> None:
        if self._sock is not None:
            self._sock.close()
            self._sock = None
        self._buffer = b""
