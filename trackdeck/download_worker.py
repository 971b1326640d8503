"""
Background download worker.

A single thread claims one task at a time from the download queue, runs the
fetch outside the queue lock and reports the terminal status back.
"""

import logging
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Optional

from trackdeck.exceptions import MetadataError
from trackdeck.models import DownloadTask
from trackdeck.probe import sanitize_track_filename
from trackdeck.tagger import TagWriter

if TYPE_CHECKING:
    from trackdeck.download_queue import DownloadQueue

logger = logging.getLogger(__name__)

FetchFn = Callable[[str, Path], bool]


class DownloadWorker:
    """
    Single consumer thread for the download queue.

    The worker:
    - Claims the earliest pending task under the queue lock
    - Releases the lock, then creates the destination directory and fetches
    - Re-acquires the lock only to record COMPLETED or FAILED
    - Sleeps on a wake event (bounded by ``idle_interval``) when idle

    A fetch cannot be cancelled once started; stopping only prevents the next
    claim, so ``stop`` blocks until an in-flight fetch returns.
    """

    THREAD_NAME = "trackdeck-download"

    def __init__(
        self,
        queue: "DownloadQueue",
        fetch: FetchFn,
        idle_interval: float = 0.5,
        tagger: Optional[TagWriter] = None,
    ):
        self.queue = queue
        self.fetch = fetch
        self.idle_interval = idle_interval
        self.tagger = tagger
        self._thread: Optional[threading.Thread] = None
        self._stop_requested = threading.Event()
        self._wake = threading.Event()
        self._start_lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    def start(self) -> bool:
        """
        Start the worker thread if it is not already running.

        A thread still finishing its fetch after a timed-out ``stop`` is
        kept and told to continue.

        Returns:
            True if a new thread was started
        """
        with self._start_lock:
            if self.is_running:
                # A stop that timed out leaves the thread draining its fetch;
                # cancel the stop so it keeps claiming work
                if self._stop_requested.is_set():
                    self._stop_requested.clear()
                    self._wake.set()
                    logger.debug("Download worker stop cancelled")
                return False
            self._stop_requested.clear()
            self._thread = threading.Thread(
                target=self._run, name=self.THREAD_NAME, daemon=True
            )
            self._thread.start()
            logger.debug("Download worker started")
            return True

    def wake(self) -> None:
        """Interrupt the idle wait so new work is claimed immediately."""
        self._wake.set()

    def stop(self, timeout: Optional[float] = None) -> None:
        """
        Request the worker to stop and wait for it.

        Args:
            timeout: Maximum seconds to wait for the thread (None = no limit)
        """
        with self._start_lock:
            thread = self._thread
            if thread is None:
                return
            self._stop_requested.set()
            self._wake.set()

        thread.join(timeout)
        if thread.is_alive():
            logger.warning("Download worker still busy after stop timeout")
            return

        with self._start_lock:
            if self._thread is thread:
                self._thread = None
        logger.debug("Download worker stopped")

    def _run(self) -> None:
        while not self._stop_requested.is_set():
            claim = self.queue.claim_next()
            if claim is None:
                self._wake.wait(self.idle_interval)
                self._wake.clear()
                continue

            index, task = claim
            try:
                success = self._execute(task)
            except Exception as e:
                logger.error(f"Unexpected error downloading {task.video_id}: {e}")
                success = False
            self.queue.record_result(index, success)

    def _execute(self, task: DownloadTask) -> bool:
        """
        Fetch a claimed task. Runs without the queue lock.

        Args:
            task: Copy of the claimed task

        Returns:
            True if the destination file exists afterwards
        """
        dest_dir = self.queue.destination_dir(task.playlist)
        try:
            dest_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning(f"Cannot create download directory {dest_dir}: {e}")

        filename = task.filename or sanitize_track_filename(
            task.title, task.video_id, self.queue.audio_format
        )
        dest_path = dest_dir / filename

        # A previous session may already have produced the file
        if dest_path.exists():
            logger.info(f"Skipping (already exists): {dest_path}")
            return True

        logger.info(f"Downloading: {task.title} -> {dest_path}")
        try:
            ok = self.fetch(task.video_id, dest_path)
        except Exception as e:
            logger.error(f"Error downloading {task.video_id}: {e}")
            return False

        if not ok or not dest_path.exists():
            return False

        if self.tagger:
            try:
                self.tagger.embed(dest_path, task.title, task.video_id)
            except MetadataError as e:
                logger.warning(f"Failed to tag {dest_path}: {e}")
        return True
