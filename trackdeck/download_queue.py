"""
Bounded, persistent download queue.

The queue is the only state shared between the interactive thread and the
download worker. Every structural change happens under a single lock, and the
lock is never held while a fetch runs.
"""

import logging
import threading
from dataclasses import replace
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from trackdeck.config import LibraryConfig
from trackdeck.documents import DocumentStore
from trackdeck.download_worker import DownloadWorker, FetchFn
from trackdeck.models import DownloadStatus, DownloadTask, EnqueueResult
from trackdeck.probe import destination_dir, find_local_copy, sanitize_track_filename
from trackdeck.tagger import TagWriter

logger = logging.getLogger(__name__)


class DownloadQueue:
    """
    Bounded FIFO of download tasks with a single consumer thread.

    Lifecycle of a task:
        PENDING -> ACTIVE -> COMPLETED
        PENDING -> ACTIVE -> FAILED

    COMPLETED and FAILED are terminal. Tasks are never removed from the
    in-memory list, so capacity counts every task enqueued during the
    process lifetime. A failed id can be queued again by a new enqueue call.

    Invariants:
        - At most one task is ACTIVE at any time.
        - No two PENDING or ACTIVE tasks share a video id.
        - The worker always claims the earliest PENDING task.

    Persistence:
        The queue document is rewritten after every change and only holds
        PENDING and FAILED tasks. The completed counter is not persisted.
    """

    DEFAULT_CAPACITY = 1000

    def __init__(
        self,
        store: DocumentStore,
        config: LibraryConfig,
        fetch: FetchFn,
        capacity: int = DEFAULT_CAPACITY,
        audio_format: str = "mp3",
        idle_interval: float = 0.5,
        tagger: Optional[TagWriter] = None,
    ):
        """
        Initialize the download queue.

        Args:
            store: Document store used to persist the queue snapshot
            config: Library config (read for the current download root)
            fetch: Callable fetching a video id to a destination path
            capacity: Maximum number of tasks held in memory
            audio_format: Extension of downloaded files
            idle_interval: Worker poll interval in seconds when idle
            tagger: Optional tag writer run after successful fetches
        """
        self.store = store
        self.config = config
        self.capacity = capacity
        self.audio_format = audio_format
        self.completed = 0
        self.failed = 0
        self._tasks: List[DownloadTask] = []
        self._busy = False
        self._current_index: Optional[int] = None
        self._lock = threading.Lock()
        self._changed = threading.Condition(self._lock)
        self.worker = DownloadWorker(
            self, fetch, idle_interval=idle_interval, tagger=tagger
        )

    # -------------------------------------------------------------------------
    # Producer side (interactive thread)
    # -------------------------------------------------------------------------

    def destination_dir(self, playlist: Optional[str]) -> Path:
        """Directory downloads for ``playlist`` are written to."""
        return destination_dir(self.config.download_root, playlist)

    def enqueue(
        self, video_id: str, title: Optional[str], playlist: Optional[str] = None
    ) -> EnqueueResult:
        """
        Request a download.

        Args:
            video_id: Video identifier
            title: Song title (used for the filename)
            playlist: Owning playlist name, or None for the download root

        Returns:
            EnqueueResult describing what happened
        """
        if not video_id:
            return EnqueueResult.REJECTED

        playlist = playlist or ""
        existing = find_local_copy(
            self.destination_dir(playlist), video_id, self.audio_format
        )
        if existing:
            logger.debug(f"Already downloaded: {existing}")
            return EnqueueResult.ALREADY_PRESENT

        with self._lock:
            if self._find_in_flight(video_id) is not None:
                return EnqueueResult.ALREADY_QUEUED

            if len(self._tasks) >= self.capacity:
                logger.warning(
                    f"Download queue is full ({self.capacity} tasks), rejecting {video_id}"
                )
                return EnqueueResult.REJECTED

            task = DownloadTask(
                video_id=video_id,
                title=title or "Unknown",
                filename=sanitize_track_filename(title, video_id, self.audio_format),
                playlist=playlist,
            )
            self._tasks.append(task)
            self.store.save_queue(self._tasks)

        logger.info(f"Queued download: {task.title} ({video_id})")
        self.start_worker()
        return EnqueueResult.ADDED

    def restore(self) -> int:
        """
        Load tasks persisted by a previous session.

        Pending tasks are restored as pending and the worker is started if
        there are any. Failed tasks are restored as failed and counted, but
        are not requeued.

        Returns:
            Number of pending tasks restored
        """
        tasks = self.store.load_queue(self.capacity)
        with self._lock:
            for task in tasks:
                if len(self._tasks) >= self.capacity:
                    break
                self._tasks.append(task)
                if task.status == DownloadStatus.FAILED:
                    self.failed += 1
            pending = self._count(DownloadStatus.PENDING)

        if tasks:
            logger.info(
                f"Restored {len(tasks)} download tasks ({pending} pending, "
                f"{len(tasks) - pending} failed)"
            )
        if pending:
            self.start_worker()
        return pending

    def start_worker(self) -> None:
        """Start the worker thread if it is not running, and wake it."""
        self.worker.start()
        self.worker.wake()

    def shutdown(self, timeout: Optional[float] = None) -> None:
        """
        Stop the worker after its current fetch.

        Blocks until an in-flight fetch completes. Pending tasks stay in the
        queue document and resume on the next start.
        """
        self.worker.stop(timeout)

    # -------------------------------------------------------------------------
    # Inspection
    # -------------------------------------------------------------------------

    @property
    def is_busy(self) -> bool:
        with self._lock:
            return self._busy

    def __len__(self) -> int:
        with self._lock:
            return len(self._tasks)

    def pending_count(self) -> int:
        """Number of tasks not yet finished (PENDING or ACTIVE)."""
        with self._lock:
            return self._count(DownloadStatus.PENDING) + self._count(DownloadStatus.ACTIVE)

    def stats(self) -> Dict[str, int]:
        """
        Get queue statistics.

        ``completed`` and ``failed`` are the running counters, which also
        include failures restored from the previous session.
        """
        with self._lock:
            return {
                "pending": self._count(DownloadStatus.PENDING),
                "active": self._count(DownloadStatus.ACTIVE),
                "completed": self.completed,
                "failed": self.failed,
                "total": len(self._tasks),
            }

    def snapshot(self) -> List[DownloadTask]:
        """Copies of all tasks in queue order."""
        with self._lock:
            return [replace(task) for task in self._tasks]

    def current_task(self) -> Optional[DownloadTask]:
        """Copy of the task being downloaded, if any."""
        with self._lock:
            if self._current_index is None:
                return None
            return replace(self._tasks[self._current_index])

    def wait_until_idle(self, timeout: Optional[float] = None) -> bool:
        """
        Block until no task is pending or active.

        Starts the worker first if there is work for it.

        Args:
            timeout: Maximum seconds to wait (None waits indefinitely)

        Returns:
            True if the queue drained, False on timeout
        """
        if self.pending_count():
            self.start_worker()
        with self._changed:
            return self._changed.wait_for(
                lambda: self._count(DownloadStatus.PENDING) == 0
                and self._count(DownloadStatus.ACTIVE) == 0,
                timeout,
            )

    # -------------------------------------------------------------------------
    # Consumer side (download worker)
    # -------------------------------------------------------------------------

    def claim_next(self) -> Optional[Tuple[int, DownloadTask]]:
        """
        Claim the earliest pending task.

        Returns:
            Tuple of (index, copy of the claimed task), or None if idle
        """
        with self._lock:
            for index, task in enumerate(self._tasks):
                if task.status == DownloadStatus.PENDING:
                    task.status = DownloadStatus.ACTIVE
                    self._current_index = index
                    self._busy = True
                    return index, replace(task)

            self._busy = False
            self._current_index = None
            self._changed.notify_all()
            return None

    def record_result(self, index: int, success: bool) -> None:
        """
        Record the terminal status of a claimed task and persist the queue.

        Args:
            index: Index returned by claim_next
            success: Whether the fetch produced the output file
        """
        with self._lock:
            task = self._tasks[index]
            if success:
                task.status = DownloadStatus.COMPLETED
                self.completed += 1
            else:
                task.status = DownloadStatus.FAILED
                self.failed += 1
            self._current_index = None
            self.store.save_queue(self._tasks)
            self._changed.notify_all()

        if success:
            logger.info(f"Downloaded: {task.title}")
        else:
            logger.warning(f"Download failed: {task.title} ({task.video_id})")

    # -------------------------------------------------------------------------
    # Private helpers (require lock held)
    # -------------------------------------------------------------------------

    def _count(self, status: DownloadStatus) -> int:
        return sum(1 for task in self._tasks if task.status == status)

    def _find_in_flight(self, video_id: str) -> Optional[int]:
        for index, task in enumerate(self._tasks):
            if task.video_id == video_id and not task.status.is_terminal:
                return index
        return None
