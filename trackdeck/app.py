"""
Player wiring: builds the library, queue, engine and playback controller for
one config root and owns their startup and shutdown.
"""

import logging
from pathlib import Path
from typing import Optional

from trackdeck.config import LibraryConfig, PlayerSettings, load_settings
from trackdeck.documents import DocumentStore
from trackdeck.download_queue import DownloadQueue
from trackdeck.engine import YtDlpEngine
from trackdeck.library import LibraryModel
from trackdeck.paths import LibraryPaths
from trackdeck.playback import MpvPlayer
from trackdeck.tagger import TagWriter

logger = logging.getLogger(__name__)


class Player:
    """
    Application object shared by the command line front end.

    Startup (``open``):
        1. Create the config root and playlists directory
        2. Load (or create) the library config
        3. Load the playlist index
        4. Restore persisted download tasks and resume pending ones

    Shutdown (``close``):
        Stops the download worker after its in-flight fetch, then quits mpv.
    """

    def __init__(
        self,
        paths: Optional[LibraryPaths] = None,
        settings: Optional[PlayerSettings] = None,
        engine: Optional[YtDlpEngine] = None,
        playback: Optional[MpvPlayer] = None,
    ):
        self.paths = paths or LibraryPaths.resolve()
        self.settings = settings or load_settings(self.paths.settings_file)
        self.engine = engine or YtDlpEngine(
            audio_format=self.settings.audio_format,
            search_results=self.settings.search_results,
        )
        self.playback = playback or MpvPlayer()
        self.store = DocumentStore(self.paths)
        self.config = LibraryConfig()
        self.queue = DownloadQueue(
            self.store,
            self.config,
            self.engine.download,
            capacity=self.settings.queue_capacity,
            audio_format=self.settings.audio_format,
            idle_interval=self.settings.idle_interval,
            tagger=TagWriter(),
        )
        self.library = LibraryModel(
            self.store,
            self.queue,
            max_playlists=self.settings.max_playlists,
            max_items=self.settings.max_playlist_items,
        )
        self._opened = False

    def open(self) -> "Player":
        """Run the startup sequence."""
        self.paths.ensure()

        loaded = self.store.load_config()
        # The queue holds a reference to this object; update it in place
        self.config.download_path = loaded.download_path

        self.library.load()
        self.queue.restore()
        self._opened = True
        logger.info(
            f"Library ready: {len(self.library)} playlists, "
            f"downloads in {self.config.download_root}"
        )
        return self

    def close(self, timeout: Optional[float] = None) -> None:
        """Run the shutdown sequence."""
        if not self._opened:
            return
        self.queue.shutdown(timeout)
        self.playback.quit()
        self._opened = False
        logger.debug("Player closed")

    def set_download_path(self, path: str) -> bool:
        """
        Change the download root and persist it.

        Tasks already queued resolve their destination against the new root
        when they are claimed.

        Returns:
            True if the config was saved
        """
        self.config.download_path = str(Path(path).expanduser())
        logger.info(f"Download path set to {self.config.download_path}")
        return self.store.save_config(self.config)

    def __enter__(self) -> "Player":
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
