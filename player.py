#!/usr/bin/env python3
"""
Search, organize, download and play music from YouTube.

USAGE:
    python3 player.py [--home DIR] [--log] [--log-level LEVEL] COMMAND ...

SYNOPSIS:
    Manages a library of playlists stored under the config root
    (~/.trackdeck by default). Songs added to a playlist are queued for
    download in the background; pending downloads survive restarts and
    resume the next time any command runs.

COMMANDS:
    search QUERY              search YouTube
    playlists                 list playlists
    show PLAYLIST             list the songs of a playlist
    create NAME               create an empty playlist
    delete PLAYLIST           delete a playlist and its downloads
    add PLAYLIST QUERY        add a search result to a playlist
    remove PLAYLIST POSITION  remove a song from a playlist
    import URL                import a YouTube playlist
    download PLAYLIST         queue every song of a playlist for download
    queue                     show download queue status
    sync                      finish pending downloads
    config                    show or change the download path
    play PLAYLIST             play a playlist through mpv
"""

import argparse
import logging
import sys
import time
from pathlib import Path
from typing import List, Optional

from trackdeck.app import Player
from trackdeck.config import load_settings
from trackdeck.engine import validate_playlist_url
from trackdeck.exceptions import ConfigError, PlaylistError, TrackdeckError
from trackdeck.models import Song
from trackdeck.paths import LibraryPaths, get_log_path

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.2  # seconds between playback event polls


def setup_logging(log_level: str, log_file: Optional[Path] = None) -> None:
    """Set the root log level and optionally mirror logs to a file."""
    level = getattr(logging, log_level.upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(level)
    if log_file:
        handler = logging.FileHandler(log_file, encoding="utf-8")
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(threadName)s - %(name)s - %(levelname)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        root.addHandler(handler)


def format_duration(seconds: int) -> str:
    if seconds <= 0:
        return "--:--"
    minutes, secs = divmod(seconds, 60)
    if minutes >= 60:
        hours, minutes = divmod(minutes, 60)
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def print_songs(songs: List[Song]) -> None:
    for position, song in enumerate(songs, 1):
        print(f"{position:3d}. {song.title}  [{format_duration(song.duration)}]  {song.video_id}")


def require_playlist(player: Player, name: str) -> int:
    idx = player.library.find_playlist(name)
    if idx is None:
        raise PlaylistError(f"No playlist named '{name}'")
    return idx


def wait_for_downloads(player: Player, args) -> None:
    if getattr(args, "no_wait", False):
        pending = player.queue.pending_count()
        if pending:
            print(f"{pending} downloads pending; they resume on the next run")
        return
    if player.queue.pending_count():
        print("Waiting for downloads to finish (Ctrl-C to stop)...")
    player.queue.wait_until_idle()
    print_queue_stats(player)


def print_queue_stats(player: Player) -> None:
    stats = player.queue.stats()
    print(
        f"Downloads: {stats['completed']} completed, {stats['failed']} failed, "
        f"{stats['pending'] + stats['active']} pending"
    )


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------


def cmd_search(player: Player, args) -> int:
    songs = player.engine.search(args.query, limit=args.limit)
    if not songs:
        print("No results")
        return 1
    print_songs(songs)
    return 0


def cmd_playlists(player: Player, args) -> int:
    if not player.library.playlists:
        print("No playlists")
        return 0
    for idx in range(len(player.library)):
        # The playlist type is stored in each playlist file, not the index
        playlist = player.library.get_playlist(idx)
        print(f"{idx + 1:3d}. {playlist.name}  ({playlist.kind})")
    return 0


def cmd_show(player: Player, args) -> int:
    idx = require_playlist(player, args.playlist)
    playlist = player.library.get_playlist(idx)
    print(f"{playlist.name} ({playlist.kind}, {len(playlist.songs)} songs)")
    for song_idx, song in enumerate(playlist.songs):
        marker = "*" if player.library.local_path_for_song(idx, song_idx) else " "
        print(f"{song_idx + 1:3d}.{marker} {song.title}  {song.video_id}")
    return 0


def cmd_create(player: Player, args) -> int:
    player.library.create_playlist(args.name)
    print(f"Created playlist '{args.name}'")
    return 0


def cmd_delete(player: Player, args) -> int:
    idx = require_playlist(player, args.playlist)
    player.library.delete_playlist(idx)
    print(f"Deleted playlist '{args.playlist}'")
    return 0


def cmd_add(player: Player, args) -> int:
    idx = require_playlist(player, args.playlist)
    songs = player.engine.search(args.query, limit=args.result)
    if len(songs) < args.result:
        print(f"No result #{args.result} for '{args.query}'")
        return 1

    song = songs[args.result - 1]
    if not player.library.add_song(idx, song):
        print(f"'{song.title}' not added (duplicate or playlist full)")
        return 1
    print(f"Added '{song.title}' to '{player.library.playlists[idx].name}'")
    wait_for_downloads(player, args)
    return 0


def cmd_remove(player: Player, args) -> int:
    idx = require_playlist(player, args.playlist)
    if not player.library.remove_song(idx, args.position - 1):
        print(f"No song at position {args.position}")
        return 1
    print(f"Removed song {args.position}")
    return 0


def cmd_import(player: Player, args) -> int:
    if not validate_playlist_url(args.url):
        print(f"Not a YouTube playlist URL: {args.url}")
        return 1

    title, songs = player.engine.fetch_playlist(
        args.url, limit=player.settings.max_playlist_items
    )
    if not songs:
        print("Playlist is empty")
        return 1

    idx = player.library.import_remote_playlist(
        title, songs, name=args.name, download=not args.stream_only
    )
    playlist = player.library.playlists[idx]
    print(f"Imported {len(playlist.songs)} songs into '{playlist.name}'")
    if not args.stream_only:
        wait_for_downloads(player, args)
    return 0


def cmd_download(player: Player, args) -> int:
    idx = require_playlist(player, args.playlist)
    added, skipped = player.library.queue_playlist(idx)
    print(f"Queued {added} songs ({skipped} already downloaded or queued)")
    wait_for_downloads(player, args)
    return 0


def cmd_queue(player: Player, args) -> int:
    print_queue_stats(player)
    current = player.queue.current_task()
    if current:
        print(f"Downloading: {current.title}")
    for task in player.queue.snapshot():
        if not task.status.is_terminal or args.all:
            print(f"  {task.status.value:9s} {task.title}  ({task.video_id})")
    return 0


def cmd_sync(player: Player, args) -> int:
    player.queue.wait_until_idle()
    print_queue_stats(player)
    return 0


def cmd_config(player: Player, args) -> int:
    if args.download_path:
        if not player.set_download_path(args.download_path):
            return 1
    print(f"Config root:   {player.paths.root}")
    print(f"Download path: {player.config.download_path}")
    return 0


def cmd_play(player: Player, args) -> int:
    idx = require_playlist(player, args.playlist)
    playlist = player.library.get_playlist(idx)
    if not playlist.songs:
        print("Playlist is empty")
        return 1

    for song_idx in range(args.position - 1, len(playlist.songs)):
        song = playlist.songs[song_idx]
        print(f"Now playing: {song.title}")
        player.playback.load(player.library.resolve_playable(idx, song_idx))

        while True:
            events = player.playback.poll_events()
            if events.eof:
                break
            if not player.playback.is_connected:
                return 1
            time.sleep(POLL_INTERVAL)

    player.playback.stop()
    return 0


# -----------------------------------------------------------------------------
# Argument parsing
# -----------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="trackdeck",
        description="Search, organize, download and play music from YouTube.",
    )
    parser.add_argument(
        "--home",
        type=Path,
        default=None,
        help="Config root (default: $TRACKDECK_HOME or ~/.trackdeck).",
    )
    parser.add_argument(
        "--log",
        action="store_true",
        help="Also write logs to trackdeck.log in the config root.",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        default=None,
        help="Override the log level from settings.yaml.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    p = subparsers.add_parser("search", help="Search YouTube.")
    p.add_argument("query")
    p.add_argument("--limit", type=int, default=None)
    p.set_defaults(func=cmd_search)

    p = subparsers.add_parser("playlists", help="List playlists.")
    p.set_defaults(func=cmd_playlists)

    p = subparsers.add_parser("show", help="List the songs of a playlist.")
    p.add_argument("playlist")
    p.set_defaults(func=cmd_show)

    p = subparsers.add_parser("create", help="Create an empty playlist.")
    p.add_argument("name")
    p.set_defaults(func=cmd_create)

    p = subparsers.add_parser("delete", help="Delete a playlist and its downloads.")
    p.add_argument("playlist")
    p.set_defaults(func=cmd_delete)

    p = subparsers.add_parser("add", help="Add a search result to a playlist.")
    p.add_argument("playlist")
    p.add_argument("query")
    p.add_argument("-n", "--result", type=int, default=1, help="Result number (default: 1).")
    p.add_argument("--no-wait", action="store_true", help="Do not wait for the download.")
    p.set_defaults(func=cmd_add)

    p = subparsers.add_parser("remove", help="Remove a song from a playlist.")
    p.add_argument("playlist")
    p.add_argument("position", type=int)
    p.set_defaults(func=cmd_remove)

    p = subparsers.add_parser("import", help="Import a YouTube playlist.")
    p.add_argument("url")
    p.add_argument("--name", default=None, help="Local playlist name.")
    p.add_argument("--stream-only", action="store_true", help="Do not download songs.")
    p.add_argument("--no-wait", action="store_true", help="Do not wait for downloads.")
    p.set_defaults(func=cmd_import)

    p = subparsers.add_parser("download", help="Download every song of a playlist.")
    p.add_argument("playlist")
    p.add_argument("--no-wait", action="store_true", help="Do not wait for downloads.")
    p.set_defaults(func=cmd_download)

    p = subparsers.add_parser("queue", help="Show download queue status.")
    p.add_argument("--all", action="store_true", help="Include finished tasks.")
    p.set_defaults(func=cmd_queue)

    p = subparsers.add_parser("sync", help="Finish pending downloads.")
    p.set_defaults(func=cmd_sync)

    p = subparsers.add_parser("config", help="Show or change the download path.")
    p.add_argument("--download-path", default=None)
    p.set_defaults(func=cmd_config)

    p = subparsers.add_parser("play", help="Play a playlist through mpv.")
    p.add_argument("playlist")
    p.add_argument("position", type=int, nargs="?", default=1)
    p.set_defaults(func=cmd_play)

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    paths = LibraryPaths.resolve(args.home)

    try:
        paths.ensure()
        settings = load_settings(paths.settings_file)
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)
    except OSError as e:
        logger.error(f"Cannot prepare config root {paths.root}: {e}")
        sys.exit(1)

    log_file = None
    if args.log:
        try:
            log_file = get_log_path(paths)
        except OSError as e:
            logger.warning(f"File logging disabled: {e}")
    setup_logging(args.log_level or settings.log_level, log_file)

    player = Player(paths=paths, settings=settings)
    try:
        player.open()
        status = args.func(player, args)
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        player.close(timeout=0)
        sys.exit(130)
    except TrackdeckError as e:
        logger.error(f"{e}")
        player.close()
        sys.exit(1)
    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        player.close()
        sys.exit(1)

    player.close()
    if status:
        sys.exit(status)


if __name__ == "__main__":
    main()
