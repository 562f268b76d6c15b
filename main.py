"""
main.py – command-line entry point

    segment-player story.json --queue next.json --rate 1.25

Commands on stdin while playing: play, pause, toggle, stop, next, prev,
seek <seconds>, segment <index>, rate <r>, remove <queue index>, clear, quit.
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import threading

import app
from errors import InvalidSegment, PlaylistFileError
from events import EventManager
from player import PlaybackController
from playlist_loader import load_playlist_file, verify_playlist
from state import Phase

logger = logging.getLogger("main")


def _read_commands(stream=sys.stdin) -> None:
    for line in stream:
        EventManager.handle(line.rstrip("\n"))


async def _play(entries, queued, rate) -> int:
    from media_player import GstMediaPlayer

    backend = GstMediaPlayer(asyncio.get_running_loop())
    ctl = PlaybackController(backend)
    runner = app.PlaylistRunner(ctl)

    if rate is not None:
        ctl.set_rate(rate)
    for extra in queued:
        await ctl.load_playlist(extra, mode="queue")
    await ctl.load_playlist(entries, mode="replace", auto_play=True)

    threading.Thread(target=_read_commands, daemon=True).start()
    try:
        state = await runner.run()
    finally:
        await ctl.close()
        backend.shutdown()
    return 1 if state.phase is Phase.ERROR else 0


def main(argv=None) -> int:
    ap = argparse.ArgumentParser(description="Play segmented audio playlists as one timeline")
    ap.add_argument("playlist", help="JSON playlist file")
    ap.add_argument("--queue", action="append", default=[], metavar="FILE",
                    help="playlist to play afterwards (repeatable, FIFO)")
    ap.add_argument("--rate", type=float, default=None,
                    help="playback rate, 0.25–2.0")
    ap.add_argument("--verify", action="store_true",
                    help="probe media against segment markers and exit")
    ap.add_argument("--log-level", default="INFO")
    ap.add_argument("--log-file", default=None)
    args = ap.parse_args(argv)

    app.setup_logging(args.log_level, args.log_file)

    try:
        entries = load_playlist_file(args.playlist)
        queued = [load_playlist_file(p) for p in args.queue]
    except PlaylistFileError as exc:
        logger.error("%s", exc)
        return 2

    try:
        if args.verify:
            results = verify_playlist(entries)
            for res in results:
                print(res.describe())
            return 0 if all(r.ok for r in results) else 1
        return asyncio.run(_play(entries, queued, args.rate))
    except InvalidSegment as exc:
        logger.error("Invalid playlist: %s", exc)
        return 2


if __name__ == "__main__":
    sys.exit(main())
