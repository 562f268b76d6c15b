# =========  media_player.py  =========
"""
GStreamer implementation of the media resource.

One ``playbin`` (audio to the configured sink, video discarded), a bus watch
and a position tick running on a GLib main loop in a side thread.  Bus
messages become MediaEvents delivered thread-safely to the asyncio loop.

Public API: see ``backend.MediaBackend``.  ``shutdown()`` also stops the
GLib side loop.
"""

from __future__ import annotations

import asyncio
import logging
import os
import threading
from typing import Optional

import gi
gi.require_version("Gst", "1.0")
from gi.repository import GLib, Gst

import config
from backend import EventSink, MediaBackend
from errors import PlaybackRejected
from events import MediaEvent, MediaEventKind

logger = logging.getLogger(__name__)


def _to_uri(url: str) -> str:
    if Gst.uri_is_valid(url):
        return url
    return Gst.filename_to_uri(os.path.abspath(url))


class GstMediaPlayer(MediaBackend):
    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        Gst.init(None)

        # audio-only playbin
        self.player = Gst.ElementFactory.make("playbin", "player")
        self.player.set_property("video-sink",
                                 Gst.ElementFactory.make("fakesink", "vid"))
        self.player.set_property("audio-sink",
                                 Gst.ElementFactory.make(config.AUDIO_SINK, "aud"))

        # state
        self._loop  = loop
        self._sink: Optional[EventSink] = None
        self._ready = False
        self._playing = False
        self._rate  = config.DEFAULT_RATE
        self.url: Optional[str] = None
        # bus messages numbered before this belong to an earlier source
        self._first_seqnum = Gst.util_seqnum_next()
        self._lock = threading.Lock()

        # bus watch + position tick in a side loop
        bus = self.player.get_bus()
        bus.add_signal_watch()
        bus.connect("message", self._on_bus_msg)
        GLib.timeout_add(config.POSITION_POLL_MS, self._on_tick)
        self._ml = GLib.MainLoop()
        self._ml_thread = threading.Thread(target=self._ml.run, daemon=True)
        self._ml_thread.start()

    # ── public API ──────────────────────────────────────────────────────────
    def bind(self, sink: EventSink) -> None:
        self._sink = sink
        if self._loop is None:
            self._loop = asyncio.get_running_loop()

    @property
    def ready(self) -> bool:
        return self._ready

    @property
    def position(self) -> float:
        ok, pos = self.player.query_position(Gst.Format.TIME)
        return pos / Gst.SECOND if ok else 0.0

    def load(self, url: str) -> None:
        with self._lock:
            self._reset_source(url)
        self.player.set_property("uri", _to_uri(url))
        # preroll; ASYNC_DONE on the bus marks readiness
        if self.player.set_state(Gst.State.PAUSED) == Gst.StateChangeReturn.FAILURE:
            self._emit(MediaEvent(MediaEventKind.ERROR, url=url,
                                  message=f"cannot open {url}"))

    async def play(self) -> None:
        ret = self.player.set_state(Gst.State.PLAYING)
        if ret == Gst.StateChangeReturn.FAILURE:
            raise PlaybackRejected(f"playbin refused to play {self.url}")
        self._playing = True
        if self._rate != 1.0:
            self._apply_rate(self.position)

    def pause(self) -> None:
        self._playing = False
        if self.url:
            self.player.set_state(Gst.State.PAUSED)

    def seek(self, seconds: float) -> None:
        self._apply_rate(seconds)

    def set_rate(self, rate: float) -> None:
        self._rate = rate
        if self._ready:
            self._apply_rate(self.position)

    def close(self) -> None:
        with self._lock:
            self._reset_source(None)

    def shutdown(self) -> None:
        self.close()
        if self._ml:
            self._ml.quit()
            self._ml = None
        if self._ml_thread and threading.current_thread() is not self._ml_thread:
            self._ml_thread.join(timeout=0.5)
        self._ml_thread = None

    # ── internals ───────────────────────────────────────────────────────────
    def _reset_source(self, url: Optional[str]) -> None:
        self.player.set_state(Gst.State.NULL)
        self._ready   = False
        self._playing = False
        self.url = url
        self._first_seqnum = Gst.util_seqnum_next()

    def _is_stale(self, msg) -> bool:
        return Gst.util_seqnum_compare(msg.get_seqnum(), self._first_seqnum) < 0

    def _apply_rate(self, seconds: float) -> None:
        self.player.seek(
            self._rate,
            Gst.Format.TIME,
            Gst.SeekFlags.FLUSH | Gst.SeekFlags.ACCURATE,
            Gst.SeekType.SET, int(max(0.0, seconds) * Gst.SECOND),
            Gst.SeekType.NONE, -1,
        )

    def _emit(self, event: MediaEvent) -> None:
        # bus callbacks run on the GLib thread; hop onto the asyncio loop
        if self._sink is None or self._loop is None or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._sink, event)

    def _on_tick(self):
        if self._playing and self.url:
            self._emit(MediaEvent(MediaEventKind.TIME_UPDATE, url=self.url,
                                  position=self.position))
        return True

    def _on_bus_msg(self, bus, msg):
        t = msg.type
        with self._lock:
            # NULL flushes the bus; a new preroll's ASYNC_DONE may reuse an older seqnum
            if t != Gst.MessageType.ASYNC_DONE and self._is_stale(msg):
                logger.debug("Dropping %s from a previous source", Gst.MessageType.get_name(t))
                return True
            url = self.url
            self._dispatch(t, msg, url)
        return True

    def _dispatch(self, t, msg, url: Optional[str]) -> None:
        if t == Gst.MessageType.ASYNC_DONE:
            self._ready = True
            self._emit(MediaEvent(MediaEventKind.CAN_PLAY, url=url))
        elif t == Gst.MessageType.BUFFERING:
            percent = msg.parse_buffering()
            if percent < 100:
                self._ready = False
                self._emit(MediaEvent(MediaEventKind.WAITING, url=url))
            else:
                self._ready = True
                self._emit(MediaEvent(MediaEventKind.CAN_PLAY, url=url))
        elif t == Gst.MessageType.DURATION_CHANGED:
            ok, dur = self.player.query_duration(Gst.Format.TIME)
            if ok:
                self._emit(MediaEvent(MediaEventKind.DURATION, url=url,
                                      duration=dur / Gst.SECOND))
        elif t == Gst.MessageType.EOS:
            self._playing = False
            self._emit(MediaEvent(MediaEventKind.ENDED, url=url))
        elif t == Gst.MessageType.ERROR:
            err, debug = msg.parse_error()
            logger.error("GStreamer error: %s (%s)", err, debug)
            self._ready   = False
            self._playing = False
            self._emit(MediaEvent(MediaEventKind.ERROR, url=url,
                                  message=str(err)))
