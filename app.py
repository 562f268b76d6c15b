#!/usr/bin/env python3
"""
app.py – asyncio runner

Owns one PlaybackController for a session.  User intents arrive through
EventManager (from any thread); the main loop drains them every tick and
returns once playback has come to rest at the end of the last playlist, or
on an error, or when asked to quit.
"""
from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Optional

import config
from events import Action, EventManager
from player import PlaybackController
from state import Phase, PlayerState
from timing import format_time

logger = logging.getLogger(__name__)


# ── logging ────────────────────────────────────────────────────────────────
def setup_logging(level: str | int = config.LOG_LEVEL,
                  log_file: Optional[str] = None) -> logging.Logger:
    """Console (and optional file) logging for every module, installed once."""
    root = logging.getLogger()
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)
    root.setLevel(level)
    formatter = logging.Formatter(config.LOG_FORMAT)

    if not any(type(h) is logging.StreamHandler for h in root.handlers):
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(formatter)
        root.addHandler(stream_handler)

    if log_file:
        log_path = Path(log_file)
        if not any(isinstance(h, logging.FileHandler)
                   and getattr(h, "baseFilename", "") == os.path.abspath(log_path)
                   for h in root.handlers):
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_path, encoding="utf-8")
            file_handler.setFormatter(formatter)
            root.addHandler(file_handler)

    return root


# ── main loop ──────────────────────────────────────────────────────────────
class PlaylistRunner:
    def __init__(self, controller: PlaybackController, tick: float = config.TICK_SEC):
        self.ctl     = controller
        self.tick    = tick
        self.running = False
        self._last_label: Optional[str] = None
        self._last_index = -1
        controller.subscribe(self._on_state)

    async def dispatch(self, act: Action) -> None:
        ctl = self.ctl
        t = act.get("type")
        if t == "quit":
            self.running = False
        elif t == "play":
            await ctl.play()
        elif t == "pause":
            await ctl.pause()
        elif t == "toggle":
            await ctl.toggle_play_pause()
        elif t == "stop":
            await ctl.stop()
        elif t == "next":
            await ctl.next()
        elif t == "previous":
            await ctl.previous()
        elif t == "seek":
            await ctl.seek_to(float(act["to"]))
        elif t == "play_segment":
            await ctl.play_segment(int(act["index"]))
        elif t == "set_rate":
            ctl.set_rate(float(act["rate"]))
        elif t == "clear_queue":
            ctl.clear_queue()
        elif t == "remove_from_queue":
            ctl.remove_from_queue(int(act["index"]))
        elif t == "load":
            await ctl.load_playlist(
                act.get("entries"),
                mode=act.get("mode", "replace"),
                auto_play=bool(act.get("auto_play", False)),
                clear_queue=bool(act.get("clear_queue", False)),
                position=act.get("position", config.DEFAULT_QUEUE_POSITION),
            )
        else:
            logger.warning("Unknown action %r", act)

    @property
    def finished(self) -> bool:
        st = self.ctl.state
        if st.phase is Phase.ERROR:
            return True
        return (st.phase is Phase.IDLE
                and st.virtual_time >= st.total_duration
                and not self.ctl.queue
                and not self.ctl.transition_pending)

    async def run(self) -> PlayerState:
        self.running = True
        while self.running:
            while (act := EventManager.poll()):
                try:
                    await self.dispatch(act)
                except (KeyError, ValueError) as exc:
                    logger.warning("Bad action %r: %s", act, exc)
            if self.finished:
                break
            await asyncio.sleep(self.tick)
        return self.ctl.state

    # ── reporting ─────────────────────────────────────────────────────────
    def _on_state(self, st: PlayerState) -> None:
        if st.phase is Phase.ERROR:
            logger.error("Playback error: %s", st.error)
            return
        label = self.ctl.get_current_marker_label()
        if label != self._last_label or st.active_segment_index != self._last_index:
            self._last_label = label
            self._last_index = st.active_segment_index
            seg = self.ctl.get_current_segment()
            logger.info("▶ %d/%d %s  [%s / %s]",
                        st.active_segment_index + 1, len(self.ctl.get_segment_map()),
                        label or (seg.label if seg else "") or "",
                        format_time(st.virtual_time), format_time(st.total_duration))
