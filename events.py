#!/usr/bin/env python3
"""
events.py  – central hub

• MediaEvent: tagged lifecycle/timing events emitted by the media backend
  (ready, waiting, time advanced, duration, ended, error) and consumed by the
  playback controller's transition function.
• EventManager: a thread-safe queue so *any* external source (stdin reader,
  remote, tests) can inject user intents as action dicts.
"""

from __future__ import annotations

import enum
import queue
import shlex
from dataclasses import dataclass
from typing import Optional

Action = dict      # alias for readability


# ── media events ───────────────────────────────────────────────────────────
class MediaEventKind(enum.Enum):
    CAN_PLAY    = "can_play"      # enough data buffered to render
    WAITING     = "waiting"       # stalled, buffering
    TIME_UPDATE = "time_update"   # real position advanced
    DURATION    = "duration"      # resource length known/changed
    ENDED       = "ended"         # natural end of the resource
    ERROR       = "error"         # load/decode failure


@dataclass(frozen=True)
class MediaEvent:
    kind: MediaEventKind
    url: Optional[str] = None         # source the event belongs to
    position: Optional[float] = None  # TIME_UPDATE
    duration: Optional[float] = None  # DURATION
    message: Optional[str] = None     # ERROR


# ── user intents ───────────────────────────────────────────────────────────
class EventManager:
    _fifo: "queue.Queue[Action]" = queue.Queue()      # global, thread-safe

    # ── text command path ─────────────────────────────────────────────
    @classmethod
    def handle(cls, line: str) -> None:
        """Translate one text command → action and enqueue it."""
        act = translate_command(line)
        if act:
            cls._fifo.put(act)

    # ── external / programmatic path ───────────────────────────────────
    @classmethod
    def post(cls, action: Action) -> None:
        """Inject a ready-made action from any thread, e.g. ``{"type": "seek", "to": 42.0}``."""
        cls._fifo.put(action)

    # ── main-loop consumer ─────────────────────────────────────────────
    @classmethod
    def poll(cls) -> Action | None:
        """Return next queued action or None (non-blocking)."""
        try:
            return cls._fifo.get_nowait()
        except queue.Empty:
            return None

    @classmethod
    def reset(cls) -> None:
        while cls.poll() is not None:
            pass


# ── internal translator ───────────────────────────────────────────────────
_SIMPLE = {
    "play":   "play",
    "pause":  "pause",
    "toggle": "toggle",
    " ":      "toggle",
    "stop":   "stop",
    "next":   "next",
    "n":      "next",
    "prev":   "previous",
    "p":      "previous",
    "clear":  "clear_queue",
    "quit":   "quit",
    "q":      "quit",
}


def translate_command(line: str) -> Action | None:
    """
    ``"seek 42.5"`` → ``{"type": "seek", "to": 42.5}`` etc.
    Unknown or malformed commands give None.
    """
    if line in _SIMPLE:
        return {"type": _SIMPLE[line]}
    try:
        words = shlex.split(line.strip().lower())
    except ValueError:
        return None
    if not words:
        return None

    cmd, args = words[0], words[1:]
    if cmd in _SIMPLE and not args:
        return {"type": _SIMPLE[cmd]}
    if len(args) != 1:
        return None

    try:
        if cmd == "seek":
            return {"type": "seek", "to": float(args[0])}
        if cmd == "rate":
            return {"type": "set_rate", "rate": float(args[0])}
        if cmd in ("segment", "seg"):
            return {"type": "play_segment", "index": int(args[0])}
        if cmd == "remove":
            return {"type": "remove_from_queue", "index": int(args[0])}
    except ValueError:
        return None
    return None
