"""
state.py

Player State: what the outside world may observe about playback.  Snapshots
are immutable; the controller is the only writer.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional

import config


class Phase(str, enum.Enum):
    IDLE    = "idle"
    LOADING = "loading"
    PLAYING = "playing"
    PAUSED  = "paused"
    SEEKING = "seeking"
    ERROR   = "error"


@dataclass(frozen=True)
class PlayerState:
    phase: Phase = Phase.IDLE
    active_segment_index: int = 0
    real_time: float = 0.0            # seconds inside the active media file
    virtual_time: float = 0.0         # seconds on the playlist timeline
    total_duration: float = 0.0
    rate: float = config.DEFAULT_RATE
    loading: bool = False
    error: Optional[str] = None
    media_duration: Optional[float] = None   # length reported by the resource
    queue_length: int = 0
