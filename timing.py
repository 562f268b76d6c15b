# =========  timing.py  =========
"""
Conversions between the two clocks the player juggles.

* real time    – seconds inside the media file backing the active segment
* virtual time – seconds on the whole-playlist timeline
"""

import math

from segment_map import Segment


def to_virtual(real_time: float, segment: Segment) -> float:
    """
    Virtual position for a real position inside *segment*'s media.
    Never negative; continuous while the real clock moves inside the segment.
    """
    return segment.virtual_start + max(0.0, real_time - segment.start_offset)


def to_real(offset: float, segment: Segment) -> float:
    """Real position for an offset measured from the start of *segment*."""
    return segment.start_offset + max(0.0, offset)


def format_time(sec: float) -> str:
    """``m:ss`` for seek-bar labels; ``0:00`` for missing/NaN values."""
    if not sec or math.isnan(sec):
        return "0:00"
    m, s = divmod(int(max(0.0, sec)), 60)
    return f"{m}:{s:02d}"


def format_hms(sec: float) -> str:
    sec = int(max(0, sec))
    m, s = divmod(sec, 60)
    h, m = divmod(m, 60)
    return f"{h:02d}:{m:02d}:{s:02d}"
