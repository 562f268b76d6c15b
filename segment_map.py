"""
segment_map.py

Builds the virtual timeline for one playlist.

Every playlist entry points at a media file plus a start/end offset inside it
(taken from its marker timestamps).  Laid end to end, the entries form one
continuous timeline; ``SegmentMap`` answers "which segment, and where in it"
for any point on that timeline.

* Single left-to-right pass, cumulative ``virtual_start``/``virtual_end``.
* Lookup is O(log n) via ``bisect`` over the segment ends.
* Entries with fewer than two markers get zero duration and collapse to a
  point on the timeline.
"""

from __future__ import annotations

import bisect
import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

from errors import InvalidSegment

# Keys the builder interprets; everything else is passed through in `meta`.
_URL_KEYS    = ("media_url", "mediaUrl", "audioUrl")
_LABEL_KEYS  = ("label", "reference")
_MARKER_KEYS = ("markers",)


# ── Data structures ─────────────────────────────────────────────────────────
@dataclass(frozen=True)
class Segment:
    index: int
    media_url: str
    start_offset: float            # real time inside media_url
    end_offset: float
    virtual_start: float           # cumulative position on the playlist timeline
    virtual_end: float
    markers: Tuple[float, ...] = ()
    label: Optional[str] = None
    meta: Mapping[str, Any] = field(default_factory=dict)

    @property
    def duration(self) -> float:
        return self.virtual_end - self.virtual_start

    def contains(self, virtual_time: float) -> bool:
        return self.virtual_start <= virtual_time <= self.virtual_end


class SegmentMap(Sequence[Segment]):
    """Immutable, ordered run of contiguous segments."""

    def __init__(self, segments: Iterable[Segment] = ()) -> None:
        self._segments: Tuple[Segment, ...] = tuple(segments)
        self._ends: List[float] = [s.virtual_end for s in self._segments]

    # ------------------------------------------------------------- sequence
    def __getitem__(self, i):
        return self._segments[i]

    def __len__(self) -> int:
        return len(self._segments)

    def __iter__(self) -> Iterator[Segment]:
        return iter(self._segments)

    def __repr__(self) -> str:
        return f"SegmentMap({len(self)} segments, {self.total_duration:.3f}s)"

    # ------------------------------------------------------------- totals
    @property
    def total_duration(self) -> float:
        return self._segments[-1].virtual_end if self._segments else 0.0

    # ------------------------------------------------------------- lookup
    def locate(self, virtual_time: float) -> Tuple[int, float]:
        """
        Return ``(index, offset_in_segment)`` for a point on the timeline.

        Out-of-range targets clamp to the start of the first segment or the
        end of the last one.  A point shared by two segments (the end of one,
        the start of the next) belongs to the earlier segment.
        """
        if not self._segments:
            raise IndexError("locate() on an empty segment map")

        if math.isnan(virtual_time) or virtual_time <= 0:
            return 0, 0.0
        if virtual_time >= self.total_duration:
            last = self._segments[-1]
            return last.index, last.duration

        idx = bisect.bisect_left(self._ends, virtual_time)
        seg = self._segments[idx]
        return idx, virtual_time - seg.virtual_start

    def boundary_marks(self) -> List[Tuple[int, float]]:
        """``(index, percent)`` of each segment start, for drawing a seek bar."""
        total = self.total_duration
        if total <= 0:
            return []
        return [(s.index, s.virtual_start / total * 100.0) for s in self._segments]


# ── Builder ─────────────────────────────────────────────────────────────────
def _first(entry: Mapping[str, Any], keys: Sequence[str]) -> Any:
    for k in keys:
        if entry.get(k) is not None:
            return entry[k]
    return None


def _markers_of(entry: Mapping[str, Any], index: int) -> Tuple[float, ...]:
    raw = _first(entry, _MARKER_KEYS)
    if raw is None:
        timing = entry.get("timingData") or {}
        raw = timing.get("timestamps") if isinstance(timing, Mapping) else None
    if not raw:
        return ()
    try:
        return tuple(float(t) for t in raw)
    except (TypeError, ValueError) as exc:
        raise InvalidSegment(f"entry {index}: markers must be numbers") from exc


def build_segment_map(entries: Iterable[Mapping[str, Any]] | None) -> SegmentMap:
    """Annotate raw playlist entries with real and virtual timing."""
    segments: List[Segment] = []
    cumulative = 0.0

    for index, entry in enumerate(entries or ()):
        if not isinstance(entry, Mapping):
            raise InvalidSegment(f"entry {index}: expected a mapping, got {type(entry).__name__}")
        url = _first(entry, _URL_KEYS)
        if not url:
            raise InvalidSegment(f"entry {index}: missing media url")

        markers = _markers_of(entry, index)
        start = markers[0] if markers else 0.0
        end = markers[-1] if markers else start
        # TODO: confirm with product whether untimed entries should stay
        # zero-width or borrow the media length.
        duration = end - start if len(markers) >= 2 else 0.0

        consumed = set(_URL_KEYS) | set(_LABEL_KEYS) | set(_MARKER_KEYS)
        meta = {k: v for k, v in entry.items() if k not in consumed}
        label = _first(entry, _LABEL_KEYS)

        segments.append(Segment(
            index=index,
            media_url=str(url),
            start_offset=start,
            end_offset=end,
            virtual_start=cumulative,
            virtual_end=cumulative + duration,
            markers=markers,
            label=str(label) if label is not None else None,
            meta=MappingProxyType(meta),
        ))
        cumulative += duration

    return SegmentMap(segments)
