"""
playlist_loader.py  – playlist files + media sanity checks

Reads the JSON playlists the command-line runner plays, and probes media
with PyAV so a playlist whose markers run past the end of their file can be
spotted before playback.

File format: either a bare list of segment descriptors or
``{"playlist": [ ... ]}``.  Descriptor keys are those ``build_segment_map``
understands; anything else rides along untouched.
"""
from __future__ import annotations

import json
import logging
import pathlib
import typing as _t
from dataclasses import dataclass

import av

import config
from errors import PlaylistFileError
from segment_map import build_segment_map

logger = logging.getLogger(__name__)

Descriptor = _t.Dict[str, _t.Any]


# ---------- files ---------------------------------------------------------
def load_playlist_file(path: str | pathlib.Path) -> list[Descriptor]:
    p = pathlib.Path(path)
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise PlaylistFileError(f"cannot read playlist {p}: {exc}") from exc

    if isinstance(data, dict):
        data = data.get("playlist")
    if not isinstance(data, list) or not all(isinstance(d, dict) for d in data):
        raise PlaylistFileError(f"{p}: expected a list of segment objects")

    # relative media paths are relative to the playlist file
    base = p.parent
    out = []
    for entry in data:
        entry = dict(entry)
        for key in ("media_url", "mediaUrl", "audioUrl"):
            url = entry.get(key)
            if isinstance(url, str) and "://" not in url and not pathlib.Path(url).is_absolute():
                entry[key] = str((base / url).resolve())
        out.append(entry)
    return out


# ---------- probe ---------------------------------------------------------
def probe_duration(url: str) -> float:
    """Return media length in seconds.  Zero on error."""
    try:
        with av.open(url) as c:
            stream = next((s for s in c.streams if s.type == "audio"),
                          c.streams[0] if c.streams else None)
            if stream is not None and stream.duration and stream.time_base:
                return float(stream.duration * stream.time_base)
            if c.duration:
                return c.duration / av.time_base
    except Exception as exc:
        logger.debug("probe failed for %s: %s", url, exc)
    return 0.0


# ---------- verify --------------------------------------------------------
@dataclass(frozen=True)
class VerifyResult:
    index: int
    media_url: str
    start: float
    end: float
    media_duration: float

    @property
    def ok(self) -> bool:
        if self.media_duration <= 0:
            return False
        return self.end <= self.media_duration + config.PROBE_TOLERANCE_SEC

    def describe(self) -> str:
        mark = "✓" if self.ok else "✗"
        return (f"SEG {self.index:>3}:  {pathlib.Path(self.media_url).name}  "
                f"{self.start:8.3f}–{self.end:8.3f}s  of {self.media_duration:8.3f}s  ({mark})")


def verify_playlist(entries: _t.Iterable[_t.Mapping[str, _t.Any]],
                    probe: _t.Callable[[str], float] = probe_duration) -> list[VerifyResult]:
    """Probe each distinct file once and compare it against its segments."""
    seg_map = build_segment_map(entries)
    lengths: dict[str, float] = {}
    results = []
    for seg in seg_map:
        if seg.media_url not in lengths:
            lengths[seg.media_url] = probe(seg.media_url)
        res = VerifyResult(seg.index, seg.media_url, seg.start_offset,
                           seg.end_offset, lengths[seg.media_url])
        if not res.ok:
            logger.warning("segment %d does not fit its media: %s", seg.index, res.describe())
        results.append(res)
    return results
