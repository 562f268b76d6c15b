"""
markers.py

Which sub-unit (e.g. spoken verse) of the active segment is playing.

A segment's markers are ascending real-time offsets: the start of every
sub-unit plus one final end time, so ``n`` markers delimit ``n - 1``
sub-units.  Labels follow the reference grammar ``"<BOOK> <CH>:<verses>"``
where ``<verses>`` is ``16``, ``16-18`` or a comma list of either
(``1,3,5-7``).  A bare ``"<BOOK> <CH>"`` numbers its sub-units from 1;
any other label has no sub-unit reference.
"""

from __future__ import annotations

import bisect
import re
from typing import List, Optional, Sequence, Tuple

_REF_RE = re.compile(r"^([A-Z0-9]+)\s+(\d+):(.+)$", re.IGNORECASE)
_CHAPTER_RE = re.compile(r"^([A-Z0-9]+)\s+(\d+)$", re.IGNORECASE)


def resolve_marker_index(markers: Sequence[float], real_time: float) -> int:
    """
    Index of the interval ``[markers[k], markers[k+1])`` holding *real_time*.
    Times before the first marker give 0, times past the last give the last
    interval.  Returns -1 only when there are no markers at all.
    """
    if not markers:
        return -1
    units = max(1, len(markers) - 1)
    k = bisect.bisect_right(markers, real_time) - 1
    return min(max(k, 0), units - 1)


def _expand_verses(verse_part: str) -> List[str]:
    verses: List[str] = []
    for part in verse_part.split(","):
        part = part.strip()
        if not part:
            continue
        if "-" in part:
            lo, _, hi = part.partition("-")
            try:
                verses.extend(str(v) for v in range(int(lo), int(hi) + 1))
            except ValueError:
                verses.append(part)
        else:
            verses.append(part)
    return verses


def parse_reference(label: str) -> Optional[Tuple[str, List[str]]]:
    """
    Split a reference into its ``"BOOK CH"`` prefix and list of verse units.
    An empty unit list means "number them 1..n".  None if *label* is not a
    reference.

    >>> parse_reference("JHN 3:16-18")
    ('JHN 3', ['16', '17', '18'])
    >>> parse_reference("JHN 3")
    ('JHN 3', [])
    """
    label = label.strip()
    m = _REF_RE.match(label)
    if not m:
        m = _CHAPTER_RE.match(label)
        return (f"{m.group(1)} {m.group(2)}", []) if m else None
    return f"{m.group(1)} {m.group(2)}", _expand_verses(m.group(3))


def resolve_marker_label(markers: Sequence[float],
                         label: Optional[str],
                         real_time: float) -> Optional[str]:
    """``"BOOK CH:unit"`` for the sub-unit playing at *real_time*, or None."""
    if not label or not markers:
        return None
    k = resolve_marker_index(markers, real_time)
    ref = parse_reference(label)
    if ref is None:
        return None
    prefix, units = ref
    if units:
        unit = units[min(k, len(units) - 1)]
    else:
        unit = str(k + 1)
    return f"{prefix}:{unit}"
