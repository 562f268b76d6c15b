"""
playlist_queue.py

Pending playlists, played automatically once the active one runs out.
FIFO by default; "start" jumps the line, an integer inserts at that index.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

import config

Position = Union[str, int]
Playlist = Tuple[Mapping[str, Any], ...]


@dataclass(frozen=True, eq=False)
class QueuedPlaylist:
    """One pending playlist.  Identity, not content, distinguishes entries."""
    entries: Playlist
    insertion: str                 # "append" | "prepend" | "index"


class PlaylistQueue:
    def __init__(self) -> None:
        self._items: List[QueuedPlaylist] = []

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[QueuedPlaylist]:
        return iter(list(self._items))

    def __bool__(self) -> bool:
        return bool(self._items)

    def snapshot(self) -> Tuple[QueuedPlaylist, ...]:
        return tuple(self._items)

    # ---------------------------------------------------------------- edits
    @staticmethod
    def insertion_for(position: Position) -> str:
        """Insertion kind for *position*; ValueError if it is not one."""
        # bool is an int subclass; True/False are not positions
        if isinstance(position, int) and not isinstance(position, bool):
            return "index"
        if position == "start":
            return "prepend"
        if position == "end":
            return "append"
        raise ValueError(f"queue position must be 'start', 'end' or an int, not {position!r}")

    def enqueue(self, playlist: Sequence[Mapping[str, Any]],
                position: Position = config.DEFAULT_QUEUE_POSITION) -> QueuedPlaylist:
        item = QueuedPlaylist(tuple(playlist), self.insertion_for(position))
        if item.insertion == "index":
            self._items.insert(position, item)
        elif item.insertion == "prepend":
            self._items.insert(0, item)
        else:
            self._items.append(item)
        return item

    def dequeue_next(self) -> Optional[Playlist]:
        if not self._items:
            return None
        return self._items.pop(0).entries

    def clear(self) -> None:
        self._items.clear()

    def remove_at(self, index: int) -> Optional[QueuedPlaylist]:
        """Drop the playlist at *index*; out-of-range indices are ignored."""
        if not -len(self._items) <= index < len(self._items):
            return None
        return self._items.pop(index)
